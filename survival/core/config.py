"""Application configuration via environment variables."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service-wide configuration options."""

    api_v1_prefix: str = "/v1"
    service_base_url: str = "http://localhost:8000"
    redis_url: str = "redis://localhost:6379/0"

    github_token: str | None = None
    github_base_url: str | None = None
    github_web_url: str = "https://github.com"
    github_cache_ttl_seconds: int = 300
    request_timeout_seconds: int = 15

    worker_concurrency: int = 4
    retry_max_tries: int = 3
    retry_max_time_seconds: float = 60.0
    retry_base_seconds: float = 1.0
    rate_limit_backoff_factor: float = 5.0

    match_tie_break: Literal["nearest", "first"] = "nearest"
    match_require_blame_commit: bool = True

    otel_enabled: bool = False
    otel_exporter: str = "console"
    otel_otlp_endpoint: str | None = None

    model_config = SettingsConfigDict(env_prefix="survival_", env_file=".env", extra="ignore")


settings = Settings()
