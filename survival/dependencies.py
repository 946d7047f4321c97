"""Application dependency wiring."""

from __future__ import annotations

from functools import lru_cache

from redis import Redis

from survival.core.config import settings
from survival.provenance.github_source import GitHubBlameSource, GitHubDiffSource
from survival.repositories.directory_store import RedisProjectDirectory
from survival.repositories.redis_store import RedisAnalysisStore
from survival.services.aggregation import AnalysisAggregator
from survival.services.analysis import AnalysisOrchestrator
from survival.services.file_analyzer import FileAnalyzer
from survival.services.resolver import LineProvenanceResolver, MatchPolicy
from survival.services.retry import RetryPolicy


@lru_cache
def get_redis_client() -> Redis:
    return Redis.from_url(settings.redis_url, decode_responses=True)


@lru_cache
def get_store() -> RedisAnalysisStore:
    return RedisAnalysisStore(get_redis_client())


@lru_cache
def get_directory() -> RedisProjectDirectory:
    return RedisProjectDirectory(get_redis_client())


def _require_token() -> str:
    if not settings.github_token:
        raise RuntimeError("SURVIVAL_GITHUB_TOKEN must be set to analyse pull requests")
    return settings.github_token


@lru_cache
def get_diff_source() -> GitHubDiffSource:
    return GitHubDiffSource(
        _require_token(),
        base_url=settings.github_base_url,
        timeout_seconds=settings.request_timeout_seconds,
        cache_ttl_seconds=settings.github_cache_ttl_seconds,
    )


@lru_cache
def get_blame_source() -> GitHubBlameSource:
    return GitHubBlameSource(
        _require_token(),
        base_url=settings.github_base_url,
        timeout_seconds=settings.request_timeout_seconds,
        cache_ttl_seconds=settings.github_cache_ttl_seconds,
    )


@lru_cache
def get_retry_policy() -> RetryPolicy:
    return RetryPolicy()


@lru_cache
def get_file_analyzer() -> FileAnalyzer:
    return FileAnalyzer(
        get_blame_source(),
        resolver=LineProvenanceResolver(MatchPolicy.from_settings()),
        retry_policy=get_retry_policy(),
        web_url=settings.github_web_url,
    )


@lru_cache
def get_orchestrator() -> AnalysisOrchestrator:
    return AnalysisOrchestrator(
        get_store(),
        get_directory(),
        get_diff_source(),
        get_file_analyzer(),
        retry_policy=get_retry_policy(),
        max_workers=settings.worker_concurrency,
    )


@lru_cache
def get_aggregator() -> AnalysisAggregator:
    return AnalysisAggregator(get_store())
