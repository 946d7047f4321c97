"""Bounded retry with exponential backoff for diff and blame collaborator calls."""

from __future__ import annotations

import logging
from typing import Callable, TypeVar

import backoff

from survival.core.config import settings
from survival.core.errors import RateLimited, SourceError
from survival.telemetry import record_source_retry

_logger = logging.getLogger(__name__)

T = TypeVar("T")


def source_backoff(base: float = 2, factor: float = 1.0, rate_limit_factor: float = 5.0, max_value: float | None = None):
    """Exponential wait generator that stretches waits for rate-limit errors.

    backoff sends the raised exception into the generator before each wait.
    """

    exc = yield
    attempt = 0
    while True:
        wait = factor * base**attempt
        if isinstance(exc, RateLimited):
            wait = max(wait * rate_limit_factor, exc.retry_after or 0.0)
        if max_value is not None:
            wait = min(wait, max_value)
        attempt += 1
        exc = yield wait


class RetryPolicy:
    """Retries transient SourceErrors; AuthenticationFailure is given up on immediately."""

    def __init__(
        self,
        *,
        max_tries: int | None = None,
        max_time: float | None = None,
        base_seconds: float | None = None,
        rate_limit_factor: float | None = None,
    ) -> None:
        self.max_tries = max(1, max_tries if max_tries is not None else settings.retry_max_tries)
        self.max_time = max_time if max_time is not None else settings.retry_max_time_seconds
        self.base_seconds = base_seconds if base_seconds is not None else settings.retry_base_seconds
        self.rate_limit_factor = (
            rate_limit_factor if rate_limit_factor is not None else settings.rate_limit_backoff_factor
        )

    def call(self, fn: Callable[..., T], *args, **kwargs) -> T:
        @backoff.on_exception(
            source_backoff,
            SourceError,
            max_tries=self.max_tries,
            max_time=self.max_time,
            giveup=lambda exc: not exc.transient,
            jitter=None,
            on_backoff=self._on_retry,
            on_giveup=self._on_giveup,
            factor=self.base_seconds,
            rate_limit_factor=self.rate_limit_factor,
            max_value=self.max_time,
        )
        def _do_call() -> T:
            return fn(*args, **kwargs)

        return _do_call()

    @staticmethod
    def _on_retry(details: dict) -> None:
        exc = details.get("exception")
        record_source_retry(type(exc).__name__)
        _logger.warning(
            "Retry %s after %.1fs: %s",
            details["tries"],
            details["wait"],
            exc,
        )

    @staticmethod
    def _on_giveup(details: dict) -> None:
        exc = details.get("exception")
        if isinstance(exc, SourceError) and not exc.transient:
            return
        _logger.warning("Giving up after %s tries: %s", details["tries"], exc)
