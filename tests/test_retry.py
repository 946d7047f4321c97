from __future__ import annotations

import pytest

from survival.core.errors import AuthenticationFailure, BlameUnavailable, RateLimited
from survival.services.retry import RetryPolicy, source_backoff

from tests.fakes import fast_retry


class Flaky:
    def __init__(self, failures):
        self.failures = list(failures)
        self.calls = 0

    def __call__(self, value):
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return value


def test_transient_errors_are_retried_until_success():
    fn = Flaky([RateLimited("slow down"), BlameUnavailable("502")])
    assert fast_retry(max_tries=3).call(fn, "ok") == "ok"
    assert fn.calls == 3


def test_gives_up_after_max_tries():
    fn = Flaky([BlameUnavailable("502")] * 4)
    with pytest.raises(BlameUnavailable):
        fast_retry(max_tries=2).call(fn, "ok")
    assert fn.calls == 2


def test_authentication_failure_is_never_retried():
    fn = Flaky([AuthenticationFailure("bad credentials")])
    with pytest.raises(AuthenticationFailure):
        fast_retry(max_tries=5).call(fn, "ok")
    assert fn.calls == 1


def test_non_source_errors_pass_through():
    def boom():
        raise KeyError("x")

    with pytest.raises(KeyError):
        fast_retry().call(boom)


def test_rate_limited_waits_longer_than_other_errors():
    waits = source_backoff(base=2, factor=1.0, rate_limit_factor=5.0)
    next(waits)
    assert waits.send(BlameUnavailable("502")) == 1.0
    assert waits.send(RateLimited("slow down")) == 10.0
    assert waits.send(RateLimited("slow down", retry_after=120)) == 120


def test_waits_are_capped():
    waits = source_backoff(base=2, factor=1.0, rate_limit_factor=5.0, max_value=3)
    next(waits)
    assert waits.send(RateLimited("slow down")) == 3


def test_policy_defaults_come_from_settings(monkeypatch):
    from survival.core.config import settings

    monkeypatch.setattr(settings, "retry_max_tries", 7)
    monkeypatch.setattr(settings, "rate_limit_backoff_factor", 9.0)
    policy = RetryPolicy()
    assert policy.max_tries == 7
    assert policy.rate_limit_factor == 9.0
