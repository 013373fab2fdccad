from __future__ import annotations

import pytest

from catalog_crawler.engine.retry import RetryPolicy
from catalog_crawler.errors import ExtractionError, RateLimitExceeded, ValidationError


def test_retries_until_success_and_passes_attempt() -> None:
    delays: list[float] = []
    attempts: list[int] = []

    def operation(attempt: int) -> str:
        attempts.append(attempt)
        if attempt < 2:
            raise ExtractionError("flaky")
        return "ok"

    policy = RetryPolicy(max_retries=3, backoff_ms=100, sleep=delays.append)
    assert policy.call(operation) == "ok"
    assert attempts == [0, 1, 2]
    assert delays == pytest.approx([0.1, 0.2])


def test_gives_up_after_max_retries() -> None:
    calls: list[int] = []

    def operation(attempt: int) -> None:
        calls.append(attempt)
        raise ExtractionError("still broken")

    with pytest.raises(ExtractionError):
        RetryPolicy(max_retries=2, backoff_ms=0, sleep=lambda _: None).call(operation)
    assert calls == [0, 1, 2]


def test_validation_errors_are_not_retried() -> None:
    calls: list[int] = []

    def operation(attempt: int) -> None:
        calls.append(attempt)
        raise ValidationError("bad url")

    with pytest.raises(ValidationError):
        RetryPolicy(sleep=lambda _: None).call(operation)
    assert calls == [0]


def test_rate_limit_waits_for_window_reset() -> None:
    error = RateLimitExceeded("a.example", 2, 60, retry_after=42.0)
    policy = RetryPolicy(backoff_ms=1000)
    assert policy.delay_for(0, error) == 42.0
    assert policy.delay_for(0, ExtractionError("x")) == 1.0
    assert policy.delay_for(3, ExtractionError("x")) == 8.0
