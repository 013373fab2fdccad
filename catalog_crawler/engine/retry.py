"""Caller-side retry wrapper around single fetches."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

import structlog

from ..errors import ExtractionError, RateLimitExceeded

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """Retry retriable crawler errors with exponential backoff.

    ``operation`` receives the zero-based attempt number so the coordinator can
    stamp it onto each job. ``ValidationError`` and anything that is not a
    crawler error propagate on the first failure. A ``RateLimitExceeded`` waits
    at least until the limiter window resets.
    """

    max_retries: int = 3
    backoff_ms: int = 2000
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)
    retry_on: tuple[type[Exception], ...] = (RateLimitExceeded, ExtractionError)

    def delay_for(self, attempt: int, error: Exception) -> float:
        delay = self.backoff_ms / 1000 * (2**attempt)
        if isinstance(error, RateLimitExceeded):
            delay = max(delay, error.retry_after)
        return delay

    def call(
        self,
        operation: Callable[[int], T],
        logger: structlog.BoundLogger | None = None,
    ) -> T:
        log = logger or structlog.get_logger("catalog_crawler.retry")
        attempt = 0
        while True:
            try:
                return operation(attempt)
            except self.retry_on as exc:
                if attempt >= self.max_retries:
                    log.warning("retries_exhausted", attempts=attempt + 1, error=str(exc))
                    raise
                delay = self.delay_for(attempt, exc)
                log.info(
                    "retry_scheduled",
                    attempt=attempt + 1,
                    max_retries=self.max_retries,
                    delay_seconds=round(delay, 3),
                    error_type=exc.__class__.__name__,
                    error=str(exc),
                )
                self.sleep(delay)
                attempt += 1


__all__ = ["RetryPolicy"]
