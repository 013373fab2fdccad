"""Error taxonomy shared by the fetch orchestration layer."""

from __future__ import annotations


class CrawlerError(Exception):
    """Base class for every error raised by catalog-crawler."""

    retriable: bool = False


class ValidationError(CrawlerError):
    """Target URL (or another caller input) is malformed."""


class RateLimitExceeded(CrawlerError):
    """The per-domain request ceiling is exhausted for the live window."""

    retriable = True

    def __init__(self, domain: str, limit: int, window_seconds: float, retry_after: float) -> None:
        super().__init__(
            f"Rate limit exceeded for {domain}. "
            f"Max {limit} requests per {window_seconds:g}s window."
        )
        self.domain = domain
        self.limit = limit
        self.window_seconds = window_seconds
        self.retry_after = retry_after


class ExtractionError(CrawlerError):
    """The page extractor failed, timed out or was cancelled."""

    retriable = True

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        kind: str | None = None,
        timed_out: bool = False,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.kind = kind
        self.timed_out = timed_out


class NotFound(CrawlerError):
    """Requested job id is unknown to the job store."""


__all__ = [
    "CrawlerError",
    "ExtractionError",
    "NotFound",
    "RateLimitExceeded",
    "ValidationError",
]
