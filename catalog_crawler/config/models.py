"""Pydantic models describing catalog-crawler configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_SITE_URL = "https://www.worldofbooks.com/"


class CacheConfig(BaseModel):
    """TTL applied to every cached fetch result."""

    ttl_seconds: float = 3600.0

    @field_validator("ttl_seconds")
    @classmethod
    def _positive_ttl(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("ttl_seconds must be > 0")
        return value


class RateLimitConfig(BaseModel):
    """Per-domain request ceiling within a reset-based window."""

    window_seconds: float = 60.0
    max_requests: int = 30

    @model_validator(mode="after")
    def _validate_limits(self) -> "RateLimitConfig":
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        if self.max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        return self


class ExtractionConfig(BaseModel):
    """Options handed to page extractors."""

    timeout_seconds: float = 30.0
    use_browser: bool = True
    headless_mode: bool = True
    viewport_size: tuple[int, int] = (1920, 1080)
    user_agent: str | None = None
    workers: int = 8
    navigation_limit: int = 20
    listing_limit: int = 100

    @field_validator("viewport_size", mode="before")
    @classmethod
    def _coerce_viewport(cls, value: Any) -> tuple[int, int]:
        if isinstance(value, (list, tuple)) and len(value) == 2:
            return (int(value[0]), int(value[1]))
        raise ValueError("viewport_size expects two items [width, height]")

    @model_validator(mode="after")
    def _validate_bounds(self) -> "ExtractionConfig":
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        if self.workers < 1:
            raise ValueError("workers must be >= 1")
        if self.navigation_limit < 1 or self.listing_limit < 1:
            raise ValueError("navigation_limit and listing_limit must be >= 1")
        return self


class BatchConfig(BaseModel):
    """Wave size and pacing used by the batch scheduler."""

    concurrency: int = 3
    delay_ms: int = 1000

    @model_validator(mode="after")
    def _validate_batch(self) -> "BatchConfig":
        if self.concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        if self.delay_ms < 0:
            raise ValueError("delay_ms must be >= 0")
        return self


class RetryConfig(BaseModel):
    """Caller-side retry policy; the coordinator itself never retries."""

    max_retries: int = 3
    backoff_ms: int = 2000

    @model_validator(mode="after")
    def _validate_retry(self) -> "RetryConfig":
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.backoff_ms < 0:
            raise ValueError("backoff_ms must be >= 0")
        return self


class CrawlerConfig(BaseModel):
    """Top-level configuration shared by every component."""

    site_url: str = DEFAULT_SITE_URL
    cache: CacheConfig = Field(default_factory=CacheConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    jobs_db: Path = Field(default=Path("data/jobs.db"))
    outputs_dir: Path = Field(default=Path("data/outputs"))

    @field_validator("jobs_db", "outputs_dir", mode="before")
    @classmethod
    def _coerce_paths(cls, value: Any) -> Path:
        return Path(value)

    def resolve_path(self, path: Path, base_dir: Path) -> Path:
        """Return ``path`` relative to the project root unless already absolute."""

        if not path.is_absolute():
            return (base_dir / path).resolve()
        return path


__all__ = [
    "BatchConfig",
    "CacheConfig",
    "CrawlerConfig",
    "DEFAULT_SITE_URL",
    "ExtractionConfig",
    "RateLimitConfig",
    "RetryConfig",
]
