"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import (
    DEFAULT_SITE_URL,
    BatchConfig,
    CacheConfig,
    CrawlerConfig,
    ExtractionConfig,
    RateLimitConfig,
    RetryConfig,
)

__all__ = [
    "BatchConfig",
    "CacheConfig",
    "ConfigLocator",
    "ConfigRepository",
    "CrawlerConfig",
    "DEFAULT_SITE_URL",
    "ExtractionConfig",
    "RateLimitConfig",
    "RetryConfig",
]
