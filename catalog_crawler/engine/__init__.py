"""Fetch orchestration engine."""

from .batch import BatchFailure, BatchResult, BatchScheduler, FetchRequest
from .cache import CacheEntry, TTLCache
from .coordinator import CacheStatus, FetchCoordinator, HealthSnapshot, validate_url
from .dedup import dedupe_listings, usable_listings
from .extractor import BrowserPageExtractor, HttpPageExtractor, PageExtractor, build_extractor
from .jobs import Job, JobHandle, JobId, JobStatus, JobStore, JobTracker
from .parser import PageParser
from .rate_limiter import DomainRateLimiter, domain_of
from .records import (
    CategoryPage,
    ExtractedRecord,
    ListingResult,
    NavigationItem,
    NavigationResult,
    ProductDetail,
    ProductDetailResult,
    ProductListing,
    Review,
    ReviewsResult,
    TargetKind,
    cache_key,
)
from .retry import RetryPolicy
from .thread_pool import ThreadPoolManager

__all__ = [
    "BatchFailure",
    "BatchResult",
    "BatchScheduler",
    "BrowserPageExtractor",
    "CacheEntry",
    "CacheStatus",
    "CategoryPage",
    "DomainRateLimiter",
    "ExtractedRecord",
    "FetchCoordinator",
    "FetchRequest",
    "HealthSnapshot",
    "HttpPageExtractor",
    "Job",
    "JobHandle",
    "JobId",
    "JobStatus",
    "JobStore",
    "JobTracker",
    "ListingResult",
    "NavigationItem",
    "NavigationResult",
    "PageExtractor",
    "PageParser",
    "ProductDetail",
    "ProductDetailResult",
    "ProductListing",
    "RetryPolicy",
    "Review",
    "ReviewsResult",
    "TTLCache",
    "TargetKind",
    "ThreadPoolManager",
    "build_extractor",
    "cache_key",
    "dedupe_listings",
    "domain_of",
    "usable_listings",
    "validate_url",
]
