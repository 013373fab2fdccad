"""Fetch coordinator wiring cache, rate limiter, job tracking and extraction."""

from __future__ import annotations

from concurrent.futures import wait
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from threading import Event, Lock
from urllib.parse import urlparse
import time

import structlog

from ..config import DEFAULT_SITE_URL, CrawlerConfig
from ..errors import ExtractionError, RateLimitExceeded, ValidationError
from .cache import TTLCache
from .dedup import dedupe_listings, usable_listings
from .extractor import PageExtractor
from .jobs import Job, JobId, JobStatus, JobStore, JobTracker, utcnow
from .rate_limiter import DomainRateLimiter, domain_of
from .records import (
    CategoryPage,
    ExtractedRecord,
    ListingResult,
    NavigationItem,
    ProductDetail,
    ProductDetailResult,
    TargetKind,
    cache_key,
    matches_kind,
)
from .thread_pool import ThreadPoolManager

CANCEL_POLL_SECONDS = 0.05
HEALTH_WINDOW = timedelta(hours=24)
DEGRADED_PENDING_THRESHOLD = 5


def validate_url(url: object) -> str:
    """Return ``url`` when it is an absolute http(s) URL, else raise ``ValidationError``."""

    if not isinstance(url, str) or not url.strip():
        raise ValidationError(f"Invalid URL: {url!r}")
    parsed = urlparse(url.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError(f"Invalid URL: {url!r}")
    return url.strip()


@dataclass(slots=True)
class CacheStatus:
    is_cached: bool
    cached_at: datetime | None = None
    expires_at: datetime | None = None
    age_seconds: int | None = None
    expires_in_seconds: int | None = None
    expired: bool = False


@dataclass(slots=True)
class HealthSnapshot:
    status: str
    pending_jobs: int
    completed_jobs_last_24h: int
    failed_jobs_last_24h: int
    cache_hit_rate: float
    avg_duration_ms: float
    cache_size: int
    last_check: datetime


class _LookupStats:
    def __init__(self) -> None:
        self.hits = 0
        self.misses = 0
        self._lock = Lock()

    def record(self, hit: bool) -> None:
        with self._lock:
            if hit:
                self.hits += 1
            else:
                self.misses += 1

    def hit_rate(self) -> float:
        with self._lock:
            lookups = self.hits + self.misses
            return round(self.hits / lookups * 100, 2) if lookups else 0.0


class FetchCoordinator:
    """Run one logical fetch: validate, cache, rate limit, job, extract.

    The steps for a single fetch are strictly sequential. The job is always
    finalized before the result is written to the cache and before the call
    returns, so an observer never sees an open job whose result is cached.
    """

    def __init__(
        self,
        cache: TTLCache,
        rate_limiter: DomainRateLimiter,
        tracker: JobTracker,
        extractor: PageExtractor | None = None,
        *,
        timeout: float = 30.0,
        cache_ttl: float | None = None,
        max_retries: int = 3,
        site_url: str = DEFAULT_SITE_URL,
        thread_pool: ThreadPoolManager | None = None,
        extract_workers: int = 8,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.tracker = tracker
        self.extractor = extractor
        self.timeout = timeout
        self.cache_ttl = cache_ttl
        self.max_retries = max_retries
        self.site_url = site_url
        self.thread_pool = thread_pool or ThreadPoolManager(extract_workers)
        self.extract_workers = extract_workers
        self.logger = logger or structlog.get_logger("catalog_crawler").bind(component="coordinator")
        self._stats = _LookupStats()

    @classmethod
    def from_config(
        cls,
        config: CrawlerConfig,
        store: JobStore,
        extractor: PageExtractor | None = None,
        thread_pool: ThreadPoolManager | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> "FetchCoordinator":
        return cls(
            cache=TTLCache(default_ttl=config.cache.ttl_seconds),
            rate_limiter=DomainRateLimiter(
                max_requests=config.rate_limit.max_requests,
                window_seconds=config.rate_limit.window_seconds,
            ),
            tracker=JobTracker(store, logger=logger),
            extractor=extractor,
            timeout=config.extraction.timeout_seconds,
            max_retries=config.retry.max_retries,
            site_url=config.site_url,
            thread_pool=thread_pool,
            extract_workers=config.extraction.workers,
            logger=logger,
        )

    # ------------------------------------------------------------------
    # Core operation
    # ------------------------------------------------------------------
    def fetch(
        self,
        target_url: str,
        target_kind: TargetKind,
        extractor: PageExtractor | None = None,
        *,
        source_id: str | None = None,
        cancel: Event | None = None,
        attempt: int = 0,
        max_retries: int | None = None,
    ) -> ExtractedRecord:
        url = validate_url(target_url)
        kind = TargetKind(target_kind)
        key = cache_key(kind, url)

        cached = self.cache.get(key)
        self._stats.record(cached is not None)
        if cached is not None:
            self.logger.debug("cache_hit", url=url, kind=kind.value)
            return cached

        active = extractor or self.extractor
        if active is None:
            raise RuntimeError("FetchCoordinator has no PageExtractor configured")

        domain = domain_of(url)
        try:
            self.rate_limiter.admit(domain)
        except RateLimitExceeded as exc:
            self.logger.warning("rate_limit_exceeded", url=url, domain=domain, error=str(exc))
            raise

        with self.tracker.track(
            url,
            kind,
            retry_count=attempt,
            max_retries=self.max_retries if max_retries is None else max_retries,
        ) as handle:
            try:
                record = self._extract(active, url, kind, cancel)
            except ExtractionError as exc:
                self.logger.error(
                    "extraction_failed",
                    url=url,
                    kind=kind.value,
                    job_id=handle.id,
                    timed_out=exc.timed_out,
                    error=str(exc),
                )
                raise
            record = self._normalise(record, url, kind, source_id)
            handle.result_count = record.result_count

        self.cache.put(key, record, self.cache_ttl)
        self.logger.info(
            "fetch_completed", url=url, kind=kind.value, job_id=handle.id, results=handle.result_count
        )
        return record

    def _extract(
        self, extractor: PageExtractor, url: str, kind: TargetKind, cancel: Event | None
    ) -> ExtractedRecord:
        """Run the extractor on the extract pool, bounded by timeout and ``cancel``.

        The timeout counts from the moment a pool thread picks the call up, so
        time spent queued behind other extractions never fails a fetch.
        """

        started: list[float] = []

        def _run() -> ExtractedRecord:
            started.append(time.monotonic())
            return extractor.extract(url, kind, self.timeout)

        executor = self.thread_pool.get("extract", max_workers=self.extract_workers)
        future = executor.submit(_run)
        while True:
            deadline = started[0] + self.timeout if started else None
            poll = CANCEL_POLL_SECONDS
            if deadline is not None:
                poll = max(0.0, min(deadline - time.monotonic(), CANCEL_POLL_SECONDS))
            done, _ = wait([future], timeout=poll)
            if done:
                try:
                    return future.result()
                except ExtractionError:
                    raise
                except Exception as exc:  # noqa: BLE001
                    raise ExtractionError(
                        str(exc) or exc.__class__.__name__, url=url, kind=kind.value
                    ) from exc
            if cancel is not None and cancel.is_set():
                future.cancel()
                raise ExtractionError(
                    f"Extraction cancelled: {url}", url=url, kind=kind.value, timed_out=True
                )
            if deadline is not None and time.monotonic() >= deadline:
                future.cancel()
                raise ExtractionError(
                    f"Extraction timed out after {self.timeout:g}s: {url}",
                    url=url,
                    kind=kind.value,
                    timed_out=True,
                )

    def _normalise(
        self, record: object, url: str, kind: TargetKind, source_id: str | None
    ) -> ExtractedRecord:
        if not matches_kind(kind, record):
            raise ExtractionError(
                f"Extractor returned {type(record).__name__} for a {kind.value} page",
                url=url,
                kind=kind.value,
            )
        if isinstance(record, ListingResult):
            return ListingResult(products=dedupe_listings(usable_listings(record.products)))
        if isinstance(record, ProductDetailResult):
            detail = replace(
                record.detail,
                source_id=source_id if source_id is not None else record.detail.source_id,
                source_url=url,
                last_scraped_at=utcnow(),
            )
            return ProductDetailResult(detail=detail)
        return record

    # ------------------------------------------------------------------
    # Per-kind helpers
    # ------------------------------------------------------------------
    def fetch_navigation(
        self, site_url: str | None = None, *, cancel: Event | None = None
    ) -> list[NavigationItem]:
        record = self.fetch(site_url or self.site_url, TargetKind.NAVIGATION, cancel=cancel)
        return list(record.items)

    def fetch_category(
        self, category_url: str, category_title: str, *, cancel: Event | None = None
    ) -> CategoryPage:
        record = self.fetch(category_url, TargetKind.CATEGORY, cancel=cancel)
        return CategoryPage(title=category_title, url=category_url, products=list(record.products))

    def fetch_product_detail(
        self, product_url: str, source_id: str, *, cancel: Event | None = None
    ) -> ProductDetail:
        record = self.fetch(
            product_url, TargetKind.PRODUCT_DETAIL, source_id=source_id, cancel=cancel
        )
        return record.detail

    # ------------------------------------------------------------------
    # Reporting surface
    # ------------------------------------------------------------------
    def job_status(self, job_id: JobId) -> Job:
        return self.tracker.store.get(job_id)

    def cache_status(self, url: str, kind: TargetKind = TargetKind.PRODUCT_DETAIL) -> CacheStatus:
        entry = self.cache.peek(cache_key(kind, url))
        if entry is None:
            return CacheStatus(is_cached=False)
        now = self.cache.now()
        age = entry.age(now)
        expires_in = entry.ttl - age
        return CacheStatus(
            is_cached=entry.is_fresh(now),
            cached_at=datetime.fromtimestamp(entry.stored_at, tz=timezone.utc),
            expires_at=datetime.fromtimestamp(entry.expires_at, tz=timezone.utc),
            age_seconds=int(age),
            expires_in_seconds=int(expires_in),
            expired=expires_in <= 0,
        )

    def clear_cache(
        self, url: str | None = None, kind: TargetKind = TargetKind.PRODUCT_DETAIL
    ) -> dict[str, object]:
        if url:
            existed = self.cache.invalidate(cache_key(kind, url))
            self.logger.info("cache_invalidated", url=url, kind=TargetKind(kind).value, existed=existed)
            return {"cleared": existed, "url": url}
        removed = self.cache.clear_all()
        self.logger.info("cache_cleared", removed=removed)
        return {"cleared": removed, "total": removed}

    def health(self) -> HealthSnapshot:
        store = self.tracker.store
        now = utcnow()
        since = now - HEALTH_WINDOW
        pending = store.count((JobStatus.PENDING, JobStatus.IN_PROGRESS))
        return HealthSnapshot(
            status="degraded" if pending > DEGRADED_PENDING_THRESHOLD else "healthy",
            pending_jobs=pending,
            completed_jobs_last_24h=store.count(JobStatus.COMPLETED, since),
            failed_jobs_last_24h=store.count(JobStatus.FAILED, since),
            cache_hit_rate=self._stats.hit_rate(),
            avg_duration_ms=round(store.average_duration_ms(since), 2),
            cache_size=len(self.cache),
            last_check=now,
        )

    def close(self) -> None:
        self.thread_pool.shutdown(wait=False)
        closer = getattr(self.extractor, "close", None)
        if callable(closer):
            closer()


__all__ = ["CacheStatus", "FetchCoordinator", "HealthSnapshot", "validate_url"]
