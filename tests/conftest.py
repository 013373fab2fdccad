"""Shared fixtures: fake clock, scripted extractor, stores and coordinators."""

from __future__ import annotations

import time
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Iterable

import pytest

from catalog_crawler.config import (
    BatchConfig,
    CacheConfig,
    ConfigLocator,
    ConfigRepository,
    CrawlerConfig,
    ExtractionConfig,
    RateLimitConfig,
)
from catalog_crawler.engine.cache import TTLCache
from catalog_crawler.engine.coordinator import FetchCoordinator
from catalog_crawler.engine.jobs import JobTracker
from catalog_crawler.engine.rate_limiter import DomainRateLimiter
from catalog_crawler.engine.records import (
    ListingResult,
    NavigationItem,
    NavigationResult,
    ProductDetail,
    ProductDetailResult,
    ProductListing,
    ReviewsResult,
    TargetKind,
)
from catalog_crawler.engine.thread_pool import ThreadPoolManager
from catalog_crawler.infra import InMemoryJobStore, SQLiteJobStore, SQLiteManager


class FakeClock:
    """Manually advanced clock usable wherever a ``time.time`` callable is expected."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def default_record(url: str, kind: TargetKind):
    kind = TargetKind(kind)
    if kind is TargetKind.NAVIGATION:
        return NavigationResult(items=[NavigationItem(title="Fiction", url=url + "fiction")])
    if kind is TargetKind.CATEGORY:
        return ListingResult(
            products=[
                ProductListing(title="Dune", url=url + "/dune", price="£4.99", author="Frank Herbert"),
                ProductListing(title="Emma", url=url + "/emma", price="£3.50", author="Jane Austen"),
            ]
        )
    if kind is TargetKind.REVIEWS:
        return ReviewsResult(reviews=[])
    return ProductDetailResult(detail=ProductDetail(title="Dune", price="£4.99", author="Frank Herbert"))


class FakeExtractor:
    """Scripted ``PageExtractor``.

    ``responses`` maps a URL to a record, an exception instance, or a callable
    receiving ``(kind, attempt)``. Unknown URLs get :func:`default_record`.
    """

    def __init__(self, responses: dict[str, Any] | None = None, delay: float = 0.0) -> None:
        self.responses = dict(responses or {})
        self.delay = delay
        self.calls: list[tuple[str, TargetKind, float]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = Lock()

    def calls_for(self, url: str) -> int:
        with self._lock:
            return sum(1 for called_url, _, _ in self.calls if called_url == url)

    def extract(self, url: str, kind: TargetKind, timeout: float):
        with self._lock:
            attempt = sum(1 for called_url, _, _ in self.calls if called_url == url)
            self.calls.append((url, TargetKind(kind), timeout))
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            outcome = self.responses.get(url)
            if callable(outcome):
                outcome = outcome(kind, attempt)
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome if outcome is not None else default_record(url, kind)
        finally:
            with self._lock:
                self.in_flight -= 1


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture
def make_extractor() -> type[FakeExtractor]:
    return FakeExtractor


@pytest.fixture
def sample_config(tmp_path: Path) -> CrawlerConfig:
    return CrawlerConfig(
        site_url="https://books.example.com/",
        cache=CacheConfig(ttl_seconds=60),
        rate_limit=RateLimitConfig(window_seconds=60, max_requests=30),
        extraction=ExtractionConfig(timeout_seconds=2, use_browser=False, workers=4),
        batch=BatchConfig(concurrency=2, delay_ms=0),
        jobs_db=tmp_path / "jobs.db",
        outputs_dir=tmp_path / "outputs",
    )


@pytest.fixture
def sqlite_manager() -> Iterable[SQLiteManager]:
    manager = SQLiteManager()
    yield manager
    manager.close_all()


@pytest.fixture
def job_store(tmp_path: Path, sqlite_manager: SQLiteManager) -> SQLiteJobStore:
    return SQLiteJobStore(sqlite_manager, tmp_path / "jobs.db")


@pytest.fixture
def memory_store() -> InMemoryJobStore:
    return InMemoryJobStore()


@pytest.fixture
def coordinator_factory(
    clock: FakeClock, memory_store: InMemoryJobStore, fake_extractor: FakeExtractor
) -> Iterable[Callable[..., FetchCoordinator]]:
    """Build coordinators sharing the fake clock; keyword overrides are applied."""

    created: list[FetchCoordinator] = []

    def _builder(
        *,
        ttl: float = 60.0,
        max_requests: int = 30,
        window_seconds: float = 60.0,
        timeout: float = 2.0,
        store: Any = None,
        extractor: Any = None,
        extract_workers: int = 4,
    ) -> FetchCoordinator:
        coordinator = FetchCoordinator(
            cache=TTLCache(default_ttl=ttl, clock=clock),
            rate_limiter=DomainRateLimiter(max_requests=max_requests, window_seconds=window_seconds, clock=clock),
            tracker=JobTracker(store if store is not None else memory_store),
            extractor=extractor if extractor is not None else fake_extractor,
            timeout=timeout,
            thread_pool=ThreadPoolManager(extract_workers),
            extract_workers=extract_workers,
        )
        created.append(coordinator)
        return coordinator

    yield _builder
    for coordinator in created:
        coordinator.thread_pool.shutdown(wait=False)


@pytest.fixture
def temp_config_repository(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> ConfigRepository:
    monkeypatch.setenv("CATALOG_CRAWLER_HOME", str(tmp_path))
    return ConfigRepository(ConfigLocator(project_root=tmp_path))
