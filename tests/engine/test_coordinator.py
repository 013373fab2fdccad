from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from threading import Event

import pytest

from catalog_crawler.engine.jobs import JobStatus, JobTracker
from catalog_crawler.engine.records import (
    ListingResult,
    NavigationResult,
    ProductListing,
    TargetKind,
    cache_key,
)
from catalog_crawler.errors import ExtractionError, RateLimitExceeded, ValidationError
from catalog_crawler.infra import InMemoryJobStore

PRODUCT_URL = "https://books.example.com/en-gb/products/dune"
CATEGORY_URL = "https://books.example.com/en-gb/collections/fiction"


@pytest.mark.parametrize("bad_url", ["", "not-a-url", "ftp://books.example.com/x", "https://", "/relative/path"])
def test_invalid_url_fails_before_anything_happens(coordinator_factory, fake_extractor, memory_store, bad_url) -> None:
    coordinator = coordinator_factory()
    with pytest.raises(ValidationError):
        coordinator.fetch(bad_url, TargetKind.PRODUCT_DETAIL)
    assert fake_extractor.calls == []
    assert memory_store.all() == []
    assert coordinator.rate_limiter.snapshot("books.example.com") is None


def test_ttl_scenario_hit_then_reextract(coordinator_factory, fake_extractor, clock) -> None:
    coordinator = coordinator_factory(ttl=0.1)
    first = coordinator.fetch(PRODUCT_URL, TargetKind.PRODUCT_DETAIL)
    clock.advance(0.05)
    assert coordinator.fetch(PRODUCT_URL, TargetKind.PRODUCT_DETAIL) is first
    assert fake_extractor.calls_for(PRODUCT_URL) == 1
    clock.advance(0.1)
    coordinator.fetch(PRODUCT_URL, TargetKind.PRODUCT_DETAIL)
    assert fake_extractor.calls_for(PRODUCT_URL) == 2


def test_cache_hit_opens_no_job_and_skips_rate_limit(coordinator_factory, memory_store) -> None:
    coordinator = coordinator_factory(max_requests=1)
    coordinator.fetch(PRODUCT_URL, TargetKind.PRODUCT_DETAIL)
    for _ in range(3):
        coordinator.fetch(PRODUCT_URL, TargetKind.PRODUCT_DETAIL)
    assert len(memory_store.all()) == 1
    assert coordinator.rate_limiter.snapshot("books.example.com").count == 1


def test_product_and_product_detail_share_cache_entry(coordinator_factory, fake_extractor) -> None:
    coordinator = coordinator_factory()
    coordinator.fetch(PRODUCT_URL, TargetKind.PRODUCT_DETAIL)
    coordinator.fetch(PRODUCT_URL, TargetKind.PRODUCT)
    assert fake_extractor.calls_for(PRODUCT_URL) == 1


def test_rate_limit_scenario_rejects_before_job(coordinator_factory, memory_store, clock) -> None:
    coordinator = coordinator_factory(max_requests=2, window_seconds=1.0)
    coordinator.fetch(PRODUCT_URL + "-1", TargetKind.PRODUCT_DETAIL)
    coordinator.fetch(PRODUCT_URL + "-2", TargetKind.PRODUCT_DETAIL)
    with pytest.raises(RateLimitExceeded):
        coordinator.fetch(PRODUCT_URL + "-3", TargetKind.PRODUCT_DETAIL)
    assert len(memory_store.all()) == 2
    clock.advance(1.0)
    coordinator.fetch(PRODUCT_URL + "-3", TargetKind.PRODUCT_DETAIL)
    assert len(memory_store.all()) == 3


def test_successful_fetch_completes_one_job(coordinator_factory, memory_store) -> None:
    coordinator = coordinator_factory()
    record = coordinator.fetch(CATEGORY_URL, TargetKind.CATEGORY)
    (job,) = memory_store.all()
    assert job.status is JobStatus.COMPLETED
    assert job.result_count == record.result_count == 2
    assert job.target_kind is TargetKind.CATEGORY


def test_extractor_failure_fails_job_and_skips_cache(coordinator_factory, make_extractor, memory_store) -> None:
    extractor = make_extractor({PRODUCT_URL: ExtractionError("page blocked")})
    coordinator = coordinator_factory(extractor=extractor)
    with pytest.raises(ExtractionError, match="page blocked"):
        coordinator.fetch(PRODUCT_URL, TargetKind.PRODUCT_DETAIL)
    (job,) = memory_store.all()
    assert job.status is JobStatus.FAILED
    assert job.error_message == "page blocked"
    assert len(coordinator.cache) == 0


def test_unexpected_extractor_error_is_wrapped(coordinator_factory, make_extractor, memory_store) -> None:
    extractor = make_extractor({PRODUCT_URL: KeyError("price")})
    coordinator = coordinator_factory(extractor=extractor)
    with pytest.raises(ExtractionError) as excinfo:
        coordinator.fetch(PRODUCT_URL, TargetKind.PRODUCT_DETAIL)
    assert isinstance(excinfo.value.__cause__, KeyError)
    assert memory_store.all()[0].status is JobStatus.FAILED


def test_wrong_record_shape_is_an_extraction_failure(coordinator_factory, make_extractor, memory_store) -> None:
    extractor = make_extractor({PRODUCT_URL: NavigationResult(items=[])})
    coordinator = coordinator_factory(extractor=extractor)
    with pytest.raises(ExtractionError, match="NavigationResult"):
        coordinator.fetch(PRODUCT_URL, TargetKind.PRODUCT_DETAIL)
    assert memory_store.all()[0].status is JobStatus.FAILED


def test_timeout_fails_job(coordinator_factory, make_extractor, memory_store) -> None:
    coordinator = coordinator_factory(extractor=make_extractor(delay=0.5), timeout=0.05)
    with pytest.raises(ExtractionError) as excinfo:
        coordinator.fetch(PRODUCT_URL, TargetKind.PRODUCT_DETAIL)
    assert excinfo.value.timed_out is True
    (job,) = memory_store.all()
    assert job.status is JobStatus.FAILED
    assert "timed out" in job.error_message


def test_cancel_aborts_in_flight_extraction(coordinator_factory, make_extractor, memory_store) -> None:
    coordinator = coordinator_factory(extractor=make_extractor(delay=0.5), timeout=5)
    cancel = Event()
    cancel.set()
    with pytest.raises(ExtractionError, match="cancelled"):
        coordinator.fetch(PRODUCT_URL, TargetKind.PRODUCT_DETAIL, cancel=cancel)
    assert memory_store.all()[0].status is JobStatus.FAILED


def test_category_results_are_filtered_and_deduplicated(coordinator_factory, make_extractor) -> None:
    listing = ListingResult(
        products=[
            ProductListing(title="Dune", url="/dune"),
            ProductListing(title=None, url="/ghost"),
            ProductListing(title="Emma", url="/emma"),
            ProductListing(title="Dune", url="/dune"),
        ]
    )
    coordinator = coordinator_factory(extractor=make_extractor({CATEGORY_URL: listing}))
    page = coordinator.fetch_category(CATEGORY_URL, "Fiction")
    assert page.title == "Fiction"
    assert [p.title for p in page.products] == ["Dune", "Emma"]
    assert page.count == 2


def test_product_detail_is_stamped(coordinator_factory, memory_store) -> None:
    coordinator = coordinator_factory()
    detail = coordinator.fetch_product_detail(PRODUCT_URL, "sku-42")
    assert detail.source_id == "sku-42"
    assert detail.source_url == PRODUCT_URL
    assert detail.last_scraped_at is not None
    assert memory_store.all()[0].result_count == 1


def test_navigation_uses_configured_site(coordinator_factory, fake_extractor) -> None:
    coordinator = coordinator_factory()
    coordinator.site_url = "https://books.example.com/"
    items = coordinator.fetch_navigation()
    assert items[0].title == "Fiction"
    assert fake_extractor.calls[0][:2] == ("https://books.example.com/", TargetKind.NAVIGATION)


def test_job_is_finalized_before_cache_write(coordinator_factory, clock) -> None:
    observed: list[tuple[JobStatus, bool]] = []
    holder: dict = {}

    class ObservingStore(InMemoryJobStore):
        def finalize(self, job_id, status, *args, **kwargs):
            cached = holder["coordinator"].cache.peek(cache_key(TargetKind.PRODUCT_DETAIL, PRODUCT_URL))
            observed.append((status, cached is not None))
            super().finalize(job_id, status, *args, **kwargs)

    coordinator = coordinator_factory(store=ObservingStore())
    holder["coordinator"] = coordinator
    coordinator.fetch(PRODUCT_URL, TargetKind.PRODUCT_DETAIL)
    assert observed == [(JobStatus.COMPLETED, False)]
    assert coordinator.cache.peek(cache_key(TargetKind.PRODUCT_DETAIL, PRODUCT_URL)) is not None


def test_attempt_is_recorded_on_job(coordinator_factory, memory_store) -> None:
    coordinator = coordinator_factory()
    coordinator.fetch(PRODUCT_URL, TargetKind.PRODUCT_DETAIL, attempt=2, max_retries=4)
    job = memory_store.all()[0]
    assert (job.retry_count, job.max_retries) == (2, 4)


def test_job_status_lookup(coordinator_factory, memory_store) -> None:
    coordinator = coordinator_factory()
    coordinator.fetch(PRODUCT_URL, TargetKind.PRODUCT_DETAIL)
    job_id = memory_store.all()[0].id
    assert coordinator.job_status(job_id).status is JobStatus.COMPLETED


def test_cache_status_and_clear(coordinator_factory, clock) -> None:
    coordinator = coordinator_factory(ttl=100)
    assert coordinator.cache_status(PRODUCT_URL).is_cached is False

    coordinator.fetch(PRODUCT_URL, TargetKind.PRODUCT_DETAIL)
    clock.advance(30)
    status = coordinator.cache_status(PRODUCT_URL)
    assert status.is_cached is True
    assert status.age_seconds == 30
    assert status.expires_in_seconds == 70
    assert (status.expires_at - status.cached_at).total_seconds() == 100

    clock.advance(80)
    stale = coordinator.cache_status(PRODUCT_URL)
    assert stale.is_cached is False and stale.expired is True

    assert coordinator.clear_cache(PRODUCT_URL) == {"cleared": True, "url": PRODUCT_URL}
    coordinator.fetch(CATEGORY_URL, TargetKind.CATEGORY)
    coordinator.fetch(PRODUCT_URL, TargetKind.PRODUCT_DETAIL)
    assert coordinator.clear_cache() == {"cleared": 2, "total": 2}


def test_health_snapshot(coordinator_factory, make_extractor, memory_store) -> None:
    extractor = make_extractor({CATEGORY_URL: ExtractionError("down")})
    coordinator = coordinator_factory(extractor=extractor)
    coordinator.fetch(PRODUCT_URL, TargetKind.PRODUCT_DETAIL)
    coordinator.fetch(PRODUCT_URL, TargetKind.PRODUCT_DETAIL)
    with pytest.raises(ExtractionError):
        coordinator.fetch(CATEGORY_URL, TargetKind.CATEGORY)

    snapshot = coordinator.health()
    assert snapshot.status == "healthy"
    assert snapshot.pending_jobs == 0
    assert snapshot.completed_jobs_last_24h == 1
    assert snapshot.failed_jobs_last_24h == 1
    assert snapshot.cache_hit_rate == pytest.approx(33.33)
    assert snapshot.cache_size == 1


def test_health_degrades_with_many_open_jobs(coordinator_factory, memory_store) -> None:
    coordinator = coordinator_factory()
    tracker = JobTracker(memory_store)
    for index in range(6):
        tracker.open(f"{PRODUCT_URL}-{index}", TargetKind.PRODUCT_DETAIL)
    snapshot = coordinator.health()
    assert snapshot.pending_jobs == 6
    assert snapshot.status == "degraded"


def test_missing_extractor_fails_before_rate_limit(coordinator_factory, memory_store) -> None:
    coordinator = coordinator_factory(max_requests=1)
    configured = coordinator.extractor
    coordinator.extractor = None
    with pytest.raises(RuntimeError, match="no PageExtractor"):
        coordinator.fetch(PRODUCT_URL, TargetKind.PRODUCT_DETAIL)
    assert coordinator.rate_limiter.snapshot("books.example.com") is None
    assert memory_store.all() == []

    coordinator.extractor = configured
    coordinator.fetch(PRODUCT_URL, TargetKind.PRODUCT_DETAIL)
    assert memory_store.all()[0].status is JobStatus.COMPLETED


def test_timeout_ignores_time_queued_for_a_worker(coordinator_factory, make_extractor, memory_store) -> None:
    coordinator = coordinator_factory(extractor=make_extractor(delay=0.3), timeout=0.5, extract_workers=1)
    urls = [f"{PRODUCT_URL}-{n}" for n in range(3)]
    with ThreadPoolExecutor(max_workers=3) as callers:
        records = list(callers.map(lambda url: coordinator.fetch(url, TargetKind.PRODUCT_DETAIL), urls))
    assert len(records) == 3
    assert all(job.status is JobStatus.COMPLETED for job in memory_store.all())
