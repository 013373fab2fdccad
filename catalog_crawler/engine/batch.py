"""Wave-based batch execution on top of the fetch coordinator."""

from __future__ import annotations

import time
from concurrent.futures import Future, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from threading import Event
from typing import Callable, Iterable, Sequence

import structlog

from .coordinator import FetchCoordinator
from .jobs import utcnow
from .records import ExtractedRecord, TargetKind
from .retry import RetryPolicy
from .thread_pool import ThreadPoolManager

CANCELLED_MESSAGE = "Batch cancelled before dispatch"


@dataclass(slots=True)
class FetchRequest:
    url: str
    kind: TargetKind = TargetKind.PRODUCT_DETAIL
    source_id: str | None = None


@dataclass(slots=True)
class BatchFailure:
    url: str
    error_message: str
    error_type: str = "ExtractionError"


@dataclass(frozen=True)
class BatchResult:
    """Partition of a finished batch; immutable once returned."""

    successes: tuple[ExtractedRecord, ...]
    failures: tuple[BatchFailure, ...]
    total: int
    started_at: datetime
    finished_at: datetime
    cancelled: bool = False

    @property
    def success_count(self) -> int:
        return len(self.successes)

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    @property
    def success_rate(self) -> str:
        if not self.total:
            return "0.00%"
        return f"{self.success_count / self.total * 100:.2f}%"

    @property
    def duration_ms(self) -> int:
        return int((self.finished_at - self.started_at).total_seconds() * 1000)


SettledCallback = Callable[[FetchRequest, ExtractedRecord | None, BaseException | None], None]


@dataclass
class BatchScheduler:
    """Dispatch requests in consecutive waves of ``concurrency`` items.

    Every item of a wave is awaited before the pacing delay and the next wave.
    One item failing never aborts the batch. Setting ``cancel`` stops new
    waves from being dispatched; the wave already in flight drains normally
    and undispatched items are reported as failures so the partition still
    covers every input.
    """

    coordinator: FetchCoordinator
    thread_pool: ThreadPoolManager = field(default_factory=ThreadPoolManager)
    default_concurrency: int = 3
    default_delay: float = 1.0
    logger: structlog.BoundLogger = field(
        default_factory=lambda: structlog.get_logger("catalog_crawler").bind(component="batch")
    )

    def run_batch(
        self,
        items: Iterable[FetchRequest],
        concurrency: int | None = None,
        inter_batch_delay: float | None = None,
        *,
        cancel: Event | None = None,
        retry: RetryPolicy | None = None,
        on_settled: SettledCallback | None = None,
    ) -> BatchResult:
        requests = list(items)
        size = concurrency if concurrency is not None else self.default_concurrency
        delay = self.default_delay if inter_batch_delay is None else inter_batch_delay
        if size < 1:
            raise ValueError("concurrency must be at least 1")
        if delay < 0:
            raise ValueError("inter_batch_delay must not be negative")

        waves = [requests[i : i + size] for i in range(0, len(requests), size)]
        started_at = utcnow()
        successes: list[ExtractedRecord] = []
        failures: list[BatchFailure] = []
        cancelled = False
        self.logger.info("batch_started", total=len(requests), concurrency=size, waves=len(waves))

        executor = self.thread_pool.get(f"batch-{size}", max_workers=size)
        for index, wave in enumerate(waves):
            if cancelled or (cancel is not None and cancel.is_set()):
                skipped = [request for remaining in waves[index:] for request in remaining]
                failures.extend(BatchFailure(r.url, CANCELLED_MESSAGE, "Cancelled") for r in skipped)
                cancelled = True
                self.logger.warning("batch_cancelled", wave=index, skipped=len(skipped))
                break

            futures: dict[Future[ExtractedRecord], FetchRequest] = {
                executor.submit(self._run_item, request, retry): request for request in wave
            }
            failed_before = len(failures)
            try:
                self._settle_wave(futures, successes, failures, on_settled)
            except KeyboardInterrupt:
                # Ctrl-C lands on this thread: stop new waves, let the current one drain
                cancelled = True
                self.logger.warning("batch_interrupted", wave=index, in_flight=len(futures))
                self._settle_wave(futures, successes, failures, on_settled)
            wave_failures = len(failures) - failed_before
            self.logger.info(
                "wave_settled",
                wave=index,
                size=len(wave),
                succeeded=len(wave) - wave_failures,
                failed=wave_failures,
            )

            if index < len(waves) - 1 and delay > 0 and not cancelled:
                try:
                    if cancel is not None:
                        cancel.wait(delay)
                    else:
                        time.sleep(delay)
                except KeyboardInterrupt:
                    cancelled = True
                    self.logger.warning("batch_interrupted", wave=index, in_flight=0)

        result = BatchResult(
            successes=tuple(successes),
            failures=tuple(failures),
            total=len(requests),
            started_at=started_at,
            finished_at=utcnow(),
            cancelled=cancelled,
        )
        self.logger.info(
            "batch_completed",
            total=result.total,
            succeeded=result.success_count,
            failed=result.failure_count,
            success_rate=result.success_rate,
            duration_ms=result.duration_ms,
        )
        return result

    def _settle_wave(
        self,
        futures: dict[Future[ExtractedRecord], FetchRequest],
        successes: list[ExtractedRecord],
        failures: list[BatchFailure],
        on_settled: SettledCallback | None,
    ) -> None:
        """Await every future of ``futures``, removing each one once recorded."""

        for future in as_completed(list(futures)):
            request = futures.pop(future)
            try:
                record = future.result()
            except Exception as exc:  # noqa: BLE001
                failures.append(BatchFailure(request.url, str(exc), exc.__class__.__name__))
                self.logger.warning("batch_item_failed", url=request.url, error=str(exc))
                self._notify(on_settled, request, None, exc)
            else:
                successes.append(record)
                self._notify(on_settled, request, record, None)

    def _notify(
        self,
        on_settled: SettledCallback | None,
        request: FetchRequest,
        record: ExtractedRecord | None,
        error: BaseException | None,
    ) -> None:
        if on_settled is None:
            return
        try:
            on_settled(request, record, error)
        except Exception as exc:  # noqa: BLE001
            self.logger.error("batch_callback_failed", url=request.url, error=str(exc))

    def _run_item(self, request: FetchRequest, retry: RetryPolicy | None) -> ExtractedRecord:
        if retry is None:
            return self.coordinator.fetch(request.url, request.kind, source_id=request.source_id)
        return retry.call(
            lambda attempt: self.coordinator.fetch(
                request.url,
                request.kind,
                source_id=request.source_id,
                attempt=attempt,
                max_retries=retry.max_retries,
            ),
            logger=self.logger,
        )


def requests_from_urls(
    urls: Sequence[str], kind: TargetKind = TargetKind.PRODUCT_DETAIL
) -> list[FetchRequest]:
    return [FetchRequest(url=url, kind=kind) for url in urls]


__all__ = [
    "BatchFailure",
    "BatchResult",
    "BatchScheduler",
    "FetchRequest",
    "requests_from_urls",
]
