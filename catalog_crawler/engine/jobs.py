"""Job lifecycle tracking for individual fetch attempts."""

from __future__ import annotations

import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Iterator, NewType, Protocol

import structlog

from .records import TargetKind

JobId = NewType("JobId", str)


class JobStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    # Reserved for bulk reports; cache hits never open a job
    CACHED = "cached"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


@dataclass(slots=True)
class Job:
    id: JobId
    target_url: str
    target_kind: TargetKind
    status: JobStatus = JobStatus.PENDING
    started_at: datetime | None = None
    finished_at: datetime | None = None
    duration_ms: int = 0
    result_count: int = 0
    error_message: str | None = None
    retry_count: int = 0
    max_retries: int = 3


class JobStore(Protocol):
    """Durable append + single finalize-update per job."""

    def create(self, job: Job) -> None:
        """Persist a freshly opened job."""

    def finalize(
        self,
        job_id: JobId,
        status: JobStatus,
        result_count: int,
        duration_ms: int,
        error_message: str | None,
        finished_at: datetime,
    ) -> None:
        """Move an open job to a terminal status."""

    def get(self, job_id: JobId) -> Job:
        """Return a job or raise ``NotFound``."""

    def count(self, status: JobStatus | tuple[JobStatus, ...], since: datetime | None = None) -> int:
        """Count jobs in ``status`` finished at or after ``since``."""

    def average_duration_ms(self, since: datetime) -> float:
        """Average duration of jobs finished at or after ``since``."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class JobHandle:
    """Scoped view on an open job; the owner records the result size."""

    job: Job
    result_count: int = 0
    _started: float = field(default=0.0, repr=False)

    @property
    def id(self) -> JobId:
        return self.job.id


class JobTracker:
    """Open and finalize jobs against a :class:`JobStore`."""

    def __init__(
        self,
        store: JobStore,
        clock: Callable[[], float] = time.monotonic,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.store = store
        self._clock = clock
        self.logger = logger or structlog.get_logger("catalog_crawler.jobs")

    def open(
        self,
        target_url: str,
        target_kind: TargetKind,
        *,
        retry_count: int = 0,
        max_retries: int = 3,
    ) -> Job:
        job = Job(
            id=JobId(uuid.uuid4().hex),
            target_url=target_url,
            target_kind=TargetKind(target_kind),
            status=JobStatus.IN_PROGRESS,
            started_at=utcnow(),
            retry_count=retry_count,
            max_retries=max_retries,
        )
        self.store.create(job)
        self.logger.debug("job_opened", job_id=job.id, url=target_url, kind=job.target_kind.value)
        return job

    def finalize(
        self,
        job_id: JobId,
        status: JobStatus,
        result_count: int = 0,
        duration_ms: int = 0,
        error_message: str | None = None,
    ) -> None:
        status = JobStatus(status)
        if not status.terminal:
            raise ValueError(f"Jobs can only be finalized as completed or failed, got {status.value}")
        if status is JobStatus.COMPLETED:
            error_message = None
        self.store.finalize(
            job_id,
            status,
            result_count,
            duration_ms,
            error_message,
            utcnow(),
        )
        self.logger.info(
            "job_finalized",
            job_id=job_id,
            status=status.value,
            result_count=result_count,
            duration_ms=duration_ms,
            error=error_message,
        )

    @contextmanager
    def track(
        self,
        target_url: str,
        target_kind: TargetKind,
        *,
        retry_count: int = 0,
        max_retries: int = 3,
    ) -> Iterator[JobHandle]:
        """Open a job and finalize it on every exit path.

        A clean exit finalizes ``completed`` with ``handle.result_count``; any
        exception (including ``KeyboardInterrupt``) finalizes ``failed`` with
        the stringified cause and is re-raised.
        """

        job = self.open(target_url, target_kind, retry_count=retry_count, max_retries=max_retries)
        handle = JobHandle(job=job, _started=self._clock())
        try:
            yield handle
        except BaseException as exc:
            self.finalize(
                job.id,
                JobStatus.FAILED,
                result_count=0,
                duration_ms=self._elapsed_ms(handle),
                error_message=str(exc) or exc.__class__.__name__,
            )
            raise
        self.finalize(
            job.id,
            JobStatus.COMPLETED,
            result_count=handle.result_count,
            duration_ms=self._elapsed_ms(handle),
        )

    def _elapsed_ms(self, handle: JobHandle) -> int:
        return max(0, int(round((self._clock() - handle._started) * 1000)))


__all__ = ["Job", "JobHandle", "JobId", "JobStatus", "JobStore", "JobTracker", "utcnow"]
