"""Job store implementations backing the job tracker."""

from __future__ import annotations

import sqlite3
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Dict

from ..engine.jobs import Job, JobId, JobStatus
from ..engine.records import TargetKind
from ..errors import NotFound
from .storage import SQLiteManager

OPEN_STATUSES = (JobStatus.PENDING, JobStatus.IN_PROGRESS)


def _statuses(status: JobStatus | tuple[JobStatus, ...]) -> tuple[JobStatus, ...]:
    return status if isinstance(status, tuple) else (status,)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat(timespec="milliseconds") if value else None


def _parse(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SQLiteJobStore:
    """Persist jobs in the ``scrape_jobs`` table."""

    def __init__(self, manager: SQLiteManager, db_path: Path) -> None:
        self.manager = manager
        self.db_path = db_path
        self._lock = Lock()
        self._conn = self.manager.connect(db_path)

    def create(self, job: Job) -> None:
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO scrape_jobs(
                    id, target_url, target_kind, status, started_at, finished_at,
                    duration_ms, result_count, error_message, retry_count, max_retries
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    job.id,
                    job.target_url,
                    job.target_kind.value,
                    job.status.value,
                    _iso(job.started_at),
                    _iso(job.finished_at),
                    job.duration_ms,
                    job.result_count,
                    job.error_message,
                    job.retry_count,
                    job.max_retries,
                ),
            )
            self._conn.commit()

    def finalize(
        self,
        job_id: JobId,
        status: JobStatus,
        result_count: int,
        duration_ms: int,
        error_message: str | None,
        finished_at: datetime,
    ) -> None:
        with self._lock:
            cur = self._conn.execute(
                """
                UPDATE scrape_jobs
                SET status = ?, result_count = ?, duration_ms = ?, error_message = ?, finished_at = ?
                WHERE id = ? AND status IN (?, ?)
                """,
                (
                    status.value,
                    result_count,
                    duration_ms,
                    error_message,
                    _iso(finished_at),
                    job_id,
                    *(s.value for s in OPEN_STATUSES),
                ),
            )
            self._conn.commit()
            if cur.rowcount == 1:
                return
            exists = self._conn.execute("SELECT 1 FROM scrape_jobs WHERE id = ?", (job_id,)).fetchone()
        if exists is None:
            raise NotFound(f"Job not found: {job_id}")
        raise ValueError(f"Job already finalized: {job_id}")

    def get(self, job_id: JobId) -> Job:
        with self._lock:
            row = self._conn.execute("SELECT * FROM scrape_jobs WHERE id = ?", (job_id,)).fetchone()
        if row is None:
            raise NotFound(f"Job not found: {job_id}")
        return self._to_job(row)

    def count(self, status: JobStatus | tuple[JobStatus, ...], since: datetime | None = None) -> int:
        statuses = _statuses(status)
        placeholders = ", ".join("?" for _ in statuses)
        query = f"SELECT count(*) FROM scrape_jobs WHERE status IN ({placeholders})"
        params: list[object] = [s.value for s in statuses]
        if since is not None:
            query += " AND finished_at >= ?"
            params.append(_iso(since))
        with self._lock:
            return int(self._conn.execute(query, params).fetchone()[0])

    def average_duration_ms(self, since: datetime) -> float:
        with self._lock:
            row = self._conn.execute(
                "SELECT avg(duration_ms) FROM scrape_jobs WHERE finished_at >= ? AND duration_ms > 0",
                (_iso(since),),
            ).fetchone()
        return float(row[0] or 0.0)

    def recent(self, limit: int = 20) -> list[Job]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM scrape_jobs ORDER BY started_at DESC LIMIT ?", (limit,)
            ).fetchall()
        return [self._to_job(row) for row in rows]

    @staticmethod
    def _to_job(row: sqlite3.Row) -> Job:
        return Job(
            id=JobId(row["id"]),
            target_url=row["target_url"],
            target_kind=TargetKind(row["target_kind"]),
            status=JobStatus(row["status"]),
            started_at=_parse(row["started_at"]),
            finished_at=_parse(row["finished_at"]),
            duration_ms=row["duration_ms"],
            result_count=row["result_count"],
            error_message=row["error_message"],
            retry_count=row["retry_count"],
            max_retries=row["max_retries"],
        )


class InMemoryJobStore:
    """Dictionary-backed store for embedding and tests."""

    def __init__(self) -> None:
        self._jobs: Dict[JobId, Job] = {}
        self._lock = Lock()

    def create(self, job: Job) -> None:
        with self._lock:
            self._jobs[job.id] = replace(job)

    def finalize(
        self,
        job_id: JobId,
        status: JobStatus,
        result_count: int,
        duration_ms: int,
        error_message: str | None,
        finished_at: datetime,
    ) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise NotFound(f"Job not found: {job_id}")
            if job.status not in OPEN_STATUSES:
                raise ValueError(f"Job already finalized: {job_id}")
            job.status = status
            job.result_count = result_count
            job.duration_ms = duration_ms
            job.error_message = error_message
            job.finished_at = finished_at

    def get(self, job_id: JobId) -> Job:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise NotFound(f"Job not found: {job_id}")
            return replace(job)

    def count(self, status: JobStatus | tuple[JobStatus, ...], since: datetime | None = None) -> int:
        statuses = _statuses(status)
        with self._lock:
            return sum(
                1
                for job in self._jobs.values()
                if job.status in statuses
                and (since is None or (job.finished_at is not None and job.finished_at >= since))
            )

    def average_duration_ms(self, since: datetime) -> float:
        with self._lock:
            durations = [
                job.duration_ms
                for job in self._jobs.values()
                if job.finished_at is not None and job.finished_at >= since and job.duration_ms > 0
            ]
        return sum(durations) / len(durations) if durations else 0.0

    def all(self) -> list[Job]:
        with self._lock:
            return [replace(job) for job in self._jobs.values()]


__all__ = ["InMemoryJobStore", "OPEN_STATUSES", "SQLiteJobStore"]
