"""Exporter contract shared by every result sink."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from ..records import ExtractedRecord

EXPORT_FORMATS = ("jsonl", "csv", "sqlite")


class BaseExporter(ABC):
    """Uniform exporter contract; one row per listing, item, review or detail."""

    @abstractmethod
    def export(self, row: dict) -> None:
        """Persist a single row."""

    def export_many(self, rows: Iterable[dict]) -> int:
        count = 0
        for row in rows:
            self.export(row)
            count += 1
        return count

    def export_record(self, record: "ExtractedRecord") -> int:
        kind = record.kind.value
        return self.export_many({"kind": kind, **row} for row in record.rows())

    @abstractmethod
    def flush(self) -> None:
        """Flush buffered rows to the destination."""

    @abstractmethod
    def close(self) -> None:
        """Release underlying resources."""

    def __enter__(self) -> "BaseExporter":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.flush()
        self.close()


def build_exporter(output_dir: Path, name: str, fmt: str, run_tag: str | None = None) -> BaseExporter:
    """Return the exporter for ``fmt`` writing under ``output_dir``."""

    from .file_exporter import FileExporter
    from .sqlite_exporter import SQLiteExporter

    if fmt in ("jsonl", "csv"):
        return FileExporter(output_dir, name, fmt, run_tag=run_tag)
    if fmt == "sqlite":
        return SQLiteExporter(Path(output_dir) / f"{name}.db")
    raise ValueError(f"Unsupported output format: {fmt} (expected one of {', '.join(EXPORT_FORMATS)})")


__all__ = ["BaseExporter", "EXPORT_FORMATS", "build_exporter"]
