"""Line-delimited JSON and CSV exporters."""

from __future__ import annotations

import csv
import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from .base import BaseExporter


def _scalar(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return value


class FileExporter(BaseExporter):
    """Append rows to ``<name>-<run_tag>.jsonl`` or ``.csv``."""

    def __init__(self, output_dir: Path, name: str, fmt: str, run_tag: str | None = None) -> None:
        if fmt not in ("jsonl", "csv"):
            raise ValueError(f"FileExporter supports jsonl and csv, got {fmt}")
        self.output_dir = Path(output_dir)
        self.format = fmt
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.run_tag = run_tag or datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        slug = re.sub(r"[^0-9A-Za-z_-]+", "_", name.strip()) or "results"
        self.path = self.output_dir / f"{slug}-{self.run_tag}.{fmt}"
        self._file = self.path.open("a", encoding="utf-8", newline="")
        self._csv_writer: Optional[csv.DictWriter] = None

    def export(self, row: dict) -> None:
        if self.format == "jsonl":
            json.dump(row, self._file, ensure_ascii=False, default=str)
            self._file.write("\n")
            return
        if self._csv_writer is None:
            # Header is fixed by the first row; later rows drop unknown keys
            self._csv_writer = csv.DictWriter(
                self._file, fieldnames=list(row.keys()), extrasaction="ignore"
            )
            self._csv_writer.writeheader()
        self._csv_writer.writerow({key: _scalar(value) for key, value in row.items()})

    def flush(self) -> None:
        if not self._file.closed:
            self._file.flush()

    def close(self) -> None:
        self._file.close()


__all__ = ["FileExporter"]
