"""Export fetched rows to a SQLite table."""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path

from .base import BaseExporter


class SQLiteExporter(BaseExporter):
    """Persist rows as JSON payloads tagged with their record kind."""

    def __init__(self, path: Path, table: str = "records") -> None:
        self.path = Path(path)
        self.table = table
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.path)
        self.conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {self.table} (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                kind TEXT,
                url TEXT,
                payload TEXT NOT NULL
            )
            """
        )
        self.conn.commit()
        self._closed = False

    def export(self, row: dict) -> None:
        self.conn.execute(
            f"INSERT INTO {self.table}(kind, url, payload) VALUES (?, ?, ?)",
            (
                row.get("kind"),
                row.get("url") or row.get("source_url"),
                json.dumps(row, ensure_ascii=False, default=str),
            ),
        )

    def flush(self) -> None:
        if not self._closed:
            self.conn.commit()

    def close(self) -> None:
        if self._closed:
            return
        self.conn.commit()
        self.conn.close()
        self._closed = True


__all__ = ["SQLiteExporter"]
