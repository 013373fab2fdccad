"""Result sinks for fetched records."""

from .base import BaseExporter, build_exporter
from .file_exporter import FileExporter
from .sqlite_exporter import SQLiteExporter

__all__ = ["BaseExporter", "FileExporter", "SQLiteExporter", "build_exporter"]
