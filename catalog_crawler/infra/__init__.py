"""Infra layer utilities (SQLite storage, job persistence)."""

from .job_store import InMemoryJobStore, SQLiteJobStore
from .storage import SQLiteManager

__all__ = ["InMemoryJobStore", "SQLiteJobStore", "SQLiteManager"]
