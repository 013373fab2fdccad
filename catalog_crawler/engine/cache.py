"""In-process TTL cache for fetch results."""

from __future__ import annotations

import time
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Dict


@dataclass(slots=True)
class CacheEntry:
    key: str
    data: Any
    stored_at: float
    ttl: float

    @property
    def expires_at(self) -> float:
        return self.stored_at + self.ttl

    def age(self, now: float) -> float:
        return now - self.stored_at

    def is_fresh(self, now: float) -> bool:
        return self.age(now) < self.ttl


class TTLCache:
    """Map fetch keys to results with a per-entry time-to-live.

    Staleness is enforced lazily: a read that finds an expired entry evicts it
    and reports a miss. Reads never extend an entry's lifetime.
    """

    def __init__(self, default_ttl: float = 3600.0, clock: Callable[[], float] = time.time) -> None:
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if not entry.is_fresh(self._clock()):
                del self._entries[key]
                return None
            return entry.data

    def put(self, key: str, data: Any, ttl: float | None = None) -> None:
        entry = CacheEntry(
            key=key,
            data=data,
            stored_at=self._clock(),
            ttl=self.default_ttl if ttl is None else ttl,
        )
        with self._lock:
            self._entries[key] = entry

    def peek(self, key: str) -> CacheEntry | None:
        """Return the raw entry, stale or not, without evicting it."""

        with self._lock:
            return self._entries.get(key)

    def invalidate(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear_all(self) -> int:
        with self._lock:
            removed = len(self._entries)
            self._entries.clear()
            return removed

    def now(self) -> float:
        return self._clock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = ["CacheEntry", "TTLCache"]
