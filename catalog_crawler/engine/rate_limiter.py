"""Per-domain request admission with a reset-based window."""

from __future__ import annotations

import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict
from urllib.parse import urlparse

from ..errors import RateLimitExceeded


@dataclass(slots=True)
class RateWindow:
    domain: str
    count: int
    window_reset_at: float


def domain_of(url: str) -> str:
    """Return the lower-cased hostname used to key rate windows."""

    parsed = urlparse(url)
    return (parsed.hostname or parsed.netloc or "").lower()


class DomainRateLimiter:
    """Admit at most ``max_requests`` per domain within each window.

    The window starts on first use and is reset wholesale once it elapses, so
    up to ``2 * max_requests`` requests can pass around a window boundary.
    Rejected requests fail immediately and do not consume budget.
    """

    def __init__(
        self,
        max_requests: int = 30,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, RateWindow] = {}
        self._lock = Lock()

    def admit(self, domain: str) -> None:
        with self._lock:
            now = self._clock()
            window = self._windows.get(domain)
            if window is None:
                window = RateWindow(domain=domain, count=0, window_reset_at=now + self.window_seconds)
                self._windows[domain] = window
            elif now >= window.window_reset_at:
                window.count = 0
                window.window_reset_at = now + self.window_seconds
            if window.count >= self.max_requests:
                raise RateLimitExceeded(
                    domain,
                    self.max_requests,
                    self.window_seconds,
                    retry_after=max(0.0, window.window_reset_at - now),
                )
            window.count += 1

    def snapshot(self, domain: str) -> RateWindow | None:
        with self._lock:
            window = self._windows.get(domain)
            if window is None:
                return None
            return RateWindow(window.domain, window.count, window.window_reset_at)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


__all__ = ["DomainRateLimiter", "RateWindow", "domain_of"]
