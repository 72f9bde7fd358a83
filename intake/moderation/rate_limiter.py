"""Fixed-window rate limiter keyed by (site, target, identity).

This is deliberately a fixed window, not a sliding log: a window resets when
it has elapsed, so a burst straddling a window boundary can briefly exceed
the nominal rate.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

RateKey = tuple[str, str, str]


@dataclass
class RateWindow:
    count: int
    window_started_at: float


@dataclass
class RateDecision:
    """Result of recording one hit."""

    limited: bool
    count: int
    limit: int
    window_started_at: float
    retry_after: float = 0.0


class FixedWindowRateLimiter:
    """Counts hits per key in fixed windows of ``window_seconds``.

    A window is over once ``window_seconds`` have passed since it started,
    so a hit landing exactly on the boundary opens a new window.  Every
    ``sweep_every`` hits, windows that are over are dropped.
    """

    def __init__(
        self,
        window_seconds: float,
        limit: int,
        clock: Callable[[], float] = time.time,
        sweep_every: int = 256,
    ) -> None:
        self.window_seconds = window_seconds
        self.limit = limit
        self._clock = clock
        self._sweep_every = sweep_every
        self._hits = 0
        self._lock = threading.RLock()
        self._windows: dict[RateKey, RateWindow] = {}

    def _expired(self, window: RateWindow, now: float) -> bool:
        return now - window.window_started_at >= self.window_seconds

    def hit(self, key: RateKey) -> RateDecision:
        """Record a hit for *key* and report whether it exceeds the limit."""
        now = self._clock()
        with self._lock:
            self._hits += 1
            if self._sweep_every and self._hits % self._sweep_every == 0:
                self.prune()
            window = self._windows.get(key)
            if window is None or self._expired(window, now):
                window = RateWindow(count=0, window_started_at=now)
                self._windows[key] = window
            window.count += 1
            limited = window.count > self.limit
            retry_after = (
                max(0.0, window.window_started_at + self.window_seconds - now) if limited else 0.0
            )
            return RateDecision(
                limited=limited,
                count=window.count,
                limit=self.limit,
                window_started_at=window.window_started_at,
                retry_after=retry_after,
            )

    def prune(self) -> int:
        """Drop windows that are over.  Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, window in self._windows.items() if self._expired(window, now)]
            for key in expired:
                del self._windows[key]
        return len(expired)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()
            self._hits = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)
