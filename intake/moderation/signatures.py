"""Duplicate signature detection for repeated submissions.

A signature is a deterministic fingerprint of the submitted content.  The
detector remembers when each (key, signature) pair was last seen and flags
a new submission whose signature was recorded within the horizon.
"""

from __future__ import annotations

import json
import re
import threading
import time
from collections import deque
from typing import Any, Callable, Mapping

SignatureKey = tuple[str, str, str, str]

_WHITESPACE = re.compile(r"\s+")


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True, default=str)


def form_signature(values: Mapping[str, Any]) -> str:
    """Concatenate ``key=value`` pairs over the sorted field keys."""
    return "&".join(f"{key}={_stringify(values[key])}" for key in sorted(values))


def normalize_content(content: str) -> str:
    return _WHITESPACE.sub(" ", content).strip().lower()


def comment_signature(content: str) -> str:
    return normalize_content(content)


class DuplicateDetector:
    """Short-window cache of content signatures.

    Each (key, signature) keeps at most ``max_entries`` timestamps and
    expired timestamps are dropped on every read.  Every ``sweep_every``
    checks, keys whose newest timestamp has expired are removed entirely.
    """

    def __init__(
        self,
        horizon_seconds: float,
        clock: Callable[[], float] = time.time,
        max_entries: int = 32,
        sweep_every: int = 256,
    ) -> None:
        self.horizon_seconds = horizon_seconds
        self._clock = clock
        self._max_entries = max_entries
        self._sweep_every = sweep_every
        self._checks = 0
        self._lock = threading.RLock()
        self._records: dict[SignatureKey, deque[float]] = {}

    def check_and_record(self, key: tuple[str, str, str], signature: str) -> bool:
        """Return True if *signature* was seen within the horizon, then record it."""
        now = self._clock()
        record_key: SignatureKey = (*key, signature)
        with self._lock:
            self._checks += 1
            if self._sweep_every and self._checks % self._sweep_every == 0:
                self.prune()
            stamps = self._records.get(record_key)
            if stamps is None:
                stamps = deque(maxlen=self._max_entries)
                self._records[record_key] = stamps
            while stamps and now - stamps[0] > self.horizon_seconds:
                stamps.popleft()
            duplicate = any(now - ts <= self.horizon_seconds for ts in stamps)
            stamps.append(now)
            return duplicate

    def prune(self) -> int:
        """Drop fully expired keys.  Returns the number removed."""
        now = self._clock()
        removed = 0
        with self._lock:
            for record_key in list(self._records):
                stamps = self._records[record_key]
                if not stamps or now - stamps[-1] > self.horizon_seconds:
                    del self._records[record_key]
                    removed += 1
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
