"""Sliding-window rate limits per action type."""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Callable

HOUR = 3600.0
DAY = 86400.0


class RateLimiter:
    """Hourly and daily caps per action type.

    Types without a configured limit are never limited. The lock only
    guards the in-memory deques.
    """

    def __init__(self, limits: dict[str, dict], clock: Callable[[], float] = time.monotonic):
        self.limits = limits
        self._clock = clock
        self._lock = threading.Lock()
        self._calls: dict[str, deque[float]] = {}

    def _prune(self, calls: deque[float], now: float) -> None:
        while calls and now - calls[0] >= DAY:
            calls.popleft()

    def try_acquire(self, action_type: str) -> bool:
        """Take one slot for ``action_type``; False when a window is full."""
        limit = self.limits.get(action_type)
        if not limit:
            return True
        with self._lock:
            now = self._clock()
            calls = self._calls.setdefault(action_type, deque())
            self._prune(calls, now)
            last_hour = sum(1 for t in calls if now - t < HOUR)
            if last_hour >= limit.get("max_per_hour", float("inf")):
                return False
            if len(calls) >= limit.get("max_per_day", float("inf")):
                return False
            calls.append(now)
            return True

    def usage(self, action_type: str) -> dict[str, int]:
        with self._lock:
            now = self._clock()
            calls = self._calls.get(action_type, deque())
            self._prune(calls, now)
            return {
                "hour": sum(1 for t in calls if now - t < HOUR),
                "day": len(calls),
            }
