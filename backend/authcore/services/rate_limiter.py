"""Sliding-window request throttling for login and refresh."""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Callable, Deque, Dict

from authcore.core.exceptions import RateLimitExceededError


class InMemoryRateLimiter:
    """Per-key sliding window; state lives in this process only."""

    def __init__(self, timer: Callable[[], float] = time.monotonic) -> None:
        self._lock = threading.Lock()
        self._buckets: Dict[str, Deque[float]] = {}
        self._timer = timer

    def _prune(self, key: str, window_seconds: int, now: float) -> Deque[float]:
        bucket = self._buckets.setdefault(key, deque())
        cutoff = now - window_seconds
        while bucket and bucket[0] <= cutoff:
            bucket.popleft()
        return bucket

    def allow(self, key: str, limit: int, window_seconds: int) -> bool:
        now = self._timer()
        with self._lock:
            bucket = self._prune(key, window_seconds, now)
            if len(bucket) >= limit:
                return False
            bucket.append(now)
            return True

    def remaining(self, key: str, limit: int, window_seconds: int) -> int:
        with self._lock:
            bucket = self._prune(key, window_seconds, self._timer())
            return max(0, limit - len(bucket))

    def enforce(self, scope: str, subject: str, per_minute: int, per_hour: int) -> None:
        """
        Count one attempt against both windows.

        Raises:
            RateLimitExceededError: either window is exhausted
        """
        if not self.allow(f"{scope}:min:{subject}", per_minute, 60):
            raise RateLimitExceededError(f"Too many {scope} attempts. Please wait a minute.")
        if not self.allow(f"{scope}:hour:{subject}", per_hour, 3600):
            raise RateLimitExceededError(f"Too many {scope} attempts. Please try again later.")

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()


rate_limiter = InMemoryRateLimiter()
