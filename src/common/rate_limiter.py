"""Interval rate limiter for outbound platform API calls."""

from __future__ import annotations

import threading
import time


class RateLimiter:
    """Thread-safe minimum-interval rate limiter.

    Args:
        requests_per_minute: Maximum requests allowed per minute. Zero or a
            negative value disables limiting.
    """

    def __init__(self, requests_per_minute: int = 60) -> None:
        self._interval = 60.0 / requests_per_minute if requests_per_minute > 0 else 0.0
        self._last_request_time: float = 0.0
        self._lock = threading.Lock()

    @property
    def interval(self) -> float:
        return self._interval

    def wait(self) -> float:
        """Block until the next request is allowed. Returns seconds slept."""
        if not self._interval:
            return 0.0
        with self._lock:
            slept = 0.0
            elapsed = time.monotonic() - self._last_request_time
            if elapsed < self._interval:
                slept = self._interval - elapsed
                time.sleep(slept)
            self._last_request_time = time.monotonic()
            return slept
