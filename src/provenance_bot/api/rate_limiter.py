"""Per-client fixed-window rate limiting for trace writes."""

import math
import time
from dataclasses import dataclass

from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter


@dataclass
class RateLimitResult:
    """Outcome of a rate limit check."""

    allowed: bool
    retry_after: int = 0  # Whole seconds until the window resets


class SimpleRateLimiter:
    """Allows ``limit`` hits per key within each ``window_seconds`` window.

    Counters live in process memory, so each API process limits on its own.
    """

    def __init__(self, limit: int, window_seconds: int, namespace: str = "trace-writes"):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be at least 1")
        self._item = RateLimitItemPerSecond(limit, window_seconds, namespace=namespace)
        self._limiter = FixedWindowRateLimiter(MemoryStorage())

    def check(self, key: str) -> RateLimitResult:
        """Count a hit for ``key`` and report whether it is allowed."""
        if self._limiter.hit(self._item, key):
            return RateLimitResult(allowed=True)

        reset_at = self._limiter.get_window_stats(self._item, key).reset_time
        return RateLimitResult(allowed=False, retry_after=max(1, math.ceil(reset_at - time.time())))
