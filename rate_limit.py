from __future__ import annotations

import math
import os
import time
from collections import defaultdict, deque
from threading import Lock

from fastapi import HTTPException

from settings import settings


class InMemoryRateLimiter:
    """
    Sliding-window limiter, per process. key -> deque[timestamps]
    """

    def __init__(self, clock=time.time):
        self._hits: dict[str, deque] = defaultdict(deque)
        self._lock = Lock()
        self._clock = clock

    def hit(self, key: str, limit: int, window_seconds: int) -> tuple[bool, int]:
        """
        Returns (allowed, retry_after_seconds).
        """
        now = self._clock()
        with self._lock:
            q = self._hits[key]
            while q and (now - q[0]) >= window_seconds:
                q.popleft()
            if len(q) >= limit:
                retry_after = max(1, math.ceil(window_seconds - (now - q[0])))
                return False, retry_after
            q.append(now)
            return True, 0


_limiter = InMemoryRateLimiter()


def rate_limit_enabled() -> bool:
    raw = os.getenv("RATE_LIMIT_ENABLED")
    if raw is None or not raw.strip():
        return bool(settings.RATE_LIMIT_ENABLED)
    return raw.strip().lower() in ("1", "true", "yes", "on")


def rate_limit_or_429(*, key: str, limit: int, window_seconds: int = 60) -> None:
    allowed, retry_after = _limiter.hit(key, limit, window_seconds)
    if not allowed:
        raise HTTPException(
            status_code=429,
            detail="RATE_LIMITED",
            headers={"Retry-After": str(retry_after)},
        )
