# Backend/app/core/rate_limiting.py
"""
In-process rate limiting using a sliding window.

Tracks request timestamps per (action, key) where key is a client_id or an
IP address. State lives in the process; a multi-instance deployment gets one
window per instance.
"""

from __future__ import annotations

import time
from collections import deque
from typing import Callable, Deque, Dict, Optional, Tuple

from app.core.logging import get_logger
from app.core.rate_limits_config import get_rate_limit

logger = get_logger()


class SlidingWindowRateLimiter:
    def __init__(self, clock: Callable[[], float] = time.monotonic, sweep_interval_s: float = 60.0) -> None:
        self._clock = clock
        self._hits: Dict[Tuple[str, str], Deque[float]] = {}
        self._sweep_interval_s = sweep_interval_s
        self._last_sweep = clock()
        self._max_window_s = 0.0

    def _prune(self, bucket_key: Tuple[str, str], window_start: float) -> Optional[Deque[float]]:
        """Drop timestamps at or before `window_start`; an emptied bucket is removed."""
        bucket = self._hits.get(bucket_key)
        if bucket is None:
            return None
        while bucket and bucket[0] <= window_start:
            bucket.popleft()
        if not bucket:
            del self._hits[bucket_key]
            return None
        return bucket

    def _sweep(self, now: float) -> None:
        # reclaims keys that are never seen again
        if now - self._last_sweep < self._sweep_interval_s:
            return
        self._last_sweep = now
        cutoff = now - self._max_window_s
        stale = [bucket_key for bucket_key, bucket in self._hits.items() if not bucket or bucket[-1] <= cutoff]
        for bucket_key in stale:
            del self._hits[bucket_key]
        if stale:
            logger.debug("rate_limit_swept", removed=len(stale), tracked=len(self._hits))

    def check_and_increment(
        self,
        key: str,
        action: str,
        limit: Optional[int] = None,
        window_seconds: Optional[int] = None,
    ) -> bool:
        """
        Record one request for (action, key) if it fits in the window.

        Args:
            key: client_id or IP address
            action: Action name (e.g., 'preview')
            limit: Optional custom limit (uses config if None)
            window_seconds: Optional custom window (uses config if None)

        Returns:
            True if allowed (and counted), False if over limit (not counted)
        """
        if limit is None or window_seconds is None:
            default_limit, default_window = get_rate_limit(action)
            limit = limit or default_limit
            window_seconds = window_seconds or default_window

        now = self._clock()
        self._max_window_s = max(self._max_window_s, float(window_seconds))
        self._sweep(now)

        bucket = self._prune((action, key), now - window_seconds)
        if bucket is not None and len(bucket) >= limit:
            logger.info("rate_limit_exceeded", action=action, key=key, limit=limit, window_seconds=window_seconds)
            return False

        if bucket is None:
            bucket = self._hits[(action, key)] = deque()
        bucket.append(now)
        return True

    def retry_after(self, key: str, action: str) -> int:
        """Seconds until the oldest request in the window expires."""
        _, window_seconds = get_rate_limit(action)
        now = self._clock()
        bucket = self._prune((action, key), now - window_seconds)
        if not bucket:
            return 0
        return max(1, int(bucket[0] + window_seconds - now) + 1)

    def tracked_keys(self) -> int:
        return len(self._hits)

    def reset(self) -> None:
        self._hits.clear()


rate_limiter = SlidingWindowRateLimiter()
