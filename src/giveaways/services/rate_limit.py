"""Entry rate limiter — caps entry submissions per client IP.

Backed by Redis when a client is configured; falls back to an in-memory
sliding window in tests / local dev.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any

from giveaways.core.constants import ENTRY_RATE_LIMIT, ENTRY_RATE_WINDOW_MINUTES
from giveaways.core.errors import RATE_LIMITED, PolicyError

logger = logging.getLogger(__name__)


class EntryRateLimiter:
    """Fixed-window counter keyed by IP.

    In production, *redis_client* is a ``redis.Redis`` instance.
    Pass ``None`` to use the in-memory store.
    """

    def __init__(
        self,
        redis_client: Any | None = None,
        max_entries: int = ENTRY_RATE_LIMIT,
        window_minutes: int = ENTRY_RATE_WINDOW_MINUTES,
    ) -> None:
        self._redis = redis_client
        self.max_entries = max_entries
        self.window_seconds = window_minutes * 60
        self._memory: dict[str, list[float]] = {}
        self._lock = threading.Lock()

    @property
    def is_redis(self) -> bool:
        return self._redis is not None

    @staticmethod
    def _key(ip_address: str) -> str:
        return f"ratelimit:entry:{ip_address}"

    def hit(self, ip_address: str | None, now: float | None = None) -> int:
        """Record one submission and return the count in the current window."""
        key = self._key(ip_address or "unknown")
        if self._redis is not None:
            try:
                pipe = self._redis.pipeline()
                pipe.incr(key)
                pipe.expire(key, self.window_seconds, nx=True)
                count, _ = pipe.execute()
                return int(count)
            except Exception:
                # Rate limiting must not take entries down with Redis.
                logger.warning("Rate limit INCR failed for %s", key, exc_info=True)
                return 0

        ts = time.monotonic() if now is None else now
        with self._lock:
            window = [t for t in self._memory.get(key, []) if ts - t < self.window_seconds]
            window.append(ts)
            self._memory[key] = window
            return len(window)

    def check(self, ip_address: str | None, now: float | None = None) -> None:
        """Raise ``PolicyError(RateLimited)`` once the IP goes over the limit."""
        count = self.hit(ip_address, now=now)
        if count > self.max_entries:
            logger.info("Entry rate limit exceeded for %s (%d)", ip_address, count)
            raise PolicyError(
                "Too many entries from this location. Please try again later",
                code=RATE_LIMITED,
                status_code=429,
            )

    def reset(self) -> None:
        with self._lock:
            self._memory.clear()
