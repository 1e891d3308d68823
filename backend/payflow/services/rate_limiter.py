"""Sliding window rate limiters.

InMemoryRateLimiter keeps a per-client log of request times in process
memory.  RedisRateLimiter keeps the same log in a Redis sorted set so
several workers share one budget; when Redis errors it falls back to an
in-memory limiter instead of failing the request.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_after: int  # seconds until the oldest counted request leaves the window


class InMemoryRateLimiter:
    """Simple in-memory rate limiter using a sliding window.

    Args:
        max_requests: Maximum requests per window.
        window_seconds: Window size in seconds.
        clock: Monotonic time source, overridable in tests.
    """

    def __init__(
        self,
        max_requests: int = 1000,
        window_seconds: int = 900,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._clock = clock
        self._requests: Dict[str, List[float]] = {}
        self._last_sweep: Optional[float] = None

    @property
    def max_requests(self) -> int:
        return self._max_requests

    @property
    def window_seconds(self) -> int:
        return self._window_seconds

    @property
    def tracked_clients(self) -> int:
        return len(self._requests)

    def _sweep(self, now: float, window_start: float) -> None:
        """Forget clients whose every request has left the window. Runs at most once per window."""
        if self._last_sweep is not None and now - self._last_sweep < self._window_seconds:
            return
        self._last_sweep = now
        stale = [c for c, hits in self._requests.items() if not hits or hits[-1] <= window_start]
        for client_id in stale:
            del self._requests[client_id]

    async def hit(self, client_id: str) -> RateLimitResult:
        """Record a request from ``client_id`` if it is within the limit.

        Rejected requests are not recorded, so a client that keeps
        hammering is let back in once its window drains.
        """
        now = self._clock()
        window_start = now - self._window_seconds

        self._sweep(now, window_start)

        # Clean up old entries
        hits = [t for t in self._requests.get(client_id, ()) if t > window_start]

        allowed = len(hits) < self._max_requests
        if allowed:
            hits.append(now)
        if hits:
            self._requests[client_id] = hits
        else:
            self._requests.pop(client_id, None)

        oldest = hits[0] if hits else now
        reset_after = max(0, int(round(oldest + self._window_seconds - now)))
        return RateLimitResult(
            allowed=allowed,
            limit=self._max_requests,
            remaining=max(0, self._max_requests - len(hits)),
            reset_after=reset_after,
        )

    def reset(self, client_id: str | None = None) -> None:
        if client_id is None:
            self._requests.clear()
        else:
            self._requests.pop(client_id, None)


class RedisRateLimiter:
    """Sliding window rate limiter using Redis ZSETs."""

    def __init__(
        self,
        redis,
        max_requests: int = 1000,
        window_seconds: int = 900,
        key_prefix: str = "payflow:rate",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._redis = redis
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._key_prefix = key_prefix
        self._clock = clock
        self._fallback = InMemoryRateLimiter(max_requests, window_seconds)

    @property
    def max_requests(self) -> int:
        return self._max_requests

    @property
    def window_seconds(self) -> int:
        return self._window_seconds

    async def hit(self, client_id: str) -> RateLimitResult:
        key = f"{self._key_prefix}:{client_id}"
        now = self._clock()
        window_start = now - self._window_seconds

        try:
            member = f"{now}:{uuid.uuid4().hex[:8]}"
            pipe = self._redis.pipeline()
            # Remove expired entries
            pipe.zremrangebyscore(key, 0, window_start)
            # Count current entries
            pipe.zcard(key)
            # Add this request; the suffix keeps same-instant requests distinct
            pipe.zadd(key, {member: now})
            # Set TTL on the key
            pipe.expire(key, self._window_seconds + 1)
            results = await pipe.execute()
        except Exception:
            logger.exception("Redis rate limiting failed for %s; using in-memory window", client_id)
            return await self._fallback.hit(client_id)

        current_count = results[1]
        if current_count >= self._max_requests:
            # Don't let rejected requests extend the window
            try:
                await self._redis.zrem(key, member)
            except Exception:
                logger.warning("Could not drop rejected request from %s", key)
            return RateLimitResult(
                allowed=False,
                limit=self._max_requests,
                remaining=0,
                reset_after=self._window_seconds,
            )

        return RateLimitResult(
            allowed=True,
            limit=self._max_requests,
            remaining=max(0, self._max_requests - current_count - 1),
            reset_after=self._window_seconds,
        )
