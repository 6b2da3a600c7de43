"""
Rate Limiting
Fixed-window request counters per client IP, in memory or in Redis
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Dict, Optional, Tuple
import logging

import redis.asyncio as aioredis

from authapi.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_after: int


def rate_limit_key(identifier: str, action: str, window_start: int) -> str:
    """Generate rate limit key"""
    return f"rate_limit:{action}:{identifier}:{window_start}"


class RateLimiter:
    """Fixed-window counter: at most `limit` hits per `window_seconds` per key"""

    def __init__(self, window_seconds: int):
        if window_seconds < 1:
            raise ValueError("Rate limit window must be at least 1 second")
        self.window_seconds = window_seconds

    def _window(self, now: float) -> Tuple[int, int]:
        window_start = int(now // self.window_seconds) * self.window_seconds
        reset_after = max(1, window_start + self.window_seconds - int(now))
        return window_start, reset_after

    async def _increment(self, key: str, window_start: int) -> int:
        raise NotImplementedError

    async def hit(
        self, identifier: str, action: str, limit: int, now: Optional[float] = None
    ) -> RateLimitResult:
        """
        Record one request and report whether it is within the limit

        Args:
            identifier: Client identifier (IP address)
            action: Limit scope, e.g. "api" or "auth"
            limit: Maximum requests per window
            now: Current UNIX time, defaults to time.time()

        Returns:
            RateLimitResult: Decision plus header values
        """
        now = time.time() if now is None else now
        window_start, reset_after = self._window(now)
        count = await self._increment(rate_limit_key(identifier, action, window_start), window_start)
        return RateLimitResult(
            allowed=count <= limit,
            limit=limit,
            remaining=max(0, limit - count),
            reset_after=reset_after,
        )

    async def close(self) -> None:
        """Release backend resources"""


class MemoryRateLimiter(RateLimiter):
    """Per-process counters; stale windows are dropped as time advances"""

    def __init__(self, window_seconds: int):
        super().__init__(window_seconds)
        self._counters: Dict[str, int] = {}
        self._current_window: Optional[int] = None
        self._lock = asyncio.Lock()

    async def _increment(self, key: str, window_start: int) -> int:
        async with self._lock:
            if self._current_window is None or window_start > self._current_window:
                # Every stored key belongs to an older window
                self._counters.clear()
                self._current_window = window_start
            self._counters[key] = self._counters.get(key, 0) + 1
            return self._counters[key]


class RedisRateLimiter(RateLimiter):
    """Counters shared across workers through Redis INCR/EXPIRE"""

    def __init__(self, window_seconds: int, redis_url: str):
        super().__init__(window_seconds)
        self.client: aioredis.Redis = aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_keepalive=True,
            health_check_interval=30
        )

    async def _increment(self, key: str, window_start: int) -> int:
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.incr(key)
            pipe.expire(key, self.window_seconds)
            count, _ = await pipe.execute()
        return int(count)

    async def close(self) -> None:
        await self.client.aclose()
        logger.info("Redis rate limiter connection closed")


def create_rate_limiter(settings: Settings) -> RateLimiter:
    """Build the rate limiter backend selected by REDIS_URL"""
    if settings.redis_url:
        logger.info("Using Redis rate limiter")
        return RedisRateLimiter(settings.rate_limit_window_seconds, settings.redis_url)
    return MemoryRateLimiter(settings.rate_limit_window_seconds)
