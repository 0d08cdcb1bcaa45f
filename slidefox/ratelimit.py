"""Sliding-window rate limiting keyed by client IP.

Two backends share one interface: Redis (sorted set of request timestamps per
key) for multi-process deployments, and an in-memory window for a single
process. If the backend fails the request is allowed through.
"""

import logging
import time
import uuid
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass

from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


@dataclass
class RateLimitResult:
    success: bool
    limit: int
    remaining: int
    # Epoch milliseconds at which a new request will be admitted
    reset: int

    @property
    def retry_after(self) -> int:
        """Whole seconds until ``reset``, at least 1."""
        return max(1, -(-(self.reset - int(time.time() * 1000)) // 1000))

    def headers(self) -> dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset),
        }
        if not self.success:
            headers["Retry-After"] = str(self.retry_after)
        return headers


def client_identifier(forwarded_for: str | None) -> str:
    """First address of an X-Forwarded-For header, or ``anonymous``."""
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    return "anonymous"


class RateLimiter(ABC):
    def __init__(self, limit: int = 20, window_seconds: int = 3600, prefix: str = "slidefox"):
        self.limit = limit
        self.window_ms = window_seconds * 1000
        self.prefix = prefix

    def _key(self, identifier: str) -> str:
        return f"{self.prefix}:{identifier}"

    def _allow_all(self, now: int) -> RateLimitResult:
        return RateLimitResult(success=True, limit=self.limit, remaining=self.limit, reset=now + self.window_ms)

    @abstractmethod
    async def limit_request(self, identifier: str) -> RateLimitResult:
        """Record one request for ``identifier`` and report whether it is admitted."""


class MemoryRateLimiter(RateLimiter):
    """Per-process sliding window."""

    def __init__(self, limit: int = 20, window_seconds: int = 3600, prefix: str = "slidefox"):
        super().__init__(limit, window_seconds, prefix)
        self._hits: dict[str, deque[int]] = {}
        self._last_sweep = 0

    def __len__(self) -> int:
        return len(self._hits)

    def _sweep(self, now: int) -> None:
        """Forget clients without a request inside the window. Runs at most once per window."""
        if now - self._last_sweep < self.window_ms:
            return
        self._last_sweep = now
        cutoff = now - self.window_ms
        for key in [key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff]:
            del self._hits[key]

    async def limit_request(self, identifier: str) -> RateLimitResult:
        now = int(time.time() * 1000)
        self._sweep(now)
        hits = self._hits.setdefault(self._key(identifier), deque())
        while hits and hits[0] <= now - self.window_ms:
            hits.popleft()

        if len(hits) >= self.limit:
            return RateLimitResult(success=False, limit=self.limit, remaining=0, reset=hits[0] + self.window_ms)

        hits.append(now)
        return RateLimitResult(
            success=True, limit=self.limit, remaining=self.limit - len(hits), reset=hits[0] + self.window_ms
        )


class RedisRateLimiter(RateLimiter):
    """Sliding window stored in a Redis sorted set scored by request time.

    Each request is added and counted in one transaction, so concurrent requests
    are ordered by Redis and at most ``limit`` of them see a count within the
    limit. A rejected request removes its own entry again.
    """

    def __init__(self, redis_client: Redis, limit: int = 20, window_seconds: int = 3600, prefix: str = "slidefox"):
        super().__init__(limit, window_seconds, prefix)
        self.redis = redis_client

    async def limit_request(self, identifier: str) -> RateLimitResult:
        now = int(time.time() * 1000)
        key = self._key(identifier)
        member = f"{now}-{uuid.uuid4().hex}"

        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.zremrangebyscore(key, 0, now - self.window_ms)
                pipe.zadd(key, {member: now})
                pipe.zcard(key)
                pipe.zrange(key, 0, 0, withscores=True)
                pipe.pexpire(key, self.window_ms)
                _, _, count, oldest, _ = await pipe.execute()

            oldest_ms = int(oldest[0][1]) if oldest else now
            if count > self.limit:
                await self.redis.zrem(key, member)
                return RateLimitResult(success=False, limit=self.limit, remaining=0, reset=oldest_ms + self.window_ms)
        except (RedisError, OSError) as e:
            logger.warning(f"⚠️ Rate limit backend unavailable, allowing request: {e}")
            return self._allow_all(now)

        return RateLimitResult(
            success=True, limit=self.limit, remaining=self.limit - count, reset=oldest_ms + self.window_ms
        )


def create_rate_limiter(
    redis_url: str | None, limit: int = 20, window_seconds: int = 3600, prefix: str = "slidefox"
) -> RateLimiter:
    if redis_url:
        client = Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
        return RedisRateLimiter(client, limit=limit, window_seconds=window_seconds, prefix=prefix)
    return MemoryRateLimiter(limit=limit, window_seconds=window_seconds, prefix=prefix)
