"""Fixed-window rate limiting keyed by limiter name and client IP.

The counter store is pluggable. The in-memory store is per process; the Redis
store is shared by every worker pointing at the same Redis.
"""

import logging
import math
import time
from typing import Protocol

import redis.asyncio as aioredis
from fastapi import Request

from arena.config import settings
from arena.errors import RateLimitError

logger = logging.getLogger(__name__)

KEY_PREFIX = "arena:ratelimit"


class RateLimitStore(Protocol):
    async def get(self, key: str) -> int: ...

    async def increment(self, key: str) -> int: ...

    async def expire(self, key: str, seconds: int) -> None: ...

    async def ttl(self, key: str) -> int: ...


class MemoryRateLimitStore:
    """Process-local counters. Every write sweeps all expired keys."""

    def __init__(self, clock=time.monotonic) -> None:
        self._clock = clock
        self._counts: dict[str, int] = {}
        self._expires_at: dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._counts)

    def _purge(self, key: str) -> None:
        expires_at = self._expires_at.get(key)
        if expires_at is not None and expires_at <= self._clock():
            self._counts.pop(key, None)
            self._expires_at.pop(key, None)

    def _sweep(self) -> None:
        now = self._clock()
        expired = [k for k, at in self._expires_at.items() if at <= now]
        for k in expired:
            self._counts.pop(k, None)
            del self._expires_at[k]

    async def get(self, key: str) -> int:
        self._purge(key)
        return self._counts.get(key, 0)

    async def increment(self, key: str) -> int:
        self._sweep()
        self._counts[key] = self._counts.get(key, 0) + 1
        return self._counts[key]

    async def expire(self, key: str, seconds: int) -> None:
        if key in self._counts:
            self._expires_at[key] = self._clock() + seconds

    async def ttl(self, key: str) -> int:
        self._purge(key)
        expires_at = self._expires_at.get(key)
        if expires_at is None:
            return -1
        return math.ceil(expires_at - self._clock())


class RedisRateLimitStore:
    """Counters in Redis (INCR + EXPIRE)."""

    def __init__(self, url: str | None = None) -> None:
        self._redis = aioredis.from_url(url or settings.redis_url, decode_responses=True)

    async def get(self, key: str) -> int:
        value = await self._redis.get(key)
        return int(value) if value is not None else 0

    async def increment(self, key: str) -> int:
        return int(await self._redis.incr(key))

    async def expire(self, key: str, seconds: int) -> None:
        await self._redis.expire(key, seconds)

    async def ttl(self, key: str) -> int:
        return int(await self._redis.ttl(key))

    async def close(self) -> None:
        await self._redis.aclose()


_store: RateLimitStore | None = None


def get_store() -> RateLimitStore:
    """The process-wide store, built from settings on first use."""
    global _store
    if _store is None:
        if settings.rate_limit_backend == "redis":
            _store = RedisRateLimitStore(settings.redis_url)
            logger.info("Rate limiting backed by Redis")
        else:
            _store = MemoryRateLimitStore()
    return _store


async def close_store() -> None:
    global _store
    if isinstance(_store, RedisRateLimitStore):
        await _store.close()
    _store = None


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


class RateLimiter:
    """FastAPI dependency: `dependencies=[Depends(api_rate_limiter)]`."""

    def __init__(
        self,
        name: str,
        limit: int,
        window_seconds: int,
        message: str = "Too many requests, please try again later",
        store: RateLimitStore | None = None,
        enabled: bool | None = None,
    ) -> None:
        self.name = name
        self.limit = limit
        self.window_seconds = window_seconds
        self.message = message
        self._store = store
        self.enabled = enabled if enabled is not None else settings.app_env != "test"

    @property
    def store(self) -> RateLimitStore:
        return self._store if self._store is not None else get_store()

    async def hit(self, key: str) -> None:
        """Count one request for `key`; raise once the window's limit is exceeded."""
        full_key = f"{KEY_PREFIX}:{self.name}:{key}"
        count = await self.store.increment(full_key)
        if count == 1:
            await self.store.expire(full_key, self.window_seconds)
        if count > self.limit:
            ttl = await self.store.ttl(full_key)
            if ttl < 0:
                # Counter lost its expiry, start a fresh window
                await self.store.expire(full_key, self.window_seconds)
                ttl = self.window_seconds
            logger.warning("Rate limit %s exceeded by %s (%d requests)", self.name, key, count)
            raise RateLimitError(self.message, retry_after=max(1, ttl))

    async def __call__(self, request: Request) -> None:
        if not self.enabled:
            return
        await self.hit(client_ip(request))


api_rate_limiter = RateLimiter("api", settings.api_rate_limit, settings.api_rate_window_seconds)
auth_rate_limiter = RateLimiter(
    "auth",
    settings.auth_rate_limit,
    settings.auth_rate_window_seconds,
    message="Too many authentication attempts, please try again later",
)
