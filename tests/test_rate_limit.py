"""Tests for the rate limiter and its in-memory store."""

import pytest

from arena.errors import RateLimitError
from arena.services.rate_limit import MemoryRateLimitStore, RateLimiter

pytestmark = pytest.mark.asyncio


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestMemoryStore:
    async def test_increment_and_get(self):
        store = MemoryRateLimitStore()
        assert await store.get("k") == 0
        assert await store.increment("k") == 1
        assert await store.increment("k") == 2
        assert await store.get("k") == 2

    async def test_expiry(self):
        clock = FakeClock()
        store = MemoryRateLimitStore(clock=clock)
        await store.increment("k")
        await store.expire("k", 60)
        assert await store.ttl("k") == 60
        clock.now += 61
        assert await store.get("k") == 0
        assert await store.ttl("k") == -1

    async def test_expire_unknown_key_is_noop(self):
        store = MemoryRateLimitStore()
        await store.expire("missing", 10)
        assert await store.ttl("missing") == -1


class TestRateLimiter:
    async def test_blocks_after_limit(self):
        clock = FakeClock()
        limiter = RateLimiter("t", limit=3, window_seconds=60, store=MemoryRateLimitStore(clock), enabled=True)
        for _ in range(3):
            await limiter.hit("1.2.3.4")
        with pytest.raises(RateLimitError) as exc:
            await limiter.hit("1.2.3.4")
        assert exc.value.code == "RATE_LIMIT_EXCEEDED"
        assert exc.value.retry_after == 60

    async def test_keys_are_independent(self):
        limiter = RateLimiter("t", limit=1, window_seconds=60, store=MemoryRateLimitStore(), enabled=True)
        await limiter.hit("a")
        await limiter.hit("b")
        with pytest.raises(RateLimitError):
            await limiter.hit("a")

    async def test_window_resets(self):
        clock = FakeClock()
        limiter = RateLimiter("t", limit=1, window_seconds=30, store=MemoryRateLimitStore(clock), enabled=True)
        await limiter.hit("a")
        with pytest.raises(RateLimitError):
            await limiter.hit("a")
        clock.now += 31
        await limiter.hit("a")

    async def test_retry_after_counts_down(self):
        clock = FakeClock()
        limiter = RateLimiter("t", limit=1, window_seconds=60, store=MemoryRateLimitStore(clock), enabled=True)
        await limiter.hit("a")
        clock.now += 45
        with pytest.raises(RateLimitError) as exc:
            await limiter.hit("a")
        assert exc.value.retry_after == 15

    async def test_disabled_in_test_env(self):
        limiter = RateLimiter("t", limit=1, window_seconds=60, store=MemoryRateLimitStore())
        assert limiter.enabled is False

    async def test_expired_keys_of_other_clients_are_evicted(self):
        clock = FakeClock()
        store = MemoryRateLimitStore(clock)
        limiter = RateLimiter("t", limit=5, window_seconds=60, store=store, enabled=True)
        for i in range(500):
            await limiter.hit(f"10.0.{i // 256}.{i % 256}")
        assert len(store) == 500
        clock.now += 3600
        await limiter.hit("192.168.0.1")
        assert len(store) == 1
