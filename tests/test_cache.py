"""Tests for the TTL cache."""
from __future__ import annotations

import asyncio

import pytest

from swarm_vault.cache import TTLCache


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


class TestTTLCache:

    def test_expiry(self):
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=2, clock=clock)
        cache.set("k", 1)
        assert cache.get("k") == 1
        clock.now += 2
        assert cache.get("k") is None

    def test_per_entry_ttl_and_delete(self):
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=2, clock=clock)
        cache.set("long", "x", ttl=10)
        clock.now += 5
        assert cache.get("long") == "x"
        assert cache.delete("long")
        assert not cache.delete("long")

    @pytest.mark.asyncio
    async def test_concurrent_loads_share_one_call(self):
        calls = 0

        async def loader():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return 42

        cache = TTLCache(ttl_seconds=5)
        results = await asyncio.gather(*(cache.get_or_load("block", loader) for _ in range(5)))
        assert results == [42] * 5
        assert calls == 1

    @pytest.mark.asyncio
    async def test_zero_ttl_disables_caching(self):
        calls = 0

        async def loader():
            nonlocal calls
            calls += 1
            return calls

        cache = TTLCache(ttl_seconds=0)
        assert await cache.get_or_load("k", loader) == 1
        assert await cache.get_or_load("k", loader) == 2
