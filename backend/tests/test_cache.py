"""Tests for the TTL cache and its in-memory fallback."""
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from core.cache import CacheService


class BrokenRedis:
    """Every call fails as if the server were unreachable."""

    async def ping(self):
        raise RedisConnectionError("down")

    async def get(self, *args, **kwargs):
        raise RedisConnectionError("down")

    async def set(self, *args, **kwargs):
        raise RedisConnectionError("down")

    async def delete(self, *args, **kwargs):
        raise RedisConnectionError("down")

    def scan_iter(self, *args, **kwargs):
        raise RedisConnectionError("down")

    async def aclose(self):
        raise RedisConnectionError("down")


class DictRedis:
    """Minimal in-process stand-in for the redis.asyncio client."""

    def __init__(self):
        self.data = {}
        self.expiry = {}

    async def ping(self):
        return True

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.data[key] = value
        self.expiry[key] = ex

    async def delete(self, *keys):
        for key in keys:
            self.data.pop(key, None)

    async def scan_iter(self, match=None):
        prefix = (match or "*").rstrip("*")
        for key in list(self.data):
            if key.startswith(prefix):
                yield key

    async def aclose(self):
        pass


class TestMemoryCache:

    @pytest.mark.asyncio
    async def test_round_trip(self, cache):
        await cache.set("crypto:price:BTC", {"price": 100000.0}, 60)
        assert await cache.get("crypto:price:BTC") == {"price": 100000.0}
        assert cache.backend == "memory"

    @pytest.mark.asyncio
    async def test_miss_returns_none(self, cache):
        assert await cache.get("nothing") is None
        assert await cache.exists("nothing") is False

    @pytest.mark.asyncio
    async def test_expired_entry_is_a_miss_but_still_stale(self, cache, clock):
        await cache.set("k", "v", 60)
        clock.advance(61)
        assert await cache.get("k") is None
        assert await cache.get_stale("k") == "v"

    @pytest.mark.asyncio
    async def test_stale_entry_is_evicted_after_retention(self, cache, clock):
        await cache.set("k", "v", 60)
        clock.advance(60 + 3600 + 1)
        assert await cache.get_stale("k") is None

    @pytest.mark.asyncio
    async def test_set_is_idempotent(self, cache):
        await cache.set("k", [1, 2], 60)
        await cache.set("k", [1, 2], 60)
        assert await cache.get("k") == [1, 2]

    @pytest.mark.asyncio
    async def test_undecodable_entry_is_a_miss(self, cache, clock):
        cache._memory["k"] = ("not json", clock() + 100)
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_get_or_fetch_fetches_once(self, cache):
        calls = []

        async def fetch():
            calls.append(1)
            return {"n": len(calls)}

        first = await cache.get_or_fetch("k", fetch, 60)
        second = await cache.get_or_fetch("k", fetch, 60)

        assert first.cached is False
        assert second.cached is True
        assert second.data == {"n": 1}
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_get_or_fetch_propagates_errors_and_stores_nothing(self, cache):
        async def fetch():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await cache.get_or_fetch("k", fetch, 60)
        assert await cache.get_stale("k") is None

    @pytest.mark.asyncio
    async def test_invalidate(self, cache):
        await cache.set("k", 1, 60)
        await cache.invalidate("k")
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_invalidate_pattern(self, cache):
        await cache.set("crypto:price:BTC", 1, 60)
        await cache.set("crypto:price:ETH", 2, 60)
        await cache.set("weather:current:NYC", 3, 60)

        await cache.invalidate_pattern("crypto:*")

        assert await cache.get("crypto:price:BTC") is None
        assert await cache.get("crypto:price:ETH") is None
        assert await cache.get("weather:current:NYC") == 3


class TestPrimaryStore:

    @pytest.mark.asyncio
    async def test_uses_client_with_retention_expiry(self, clock):
        client = DictRedis()
        cache = CacheService(client=client, stale_retention_seconds=100, clock=clock)

        await cache.set("k", {"a": 1}, 60)

        assert cache.backend == "redis"
        assert client.expiry["k"] == 160
        assert await cache.get("k") == {"a": 1}
        assert cache._memory == {}

    @pytest.mark.asyncio
    async def test_pattern_delete_on_client(self, clock):
        client = DictRedis()
        cache = CacheService(client=client, clock=clock)
        await cache.set("stock:quote:AAPL", 1, 60)
        await cache.set("crypto:price:BTC", 2, 60)

        await cache.invalidate_pattern("stock:")

        assert "stock:quote:AAPL" not in client.data
        assert "crypto:price:BTC" in client.data

    @pytest.mark.asyncio
    async def test_falls_back_to_memory_when_unreachable(self, clock):
        cache = CacheService(client=BrokenRedis(), clock=clock)
        await cache.connect()
        assert cache.backend == "memory"
        assert cache.client is None

        await cache.set("k", "v", 60)
        assert await cache.get("k") == "v"

        await cache.invalidate_pattern("k")
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_disconnect_tolerates_errors(self, clock):
        cache = CacheService(client=BrokenRedis(), clock=clock)
        await cache.disconnect()
        assert cache.backend == "memory"
