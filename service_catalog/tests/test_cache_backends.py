"""
Tests for cache backends.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from shared.config import get_config
from shared.errors import CacheUnavailableError
from service_catalog.app.cache.backends import MemoryCache, RedisCache, create_cache_backend


class TestMemoryCache:
    """Test cases for MemoryCache."""

    @pytest.mark.asyncio
    async def test_set_and_get(self, cache):
        """Test basic storage."""
        await cache.set("catalog:product:1", "payload", 300)

        assert await cache.get("catalog:product:1") == "payload"
        assert await cache.get("catalog:product:2") is None

    @pytest.mark.asyncio
    async def test_entries_expire(self, cache, clock):
        """Test entries disappear once their TTL elapses."""
        await cache.set("key", "value", 300)

        clock.advance(299)
        assert await cache.get("key") == "value"

        clock.advance(1)
        assert await cache.get("key") is None
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_overwrite_resets_ttl(self, cache, clock):
        """Test re-setting a key extends its lifetime."""
        await cache.set("key", "old", 300)
        clock.advance(200)
        await cache.set("key", "new", 300)
        clock.advance(200)

        assert await cache.get("key") == "new"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ttl", [0, -5])
    async def test_non_positive_ttl_rejected(self, cache, ttl):
        """Test TTL must be positive."""
        with pytest.raises(ValueError):
            await cache.set("key", "value", ttl)

    @pytest.mark.asyncio
    async def test_full_cache_purges_expired_first(self, clock):
        """Test expired entries make room before live ones are evicted."""
        cache = MemoryCache(max_entries=2, clock=clock)
        await cache.set("short", "a", 10)
        await cache.set("long", "b", 300)
        clock.advance(20)

        await cache.set("new", "c", 300)

        assert await cache.get("long") == "b"
        assert await cache.get("new") == "c"
        assert (await cache.stats())["evictions"] == 0

    @pytest.mark.asyncio
    async def test_full_cache_evicts_soonest_expiry(self, clock):
        """Test eviction picks the entry closest to expiry."""
        cache = MemoryCache(max_entries=2, clock=clock)
        await cache.set("soon", "a", 60)
        await cache.set("later", "b", 300)

        await cache.set("new", "c", 300)

        assert await cache.get("soon") is None
        assert await cache.get("later") == "b"
        assert len(cache) == 2
        assert (await cache.stats())["evictions"] == 1

    @pytest.mark.asyncio
    async def test_delete(self, cache):
        """Test delete reports how many keys existed."""
        await cache.set("a", "1", 300)
        await cache.set("b", "2", 300)

        assert await cache.delete("a", "b", "missing") == 2
        assert await cache.delete() == 0
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_clear_prefix(self, cache):
        """Test prefix removal leaves other namespaces alone."""
        await cache.set("catalog:product:1", "1", 300)
        await cache.set("catalog:products:all:images=False", "2", 300)
        await cache.set("other:product:1", "3", 300)

        assert await cache.clear_prefix("catalog:") == 2
        assert await cache.get("other:product:1") == "3"

    @pytest.mark.asyncio
    async def test_clear(self, cache):
        """Test clear empties the cache."""
        await cache.set("a", "1", 300)
        await cache.set("b", "2", 300)

        await cache.clear()

        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_purge_expired(self, cache, clock):
        """Test explicit purge of expired entries."""
        await cache.set("short", "a", 10)
        await cache.set("long", "b", 300)
        clock.advance(60)

        assert await cache.purge_expired() == 1
        assert len(cache) == 1

    @pytest.mark.asyncio
    async def test_stats(self, cache):
        """Test hit and miss accounting."""
        await cache.set("key", "value", 300)
        await cache.get("key")
        await cache.get("key")
        await cache.get("missing")

        stats = await cache.stats()

        assert stats["backend"] == "memory"
        assert stats["entries"] == 1
        assert stats["max_entries"] == 100
        assert stats["hits"] == 2
        assert stats["misses"] == 1
        assert stats["hit_rate"] == pytest.approx(2 / 3)


class TestRedisCache:
    """Test cases for RedisCache."""

    @pytest.fixture
    def client(self):
        """Mocked redis.asyncio client."""
        redis_client = MagicMock()
        redis_client.ping = AsyncMock(return_value=True)
        redis_client.get = AsyncMock(return_value=None)
        redis_client.setex = AsyncMock(return_value=True)
        redis_client.delete = AsyncMock(return_value=0)
        redis_client.info = AsyncMock(return_value={})
        redis_client.aclose = AsyncMock()
        return redis_client

    @pytest.fixture
    def redis_cache(self, client):
        """Redis cache over the mocked client."""
        return RedisCache("redis://localhost:6379", namespace="catalog:", client=client)

    @pytest.mark.asyncio
    async def test_get_and_set(self, redis_cache, client):
        """Test get and setex pass through."""
        client.get.return_value = "payload"

        await redis_cache.set("catalog:product:1", "payload", 300)
        value = await redis_cache.get("catalog:product:1")

        client.setex.assert_awaited_once_with("catalog:product:1", 300, "payload")
        assert value == "payload"

    @pytest.mark.asyncio
    async def test_errors_become_cache_unavailable(self, redis_cache, client):
        """Test Redis failures are raised as CacheUnavailableError."""
        client.get.side_effect = RedisConnectionError("connection refused")
        client.setex.side_effect = RedisConnectionError("connection refused")

        with pytest.raises(CacheUnavailableError) as exc_info:
            await redis_cache.get("catalog:product:1")
        assert exc_info.value.details["key"] == "catalog:product:1"

        with pytest.raises(CacheUnavailableError):
            await redis_cache.set("catalog:product:1", "payload", 300)

    @pytest.mark.asyncio
    async def test_delete_without_keys_skips_round_trip(self, redis_cache, client):
        """Test delete() with no keys does nothing."""
        assert await redis_cache.delete() == 0
        client.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_clear_prefix_scans_and_deletes(self, redis_cache, client):
        """Test prefix clear uses SCAN and deletes what it finds."""
        async def scan_iter(match, count):
            for key in ["catalog:product:1", "catalog:products:all:images=False"]:
                yield key

        client.scan_iter = MagicMock(side_effect=scan_iter)
        client.delete.return_value = 2

        removed = await redis_cache.clear_prefix("catalog:")

        assert removed == 2
        client.scan_iter.assert_called_once_with(match="catalog:*", count=500)
        client.delete.assert_awaited_once_with("catalog:product:1", "catalog:products:all:images=False")

    @pytest.mark.asyncio
    async def test_clear_prefix_escapes_glob_characters(self, redis_cache, client):
        """Test glob metacharacters in the prefix are matched literally."""
        async def scan_iter(match, count):
            return
            yield

        client.scan_iter = MagicMock(side_effect=scan_iter)

        assert await redis_cache.clear_prefix("shop[1]*:") == 0
        assert client.scan_iter.call_args.kwargs["match"] == "shop\\[1\\]\\*:*"
        client.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_clear_prefix_failure(self, redis_cache, client):
        """Test scan failures are translated."""
        client.scan_iter = MagicMock(side_effect=RedisConnectionError("gone"))

        with pytest.raises(CacheUnavailableError) as exc_info:
            await redis_cache.clear_prefix("catalog:")

        assert exc_info.value.details["prefix"] == "catalog:"

    @pytest.mark.asyncio
    async def test_start_failure(self, redis_cache, client):
        """Test start reports an unreachable server."""
        client.ping.side_effect = RedisConnectionError("connection refused")

        with pytest.raises(CacheUnavailableError):
            await redis_cache.start()

    @pytest.mark.asyncio
    async def test_health_check(self, redis_cache, client):
        """Test health reflects ping."""
        assert await redis_cache.health_check() is True

        client.ping.side_effect = RedisConnectionError("down")
        assert await redis_cache.health_check() is False

    @pytest.mark.asyncio
    async def test_stop_closes_client(self, redis_cache, client):
        """Test stop closes the connection."""
        await redis_cache.stop()

        client.aclose.assert_awaited_once()
        assert redis_cache.redis is None

    @pytest.mark.asyncio
    async def test_stats(self, redis_cache, client):
        """Test stats derived from INFO."""
        client.info.return_value = {
            "redis_version": "7.2.4",
            "used_memory_human": "1.2M",
            "keyspace_hits": 3,
            "keyspace_misses": 1,
        }

        stats = await redis_cache.stats()

        assert stats["backend"] == "redis"
        assert stats["redis_version"] == "7.2.4"
        assert stats["hit_rate"] == 0.75

    def test_client_created_lazily(self):
        """Test the client is built from the URL on first use."""
        cache = RedisCache("redis://cache:6379/1")

        with patch("service_catalog.app.cache.backends.redis.from_url") as from_url:
            client = cache._get_redis()
            cache._get_redis()

        from_url.assert_called_once()
        assert from_url.call_args.args[0] == "redis://cache:6379/1"
        assert from_url.call_args.kwargs["decode_responses"] is True
        assert client is from_url.return_value


def test_create_cache_backend():
    """Test backend selection from configuration."""
    memory = create_cache_backend(get_config(cache_backend="memory", cache_max_entries=50))
    assert isinstance(memory, MemoryCache)
    assert memory.max_entries == 50

    redis_backend = create_cache_backend(get_config(cache_backend="redis", redis_url="redis://cache:6379/2"))
    assert isinstance(redis_backend, RedisCache)
    assert redis_backend.redis_url == "redis://cache:6379/2"
    assert redis_backend.namespace == "catalog:"
