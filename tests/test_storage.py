"""Tests for remainder persistence."""

import os
import sys
from unittest.mock import patch

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from cloudprobe.config import StorageConfig
from cloudprobe.modules.storage import (
    MemoryRemainderStore,
    RedisRemainderStore,
    StorageModule,
    open_remainder_store,
)


class TestRedisRemainderStore:
    """Test the Redis backed store."""

    @pytest.mark.asyncio
    async def test_save_uses_sets_with_ttl(self, mock_redis):
        store = RedisRemainderStore(mock_redis, ttl=3600)

        await store.save("APIMon", {"volumes": ["v1", "v2"], "ports": []})

        mock_redis.sadd.assert_awaited_once_with("remainder:APIMon:volumes", "v1", "v2")
        mock_redis.expire.assert_awaited_once_with("remainder:APIMon:volumes", 3600)

    @pytest.mark.asyncio
    async def test_round_trip(self, mock_redis_with_data):
        store = RedisRemainderStore(mock_redis_with_data)

        await store.save("APIMon", {"volumes": ["v2", "v1"], "servers": ["s1"]})
        await store.save("Other", {"volumes": ["x"]})

        assert await store.load("APIMon") == {"servers": ["s1"], "volumes": ["v1", "v2"]}

        await store.discard("APIMon", "volumes", ["v1"])
        await store.discard("APIMon", "servers", ["s1"])

        assert await store.load("APIMon") == {"volumes": ["v2"]}
        assert await store.load("Other") == {"volumes": ["x"]}

    @pytest.mark.asyncio
    async def test_discard_nothing_skips_redis(self, mock_redis):
        store = RedisRemainderStore(mock_redis)

        await store.discard("APIMon", "volumes", [])

        mock_redis.srem.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_redis_errors_are_logged(self, mock_redis, caplog):
        mock_redis.sadd.side_effect = ConnectionError("redis down")
        mock_redis.keys.side_effect = ConnectionError("redis down")
        store = RedisRemainderStore(mock_redis)

        await store.save("APIMon", {"volumes": ["v1"]})
        loaded = await store.load("APIMon")

        assert loaded == {}
        assert "Failed to store remainders" in caplog.text
        assert "Failed to load remainders" in caplog.text


class TestMemoryRemainderStore:
    """Test the process local store."""

    @pytest.mark.asyncio
    async def test_round_trip(self):
        store = MemoryRemainderStore()

        await store.save("APIMon", {"routers": ["r1"]})
        await store.save("APIMon", {"routers": ["r1", "r2"]})

        assert await store.load("APIMon") == {"routers": ["r1", "r2"]}

        await store.discard("APIMon", "routers", ["r1", "r2"])

        assert await store.load("APIMon") == {}
        assert await store.load("Unknown") == {}


class TestOpenRemainderStore:
    """Test store selection."""

    @pytest.mark.asyncio
    async def test_memory_without_url(self):
        store = await open_remainder_store(StorageConfig())

        assert isinstance(store, MemoryRemainderStore)

    @pytest.mark.asyncio
    async def test_redis_with_url(self, mock_redis):
        storage = StorageModule("redis://cache:6379/0")
        with patch("cloudprobe.modules.storage.remainders.redis.from_url", return_value=mock_redis) as from_url:
            store = await open_remainder_store(StorageConfig(redis_url="redis://cache:6379/0", key_ttl=60), storage)

        assert isinstance(store, RedisRemainderStore)
        assert store.ttl == 60
        from_url.assert_called_once_with("redis://cache:6379/0", decode_responses=True)

        await storage.disconnect()

        mock_redis.aclose.assert_awaited_once()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
