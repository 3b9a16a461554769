"""
Unit tests for the Redis cache store.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from service_learning.app.cache.models import CacheStoreError
from service_learning.app.cache.store import CacheStore, RedisCacheStore


class TestRedisCacheStore:
    """Test cases for RedisCacheStore."""

    def test_satisfies_protocol(self, store):
        assert isinstance(store, CacheStore)

    @pytest.mark.asyncio
    async def test_set_get_with_expiry(self, store, redis_client):
        await store.set("k", '{"a": 1}', 30)

        assert await store.get("k") == '{"a": 1}'
        assert 0 < await redis_client.ttl("k") <= 30

    @pytest.mark.asyncio
    async def test_delete_returns_removed_count(self, store):
        await store.set("k", "v", 30)

        assert await store.delete("k") == 1
        assert await store.delete("k") == 0

    @pytest.mark.asyncio
    async def test_exists_ttl_expire(self, store):
        assert await store.exists("k") is False
        assert await store.ttl("k") == -2

        await store.set("k", "v", 30)
        assert await store.exists("k") is True
        assert await store.expire("k", 120) is True
        assert 30 < await store.ttl("k") <= 120

    @pytest.mark.asyncio
    async def test_set_members_are_unique_and_sorted(self, store):
        assert await store.set_add("registry:r", "b") == 1
        assert await store.set_add("registry:r", "a") == 1
        assert await store.set_add("registry:r", "b") == 0

        assert await store.set_members("registry:r") == ["a", "b"]
        assert await store.set_members("registry:empty") == []

    @pytest.mark.asyncio
    async def test_connection_errors_are_wrapped(self, store, redis_server):
        redis_server.connected = False

        with pytest.raises(CacheStoreError) as exc_info:
            await store.get("k")

        assert exc_info.value.operation == "get"
        assert exc_info.value.code == "EXTERNAL_SERVICE_ERROR"

    @pytest.mark.asyncio
    async def test_not_connected_raises(self):
        store = RedisCacheStore("redis://localhost:6379/0")

        with pytest.raises(CacheStoreError):
            await store.exists("k")

    @pytest.mark.asyncio
    async def test_start_tolerates_unreachable_redis(self, store, redis_server):
        redis_server.connected = False

        await store.start()

        assert store.redis is not None

    @pytest.mark.asyncio
    async def test_stop_closes_client(self, store):
        await store.start()
        await store.stop()

        assert store.redis is None

    @pytest.mark.asyncio
    async def test_cluster_mode_uses_cluster_client(self):
        client = MagicMock()
        client.ping = AsyncMock(return_value=True)

        with patch("service_learning.app.cache.store.RedisCluster") as cluster_cls:
            cluster_cls.from_url.return_value = client
            store = RedisCacheStore("redis://cache-0:6379", cluster=True, socket_timeout=2.0)
            await store.start()

        cluster_cls.from_url.assert_called_once_with(
            "redis://cache-0:6379",
            decode_responses=True,
            socket_connect_timeout=2.0,
            socket_timeout=2.0,
        )
        assert store.redis is client
