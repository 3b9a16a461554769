"""
Redis-backed key/value store used by the Learning Service cache.
"""

from typing import Any, Awaitable, List, Optional, Protocol, Union, runtime_checkable

import redis.asyncio as redis
from redis.asyncio.cluster import RedisCluster
from redis.exceptions import RedisError

from shared.logging import get_logger
from .models import CacheStoreError


@runtime_checkable
class CacheStore(Protocol):
    """Operations the cache service needs from a key/value store.

    Every method is a single-key command, so implementations may sit on a
    sharded deployment where multi-key commands only work inside one slot.
    Implementations raise ``CacheStoreError`` when the store cannot be
    reached.
    """

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def delete(self, key: str) -> int: ...

    async def exists(self, key: str) -> bool: ...

    async def ttl(self, key: str) -> int: ...

    async def expire(self, key: str, ttl_seconds: int) -> bool: ...

    async def set_add(self, set_key: str, member: str) -> int: ...

    async def set_members(self, set_key: str) -> List[str]: ...


class RedisCacheStore:
    """``CacheStore`` over redis-py's asyncio client, standalone or cluster."""

    def __init__(
        self,
        redis_url: str,
        *,
        cluster: bool = False,
        socket_timeout: float = 5.0,
        client: Optional[Union[redis.Redis, RedisCluster]] = None,
    ):
        self.redis_url = redis_url
        self.cluster = cluster
        self.socket_timeout = socket_timeout
        self.logger = get_logger("learning.cache.store")
        self.redis: Optional[Union[redis.Redis, RedisCluster]] = client

    async def start(self) -> None:
        """Connect to Redis and verify the connection."""
        if self.redis is None:
            if self.cluster:
                self.redis = RedisCluster.from_url(
                    self.redis_url,
                    decode_responses=True,
                    socket_connect_timeout=self.socket_timeout,
                    socket_timeout=self.socket_timeout,
                )
            else:
                self.redis = redis.from_url(
                    self.redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_connect_timeout=self.socket_timeout,
                    socket_timeout=self.socket_timeout,
                    retry_on_timeout=True,
                    health_check_interval=30,
                )

        try:
            await self.redis.ping()
        except (RedisError, OSError) as e:
            # The service still starts; every cache call degrades to a miss.
            self.logger.error("Redis cache store unreachable at startup", error=str(e), cluster=self.cluster)
            return

        self.logger.info("Redis cache store started", cluster=self.cluster)

    async def stop(self) -> None:
        """Close the Redis connection."""
        if self.redis is not None:
            await self.redis.aclose()
            self.redis = None
            self.logger.info("Redis cache store stopped")

    async def _call(self, operation: str, command: Awaitable[Any]) -> Any:
        try:
            return await command
        except (RedisError, OSError) as e:
            raise CacheStoreError(operation, str(e)) from e

    def _client(self, operation: str) -> Union[redis.Redis, RedisCluster]:
        if self.redis is None:
            raise CacheStoreError(operation, "store is not connected")
        return self.redis

    async def ping(self) -> bool:
        return bool(await self._call("ping", self._client("ping").ping()))

    async def get(self, key: str) -> Optional[str]:
        return await self._call("get", self._client("get").get(key))

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._call("set", self._client("set").setex(key, ttl_seconds, value))

    async def delete(self, key: str) -> int:
        return int(await self._call("delete", self._client("delete").delete(key)))

    async def exists(self, key: str) -> bool:
        return bool(await self._call("exists", self._client("exists").exists(key)))

    async def ttl(self, key: str) -> int:
        return int(await self._call("ttl", self._client("ttl").ttl(key)))

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        return bool(await self._call("expire", self._client("expire").expire(key, ttl_seconds)))

    async def set_add(self, set_key: str, member: str) -> int:
        return int(await self._call("set_add", self._client("set_add").sadd(set_key, member)))

    async def set_members(self, set_key: str) -> List[str]:
        members = await self._call("set_members", self._client("set_members").smembers(set_key))
        return sorted(members)
