"""
Response cache with registry-based bulk invalidation.
"""

import json
from typing import Any, Awaitable, Callable, List, Optional, TYPE_CHECKING

from shared.logging import get_logger
from .models import CacheErrorKind, CacheResult, CacheStoreError
from .registry import RegistryIndex
from .store import CacheStore

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


# Redis TTL reply for a key that does not exist.
TTL_KEY_MISSING = -2


class CacheService:
    """Public caching API used by request handlers and deferred tasks.

    No method raises. Every store or serialization failure is logged,
    counted, and turned into the operation's zero value (``False``,
    ``None``, ``0``, ``[]``, or ``TTL_KEY_MISSING``), so a degraded cache
    reads exactly like a cold one.

    Keys are deleted one command at a time: on a Redis Cluster, keys of the
    same registry hash to different slots and a multi-key DEL would fail.
    """

    def __init__(
        self,
        store: CacheStore,
        *,
        registry_prefix: str = "registry:",
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.store = store
        self.registry = RegistryIndex(store, prefix=registry_prefix)
        self.metrics = metrics
        self.logger = get_logger("learning.cache")

    async def _guard(
        self,
        operation: str,
        action: Callable[[], Awaitable[Any]],
        fallback: Any,
        **log_fields: Any,
    ) -> CacheResult:
        try:
            result = CacheResult.success(await action())
        except CacheStoreError as e:
            self.logger.error("Cache store unavailable", operation=operation, error=str(e), **log_fields)
            result = CacheResult.failure(CacheErrorKind.STORE_UNAVAILABLE, fallback)
        except (TypeError, ValueError) as e:
            self.logger.error("Cache serialization failed", operation=operation, error=str(e), **log_fields)
            result = CacheResult.failure(CacheErrorKind.SERIALIZATION, fallback)
        except Exception as e:
            self.logger.error("Cache operation failed", operation=operation, error=str(e), exc_info=True, **log_fields)
            result = CacheResult.failure(CacheErrorKind.STORE_UNAVAILABLE, fallback)

        self._record(operation, "ok" if result.ok else result.error.value)
        return result

    def _record(self, operation: str, result: str) -> None:
        if self.metrics is not None:
            self.metrics.increment_counter("cache_operations_total", operation=operation, result=result)

    async def cache_response(self, key: str, data: Any, ttl: int) -> bool:
        """Serialize ``data`` as JSON and store it under ``key`` for ``ttl`` seconds."""

        async def write() -> bool:
            payload = json.dumps(data)
            await self.store.set(key, payload, ttl)
            return True

        result = await self._guard("cache_response", write, False, key=key, ttl=ttl)
        if result.ok:
            self.logger.debug("Cached response", key=key, ttl=ttl)
        return result.value

    async def get_cached_response(self, key: str) -> Optional[Any]:
        """Return the cached value, or ``None`` on a miss or a degraded store."""

        async def read() -> Optional[Any]:
            payload = await self.store.get(key)
            if payload is None:
                return None
            return json.loads(payload)

        result = await self._guard("get_cached_response", read, None, key=key)
        if result.ok and self.metrics is not None:
            self.metrics.increment_counter(
                "cache_operations_total",
                operation="lookup",
                result="hit" if result.value is not None else "miss",
            )
        return result.value

    async def is_cached(self, key: str) -> bool:
        result = await self._guard("is_cached", lambda: self.store.exists(key), False, key=key)
        return result.value

    async def delete_cached_response(self, key: str) -> bool:
        """Delete ``key``; ``True`` only if an entry was actually removed."""

        async def remove() -> bool:
            return await self.store.delete(key) > 0

        result = await self._guard("delete_cached_response", remove, False, key=key)
        return result.value

    async def get_remaining_ttl(self, key: str) -> int:
        """Seconds left on ``key``; -2 if absent, -1 if it never expires."""
        result = await self._guard("get_remaining_ttl", lambda: self.store.ttl(key), TTL_KEY_MISSING, key=key)
        return result.value

    async def update_ttl(self, key: str, ttl: int) -> bool:
        """Reset the expiry of an existing key. Absent keys are left absent."""

        async def refresh() -> bool:
            # Checked first: EXPIRE's own reply is not relied upon to detect absence.
            if not await self.store.exists(key):
                return False
            await self.store.expire(key, ttl)
            return True

        result = await self._guard("update_ttl", refresh, False, key=key, ttl=ttl)
        return result.value

    async def register_with_registry(self, key: str, registry_name: str) -> bool:
        """File ``key`` under ``registry_name`` for later bulk invalidation."""

        async def register() -> bool:
            await self.registry.register(key, registry_name)
            return True

        result = await self._guard(
            "register_with_registry", register, False, key=key, registry=registry_name
        )
        return result.value

    async def cache_with_registry(self, key: str, data: Any, ttl: int, registry_name: str) -> bool:
        """Cache ``data`` and, only if that worked, register ``key``.

        The two writes are independent. If registration fails the entry
        stays cached without registry membership and simply expires by TTL;
        the return value reflects the cache write alone.
        """
        cached = await self.cache_response(key, data, ttl)
        if cached:
            await self.register_with_registry(key, registry_name)
        return cached

    async def invalidate_registry(self, registry_name: str) -> int:
        """Delete every key filed under ``registry_name``, then the registry itself.

        Returns the number of entries actually removed; members that had
        already expired count as zero. Any failure returns 0.
        """

        async def invalidate() -> int:
            keys = await self.registry.members(registry_name)
            if not keys:
                self.logger.debug("No keys to invalidate", registry=registry_name)
                return 0

            deleted_count = 0
            for key in keys:
                deleted_count += await self.store.delete(key)

            await self.registry.drop(registry_name)
            return deleted_count

        result = await self._guard("invalidate_registry", invalidate, 0, registry=registry_name)
        if result.ok and result.value:
            self.logger.info("Registry invalidated", registry=registry_name, deleted=result.value)
            if self.metrics is not None:
                self.metrics.increment_counter("registry_invalidated_keys_total", amount=result.value)
        return result.value

    async def get_registry_keys(self, registry_name: str) -> List[str]:
        result = await self._guard(
            "get_registry_keys", lambda: self.registry.members(registry_name), [], registry=registry_name
        )
        return result.value

    async def invalidate_multiple_keys(self, keys: List[str]) -> int:
        """Delete each key individually; returns how many entries were removed."""
        if not keys:
            return 0

        async def invalidate() -> int:
            deleted_count = 0
            for key in keys:
                deleted_count += await self.store.delete(key)
            return deleted_count

        result = await self._guard("invalidate_multiple_keys", invalidate, 0, keys_count=len(keys))
        return result.value

    async def ping(self) -> bool:
        """Whether the backing store answers; used by the health check."""

        async def check() -> bool:
            ping = getattr(self.store, "ping", None)
            if ping is None:
                return True
            return await ping()

        result = await self._guard("ping", check, False)
        return bool(result.value)
