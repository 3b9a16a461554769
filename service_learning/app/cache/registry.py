"""
Named registries of cache keys that share an invalidation lifecycle.
"""

from typing import List

from .store import CacheStore


class RegistryIndex:
    """Secondary index from a registry name to the cache keys filed under it.

    Membership is a hint: a member key may already have expired at the
    store. A registry set exists only while it has members; it is dropped
    as a whole on invalidation and recreated by the next registration.
    Store failures propagate as ``CacheStoreError``.
    """

    def __init__(self, store: CacheStore, prefix: str = "registry:"):
        self.store = store
        self.prefix = prefix

    def registry_key(self, registry_name: str) -> str:
        return f"{self.prefix}{registry_name}"

    async def register(self, key: str, registry_name: str) -> None:
        """Add ``key`` to the registry; adding an existing member is a no-op."""
        await self.store.set_add(self.registry_key(registry_name), key)

    async def members(self, registry_name: str) -> List[str]:
        return await self.store.set_members(self.registry_key(registry_name))

    async def drop(self, registry_name: str) -> None:
        await self.store.delete(self.registry_key(registry_name))
