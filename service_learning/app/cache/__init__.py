"""
Cache package for the Learning Service.

Wraps a Redis (standalone or cluster) store behind a small contract and
adds named registries: sets of cache keys that are invalidated together,
so families of entries can be dropped without scanning key patterns.
"""

from .models import CacheErrorKind, CacheResult, CacheStoreError
from .registry import RegistryIndex
from .service import CacheService
from .store import CacheStore, RedisCacheStore

__all__ = [
    "CacheErrorKind",
    "CacheResult",
    "CacheService",
    "CacheStore",
    "CacheStoreError",
    "RedisCacheStore",
    "RegistryIndex",
]
