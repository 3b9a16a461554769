"""
Shared fixtures for Learning Service tests.
"""

import fakeredis
import fakeredis.aioredis
import pytest

from service_learning.app.cache.service import CacheService
from service_learning.app.cache.store import RedisCacheStore
from service_learning.app.tasks.scheduler import TaskScheduler
from service_learning.app.tasks.tracker import TaskTracker


@pytest.fixture
def redis_server():
    """Isolated in-memory Redis server."""
    return fakeredis.FakeServer()


@pytest.fixture
def redis_client(redis_server):
    """asyncio Redis client bound to the fake server."""
    return fakeredis.aioredis.FakeRedis(server=redis_server, decode_responses=True)


@pytest.fixture
def store(redis_client):
    """Cache store wired to the fake Redis client."""
    return RedisCacheStore("redis://localhost:6379/0", client=redis_client)


@pytest.fixture
def cache_service(store):
    """CacheService over the fake store."""
    return CacheService(store)


@pytest.fixture
def tracker():
    """Task tracker with the default history capacity."""
    return TaskTracker()


@pytest.fixture
def scheduler(tracker):
    """Scheduler without a per-task timeout."""
    return TaskScheduler(tracker)
