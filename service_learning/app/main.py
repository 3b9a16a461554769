"""
Learning service: deferred post-response tasks and registry-aware caching.
"""

from typing import Any, Dict, Optional

from fastapi import Depends, Query

from shared.base_service import BaseService
from .cache.service import CacheService
from .cache.store import RedisCacheStore
from .dependencies import get_task_tracker
from .tasks.models import TaskStatusResponse
from .tasks.scheduler import TaskScheduler
from .tasks.tracker import TaskTracker


class LearningService(BaseService):
    """Learning service implementation.

    Builds the cache store, cache service, task tracker and task scheduler
    once and shares them through ``app.state``. The store connects on
    startup; on shutdown in-flight deferred tasks get a grace period
    before the store is closed.
    """

    health_path = "/api/health"

    def __init__(self, *, store: Optional[RedisCacheStore] = None, **config_overrides: Any):
        super().__init__("learning", 8020, **config_overrides)

        self.store = store or RedisCacheStore(
            self.config.redis_url,
            cluster=self.config.redis_cluster,
            socket_timeout=self.config.redis_socket_timeout,
        )
        self.cache = CacheService(
            self.store,
            registry_prefix=self.config.registry_prefix,
            metrics=self.metrics,
        )
        self.tracker = TaskTracker(
            history_capacity=self.config.task_history_capacity,
            metrics=self.metrics,
        )
        self.scheduler = TaskScheduler(
            self.tracker,
            timeout_seconds=self.config.deferred_task_timeout_seconds,
        )

        self.app.state.cache_service = self.cache
        self.app.state.task_tracker = self.tracker
        self.app.state.task_scheduler = self.scheduler

        self._setup_learning_routes()

    async def on_startup(self) -> None:
        self.scheduler.start()
        await self.store.start()

    async def on_shutdown(self) -> None:
        await self.scheduler.shutdown(self.config.deferred_shutdown_grace_seconds)
        await self.store.stop()

    async def _check_dependencies(self) -> Dict[str, str]:
        # A down cache store degrades the service, it does not take it down.
        return {"cache_store": "ok" if await self.cache.ping() else "degraded"}

    def _setup_learning_routes(self):
        """Set up learning-specific routes."""

        @self.app.get("/api/background/tasks", response_model=TaskStatusResponse)
        async def get_background_tasks(
            context: Optional[str] = Query(None, description="Only tasks scheduled under this context label"),
            tracker: TaskTracker = Depends(get_task_tracker),
        ):
            """Running deferred tasks and the recent completion history."""
            return tracker.snapshot(context)


def create_app():
    """Create FastAPI application."""
    service = LearningService()
    return service.app


if __name__ == "__main__":
    service = LearningService()
    service.run()
