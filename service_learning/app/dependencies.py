"""
FastAPI dependencies that hand the process-wide components to route handlers.

Host routers declare ``Depends(get_task_scheduler)`` / ``Depends(get_cache_service)``
instead of importing module-level instances; ``LearningService`` stores the
instances on ``app.state`` once at construction.
"""

from fastapi import Request

from .cache.service import CacheService
from .tasks.scheduler import TaskScheduler
from .tasks.tracker import TaskTracker


def get_cache_service(request: Request) -> CacheService:
    return request.app.state.cache_service


def get_task_scheduler(request: Request) -> TaskScheduler:
    return request.app.state.task_scheduler


def get_task_tracker(request: Request) -> TaskTracker:
    return request.app.state.task_tracker
