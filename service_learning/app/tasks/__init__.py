"""
Deferred task package for the Learning Service.

The scheduler runs batches of post-response side effects concurrently on
the event loop; the tracker keeps the ledger of running tasks and a
bounded history of settled ones for the status endpoint.
"""

from .models import ActiveTask, CompletedTask, TaskHandle, TaskOutcome
from .scheduler import TaskScheduler
from .tracker import TaskTracker

__all__ = [
    "ActiveTask",
    "CompletedTask",
    "TaskHandle",
    "TaskOutcome",
    "TaskScheduler",
    "TaskTracker",
]
