"""
In-process ledger of running and recently settled deferred tasks.
"""

import itertools
import threading
import time
from collections import deque
from time import perf_counter
from typing import Deque, Dict, List, Optional, TYPE_CHECKING

from shared.logging import get_logger
from .models import ActiveTask, CompletedTask, TaskHandle, TaskOutcome, TaskStatusResponse

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


DEFAULT_CONTEXT = "Unknown"
DEFAULT_HISTORY_CAPACITY = 100


def _now_ms() -> float:
    return time.time() * 1000


class TaskTracker:
    """Tracks deferred tasks from ``begin`` to ``end``.

    A task is active from ``begin`` until ``end`` moves it, exactly once,
    to the front of a fixed-capacity history; the oldest record falls off
    when the history is full. All state sits behind one lock so the tracker
    is safe from the event loop and from worker threads alike. Nothing
    under the lock awaits.

    One tracker is created per process at service startup and shared by
    reference.
    """

    def __init__(self, history_capacity: int = DEFAULT_HISTORY_CAPACITY, metrics: Optional["MetricsCollector"] = None):
        if history_capacity < 1:
            raise ValueError("history_capacity must be at least 1")
        self.history_capacity = history_capacity
        self.metrics = metrics
        self.logger = get_logger("learning.tasks.tracker")

        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._active: Dict[str, TaskHandle] = {}
        self._completed: Deque[CompletedTask] = deque(maxlen=history_capacity)

    def begin(self, context: str) -> TaskHandle:
        """Register a task as started and return its handle."""
        with self._lock:
            handle = TaskHandle(
                id=f"task_{next(self._ids)}",
                context=context or DEFAULT_CONTEXT,
                start_time=_now_ms(),
                started_at=perf_counter(),
            )
            self._active[handle.id] = handle
            active_count = len(self._active)

        if self.metrics is not None:
            self.metrics.set_gauge("deferred_tasks_active", active_count)
        return handle

    def end(self, handle: TaskHandle, outcome: TaskOutcome = TaskOutcome.SUCCEEDED) -> Optional[CompletedTask]:
        """Move a task to the history. Unknown or already-ended handles are ignored."""
        duration_ms = (perf_counter() - handle.started_at) * 1000

        with self._lock:
            if self._active.pop(handle.id, None) is None:
                record = None
            else:
                record = CompletedTask(
                    id=handle.id,
                    context=handle.context,
                    start_time=handle.start_time,
                    end_time=handle.start_time + duration_ms,
                    duration_ms=duration_ms,
                    outcome=outcome,
                )
                # deque(maxlen) drops the oldest record from the right.
                self._completed.appendleft(record)
            active_count = len(self._active)

        if record is None:
            self.logger.warning("Task ended without an active record", task_id=handle.id, context=handle.context)
            return None

        if self.metrics is not None:
            self.metrics.set_gauge("deferred_tasks_active", active_count)
            self.metrics.increment_counter("deferred_tasks_total", context=record.context, outcome=outcome.value)
            self.metrics.observe_histogram("deferred_task_duration_seconds", duration_ms / 1000, context=record.context)
        return record

    def active_count(self) -> int:
        with self._lock:
            return len(self._active)

    def active_tasks(self) -> List[ActiveTask]:
        """Running tasks in start order, with elapsed time computed now."""
        with self._lock:
            handles = list(self._active.values())
        now = perf_counter()
        return [
            ActiveTask(
                id=handle.id,
                context=handle.context,
                start_time=handle.start_time,
                elapsed_ms=(now - handle.started_at) * 1000,
            )
            for handle in handles
        ]

    def completed_tasks(self) -> List[CompletedTask]:
        """Snapshot of the history, newest first."""
        with self._lock:
            return list(self._completed)

    def active_tasks_by_context(self, context: str) -> List[ActiveTask]:
        return [task for task in self.active_tasks() if task.context == context]

    def completed_tasks_by_context(self, context: str) -> List[CompletedTask]:
        return [task for task in self.completed_tasks() if task.context == context]

    def clear_history(self) -> None:
        with self._lock:
            self._completed.clear()

    def snapshot(self, context: Optional[str] = None) -> TaskStatusResponse:
        """Status view for the observability endpoint, optionally filtered by context."""
        if context is None:
            active = self.active_tasks()
            completed = self.completed_tasks()
        else:
            active = self.active_tasks_by_context(context)
            completed = self.completed_tasks_by_context(context)

        return TaskStatusResponse(
            count=len(active),
            active_tasks=active,
            completed_tasks=completed,
        )
