"""
Deferred task records exposed by the tracker.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List

from pydantic import BaseModel, Field


class TaskOutcome(str, Enum):
    """How a deferred task settled."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class TaskHandle:
    """Returned by ``TaskTracker.begin`` and passed back to ``TaskTracker.end``."""

    id: str
    context: str
    start_time: float  # epoch milliseconds
    started_at: float  # perf_counter seconds


class ActiveTask(BaseModel):
    """A deferred task that has started and not yet settled."""

    id: str = Field(..., description="Tracker-assigned id, task_<n>")
    context: str = Field(..., description="Label of the operation that scheduled the task")
    start_time: float = Field(..., description="Start time, epoch milliseconds")
    elapsed_ms: float = Field(..., description="Milliseconds since start at snapshot time")


class CompletedTask(BaseModel):
    """A settled deferred task kept in the bounded history."""

    id: str
    context: str
    start_time: float = Field(..., description="Start time, epoch milliseconds")
    end_time: float = Field(..., description="End time, epoch milliseconds")
    duration_ms: float
    outcome: TaskOutcome


class TaskStatusResponse(BaseModel):
    """Body of the background task status endpoint."""

    message: str = "Active tasks retrieved successfully"
    count: int
    active_tasks: List[ActiveTask]
    completed_tasks: List[CompletedTask]
