"""
Fire-and-forget execution of post-response side effects.
"""

import asyncio
import contextvars
import inspect
from typing import Any, Awaitable, Callable, Optional, Sequence, Set, Union

from shared.logging import get_logger, task_log_context
from shared.tracing import trace_operation
from .models import TaskOutcome
from .tracker import DEFAULT_CONTEXT, TaskTracker


DeferredOperation = Callable[[], Union[Awaitable[Any], Any]]


class TaskScheduler:
    """Runs batches of deferred operations on the event loop.

    ``schedule`` returns immediately. Each operation becomes its own
    asyncio task, so operations in a batch run concurrently with no
    ordering between them. Every task is recorded in the tracker when it
    starts and moved to the history when it settles, whatever the outcome.
    A failing operation is logged with its context label and never
    affects its siblings or the caller.

    ``schedule`` may be called from the loop or from another thread (sync
    route handlers run in the threadpool); off-loop calls are handed to the
    loop captured by ``start`` or by the first on-loop call.

    Spawned tasks are held until they finish; ``shutdown`` waits for them
    and cancels whatever outlives the grace period.
    """

    def __init__(self, tracker: TaskTracker, *, timeout_seconds: Optional[float] = None):
        self.tracker = tracker
        self.timeout_seconds = timeout_seconds
        self.logger = get_logger("learning.tasks.scheduler")
        self._tasks: Set[asyncio.Task] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._closed = False

    @property
    def pending_count(self) -> int:
        return len(self._tasks)

    def start(self) -> None:
        """Bind the scheduler to the running event loop."""
        self._loop = asyncio.get_running_loop()

    def schedule(self, operations: Sequence[DeferredOperation], context: str = DEFAULT_CONTEXT) -> None:
        """Start every operation in the background."""
        operations = list(operations)
        if self._closed:
            self._drop(operations, context, "Scheduler closed, dropping deferred operations")
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is not None:
            if self._loop is None:
                self._loop = loop
            self._spawn(operations, context)
            return

        if self._loop is None or self._loop.is_closed():
            self._drop(operations, context, "No event loop available, dropping deferred operations")
            return

        try:
            self._loop.call_soon_threadsafe(
                self._spawn, operations, context, context=contextvars.copy_context()
            )
        except RuntimeError:
            # Loop closed between the check and the hand-off.
            self._drop(operations, context, "No event loop available, dropping deferred operations")

    def _spawn(self, operations: Sequence[DeferredOperation], context: str) -> None:
        if self._closed:
            self._drop(operations, context, "Scheduler closed, dropping deferred operations")
            return

        loop = asyncio.get_running_loop()
        for operation in operations:
            task = loop.create_task(self._run(operation, context), name=f"deferred:{context}")
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    def _drop(self, operations: Sequence[DeferredOperation], context: str, message: str) -> None:
        self.logger.warning(message, context=context, operations=len(operations))

    async def _run(self, operation: DeferredOperation, context: str) -> None:
        handle = self.tracker.begin(context)
        outcome = TaskOutcome.FAILED
        with task_log_context(handle.id, handle.context):
            try:
                with trace_operation("deferred_task", **{"task.id": handle.id, "task.context": handle.context}) as span:
                    if self.timeout_seconds is None:
                        await self._invoke(operation)
                        outcome = TaskOutcome.SUCCEEDED
                    elif await self._invoke_within(operation, self.timeout_seconds):
                        outcome = TaskOutcome.SUCCEEDED
                    else:
                        outcome = TaskOutcome.TIMED_OUT
                        span.set_attribute("task.timed_out", True)
                        self.logger.error("Deferred task timed out", timeout_seconds=self.timeout_seconds)
            except asyncio.CancelledError:
                outcome = TaskOutcome.CANCELLED
                self.logger.warning("Deferred task cancelled")
                raise
            except Exception as e:
                self.logger.error(
                    "Deferred task failed",
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
            finally:
                self.tracker.end(handle, outcome)

    @staticmethod
    async def _invoke(operation: DeferredOperation) -> None:
        result = operation()
        if inspect.isawaitable(result):
            await result

    async def _invoke_within(self, operation: DeferredOperation, timeout: float) -> bool:
        """Run ``operation`` with a deadline.

        Returns ``False`` if the deadline passed; the operation is cancelled.
        Errors raised by the operation itself, ``TimeoutError`` included,
        propagate unchanged.
        """
        inner = asyncio.ensure_future(self._invoke(operation))
        try:
            done, _ = await asyncio.wait({inner}, timeout=timeout)
        except asyncio.CancelledError:
            inner.cancel()
            raise

        if not done:
            inner.cancel()
            await asyncio.gather(inner, return_exceptions=True)
            return False

        inner.result()
        return True

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for scheduled tasks, including ones scheduled meanwhile.

        Returns ``False`` if tasks were still running when ``timeout`` expired.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while self._tasks:
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                return False
            await asyncio.wait(set(self._tasks), timeout=remaining)
        return True

    async def shutdown(self, grace_seconds: float = 10.0) -> None:
        """Stop accepting work, let running tasks finish, then cancel the rest."""
        self._closed = True
        if await self.drain(timeout=grace_seconds):
            return

        stragglers = list(self._tasks)
        self.logger.warning("Cancelling deferred tasks at shutdown", pending=len(stragglers))
        for task in stragglers:
            task.cancel()
        await asyncio.gather(*stragglers, return_exceptions=True)
