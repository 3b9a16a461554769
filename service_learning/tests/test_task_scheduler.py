"""
Unit tests for the deferred task scheduler.
"""

import asyncio

import pytest
import structlog

from service_learning.app.tasks.models import TaskOutcome
from service_learning.app.tasks.scheduler import TaskScheduler
from service_learning.app.tasks.tracker import TaskTracker
from shared.logging import request_id_var


class TestTaskScheduler:
    """Test cases for TaskScheduler."""

    @pytest.mark.asyncio
    async def test_schedule_returns_before_operations_run(self, scheduler, tracker):
        ran = []

        async def operation():
            ran.append(True)

        scheduler.schedule([operation], "createAssignment")

        assert ran == []
        assert scheduler.pending_count == 1

        await scheduler.drain()
        assert ran == [True]
        assert scheduler.pending_count == 0

    @pytest.mark.asyncio
    async def test_mixed_batch_is_fully_accounted(self, scheduler, tracker):
        """Two failures and three successes all reach the history."""
        finished = []

        async def succeed(n):
            await asyncio.sleep(0)
            finished.append(n)

        async def fail():
            await asyncio.sleep(0)
            raise RuntimeError("notification dispatch failed")

        scheduler.schedule(
            [lambda: succeed(1), fail, lambda: succeed(2), fail, lambda: succeed(3)],
            "submitAssignment",
        )
        await scheduler.drain()

        completed = tracker.completed_tasks()
        assert tracker.active_count() == 0
        assert len(completed) == 5
        assert {task.context for task in completed} == {"submitAssignment"}
        outcomes = sorted(task.outcome.value for task in completed)
        assert outcomes == ["failed", "failed", "succeeded", "succeeded", "succeeded"]
        assert sorted(finished) == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_operations_in_a_batch_run_concurrently(self, scheduler, tracker):
        release = asyncio.Event()
        started = []

        async def wait_for_release(n):
            started.append(n)
            await release.wait()

        scheduler.schedule([lambda: wait_for_release(1), lambda: wait_for_release(2)], "ctx")
        await asyncio.sleep(0)

        assert sorted(started) == [1, 2]
        assert tracker.active_count() == 2
        assert len(tracker.active_tasks_by_context("ctx")) == 2

        release.set()
        await scheduler.drain()
        assert tracker.active_count() == 0

    @pytest.mark.asyncio
    async def test_failure_does_not_affect_other_batches(self, scheduler, tracker):
        async def fail():
            raise ValueError("bad payload")

        async def succeed():
            await asyncio.sleep(0.01)

        scheduler.schedule([fail], "deleteCourse")
        scheduler.schedule([succeed], "getCourse")
        await scheduler.drain()

        assert tracker.completed_tasks_by_context("deleteCourse")[0].outcome == TaskOutcome.FAILED
        assert tracker.completed_tasks_by_context("getCourse")[0].outcome == TaskOutcome.SUCCEEDED

    @pytest.mark.asyncio
    async def test_empty_batch(self, scheduler, tracker):
        scheduler.schedule([], "noop")
        await scheduler.drain()

        assert tracker.completed_tasks() == []

    @pytest.mark.asyncio
    async def test_sync_callables_are_accepted(self, scheduler, tracker):
        calls = []

        scheduler.schedule([lambda: calls.append("sent")], "ctx")
        await scheduler.drain()

        assert calls == ["sent"]
        assert tracker.completed_tasks()[0].outcome == TaskOutcome.SUCCEEDED

    @pytest.mark.asyncio
    async def test_history_keeps_latest_hundred(self, scheduler, tracker):
        async def noop():
            return None

        for i in range(150):
            scheduler.schedule([noop], f"batch-{i}")
            await scheduler.drain()

        completed = tracker.completed_tasks()
        assert len(completed) == 100
        assert [task.context for task in completed] == [f"batch-{i}" for i in range(149, 49, -1)]

    @pytest.mark.asyncio
    async def test_timeout_moves_task_to_history(self, tracker):
        scheduler = TaskScheduler(tracker, timeout_seconds=0.01)

        async def hang():
            await asyncio.Event().wait()

        scheduler.schedule([hang], "generateCertificate")
        await scheduler.drain(timeout=1)

        assert tracker.active_count() == 0
        assert tracker.completed_tasks()[0].outcome == TaskOutcome.TIMED_OUT

    @pytest.mark.asyncio
    async def test_drain_times_out(self, scheduler):
        release = asyncio.Event()
        scheduler.schedule([release.wait], "ctx")

        assert await scheduler.drain(timeout=0.01) is False

        release.set()
        assert await scheduler.drain() is True

    @pytest.mark.asyncio
    async def test_drain_waits_for_tasks_scheduled_meanwhile(self, scheduler, tracker):
        async def follow_up():
            await asyncio.sleep(0)

        async def first():
            await asyncio.sleep(0)
            scheduler.schedule([follow_up], "second")

        scheduler.schedule([first], "first")
        await scheduler.drain()

        assert [task.context for task in tracker.completed_tasks()] == ["second", "first"]

    @pytest.mark.asyncio
    async def test_shutdown_cancels_stragglers(self, scheduler, tracker):
        async def hang():
            await asyncio.Event().wait()

        async def quick():
            return None

        scheduler.schedule([hang, quick], "ctx")
        await asyncio.sleep(0)
        await scheduler.shutdown(grace_seconds=0.01)

        assert tracker.active_count() == 0
        assert scheduler.pending_count == 0
        outcomes = sorted(task.outcome.value for task in tracker.completed_tasks())
        assert outcomes == ["cancelled", "succeeded"]

    @pytest.mark.asyncio
    async def test_schedule_after_shutdown_is_dropped(self, scheduler, tracker):
        await scheduler.shutdown()
        ran = []

        scheduler.schedule([lambda: ran.append(True)], "late")
        await asyncio.sleep(0)

        assert ran == []
        assert scheduler.pending_count == 0

    @pytest.mark.asyncio
    async def test_tasks_inherit_request_context(self, scheduler):
        seen = []

        async def capture():
            seen.append(request_id_var.get())

        token = request_id_var.set("req-42")
        try:
            scheduler.schedule([capture], "ctx")
        finally:
            request_id_var.reset(token)
        await scheduler.drain()

        assert seen == ["req-42"]

    @pytest.mark.asyncio
    async def test_own_timeout_error_is_a_failure(self, scheduler, tracker):
        async def send_mail():
            raise TimeoutError("smtp read timed out")

        scheduler.schedule([send_mail], "submitAssignment")
        await scheduler.drain()

        assert tracker.completed_tasks()[0].outcome == TaskOutcome.FAILED

    @pytest.mark.asyncio
    async def test_own_timeout_error_within_deadline_is_a_failure(self, tracker):
        scheduler = TaskScheduler(tracker, timeout_seconds=5)

        async def send_mail():
            raise TimeoutError("smtp read timed out")

        scheduler.schedule([send_mail], "submitAssignment")
        await scheduler.drain(timeout=1)

        assert tracker.completed_tasks()[0].outcome == TaskOutcome.FAILED

    @pytest.mark.asyncio
    async def test_finishing_within_deadline_succeeds(self, tracker):
        scheduler = TaskScheduler(tracker, timeout_seconds=5)

        async def quick():
            await asyncio.sleep(0)

        scheduler.schedule([quick], "ctx")
        await scheduler.drain(timeout=1)

        assert tracker.completed_tasks()[0].outcome == TaskOutcome.SUCCEEDED

    @pytest.mark.asyncio
    async def test_logs_inside_a_task_carry_its_id_and_context(self, scheduler, tracker):
        seen = []

        async def capture():
            seen.append(structlog.contextvars.get_contextvars())

        scheduler.schedule([capture], "enrollCourse")
        await scheduler.drain()

        task = tracker.completed_tasks()[0]
        assert seen == [{"task_id": task.id, "context": "enrollCourse"}]
        assert structlog.contextvars.get_contextvars() == {}

    @pytest.mark.asyncio
    async def test_schedule_from_worker_thread(self, scheduler, tracker):
        scheduler.start()
        seen = []

        async def capture():
            seen.append(request_id_var.get())

        def handler():
            request_id_var.set("req-7")
            scheduler.schedule([capture], "syncHandler")

        await asyncio.to_thread(handler)
        await asyncio.sleep(0)
        await scheduler.drain(timeout=1)

        assert seen == ["req-7"]
        assert tracker.completed_tasks()[0].context == "syncHandler"
        assert request_id_var.get() is None

    def test_schedule_without_event_loop_is_dropped(self, scheduler, tracker):
        ran = []

        scheduler.schedule([lambda: ran.append(True)], "ctx")

        assert ran == []
        assert scheduler.pending_count == 0
        assert tracker.active_count() == 0
