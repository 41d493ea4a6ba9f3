"""
Tests for the standalone Task unit: ordering, BEFORE mode, completion and shutdown.
"""

import asyncio

import pytest

from dynamictaskqueue import (
    ForcedShutdownError,
    TaskConstructionError,
    TaskState,
    UnitFailedError,
    create_task,
)


class TestTaskConstruction:
    """Construction errors are raised synchronously."""

    def test_missing_title(self):
        with pytest.raises(TaskConstructionError):
            create_task()

    def test_blank_title(self):
        with pytest.raises(TaskConstructionError) as exc_info:
            create_task(title="   ")
        assert "title" in str(exc_info.value)

    def test_invalid_mode(self):
        with pytest.raises(TaskConstructionError):
            create_task(title="Root", mode="sideways")

    def test_defaults(self):
        task = create_task({"title": "Root"})

        assert task.title == "Root"
        assert task.mode.value == "before"
        assert task.state == TaskState.PENDING
        assert task.is_pending
        assert task.options.concurrent is False
        assert task.options.exit_on_error is True
        # Empty subtask defaults are seeded from the task options
        assert task.default_subtask_options == task.options

    def test_keyword_arguments_override_config(self):
        task = create_task({"title": "Root", "batch_debounce_ms": 80}, batch_debounce_ms=5)
        assert task.scheduler.debounce_ms == 5

    @pytest.mark.asyncio
    async def test_add_without_title_raises(self):
        task = create_task(title="Root")

        with pytest.raises(TaskConstructionError):
            task.add({"task": lambda ctx: None})
        with pytest.raises(TaskConstructionError):
            task.add({"title": "ok", "unknown_directive": True})

        assert task.pending_count == 0

    @pytest.mark.asyncio
    async def test_invalid_list_adds_nothing(self):
        task = create_task(title="Root")

        with pytest.raises(TaskConstructionError):
            task.add([{"title": "first"}, {"title": ""}])

        assert task.pending_count == 0


class TestTaskOrdering:
    """Sequential execution keeps registration order."""

    @pytest.mark.asyncio
    async def test_sequential_order(self, order, body_factory):
        task = create_task(title="Root", options={"concurrent": False})

        nodes = [task.add({"title": name, "task": body_factory(name)}) for name in "ABC"]
        await task.complete()

        assert order == ["A", "B", "C"]
        assert task.state == TaskState.COMPLETED
        assert [await node for node in nodes] == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_list_add_returns_list(self, order, body_factory):
        task = create_task(title="Root", batch_debounce_ms=5)

        nodes = task.add([{"title": "A", "task": body_factory("A")}, {"title": "B", "task": body_factory("B")}])

        assert isinstance(nodes, list) and len(nodes) == 2
        assert task.add([]) is None
        await task.complete()
        assert order == ["A", "B"]

    @pytest.mark.asyncio
    async def test_batches_run_after_debounce(self, order, body_factory):
        task = create_task(title="Root", batch_debounce_ms=10)

        task.add({"title": "A", "task": body_factory("A")})
        task.add({"title": "B", "task": body_factory("B")})
        assert task.pending_count == 2
        assert order == []

        await asyncio.sleep(0.1)

        assert order == ["A", "B"]
        assert task.pending_count == 0
        assert task.scheduler.batches_run == 1
        assert task.state == TaskState.PENDING
        assert task.stats.processed == 2

        await task.complete()

    @pytest.mark.asyncio
    async def test_work_added_during_batch_runs_next(self, order, body_factory):
        task = create_task(title="Root", batch_debounce_ms=5)

        async def spawner(ctx):
            order.append("spawner")
            task.add({"title": "late", "task": body_factory("late")})

        task.add({"title": "spawner", "task": spawner})
        await asyncio.sleep(0.1)

        assert order == ["spawner", "late"]
        assert task.scheduler.batches_run == 2
        await task.complete()

    @pytest.mark.asyncio
    async def test_counts(self, body_factory):
        task = create_task(title="Root", batch_debounce_ms=1000)

        task.add({"title": "A", "task": body_factory("A")})
        task.add({"title": "B", "task": body_factory("B")})
        assert task.subtask_count == 2
        assert task.pending_subtask_count == 2

        await task.complete()
        assert task.subtask_count == 2
        assert task.pending_subtask_count == 0
        assert task.stats.processed == 2
        assert task.stats.pending == 0


class TestBeforeMode:
    """The task body runs before any subtask and shares its context."""

    @pytest.mark.asyncio
    async def test_body_mutates_context_before_children(self):
        seen = []

        def body(ctx):
            ctx["stage"] = "body-done"

        task = create_task(title="Root", task=body, batch_debounce_ms=5)
        for i in range(3):
            task.add({"title": f"child {i}", "task": lambda ctx: seen.append(ctx.get("stage"))})
        await task.complete()

        assert seen == ["body-done"] * 3
        assert task.ctx["stage"] == "body-done"

    @pytest.mark.asyncio
    async def test_body_runs_on_complete_without_children(self):
        calls = []
        task = create_task(title="Root", task=lambda ctx: calls.append("body"))

        await task.complete()

        assert calls == ["body"]
        assert task.body_executed

    @pytest.mark.asyncio
    async def test_body_failure_stops_children(self, order, body_factory):
        task = create_task(title="Root", task=body_factory("body", error=RuntimeError("boom")),
                           batch_debounce_ms=5)
        child = task.add({"title": "child", "task": body_factory("child")})

        with pytest.raises(RuntimeError, match="boom"):
            await task.complete()

        assert order == ["body"]
        assert task.state == TaskState.FAILED
        with pytest.raises(UnitFailedError):
            await child

    @pytest.mark.asyncio
    async def test_body_failure_without_exit_on_error_continues(self, order, body_factory, error_handler):
        task = create_task(title="Root", task=body_factory("body", error=RuntimeError("boom")),
                           options={"exit_on_error": False}, batch_debounce_ms=5)
        task.add({"title": "child", "task": body_factory("child")})

        await task.complete()

        assert order == ["body", "child"]
        assert task.state == TaskState.COMPLETED
        assert error_handler.get_error_stats()["errors_by_type"] == {"RuntimeError": 1}


class TestTaskCompletion:
    """complete() and force_shutdown()."""

    @pytest.mark.asyncio
    async def test_complete_is_idempotent(self, order, body_factory):
        task = create_task(title="Root", task=body_factory("body"))
        task.add({"title": "child", "task": body_factory("child")})

        first = await task.complete()
        second = await task.complete()

        assert first is None and second is None
        assert order == ["body", "child"]
        assert task.state == TaskState.COMPLETED

    @pytest.mark.asyncio
    async def test_complete_reraises_same_failure(self, body_factory):
        error = RuntimeError("child failed")
        task = create_task(title="Root")
        task.add({"title": "bad", "task": body_factory("bad", error=error)})

        with pytest.raises(RuntimeError) as first:
            await task.complete()
        with pytest.raises(RuntimeError) as second:
            await task.complete()

        assert first.value is error
        assert second.value is error
        assert task.stats.failed == 1

    @pytest.mark.asyncio
    async def test_add_after_complete_returns_none(self):
        task = create_task(title="Root")
        await task.complete()

        assert task.add({"title": "late"}) is None

    @pytest.mark.asyncio
    async def test_add_to_executed_node_returns_none(self):
        task = create_task(title="Root")
        node = task.add({"title": "parent"})
        await task.complete()

        assert node.executed
        assert node.add({"title": "too late"}) is None

    @pytest.mark.asyncio
    async def test_concurrent_complete_calls_share_outcome(self, body_factory):
        task = create_task(title="Root", batch_debounce_ms=5)
        task.add({"title": "slow", "task": body_factory("slow", delay=0.02)})

        results = await asyncio.gather(task.complete(), task.complete())

        assert results == [None, None]
        assert task.stats.processed == 1

    @pytest.mark.asyncio
    async def test_force_shutdown_rejects_buffered(self, body_factory):
        task = create_task(title="Root", batch_debounce_ms=1000)
        a = task.add({"title": "A", "task": body_factory("A")})
        b = task.add({"title": "B", "task": body_factory("B")})

        task.force_shutdown("X")

        for node in (a, b):
            with pytest.raises(ForcedShutdownError) as exc_info:
                await node
            assert str(exc_info.value) == "X"
        with pytest.raises(ForcedShutdownError, match="X"):
            await task.wait()
        assert task.state == TaskState.FAILED
        assert task.timers.active_count == 0
        assert task.add({"title": "C"}) is None

    @pytest.mark.asyncio
    async def test_force_shutdown_default_reason(self):
        task = create_task(title="Root")
        task.force_shutdown()

        with pytest.raises(ForcedShutdownError, match="Task force shutdown"):
            await task.complete()

    @pytest.mark.asyncio
    async def test_force_shutdown_after_completion_is_noop(self):
        task = create_task(title="Root")
        await task.complete()

        task.force_shutdown("too late")

        assert task.state == TaskState.COMPLETED
        assert await task.wait() is None
