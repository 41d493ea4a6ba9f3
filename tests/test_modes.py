"""
Tests for node composition per ExecutionMode and for option inheritance.
"""

import asyncio

import pytest

from dynamictaskqueue import (
    ExecutionAbortedError,
    ExecutionMode,
    ForcedShutdownError,
    RenderReport,
    RenderTask,
    TaskConstructionError,
    TaskNode,
    UnitFailedError,
    create_queue,
    create_task,
)


class TestTaskNode:
    """TaskNode construction and the executed flag."""

    def test_static_subtasks_become_children(self):
        node = TaskNode({"title": "parent", "subtasks": [{"title": "a"}, {"title": "b"}]})

        assert [child.title for child in node.children] == ["a", "b"]
        assert all(child.parent is node for child in node.children)
        assert node.mode == ExecutionMode.BEFORE

    def test_explicit_mode_wins_over_default(self):
        node = TaskNode({"title": "n", "mode": "wrap"}, default_mode=ExecutionMode.AFTER)
        assert node.mode == ExecutionMode.WRAP

    def test_retry_shorthand(self):
        node = TaskNode({"title": "n", "retry": 3})

        assert node.retry.tries == 3
        assert node.retry.delay_ms == 0

    def test_retry_delay_alias(self):
        node = TaskNode({"title": "n", "retry": {"tries": 1, "delay": 25}})
        assert node.retry.delay_ms == 25

    def test_add_children(self):
        node = TaskNode({"title": "parent"})

        single = node.add({"title": "one"})
        many = node.add([{"title": "two"}, {"title": "three"}])

        assert isinstance(single, TaskNode)
        assert [n.title for n in many] == ["two", "three"]
        assert node.child_count == 3
        assert node.add([]) is None

    def test_add_invalid_child(self):
        node = TaskNode({"title": "parent"})

        with pytest.raises(TaskConstructionError):
            node.add({"title": ""})
        assert node.child_count == 0

    def test_add_after_executed(self):
        node = TaskNode({"title": "parent"})

        assert node.mark_executed() is True
        assert node.mark_executed() is False
        assert node.add({"title": "late"}) is None


class TestNodeModes:
    """How a node's body and its children are composed."""

    @pytest.mark.asyncio
    async def test_before_runs_body_then_children(self, order, body_factory):
        task = create_task(title="Root")
        seen = []

        def body(ctx):
            order.append("body")
            ctx["ready"] = True

        task.add({
            "title": "parent",
            "task": body,
            "subtasks": [{"title": "child", "task": lambda ctx: seen.append(ctx.get("ready"))}],
        })
        await task.complete()

        assert order == ["body"]
        assert seen == [True]

    @pytest.mark.asyncio
    async def test_before_body_failure_skips_children(self, order, body_factory):
        queue = create_queue(title="Q")

        node = queue.add({
            "title": "parent",
            "mode": "before",
            "task": body_factory("body", error=RuntimeError("body failed")),
            "subtasks": [{"title": "child", "task": body_factory("child")}],
        })
        await queue.complete()

        assert order == ["body"]
        with pytest.raises(RuntimeError, match="body failed"):
            await node
        assert queue.stats.failed == 1

    @pytest.mark.asyncio
    async def test_after_returned_tree_replaces_static_children(self, order, body_factory):
        queue = create_queue(title="Q")

        def body(ctx, handle):
            order.append("body")
            return handle.new_tree([RenderTask(title="dynamic", task=body_factory("dynamic"))])

        node = queue.add({
            "title": "parent",
            "task": body,
            "subtasks": [{"title": "static", "task": body_factory("static")}],
        })
        await queue.complete()

        assert order == ["body", "dynamic"]
        report = await node
        assert isinstance(report, RenderReport)
        assert report.completed == 1
        # The replaced static child is settled as skipped
        assert await asyncio.wait_for(node.children[0].wait(), timeout=0.5) is None

    @pytest.mark.asyncio
    async def test_after_runs_static_children_after_body(self, order, body_factory):
        queue = create_queue(title="Q")

        node = queue.add({
            "title": "parent",
            "task": body_factory("body"),
            "subtasks": [{"title": "a", "task": body_factory("a")}, {"title": "b", "task": body_factory("b")}],
        })
        await queue.complete()

        assert order == ["body", "a", "b"]
        assert await node == "body"

    @pytest.mark.asyncio
    async def test_wrap_matches_after(self, order, body_factory):
        task = create_task(title="Root")

        task.add({
            "title": "wrapped",
            "mode": ExecutionMode.WRAP,
            "task": body_factory("body"),
            "subtasks": [{"title": "child", "task": body_factory("child")}],
        })
        await task.complete()

        assert order == ["body", "child"]

    @pytest.mark.asyncio
    async def test_only_ignores_body_with_children(self, order, body_factory):
        task = create_task(title="Root")

        task.add({
            "title": "group",
            "mode": "only",
            "task": body_factory("body"),
            "subtasks": [{"title": "child", "task": body_factory("child")}],
        })
        await task.complete()

        assert order == ["child"]

    @pytest.mark.asyncio
    async def test_only_without_children_runs_body(self, order, body_factory):
        task = create_task(title="Root")

        bare = task.add({"title": "bare", "mode": "only"})
        with_body = task.add({"title": "leaf", "mode": "only", "task": body_factory("leaf")})
        await task.complete()

        assert order == ["leaf"]
        assert await bare is None
        assert await with_body == "leaf"

    @pytest.mark.asyncio
    async def test_children_added_before_execution_run(self, order, body_factory):
        task = create_task(title="Root", batch_debounce_ms=1000)

        parent = task.add({"title": "parent", "task": body_factory("parent")})
        parent.add({"title": "late child", "task": body_factory("late child")})
        await task.complete()

        assert order == ["parent", "late child"]
        assert parent.children[0].executed

    @pytest.mark.asyncio
    async def test_child_failure_fails_parent(self, body_factory):
        queue = create_queue(title="Q")

        parent = queue.add({
            "title": "parent",
            "subtasks": [
                {"title": "bad", "task": body_factory("bad", error=ValueError("child"))},
                {"title": "never", "task": body_factory("never")},
            ],
        })
        await queue.complete()

        with pytest.raises(ValueError, match="child"):
            await parent
        bad, never = parent.children
        with pytest.raises(ValueError):
            await bad
        with pytest.raises(Exception):
            await never
        assert queue.stats.failed == 1


class TestNestedSettlement:
    """Children that never run still settle their handles."""

    @pytest.mark.asyncio
    async def test_failed_before_body_rejects_late_children(self, order, body_factory):
        queue = create_queue(title="Q")

        parent = queue.add({
            "title": "parent",
            "mode": "before",
            "task": body_factory("body", error=RuntimeError("body failed")),
        })
        child = parent.add({"title": "child", "task": body_factory("child")})
        grandchild = child.add({"title": "grandchild", "task": body_factory("grandchild")})
        await queue.complete()

        assert order == ["body"]
        for node in (child, grandchild):
            with pytest.raises(ExecutionAbortedError) as exc_info:
                await asyncio.wait_for(node.wait(), timeout=0.5)
            assert str(exc_info.value.error) == "body failed"
        assert child.add({"title": "too late"}) is None

    @pytest.mark.asyncio
    async def test_retried_before_body_still_runs_children(self, order, body_factory):
        queue = create_queue(title="Q")
        attempts = []

        def flaky(ctx):
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError("first attempt")

        parent = queue.add({"title": "parent", "mode": "before", "task": flaky, "retry": 1})
        child = parent.add({"title": "child", "task": body_factory("child")})
        await queue.complete()

        assert len(attempts) == 2
        assert await asyncio.wait_for(child.wait(), timeout=0.5) == "child"

    @pytest.mark.asyncio
    async def test_skipped_and_disabled_parents_skip_children(self, order, body_factory):
        queue = create_queue(title="Q")

        skipped = queue.add({
            "title": "skipped",
            "skip": "not needed",
            "subtasks": [{"title": "a", "task": body_factory("a")}],
        })
        disabled = queue.add({
            "title": "disabled",
            "enabled": False,
            "subtasks": [{"title": "b", "task": body_factory("b")}],
        })
        await queue.complete()

        assert order == []
        for parent in (skipped, disabled):
            assert await asyncio.wait_for(parent.children[0].wait(), timeout=0.5) is None
        assert queue.stats.failed == 0

    @pytest.mark.asyncio
    async def test_force_shutdown_rejects_buffered_subtree(self, body_factory):
        queue = create_queue(title="Q", batch_debounce_ms=1000)

        parent = queue.add({"title": "parent", "subtasks": [{"title": "static"}]})
        late = parent.add({"title": "late", "task": body_factory("late")})
        nested = late.add({"title": "nested"})
        queue.force_shutdown("X")

        for node in (parent, parent.children[0], late, nested):
            with pytest.raises(ForcedShutdownError, match="X"):
                await asyncio.wait_for(node.wait(), timeout=0.5)
        with pytest.raises(ForcedShutdownError):
            await queue.wait()

    @pytest.mark.asyncio
    async def test_unit_failure_rejects_buffered_subtree(self, body_factory):
        queue = create_queue(title="Q", options={"exit_on_error": True}, batch_debounce_ms=5)
        late = []

        async def failing(ctx):
            parent = queue.add({"title": "buffered"})
            late.append(parent.add({"title": "buffered child"}))
            raise RuntimeError("first failed")

        queue.add({"title": "first", "task": failing})

        with pytest.raises(RuntimeError, match="first failed"):
            await asyncio.wait_for(queue.wait(), timeout=1.0)
        with pytest.raises(UnitFailedError):
            await asyncio.wait_for(late[0].wait(), timeout=0.5)


class TestOptionInheritance:
    """Children inherit merged concurrency policies."""

    @pytest.mark.asyncio
    async def test_nested_options_merge(self, recording_renderer):
        task = create_task(title="Root", default_subtask_options={"concurrent": True},
                           renderer=recording_renderer)

        task.add({
            "title": "parent",
            "options": {"exit_on_error": False},
            "subtasks": [
                {"title": "c1"},
                {"title": "c2", "options": {"concurrent": False}, "subtasks": [{"title": "g1"}]},
            ],
        })
        await task.complete()

        batch = recording_renderer.tree("Root")
        assert (batch.concurrent, batch.exit_on_error) == (False, True)

        parent_children = recording_renderer.tree("parent")
        assert (parent_children.concurrent, parent_children.exit_on_error) == (True, False)

        grandchildren = recording_renderer.tree("c2")
        assert (grandchildren.concurrent, grandchildren.exit_on_error) == (False, False)

    @pytest.mark.asyncio
    async def test_task_subtask_defaults_follow_task_options(self, recording_renderer):
        task = create_task(title="Root", options={"concurrent": True}, renderer=recording_renderer)

        task.add({"title": "parent", "subtasks": [{"title": "a"}, {"title": "b"}]})
        await task.complete()

        assert recording_renderer.tree("parent").concurrent is True

    @pytest.mark.asyncio
    async def test_queue_subtasks_use_framework_defaults(self, recording_renderer):
        queue = create_queue(title="Q", options={"concurrent": True}, renderer=recording_renderer)

        queue.add({"title": "parent", "subtasks": [{"title": "a"}]})
        await queue.complete()

        assert recording_renderer.tree("Q").concurrent is True
        children = recording_renderer.tree("parent")
        assert (children.concurrent, children.exit_on_error) == (False, True)

    @pytest.mark.asyncio
    async def test_concurrent_children_interleave(self, order, body_factory):
        task = create_task(title="Root")

        task.add({
            "title": "parent",
            "options": {"concurrent": True},
            "subtasks": [
                {"title": "slow", "task": body_factory("slow", delay=0.03)},
                {"title": "fast", "task": body_factory("fast", delay=0.0)},
            ],
        })
        await asyncio.wait_for(task.complete(), timeout=1.0)

        assert order == ["fast", "slow"]
