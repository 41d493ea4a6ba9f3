"""
Tests for the process-wide queue registry.
"""

import pytest

from dynamictaskqueue import (
    QueueNotInitializedError,
    QueueRegistry,
    QueueState,
    add_task,
    get_queue,
    reset_queue,
)


class TestQueueRegistry:
    """Explicit initialization and reset."""

    def test_get_without_initialization_raises(self):
        registry = QueueRegistry()

        with pytest.raises(QueueNotInitializedError):
            registry.get()
        assert not registry.initialized

    @pytest.mark.asyncio
    async def test_get_with_config_creates_once(self):
        registry = QueueRegistry()

        first = registry.get({"title": "Shared", "batch_debounce_ms": 5})
        second = registry.get()
        third = registry.get({"title": "Ignored"})

        assert first is second is third
        assert first.title == "Shared"
        await registry.reset()

    @pytest.mark.asyncio
    async def test_initialize_returns_existing(self):
        registry = QueueRegistry()

        queue = registry.initialize(title="Shared")
        assert registry.initialize(title="Other") is queue
        await registry.reset()

    @pytest.mark.asyncio
    async def test_reset_completes_and_clears(self, order, body_factory):
        registry = QueueRegistry()
        queue = registry.get({"title": "Shared", "batch_debounce_ms": 1000})
        queue.add({"title": "pending", "task": body_factory("pending")})

        await registry.reset()

        assert order == ["pending"]
        assert queue.state == QueueState.COMPLETED
        assert not registry.initialized
        with pytest.raises(QueueNotInitializedError):
            registry.get()

    @pytest.mark.asyncio
    async def test_reset_without_queue_is_noop(self):
        registry = QueueRegistry()
        await registry.reset()
        assert not registry.initialized


class TestModuleShortcuts:
    """get_queue, add_task and reset_queue use the shared registry."""

    @pytest.mark.asyncio
    async def test_shortcuts(self, shared_registry, order, body_factory):
        with pytest.raises(QueueNotInitializedError):
            add_task("too early", body_factory("too early"))

        queue = get_queue(title="Shared", batch_debounce_ms=5)
        node = add_task("job", body_factory("job"))
        assert get_queue() is queue

        await reset_queue()

        assert await node == "job"
        assert order == ["job"]
        assert queue.is_completed
        assert not shared_registry.initialized
