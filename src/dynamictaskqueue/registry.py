"""
Process-wide task queue registry.

Holds at most one TaskQueue. Nothing is created implicitly: the first caller
must pass a configuration (or call ``initialize``) before others can use it.
"""

from typing import Any, Callable, Dict, Optional, Union

from loguru import logger

from dynamictaskqueue.config.unit_config import QueueConfig
from dynamictaskqueue.exceptions import QueueNotInitializedError
from dynamictaskqueue.hierarchical_task_framework.node.task_node import TaskNode
from dynamictaskqueue.task_queue import TaskQueue

QueueDefinition = Union[QueueConfig, Dict[str, Any]]


class QueueRegistry:
    """Owner of the shared TaskQueue instance."""

    def __init__(self):
        self._queue: Optional[TaskQueue] = None

    @property
    def initialized(self) -> bool:
        return self._queue is not None

    def initialize(self, config: Optional[QueueDefinition] = None, **kwargs) -> TaskQueue:
        """Create the shared queue; returns the existing one if already initialized."""
        if self._queue is not None:
            logger.debug("Shared task queue already initialized; ignoring new configuration")
            return self._queue
        self._queue = TaskQueue(config, **kwargs)
        logger.info(f"Shared task queue '{self._queue.title}' initialized")
        return self._queue

    def get(self, config: Optional[QueueDefinition] = None, **kwargs) -> TaskQueue:
        """
        Return the shared queue, creating it when a configuration is given.

        Raises:
            QueueNotInitializedError: If there is no queue and no configuration
        """
        if self._queue is None:
            if config is None and not kwargs:
                raise QueueNotInitializedError()
            return self.initialize(config, **kwargs)
        return self._queue

    async def reset(self):
        """Complete the shared queue (if it is still running), then forget it."""
        queue, self._queue = self._queue, None
        if queue is None:
            return
        try:
            if not queue.is_terminal:
                await queue.complete()
        finally:
            logger.info(f"Shared task queue '{queue.title}' reset")


_registry = QueueRegistry()


def get_registry() -> QueueRegistry:
    """Get the process-wide registry."""
    return _registry


def get_queue(config: Optional[QueueDefinition] = None, **kwargs) -> TaskQueue:
    """Shortcut for ``get_registry().get(config)``."""
    return _registry.get(config, **kwargs)


async def reset_queue():
    """Shortcut for ``get_registry().reset()``."""
    await _registry.reset()


def add_task(title: str, task: Optional[Callable[..., Any]] = None, **directives) -> Optional[TaskNode]:
    """
    Add a task to the shared queue.

    Raises:
        QueueNotInitializedError: If the shared queue was never initialized
    """
    return _registry.get().add_task({"title": title, "task": task, **directives})
