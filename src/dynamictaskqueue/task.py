"""
Task - a standalone unit with its own body and dynamically added subtasks.

By default the body runs first (BEFORE) and subtasks run after it, sequentially,
stopping on the first error.
"""

from typing import Any, Dict, Optional, Union

from dynamictaskqueue.config.unit_config import TaskConfig
from dynamictaskqueue.hierarchical_task_framework.orchestration.lifecycle import LifecycleRecord
from dynamictaskqueue.hierarchical_task_framework.orchestration.unit_runtime import UnitRuntime
from dynamictaskqueue.hierarchical_task_framework.types import TaskState


class Task(UnitRuntime):
    """A root task whose subtasks can be added while it runs."""

    kind = "Task"

    def __init__(self, config: Union[TaskConfig, Dict[str, Any], None] = None, **kwargs):
        config = TaskConfig.coerce(config, **kwargs)
        super().__init__(config, LifecycleRecord.for_task(config.title))

    @property
    def task(self):
        return self.config.task

    @property
    def subtask_count(self) -> int:
        return self.scheduler.enqueued_count

    @property
    def pending_subtask_count(self) -> int:
        return self.scheduler.pending_count

    @property
    def is_pending(self) -> bool:
        return self.state == TaskState.PENDING


def create_task(config: Union[TaskConfig, Dict[str, Any], None] = None, **kwargs) -> Task:
    """
    Create a Task.

    Args:
        config: Dict or TaskConfig; keyword arguments override its keys

    Raises:
        TaskConstructionError: If the configuration is invalid, e.g. has no title
    """
    return Task(config, **kwargs)
