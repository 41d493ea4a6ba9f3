"""
TaskQueue - a long-lived unit that runs submitted tasks in debounced batches.

Submitted items default to AFTER mode; by default the queue runs items one by
one and keeps going when an item fails.
"""

from typing import Any, Callable, Dict, List, Optional, Union

from dynamictaskqueue.config.unit_config import QueueConfig
from dynamictaskqueue.hierarchical_task_framework.node.node_configs import SubtaskOptions
from dynamictaskqueue.hierarchical_task_framework.node.task_node import NodeDefinition, TaskNode
from dynamictaskqueue.hierarchical_task_framework.orchestration.lifecycle import LifecycleRecord
from dynamictaskqueue.hierarchical_task_framework.orchestration.unit_runtime import UnitRuntime
from dynamictaskqueue.hierarchical_task_framework.types import ExecutionMode, QueueState


class TaskQueue(UnitRuntime):
    """A queue of independent tasks sharing one context."""

    kind = "Queue"

    def __init__(self, config: Union[QueueConfig, Dict[str, Any], None] = None, **kwargs):
        config = QueueConfig.coerce(config, **kwargs)
        super().__init__(config, LifecycleRecord.for_queue(config.title))

    def add_task(self, definition: Dict[str, Any]) -> Optional[TaskNode]:
        """
        Submit one task definition.

        ``subtask_mode`` (default AFTER) decides how the task's body and its
        subtasks are composed; ``options`` applies to its subtasks.
        """
        definition = dict(definition)
        mode = definition.pop("subtask_mode", None) or definition.pop("mode", None) or ExecutionMode.AFTER
        node_config = {k: v for k, v in definition.items() if v is not None}
        node_config["mode"] = mode
        return self.add(node_config)

    def add_with_subtasks(self,
                          title: str,
                          subtasks: List[NodeDefinition],
                          task: Optional[Callable[..., Any]] = None,
                          subtask_options: Optional[Union[SubtaskOptions, Dict[str, Any]]] = None,
                          mode: Union[ExecutionMode, str] = ExecutionMode.ONLY,
                          **directives) -> Optional[TaskNode]:
        """Submit a task made of subtasks; without a body the mode is always ONLY."""
        return self.add({
            "title": title,
            "task": task,
            "subtasks": list(subtasks),
            "options": subtask_options,
            "mode": mode if task is not None else ExecutionMode.ONLY,
            **directives,
        })

    def add_many(self, definitions: List[Dict[str, Any]]) -> List[TaskNode]:
        """Submit several task definitions; entries refused by the queue are left out."""
        nodes = [self.add_task(definition) for definition in definitions]
        return [node for node in nodes if node is not None]

    @property
    def is_idle(self) -> bool:
        return self.state == QueueState.IDLE

    @property
    def is_completing(self) -> bool:
        return self.state == QueueState.COMPLETING


def create_queue(config: Union[QueueConfig, Dict[str, Any], None] = None, **kwargs) -> TaskQueue:
    """
    Create a TaskQueue.

    Raises:
        TaskConstructionError: If the configuration is invalid
    """
    return TaskQueue(config, **kwargs)
