import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from loguru import logger

from dynamictaskqueue.hierarchical_task_framework.node.node_configs import (
    RetryPolicy, SubtaskOptions, TaskNodeConfig
)
from dynamictaskqueue.hierarchical_task_framework.orchestration.completion import CompletionController
from dynamictaskqueue.hierarchical_task_framework.types import ExecutionMode

NodeDefinition = Union[TaskNodeConfig, Dict[str, Any]]


class TaskNode:
    """
    Represents a single unit of work in the task hierarchy.

    A node holds an optional body, an ordered list of children and the
    directives forwarded to the renderer. Children can be added until the
    node has been compiled into an execution tree; after that ``add`` refuses.
    Awaiting a node waits for its own outcome.
    """

    def __init__(self,
                 config: NodeDefinition,
                 default_mode: ExecutionMode = ExecutionMode.BEFORE,
                 parent: Optional["TaskNode"] = None):
        self.config = TaskNodeConfig.coerce(config)
        self.node_id = str(uuid.uuid4())
        self.parent = parent
        self.mode: ExecutionMode = self.config.mode or default_mode
        self.timestamp_created = datetime.now()
        self.completion = CompletionController(label=f"node '{self.config.title}'")

        self._default_mode = default_mode
        self._children: List["TaskNode"] = []
        self._executed = False

        # Static children declared inline with the definition
        for child_config in self.config.subtasks:
            self._children.append(TaskNode(child_config, default_mode=default_mode, parent=self))

    def add(self, config_or_list: Union[NodeDefinition, List[NodeDefinition]]):
        """
        Add nested subtask(s).

        Returns:
            The new node, a list of new nodes for list input, or None when the
            node has already executed or the list is empty.

        Raises:
            TaskConstructionError: If a definition is invalid
        """
        if self._executed:
            logger.warning(f"Subtask '{self.title}': cannot add children to an executed subtask")
            return None

        is_list = isinstance(config_or_list, (list, tuple))
        configs = list(config_or_list) if is_list else [config_or_list]
        if not configs:
            return None

        # Validate everything first so a bad entry adds nothing
        validated = [TaskNodeConfig.coerce(c) for c in configs]
        added = [TaskNode(c, default_mode=self._default_mode, parent=self) for c in validated]
        self._children.extend(added)

        return added if is_list else added[0]

    # Accessors

    @property
    def title(self) -> str:
        return self.config.title

    @property
    def body(self) -> Optional[Callable[..., Any]]:
        return self.config.task

    @property
    def children(self) -> List["TaskNode"]:
        return list(self._children)

    @property
    def child_count(self) -> int:
        return len(self._children)

    @property
    def options(self) -> SubtaskOptions:
        return self.config.options

    @property
    def retry(self) -> Optional[RetryPolicy]:
        return self.config.retry

    @property
    def executed(self) -> bool:
        return self._executed

    @property
    def settled(self) -> bool:
        return self.completion.settled

    def mark_executed(self) -> bool:
        """Flip ``executed`` once. Returns False if it was already set."""
        if self._executed:
            return False
        self._executed = True
        return True

    def reject_unstarted(self, error: BaseException) -> int:
        """
        Reject every descendant that was never compiled into a tree.

        Children already compiled settle through their own renderer outcome.
        Returns how many nodes were rejected.
        """
        return self._settle_unstarted(error)

    def skip_unstarted(self) -> int:
        """Resolve never-compiled descendants with None, as skipped along with this node."""
        return self._settle_unstarted(None)

    def _settle_unstarted(self, error: Optional[BaseException]) -> int:
        count = 0
        for child in self._children:
            if not child.mark_executed():
                continue
            if error is None:
                child.completion.resolve(None)
            else:
                child.completion.reject(error)
            count += 1 + child._settle_unstarted(error)
        return count

    async def wait(self) -> Any:
        """Wait for this node's own outcome."""
        return await self.completion.wait()

    def __await__(self):
        return self.completion.wait().__await__()

    def __repr__(self):
        return (f"TaskNode(title='{self.title[:30]}', mode={self.mode}, "
                f"children={len(self._children)}, executed={self._executed})")
