from .node_configs import RetryPolicy, SubtaskOptions, TaskNodeConfig
from .task_node import TaskNode
from .tree_builder import TreeBuilder, settle_node

__all__ = [
    "RetryPolicy",
    "SubtaskOptions",
    "TaskNodeConfig",
    "TaskNode",
    "TreeBuilder",
    "settle_node",
]
