"""
dynamictaskqueue - schedule tasks and subtasks that keep arriving while work runs.

Units (``Task`` and ``TaskQueue``) buffer registrations, batch them after a
short debounce window and run them through a renderer. Logging goes through
loguru; call ``setup_logging`` or ``EngineConfig.setup_logging`` to install sinks.
"""

from .exceptions import (
    DynamicTaskError,
    ConfigurationError,
    InvalidConfigurationError,
    TaskError,
    TaskConstructionError,
    TaskExecutionError,
    ExecutionAbortedError,
    UnitError,
    ForcedShutdownError,
    UnitFailedError,
    InvalidStateTransitionError,
    QueueNotInitializedError,
)
from .config import EngineConfig, SchedulingConfig, LoggingConfig, TaskConfig, QueueConfig, load_config
from .core import setup_logging
from .hierarchical_task_framework.types import ExecutionMode, OutcomeStatus, QueueState, TaskState
from .hierarchical_task_framework.node import RetryPolicy, SubtaskOptions, TaskNode, TaskNodeConfig
from .hierarchical_task_framework.orchestration import CompletionController, UnitStats
from .hierarchical_task_framework.renderer import (
    AsyncTreeRenderer,
    ExecutionTree,
    LiveHandle,
    RenderOutcome,
    RenderReport,
    RenderTask,
    Renderer,
)
from .task import Task, create_task
from .task_queue import TaskQueue, create_queue
from .registry import QueueRegistry, get_registry, get_queue, reset_queue, add_task
from .definitions import subtask, nested_subtasks

__version__ = "0.1.0"

__all__ = [
    # Units
    "Task",
    "TaskQueue",
    "create_task",
    "create_queue",
    # Registry
    "QueueRegistry",
    "get_registry",
    "get_queue",
    "reset_queue",
    "add_task",
    # Definitions
    "subtask",
    "nested_subtasks",
    "TaskNode",
    "TaskNodeConfig",
    "SubtaskOptions",
    "RetryPolicy",
    # Types
    "ExecutionMode",
    "OutcomeStatus",
    "QueueState",
    "TaskState",
    "UnitStats",
    "CompletionController",
    # Renderer
    "Renderer",
    "AsyncTreeRenderer",
    "ExecutionTree",
    "LiveHandle",
    "RenderOutcome",
    "RenderReport",
    "RenderTask",
    # Configuration
    "EngineConfig",
    "SchedulingConfig",
    "LoggingConfig",
    "TaskConfig",
    "QueueConfig",
    "load_config",
    "setup_logging",
    # Errors
    "DynamicTaskError",
    "ConfigurationError",
    "InvalidConfigurationError",
    "TaskError",
    "TaskConstructionError",
    "TaskExecutionError",
    "ExecutionAbortedError",
    "UnitError",
    "ForcedShutdownError",
    "UnitFailedError",
    "InvalidStateTransitionError",
    "QueueNotInitializedError",
]
