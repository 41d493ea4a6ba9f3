"""
Consolidated type definitions for the dynamic task queue framework.

This module serves as the single source of truth for all enums used by the
scheduler, preventing enum/string conversion issues throughout the codebase.
"""

from enum import Enum
from typing import Union

# Core Status and Mode Enums (using string values for better serialization)

class TaskState(str, Enum):
    """Lifecycle state of a standalone Task unit."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value

class QueueState(str, Enum):
    """Lifecycle state of a TaskQueue unit."""
    IDLE = "idle"
    PROCESSING = "processing"
    COMPLETING = "completing"
    COMPLETED = "completed"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value

class ExecutionMode(str, Enum):
    """How a node's own body is composed with its children."""
    BEFORE = "before"  # Body first, children only if the body succeeded
    AFTER = "after"    # Body first, a returned tree replaces static children
    ONLY = "only"      # Children only
    WRAP = "wrap"      # Same composition as AFTER

    def __str__(self) -> str:
        return self.value

class OutcomeStatus(str, Enum):
    """How the renderer settled a single item."""
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"
    DISABLED = "disabled"
    ABORTED = "aborted"

    def __str__(self) -> str:
        return self.value

# Utility functions for safe enum conversion
def safe_execution_mode(value: Union[str, ExecutionMode]) -> ExecutionMode:
    """
    Safely convert a string or ExecutionMode to ExecutionMode enum.

    Args:
        value: String or ExecutionMode enum value

    Returns:
        ExecutionMode enum

    Raises:
        ValueError: If the value is not a valid ExecutionMode
    """
    if isinstance(value, ExecutionMode):
        return value
    elif isinstance(value, str):
        try:
            return ExecutionMode(value.lower())
        except ValueError:
            raise ValueError(f"Invalid ExecutionMode: {value}")
    else:
        raise ValueError(f"Cannot convert {type(value)} to ExecutionMode")

# Sets of terminal and active states for convenience
TERMINAL_STATES = {
    TaskState.COMPLETED, TaskState.FAILED,
    QueueState.COMPLETED, QueueState.FAILED,
}

SUCCESSFUL_OUTCOMES = {OutcomeStatus.COMPLETED, OutcomeStatus.SKIPPED, OutcomeStatus.DISABLED}

def is_terminal_state(state: Union[TaskState, QueueState]) -> bool:
    """Check if a unit state is terminal."""
    return state in TERMINAL_STATES
