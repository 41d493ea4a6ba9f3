"""
Custom exceptions for the dynamic task queue framework.

This module defines a hierarchy of exceptions that provide better error handling
and debugging capabilities throughout the framework.
"""

from typing import Optional, Any, Dict

class DynamicTaskError(Exception):
    """
    Base exception for all dynamic task queue errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        context: Additional context information
    """

    def __init__(self,
                 message: str,
                 error_code: Optional[str] = None,
                 context: Optional[Dict[str, Any]] = None,
                 cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = context or {}
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
            "cause": str(self.cause) if self.cause else None
        }

# Configuration Related Errors

class ConfigurationError(DynamicTaskError):
    """Raised when there's an issue with configuration."""
    pass

class InvalidConfigurationError(ConfigurationError):
    """Raised when configuration values are invalid."""
    pass

# Task Related Errors

class TaskError(DynamicTaskError):
    """Base class for task-related errors."""

    def __init__(self,
                 title: str,
                 message: str,
                 error_code: Optional[str] = None,
                 context: Optional[Dict[str, Any]] = None,
                 cause: Optional[BaseException] = None):
        context = context or {}
        context["title"] = title
        super().__init__(message, error_code, context, cause)
        self.title = title

class TaskConstructionError(TaskError):
    """Raised synchronously when a task or subtask config is invalid."""

    def __init__(self, title: Optional[str], reason: str, cause: Optional[BaseException] = None):
        label = title or "<untitled>"
        super().__init__(
            title=label,
            message=f"Cannot create task '{label}': {reason}",
            context={"reason": reason},
            cause=cause
        )

class TaskExecutionError(TaskError):
    """Raised when a task body fails and the failure has to be wrapped."""

    def __init__(self, title: str, original_error: BaseException):
        message = f"Task '{title}' failed: {original_error}"

        super().__init__(
            title=title,
            message=message,
            context={"original_error_type": type(original_error).__name__},
            cause=original_error
        )

class ExecutionAbortedError(TaskError):
    """
    Raised by the renderer when an execution tree stops on its first failure.

    The same exception type rejects the items of that tree that never started.
    """

    def __init__(self, title: str, error: BaseException, report: Any = None):
        super().__init__(
            title=title,
            message=f"Execution of '{title}' aborted: {error}",
            context={"original_error_type": type(error).__name__},
            cause=error
        )
        self.error = error
        self.report = report

# Unit lifecycle Errors

class UnitError(DynamicTaskError):
    """Base class for errors raised by a Task or TaskQueue unit."""
    pass

class ForcedShutdownError(UnitError):
    """Rejects pending work and the unit itself on force_shutdown()."""

    def __init__(self, reason: str, unit_title: Optional[str] = None):
        super().__init__(
            message=reason,
            context={"unit": unit_title} if unit_title else {}
        )
        self.reason = reason

class UnitFailedError(UnitError):
    """Rejects work that was still buffered when its unit failed."""

    def __init__(self, unit_title: str, cause: BaseException):
        super().__init__(
            message=f"Unit '{unit_title}' failed before this item could run: {cause}",
            context={"unit": unit_title},
            cause=cause
        )

class InvalidStateTransitionError(UnitError):
    """Raised when a lifecycle transition is not allowed."""

    def __init__(self, unit_title: str, from_state: Any, to_state: Any):
        super().__init__(
            message=f"Unit '{unit_title}' cannot move from {from_state} to {to_state}",
            context={
                "unit": unit_title,
                "from_state": str(from_state),
                "to_state": str(to_state)
            }
        )

class QueueNotInitializedError(UnitError):
    """Raised when the process-wide queue is used before initialization."""

    def __init__(self):
        super().__init__(
            message="The shared task queue has not been initialized; "
                    "call get_queue(config) or QueueRegistry.initialize() first"
        )

# Utility Functions

def handle_exception(
    exception: BaseException,
    title: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None
) -> DynamicTaskError:
    """
    Convert a generic exception to an appropriate DynamicTaskError.

    Args:
        exception: The original exception
        title: Optional task title for context
        context: Additional context information

    Returns:
        Appropriate DynamicTaskError subclass
    """
    context = context or {}

    if title:
        context["title"] = title

    # If it's already one of ours, add context and return
    if isinstance(exception, DynamicTaskError):
        exception.context.update(context)
        return exception

    if title:
        return TaskExecutionError(title=title, original_error=exception)

    return DynamicTaskError(
        message=f"Unexpected error: {exception}",
        context=context,
        cause=exception
    )

def create_error_context(
    title: Optional[str] = None,
    unit: Optional[str] = None,
    **kwargs
) -> Dict[str, Any]:
    """
    Create a standard error context dictionary.

    Args:
        title: Task title
        unit: Owning unit title
        **kwargs: Additional context items

    Returns:
        Dictionary with error context
    """
    context = {}

    if title:
        context["title"] = title
    if unit:
        context["unit"] = unit

    context.update(kwargs)
    return context
