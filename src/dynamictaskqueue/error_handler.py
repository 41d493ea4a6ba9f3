"""
Error bookkeeping for the dynamic task queue framework.

Units report every failed item here, so failures that nobody awaits still show
up in the logs and in the statistics.
"""

import traceback
from collections import deque
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional

from loguru import logger

from dynamictaskqueue.exceptions import DynamicTaskError, handle_exception


class ErrorHandler:
    """Central error handler: logs, counts and remembers recent failures."""

    def __init__(self, enable_detailed_logging: bool = True, history_size: int = 100):
        self.enable_detailed_logging = enable_detailed_logging
        self._recent: Deque[Dict[str, Any]] = deque(maxlen=history_size)
        self.reset_stats()

    def handle_error(self,
                     error: BaseException,
                     component: str = "unknown",
                     title: Optional[str] = None,
                     context: Optional[Dict[str, Any]] = None,
                     reraise: bool = True) -> Optional[DynamicTaskError]:
        """
        Record an error and log it.

        Args:
            error: The exception that occurred
            component: Reporting component, e.g. ``"queue:<title>"``
            title: Title of the failed item, if any
            context: Additional context
            reraise: Raise the wrapped error after recording it

        Returns:
            The wrapped DynamicTaskError when not re-raising

        Raises:
            DynamicTaskError: If reraise=True
        """
        wrapped = handle_exception(error, title=title, context=context or {})

        # Counted by the original type so user errors stay distinguishable
        error_type = type(error).__name__
        self.error_stats["total_errors"] += 1
        by_type = self.error_stats["errors_by_type"]
        by_type[error_type] = by_type.get(error_type, 0) + 1
        by_component = self.error_stats["errors_by_component"]
        by_component[component] = by_component.get(component, 0) + 1

        self._recent.append({
            "timestamp": datetime.now().isoformat(),
            "component": component,
            "title": title,
            "error_type": error_type,
            "message": str(error),
        })
        self._log_error(wrapped, component)

        if reraise:
            raise wrapped
        return wrapped

    def _log_error(self, error: DynamicTaskError, component: str):
        logger.error(f"[{component}] {error.message}")
        if not self.enable_detailed_logging:
            return

        if error.context:
            logger.debug(f"Error context: {error.context}")
        cause = error.cause
        if cause is not None and cause.__traceback__ is not None:
            formatted = traceback.format_exception(type(cause), cause, cause.__traceback__)
            logger.debug("Traceback:\n" + "".join(formatted).rstrip())

    def get_recent_errors(self, component: Optional[str] = None) -> List[Dict[str, Any]]:
        """Most recent failures, oldest first, optionally for one component."""
        return [dict(e) for e in self._recent if component is None or e["component"] == component]

    def get_error_stats(self) -> Dict[str, Any]:
        return {
            "total_errors": self.error_stats["total_errors"],
            "errors_by_type": dict(self.error_stats["errors_by_type"]),
            "errors_by_component": dict(self.error_stats["errors_by_component"]),
        }

    def reset_stats(self):
        self.error_stats = {
            "total_errors": 0,
            "errors_by_type": {},
            "errors_by_component": {},
        }
        self._recent.clear()


_global_error_handler = ErrorHandler()


def get_error_handler() -> ErrorHandler:
    """Get the process-wide error handler."""
    return _global_error_handler


def set_error_handler(handler: ErrorHandler):
    """Replace the process-wide error handler; units created afterwards use it."""
    global _global_error_handler
    _global_error_handler = handler


def safe_execute(func: Callable[[], Any],
                 default_return: Any = None,
                 log_errors: bool = True,
                 component: str = "safe_execute") -> Any:
    """
    Call ``func`` and return ``default_return`` if it raises.

    Errors are recorded on the global handler unless ``log_errors`` is False.
    """
    try:
        return func()
    except Exception as e:
        if log_errors:
            get_error_handler().handle_error(e, component=component, reraise=False)
        return default_return
