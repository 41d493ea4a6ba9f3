"""
TimerService - cancellable scheduled callbacks on the running event loop.

``arm`` returns a token, ``cancel`` takes it back. Coroutine callbacks are
spawned as tasks that the service keeps a reference to until they finish.
"""

import asyncio
import itertools
from typing import Any, Callable, Dict, Optional, Set

from loguru import logger


class TimerService:
    """Owns every pending timer handle of one unit."""

    def __init__(self, name: str = "timers"):
        self.name = name
        self._handles: Dict[int, asyncio.TimerHandle] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._ids = itertools.count(1)

    def arm(self, delay_ms: float, callback: Callable[[], Any]) -> int:
        """Schedule ``callback`` after ``delay_ms`` milliseconds and return its token."""
        loop = asyncio.get_running_loop()
        token = next(self._ids)
        self._handles[token] = loop.call_later(max(delay_ms, 0) / 1000.0, self._fire, token, callback)
        return token

    def cancel(self, token: Optional[int]) -> bool:
        """Cancel a pending timer. Unknown or already fired tokens are ignored."""
        if token is None:
            return False
        handle = self._handles.pop(token, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> int:
        """Cancel every pending timer; running callbacks are left alone."""
        count = len(self._handles)
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()
        return count

    def is_armed(self, token: Optional[int]) -> bool:
        return token is not None and token in self._handles

    @property
    def active_count(self) -> int:
        return len(self._handles)

    @property
    def running_callbacks(self) -> int:
        return len(self._tasks)

    def _fire(self, token: int, callback: Callable[[], Any]):
        if self._handles.pop(token, None) is None:
            return
        try:
            result = callback()
        except Exception:
            logger.exception(f"{self.name}: timer callback failed")
            return
        if asyncio.iscoroutine(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.opt(exception=error).error(f"{self.name}: timer callback failed")


class TimerSlot:
    """
    A single named timer: arming it again replaces the previous schedule.

    Used for the debounce window and the two idle timers.
    """

    def __init__(self, service: TimerService, name: str):
        self.service = service
        self.name = name
        self._token: Optional[int] = None

    def arm(self, delay_ms: float, callback: Callable[[], Any]) -> int:
        self.cancel()
        self._token = self.service.arm(delay_ms, callback)
        return self._token

    def cancel(self) -> bool:
        token, self._token = self._token, None
        return self.service.cancel(token)

    @property
    def armed(self) -> bool:
        return self.service.is_armed(self._token)

    def __repr__(self):
        return f"TimerSlot({self.name!r}, armed={self.armed})"
