"""
CompletionController - the settleable outcome of one unit or node.

The controller owns a result slot plus ``resolve``/``reject`` operations.
The awaitable future is only created when somebody waits, so a rejection that
nobody observes does not trigger asyncio's "exception was never retrieved".
"""

import asyncio
from typing import Any, List, Optional

from loguru import logger

_UNSET = object()


class CompletionController:
    """Settle-once result holder shared between a producer and any number of waiters."""

    def __init__(self, label: str = "completion"):
        self.label = label
        self._result: Any = _UNSET
        self._error: Optional[BaseException] = None
        self._waiters: List[asyncio.Future] = []

    @property
    def settled(self) -> bool:
        return self._result is not _UNSET or self._error is not None

    @property
    def succeeded(self) -> bool:
        return self._result is not _UNSET

    @property
    def failed(self) -> bool:
        return self._error is not None

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    @property
    def result(self) -> Any:
        return None if self._result is _UNSET else self._result

    def resolve(self, value: Any = None) -> bool:
        """Settle successfully. Returns False if the controller was already settled."""
        if self.settled:
            logger.debug(f"{self.label}: ignoring resolve() on an already settled outcome")
            return False
        self._result = value
        for waiter in self._waiters:
            if not waiter.done():
                waiter.set_result(value)
        self._waiters.clear()
        return True

    def reject(self, error: BaseException) -> bool:
        """Settle with an error. Returns False if the controller was already settled."""
        if self.settled:
            logger.debug(f"{self.label}: ignoring reject({error!r}) on an already settled outcome")
            return False
        self._error = error
        for waiter in self._waiters:
            if not waiter.done():
                waiter.set_exception(error)
        self._waiters.clear()
        return True

    async def wait(self) -> Any:
        """Wait for the outcome; returns the result or raises the stored error."""
        if self._error is not None:
            raise self._error
        if self._result is not _UNSET:
            return self._result

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            return await waiter
        finally:
            if waiter in self._waiters:
                self._waiters.remove(waiter)

    def __await__(self):
        return self.wait().__await__()

    def __repr__(self):
        if self.failed:
            state = f"failed={self._error!r}"
        elif self.succeeded:
            state = "resolved"
        else:
            state = "pending"
        return f"CompletionController({self.label!r}, {state})"
