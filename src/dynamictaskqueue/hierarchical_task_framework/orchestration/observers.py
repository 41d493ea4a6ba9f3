"""
ObserverRegistry - token based listener registry.

Listeners are called in registration order. A listener that raises is logged
and does not stop delivery to the others.
"""

import itertools
from typing import Any, Callable, Dict, Optional

from loguru import logger


class ObserverRegistry:
    """Registry of callbacks for one kind of event."""

    def __init__(self, name: str = "observers"):
        self.name = name
        self._listeners: Dict[int, Callable[[Any], Any]] = {}
        self._ids = itertools.count(1)

    def subscribe(self, callback: Callable[[Any], Any]) -> int:
        if not callable(callback):
            raise TypeError(f"{self.name}: listener must be callable, got {type(callback).__name__}")
        token = next(self._ids)
        self._listeners[token] = callback
        return token

    def unsubscribe(self, token: Optional[int]) -> bool:
        if token is None:
            return False
        return self._listeners.pop(token, None) is not None

    def notify(self, event: Any) -> int:
        """Deliver ``event`` to every listener. Returns how many listeners failed."""
        failures = 0
        # Snapshot: listeners may unsubscribe while being notified
        for token, callback in list(self._listeners.items()):
            try:
                callback(event)
            except Exception:
                failures += 1
                logger.exception(f"{self.name}: listener #{token} raised while handling {event!r}")
        return failures

    def notify_one(self, token: int, event: Any) -> bool:
        """Deliver ``event`` to a single listener, with the same isolation as ``notify``."""
        callback = self._listeners.get(token)
        if callback is None:
            return False
        try:
            callback(event)
        except Exception:
            logger.exception(f"{self.name}: listener #{token} raised while handling {event!r}")
            return False
        return True

    def clear(self):
        self._listeners.clear()

    def __len__(self):
        return len(self._listeners)
