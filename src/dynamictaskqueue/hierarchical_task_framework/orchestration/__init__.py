"""
Orchestration primitives shared by Task and TaskQueue.

``UnitRuntime``, ``BatchScheduler`` and ``IdleTimers`` are imported from their
modules directly; they depend on the config package.
"""

from .completion import CompletionController
from .lifecycle import LifecycleRecord, UnitStats
from .observers import ObserverRegistry
from .timers import TimerService, TimerSlot

__all__ = [
    "CompletionController",
    "LifecycleRecord",
    "UnitStats",
    "ObserverRegistry",
    "TimerService",
    "TimerSlot",
]
