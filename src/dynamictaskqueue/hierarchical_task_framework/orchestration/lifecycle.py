"""
LifecycleRecord - per-unit state machine, counters and state observers.

Responsibilities:
- Define and enforce the allowed state transitions of both unit variants
- Keep the processed/failed counters
- Notify state subscribers on every change
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set, Union

from loguru import logger

from dynamictaskqueue.exceptions import InvalidStateTransitionError
from dynamictaskqueue.hierarchical_task_framework.orchestration.observers import ObserverRegistry
from dynamictaskqueue.hierarchical_task_framework.types import QueueState, TaskState, is_terminal_state

UnitState = Union[TaskState, QueueState]


@dataclass(frozen=True)
class UnitStats:
    """Snapshot of a unit's counters."""
    processed: int = 0
    failed: int = 0
    pending: int = 0


def _task_transitions() -> Dict[TaskState, Set[TaskState]]:
    return {
        TaskState.PENDING: {
            TaskState.PROCESSING,  # Batch or final drain started
            TaskState.COMPLETED,   # Idle completion
            TaskState.FAILED,      # Forced shutdown
        },
        TaskState.PROCESSING: {
            TaskState.PENDING,     # Buffer drained
            TaskState.COMPLETED,   # Final drain finished
            TaskState.FAILED,      # Failure with exit_on_error
        },
        TaskState.COMPLETED: set(),  # Terminal
        TaskState.FAILED: set(),     # Terminal
    }


def _queue_transitions() -> Dict[QueueState, Set[QueueState]]:
    return {
        QueueState.IDLE: {
            QueueState.PROCESSING,
            QueueState.COMPLETING,
            QueueState.COMPLETED,
            QueueState.FAILED,
        },
        QueueState.PROCESSING: {
            QueueState.IDLE,
            QueueState.COMPLETING,
            QueueState.COMPLETED,
            QueueState.FAILED,
        },
        QueueState.COMPLETING: {
            QueueState.COMPLETED,
            QueueState.FAILED,
        },
        QueueState.COMPLETED: set(),
        QueueState.FAILED: set(),
    }


class LifecycleRecord:
    """
    Lifecycle of one unit.

    The record speaks in roles (idle, processing, completing, completed,
    failed) so the scheduler does not care which variant it drives. Tasks have
    no COMPLETING state; their final drain is reported as PROCESSING.
    """

    _max_history = 200

    def __init__(self,
                 title: str,
                 transitions: Dict[UnitState, Set[UnitState]],
                 idle_state: UnitState,
                 processing_state: UnitState,
                 completing_state: UnitState,
                 completed_state: UnitState,
                 failed_state: UnitState):
        self.title = title
        self._valid_transitions = transitions
        self.idle_state = idle_state
        self.processing_state = processing_state
        self.completing_state = completing_state
        self.completed_state = completed_state
        self.failed_state = failed_state

        self._state: UnitState = idle_state
        self.processed = 0
        self.failed = 0
        self.observers = ObserverRegistry(name=f"{title} state observers")
        self._transition_history: List[Dict] = []

    @classmethod
    def for_task(cls, title: str) -> "LifecycleRecord":
        return cls(title, _task_transitions(),
                   idle_state=TaskState.PENDING,
                   processing_state=TaskState.PROCESSING,
                   completing_state=TaskState.PROCESSING,
                   completed_state=TaskState.COMPLETED,
                   failed_state=TaskState.FAILED)

    @classmethod
    def for_queue(cls, title: str) -> "LifecycleRecord":
        return cls(title, _queue_transitions(),
                   idle_state=QueueState.IDLE,
                   processing_state=QueueState.PROCESSING,
                   completing_state=QueueState.COMPLETING,
                   completed_state=QueueState.COMPLETED,
                   failed_state=QueueState.FAILED)

    @property
    def state(self) -> UnitState:
        return self._state

    @property
    def is_terminal(self) -> bool:
        return is_terminal_state(self._state)

    def can_transition(self, to_state: UnitState) -> bool:
        return to_state in self._valid_transitions.get(self._state, set())

    def transition(self, to_state: UnitState, reason: Optional[str] = None) -> bool:
        """
        Move to ``to_state`` and notify subscribers.

        Returns:
            False if the unit already is in ``to_state``

        Raises:
            InvalidStateTransitionError: If the transition is not allowed
        """
        from_state = self._state
        if from_state == to_state:
            return False
        if not self.can_transition(to_state):
            raise InvalidStateTransitionError(self.title, from_state, to_state)

        self._state = to_state
        self._record_transition(from_state, to_state, reason)
        logger.debug(
            f"[{self.title}] {from_state} -> {to_state}"
            f"{f' ({reason})' if reason else ''}"
        )
        self.observers.notify(to_state)
        return True

    # Role based helpers used by the scheduler

    def mark_processing(self) -> bool:
        # A completing queue stays COMPLETING while its final drain runs
        if self._state == self.completing_state or self.is_terminal:
            return False
        return self.transition(self.processing_state, "batch started")

    def mark_idle(self) -> bool:
        if self._state != self.processing_state or self.is_terminal:
            return False
        return self.transition(self.idle_state, "buffer drained")

    def mark_completing(self) -> bool:
        if self.is_terminal:
            return False
        return self.transition(self.completing_state, "completion requested")

    def mark_completed(self, reason: Optional[str] = None) -> bool:
        if self.is_terminal:
            return False
        return self.transition(self.completed_state, reason or "completed")

    def mark_failed(self, reason: Optional[str] = None) -> bool:
        if self.is_terminal:
            return False
        return self.transition(self.failed_state, reason or "failed")

    # Counters

    def record_success(self):
        self.processed += 1

    def record_failure(self):
        self.failed += 1

    def stats(self, pending: int = 0) -> UnitStats:
        return UnitStats(processed=self.processed, failed=self.failed, pending=pending)

    # Subscriptions

    def subscribe(self, callback: Callable[[UnitState], None]) -> Callable[[], bool]:
        """
        Subscribe to state changes; ``callback`` immediately receives the current state.

        Returns:
            A function that removes the subscription
        """
        token = self.observers.subscribe(callback)
        self.observers.notify_one(token, self._state)
        return lambda: self.observers.unsubscribe(token)

    def _record_transition(self, from_state: UnitState, to_state: UnitState, reason: Optional[str]):
        self._transition_history.append({
            "timestamp": datetime.now().isoformat(),
            "from_state": str(from_state),
            "to_state": str(to_state),
            "reason": reason,
        })
        if len(self._transition_history) > self._max_history:
            self._transition_history = self._transition_history[-self._max_history:]

    def get_transition_history(self) -> List[Dict]:
        return list(self._transition_history)

    def __repr__(self):
        return f"LifecycleRecord({self.title!r}, state={self._state}, processed={self.processed}, failed={self.failed})"
