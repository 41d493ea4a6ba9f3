"""
UnitRuntime - the scheduling engine shared by Task and TaskQueue.

A unit owns a shared context, a pending buffer, a lifecycle record, a
completion controller and the idle timers. Subclasses only choose the
lifecycle variant, the config model and a few conveniences.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Union

from loguru import logger

from dynamictaskqueue.config.unit_config import UnitConfig
from dynamictaskqueue.core.logging_config import log_unit
from dynamictaskqueue.error_handler import get_error_handler
from dynamictaskqueue.exceptions import (
    ExecutionAbortedError, ForcedShutdownError, UnitFailedError, create_error_context
)
from dynamictaskqueue.hierarchical_task_framework.node.node_configs import SubtaskOptions, TaskNodeConfig
from dynamictaskqueue.hierarchical_task_framework.node.task_node import NodeDefinition, TaskNode
from dynamictaskqueue.hierarchical_task_framework.node.tree_builder import TreeBuilder
from dynamictaskqueue.hierarchical_task_framework.orchestration.batch_scheduler import BatchScheduler
from dynamictaskqueue.hierarchical_task_framework.orchestration.completion import CompletionController
from dynamictaskqueue.hierarchical_task_framework.orchestration.idle_timers import IdleTimers
from dynamictaskqueue.hierarchical_task_framework.orchestration.lifecycle import LifecycleRecord, UnitState, UnitStats
from dynamictaskqueue.hierarchical_task_framework.orchestration.observers import ObserverRegistry
from dynamictaskqueue.hierarchical_task_framework.orchestration.timers import TimerService
from dynamictaskqueue.hierarchical_task_framework.renderer import AsyncTreeRenderer, ExecutionTree, RenderOutcome, Renderer
from dynamictaskqueue.hierarchical_task_framework.types import ExecutionMode, OutcomeStatus

AddResult = Union[TaskNode, List[TaskNode], None]


class UnitRuntime:
    """Base class of the public Task and TaskQueue units."""

    kind = "Unit"

    def __init__(self, config: UnitConfig, lifecycle: LifecycleRecord):
        self.config = config.with_engine_defaults()
        self.title = self.config.title
        self.mode: ExecutionMode = self.config.mode
        self.options: SubtaskOptions = self.config.options
        self.default_subtask_options: SubtaskOptions = self.config.default_subtask_options
        self.ctx: Dict[str, Any] = {}

        self.renderer: Renderer = self.config.renderer or AsyncTreeRenderer(name=f"{self.title} renderer")
        self.lifecycle = lifecycle
        self.completion = CompletionController(label=f"{self.kind.lower()} '{self.title}'")
        self.subtask_observers = ObserverRegistry(name=f"{self.title} subtask observers")
        self.timers = TimerService(name=self.title)
        self.builder = TreeBuilder()
        self.scheduler = BatchScheduler(self, self.config.batch_debounce_ms)
        self.idle = IdleTimers(self,
                               auto_execute_ms=self.config.auto_execute,
                               auto_complete_ms=self.config.auto_complete)
        self.error_handler = get_error_handler()

        self._shutdown = False
        # ONLY units never run their own body
        self._body_executed = self.config.task is None or self.mode == ExecutionMode.ONLY
        self.body_outcome: Optional[RenderOutcome] = None
        self._body_task: Optional[asyncio.Task] = None

        logger.debug(f"{self.kind} '{self.title}' created (mode={self.mode}, "
                     f"concurrent={self.options.concurrent}, exit_on_error={self.options.exit_on_error})")

    # Registration

    def add(self, config_or_list: Union[NodeDefinition, List[NodeDefinition]]) -> AddResult:
        """
        Register child work.

        Returns:
            The new node, a list of nodes for list input, or None when the unit
            is shutting down or finished, or when the list is empty.

        Raises:
            TaskConstructionError: If a definition is invalid
        """
        if self._shutdown:
            logger.warning(f"{self.kind} '{self.title}': cannot add - {self.kind.lower()} is shutting down")
            return None
        if self.lifecycle.is_terminal:
            logger.warning(f"{self.kind} '{self.title}': cannot add - {self.kind.lower()} already finished")
            return None

        is_list = isinstance(config_or_list, (list, tuple))
        configs = list(config_or_list) if is_list else [config_or_list]
        if not configs:
            return None

        validated = [TaskNodeConfig.coerce(c) for c in configs]
        nodes = [TaskNode(c, default_mode=self.config.child_mode) for c in validated]
        for node in nodes:
            self.scheduler.enqueue(node)
            self.subtask_observers.notify(node)
        self.idle.on_registration()

        return nodes if is_list else nodes[0]

    # Completion protocol

    async def complete(self) -> Any:
        """
        Stop accepting work, run whatever is left and finish.

        Raises:
            Exception: The failure that moved the unit to its failed state
        """
        if self._shutdown or self.lifecycle.is_terminal:
            return await self.completion.wait()

        self._shutdown = True
        self._cancel_timers()
        self.lifecycle.mark_completing()
        log_unit(self.title, "completing")

        try:
            await self.scheduler.flush()
            if not self.lifecycle.is_terminal:
                await self._run_body()
        except Exception as e:
            self.fail(e)

        if not self.lifecycle.is_terminal:
            self.lifecycle.mark_completed("complete() finished")
            self.completion.resolve(None)
            logger.success(f"{self.kind} '{self.title}' completed ({self._stats_line()})")
        return await self.completion.wait()

    def force_shutdown(self, reason: Optional[str] = None):
        """Reject pending work and the unit itself. No-op once the unit finished."""
        if self.lifecycle.is_terminal:
            return
        reason = reason or f"{self.kind} force shutdown"

        self._shutdown = True
        self._cancel_timers()
        self.scheduler.reject_buffered(lambda: ForcedShutdownError(reason, self.title))
        self.lifecycle.mark_failed(reason)
        self.completion.reject(ForcedShutdownError(reason, self.title))
        logger.warning(f"{self.kind} '{self.title}' force shutdown: {reason}")

    def fail(self, error: BaseException):
        """Error path: FAILED state, rejected completion, rejected buffer."""
        if self.lifecycle.is_terminal:
            logger.debug(f"{self.kind} '{self.title}' already finished, ignoring failure: {error!r}")
            return
        self._shutdown = True
        self._cancel_timers()
        self.lifecycle.mark_failed(str(error))
        self.completion.reject(error)
        self.scheduler.reject_buffered(lambda: UnitFailedError(self.title, error))
        logger.error(f"{self.kind} '{self.title}' failed: {error}")

    def complete_when_idle(self):
        """Called by the auto-complete timer once the unit stayed quiescent."""
        if self._shutdown or self.lifecycle.is_terminal:
            return
        self._shutdown = True
        self._cancel_timers()
        self.lifecycle.mark_completed("idle")
        self.completion.resolve(None)
        logger.success(f"{self.kind} '{self.title}' auto-completed ({self._stats_line()})")

    async def wait(self) -> Any:
        """Wait for the unit's outcome without driving it."""
        return await self.completion.wait()

    # Hooks used by the scheduler and the idle timers

    @property
    def shutting_down(self) -> bool:
        return self._shutdown

    @property
    def is_terminal(self) -> bool:
        return self.lifecycle.is_terminal

    @property
    def runs_body_after_children(self) -> bool:
        return self.mode in (ExecutionMode.AFTER, ExecutionMode.WRAP)

    @property
    def wants_auto_execute(self) -> bool:
        return self.runs_body_after_children and not self._body_executed

    @property
    def body_executed(self) -> bool:
        return self._body_executed

    @property
    def is_quiescent(self) -> bool:
        if self.scheduler.pending_count or self.scheduler.busy:
            return False
        if self._body_task is not None and not self._body_task.done():
            return False
        return not (self.runs_body_after_children and not self._body_executed)

    def on_scheduler_idle(self):
        if self._shutdown or self.lifecycle.is_terminal:
            return
        self.lifecycle.mark_idle()
        self.idle.arm_auto_complete()

    def on_item_settled(self, node: TaskNode, outcome: RenderOutcome):
        if outcome.succeeded:
            self.lifecycle.record_success()
            return
        self.lifecycle.record_failure()
        if outcome.status == OutcomeStatus.FAILED and outcome.error is not None:
            self.error_handler.handle_error(
                outcome.error,
                component=f"{self.kind.lower()}:{self.title}",
                title=node.title,
                context=create_error_context(unit=self.title, status=str(outcome.status), attempts=outcome.attempts),
                reraise=False,
            )

    async def run_body_before_children(self):
        if self.mode == ExecutionMode.BEFORE:
            await self._run_body()

    async def run_auto_execute(self):
        """Auto-execute expiry: run buffered children, then the body once."""
        if self._shutdown or not self.wants_auto_execute:
            return
        log_unit(self.title, "auto-executing")
        try:
            await self.scheduler.flush()
            if self._shutdown or self.lifecycle.is_terminal:
                return
            await self._run_body()
        except Exception as e:
            self.fail(e)
            return
        if self._shutdown or self.scheduler.busy or self.scheduler.pending_count:
            return
        self.lifecycle.mark_idle()
        self.idle.arm_auto_complete()

    async def _run_body(self):
        """
        Run the unit's own body once, or wait for the run already in flight.

        Raises:
            Exception: The body's failure when the unit stops on error
        """
        if self._body_task is None:
            if self._body_executed:
                return
            self._body_executed = True
            self._body_task = asyncio.ensure_future(self._render_body())
        await asyncio.shield(self._body_task)

    async def _render_body(self):
        self.lifecycle.mark_processing()
        item = self.builder.build_body_item(
            self.title,
            self.config.task,
            on_settle=self._on_body_settled,
            skip=self.config.skip,
            retry=self.config.retry,
            rollback=self.config.rollback,
        )
        tree = ExecutionTree(items=[item], concurrent=False,
                             exit_on_error=self.options.exit_on_error, title=self.title)
        try:
            await self.renderer.run(tree, self.ctx)
        except ExecutionAbortedError as e:
            raise e.error

    def _on_body_settled(self, outcome: RenderOutcome):
        self.body_outcome = outcome
        if outcome.status == OutcomeStatus.FAILED and outcome.error is not None:
            self.error_handler.handle_error(
                outcome.error,
                component=f"{self.kind.lower()}:{self.title}",
                title=self.title,
                reraise=False,
            )

    def _cancel_timers(self):
        self.idle.cancel_all()
        self.scheduler.cancel_debounce()

    def _stats_line(self) -> str:
        stats = self.stats
        return f"processed={stats.processed}, failed={stats.failed}"

    # Observation

    @property
    def state(self) -> UnitState:
        return self.lifecycle.state

    def subscribe_state(self, callback: Callable[[UnitState], None]) -> Callable[[], bool]:
        """Observe state changes; ``callback`` is called at once with the current state."""
        return self.lifecycle.subscribe(callback)

    def subscribe_subtasks(self, callback: Callable[[TaskNode], None]) -> Callable[[], bool]:
        """Observe every node registered through ``add``."""
        token = self.subtask_observers.subscribe(callback)
        return lambda: self.subtask_observers.unsubscribe(token)

    @property
    def pending_count(self) -> int:
        return self.scheduler.pending_count

    @property
    def stats(self) -> UnitStats:
        return self.lifecycle.stats(pending=self.scheduler.pending_count)

    @property
    def is_completed(self) -> bool:
        return self.lifecycle.state == self.lifecycle.completed_state

    @property
    def is_failed(self) -> bool:
        return self.lifecycle.state == self.lifecycle.failed_state

    @property
    def is_processing(self) -> bool:
        return self.lifecycle.state == self.lifecycle.processing_state

    def __await__(self):
        return self.completion.wait().__await__()

    def __repr__(self):
        return (f"{self.__class__.__name__}(title='{self.title[:30]}', state={self.state}, "
                f"pending={self.pending_count}, processed={self.lifecycle.processed}, "
                f"failed={self.lifecycle.failed})")
