"""
BatchScheduler - debounces registrations into batches and drives them through the renderer.

This scheduler keeps registrations in an unbounded buffer and runs them in
cycles:
- Every registration re-arms the debounce window, unless a cycle is running
- A cycle drains the whole buffer, runs it as one execution tree and repeats
  after a safety delay while new items keep arriving
- When the buffer stays empty the owning unit is told it went idle
"""

import asyncio
from typing import TYPE_CHECKING, Callable, List, Optional

from loguru import logger

from dynamictaskqueue.core.logging_config import log_batch
from dynamictaskqueue.exceptions import ExecutionAbortedError
from dynamictaskqueue.hierarchical_task_framework.node.task_node import TaskNode
from dynamictaskqueue.hierarchical_task_framework.orchestration.timers import TimerSlot

if TYPE_CHECKING:
    from dynamictaskqueue.hierarchical_task_framework.orchestration.unit_runtime import UnitRuntime


class BatchScheduler:
    """Pending buffer plus batch cycle of one unit."""

    def __init__(self, runtime: "UnitRuntime", debounce_ms: float):
        self.runtime = runtime
        self.debounce_ms = debounce_ms
        self._buffer: List[TaskNode] = []
        self._debounce = TimerSlot(runtime.timers, "debounce")
        self._cycle_task: Optional[asyncio.Task] = None
        self._batches_run = 0
        self._nodes_enqueued = 0

        logger.debug(f"BatchScheduler for '{runtime.title}' initialized with debounce={debounce_ms}ms")

    @property
    def pending_count(self) -> int:
        return len(self._buffer)

    @property
    def enqueued_count(self) -> int:
        return self._nodes_enqueued

    @property
    def batches_run(self) -> int:
        return self._batches_run

    @property
    def busy(self) -> bool:
        """True while a batch cycle is in flight."""
        return self._cycle_task is not None

    def enqueue(self, node: TaskNode):
        """Buffer a node and (re)arm the debounce window."""
        self._buffer.append(node)
        self._nodes_enqueued += 1
        if self._cycle_task is None:
            self._debounce.arm(self.debounce_ms, self._on_debounce)

    def cancel_debounce(self):
        self._debounce.cancel()

    def reject_buffered(self, make_error: Callable[[], BaseException]) -> int:
        """Reject every buffered node and its subtree; returns how many top-level nodes were rejected."""
        nodes, self._buffer = self._buffer, []
        for node in nodes:
            node.mark_executed()
            node.completion.reject(make_error())
            node.reject_unstarted(make_error())
        if nodes:
            logger.warning(f"[{self.runtime.title}] Rejected {len(nodes)} pending item(s)")
        return len(nodes)

    async def flush(self):
        """
        Run everything buffered now, awaiting a cycle already in flight.

        Failures are handled by the cycle itself; check the unit's state afterwards.
        """
        self._debounce.cancel()
        if self._cycle_task is None and self._buffer and not self.runtime.is_terminal:
            self._start_cycle()
        if self._cycle_task is not None:
            await asyncio.shield(self._cycle_task)

    def _on_debounce(self):
        if self._cycle_task is not None or not self._buffer or self.runtime.is_terminal:
            return
        self._start_cycle()

    def _start_cycle(self):
        self._cycle_task = asyncio.ensure_future(self._run_cycles())

    async def _run_cycles(self):
        try:
            while self._buffer and not self.runtime.is_terminal:
                await self.run_batch()
                # Safety delay lets further registrations join the next batch
                if self._buffer and not self.runtime.shutting_down and not self.runtime.is_terminal:
                    await asyncio.sleep(self.debounce_ms / 1000.0)
        except Exception as e:
            self._cycle_task = None
            self.runtime.fail(e)
            return

        self._cycle_task = None
        self.runtime.on_scheduler_idle()

    async def run_batch(self):
        """
        Drain the buffer and run it as one execution tree.

        Raises:
            Exception: The first failure when the unit stops on error
        """
        if not self._buffer:
            return

        self.runtime.lifecycle.mark_processing()
        await self.runtime.run_body_before_children()

        nodes, self._buffer = self._buffer, []
        if not nodes:
            return
        self._batches_run += 1
        log_batch(self.runtime.title, len(nodes), self._batches_run)

        tree = self.runtime.builder.build_tree(
            nodes,
            policy=self.runtime.options,
            inherited=self.runtime.default_subtask_options,
            on_settle=self.runtime.on_item_settled,
            title=self.runtime.title,
        )
        try:
            await self.runtime.renderer.run(tree, self.runtime.ctx)
        except ExecutionAbortedError as e:
            raise e.error
