"""
AsyncTreeRenderer - the default renderer.

Runs execution trees on the current event loop and reports progress through
loguru. Sequential trees keep item order; concurrent trees are gathered, or
return at the first failure when the tree stops on error.
"""

import asyncio
from typing import Any, Dict, List, Set

from loguru import logger

from dynamictaskqueue.exceptions import ExecutionAbortedError
from dynamictaskqueue.hierarchical_task_framework.renderer.base import (
    ExecutionTree, RenderOutcome, RenderReport, RenderTask, evaluate_directive, invoke_body
)
from dynamictaskqueue.hierarchical_task_framework.renderer.live_handle import LiveHandle
from dynamictaskqueue.hierarchical_task_framework.types import OutcomeStatus


class AsyncTreeRenderer:
    """Renderer that applies skip, enabled, retry and rollback directives."""

    def __init__(self, name: str = "renderer"):
        self.name = name
        self._detached: Set[asyncio.Task] = set()

    async def run(self, tree: ExecutionTree, ctx: Dict[str, Any], depth: int = 0) -> RenderReport:
        """
        Run every item of ``tree``.

        Returns:
            RenderReport with one outcome per item; a concurrent tree that
            failed early only reports the items that had finished

        Raises:
            ExecutionAbortedError: If the tree stops on error and an item failed
        """
        report = RenderReport(title=tree.title)
        if not tree.items:
            return report

        if tree.concurrent:
            await self._run_concurrent(tree, ctx, depth, report)
        else:
            await self._run_sequential(tree, ctx, depth, report)

        if tree.exit_on_error:
            aborting = [o for o in report.outcomes if self._aborts(o)]
            if aborting:
                raise ExecutionAbortedError(tree.title, aborting[0].error, report)
        return report

    async def _run_concurrent(self, tree: ExecutionTree, ctx: Dict[str, Any], depth: int, report: RenderReport):
        tasks = [asyncio.ensure_future(self._run_item(item, ctx, depth)) for item in tree.items]
        if not tree.exit_on_error:
            report.outcomes.extend(await asyncio.gather(*tasks))
            return

        # Stop waiting at the first aborting failure; siblings keep running and settle later
        pending = set(tasks)
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            if any(self._aborts(task.result()) for task in done):
                break

        report.outcomes.extend(task.result() for task in tasks if task.done())
        if pending:
            logger.warning(f"{'  ' * depth}{tree.title}: failing early, {len(pending)} running item(s) left to finish")
            for task in pending:
                self._detached.add(task)
                task.add_done_callback(self._detached.discard)

    @staticmethod
    def _aborts(outcome: RenderOutcome) -> bool:
        return outcome.status == OutcomeStatus.FAILED and outcome.aborts_tree

    async def _run_sequential(self, tree: ExecutionTree, ctx: Dict[str, Any], depth: int, report: RenderReport):
        failure = None
        for item in tree.items:
            if failure is not None:
                outcome = RenderOutcome(
                    title=item.title,
                    status=OutcomeStatus.ABORTED,
                    error=ExecutionAbortedError(item.title, failure.error),
                )
                self._settle(item, outcome)
                report.outcomes.append(outcome)
                continue

            outcome = await self._run_item(item, ctx, depth)
            report.outcomes.append(outcome)
            if tree.exit_on_error and self._aborts(outcome):
                failure = outcome

    async def _run_item(self, item: RenderTask, ctx: Dict[str, Any], depth: int) -> RenderOutcome:
        indent = "  " * depth
        outcome = await self._execute(item, ctx, depth)

        if outcome.status == OutcomeStatus.COMPLETED:
            logger.success(f"{indent}✔ {item.title}")
        elif outcome.status == OutcomeStatus.FAILED:
            logger.error(f"{indent}✖ {item.title}: {outcome.error}")
        else:
            logger.info(f"{indent}↓ {item.title} [{outcome.status}]")

        self._settle(item, outcome)
        return outcome

    async def _execute(self, item: RenderTask, ctx: Dict[str, Any], depth: int) -> RenderOutcome:
        try:
            if item.enabled is not None and not await evaluate_directive(item.enabled, ctx):
                return RenderOutcome(title=item.title, status=OutcomeStatus.DISABLED)

            skip = await evaluate_directive(item.skip, ctx) if item.skip is not None else None
            if skip:
                if isinstance(skip, str):
                    logger.info(f"{'  ' * depth}{item.title}: {skip}")
                return RenderOutcome(title=item.title, status=OutcomeStatus.SKIPPED)
        except Exception as e:
            return RenderOutcome(title=item.title, status=OutcomeStatus.FAILED, error=e)

        max_attempts = 1 + (item.retry.tries if item.retry else 0)
        delay = (item.retry.delay_ms if item.retry else 0) / 1000.0
        handle = LiveHandle(item.title, self, ctx, depth)
        if depth == 0 or item.task is not None:
            logger.info(f"{'  ' * depth}❯ {item.title}")

        error = None
        attempts = 0
        while attempts < max_attempts:
            attempts += 1
            try:
                result = await invoke_body(item.task, ctx, handle)
                if isinstance(result, ExecutionTree):
                    result = await handle.run_subtree(result)
                return RenderOutcome(title=item.title, status=OutcomeStatus.COMPLETED,
                                     result=result, attempts=attempts)
            except Exception as e:
                error = e
                if attempts < max_attempts:
                    logger.warning(f"{'  ' * depth}{item.title}: attempt {attempts}/{max_attempts} failed ({e}), retrying")
                    if delay:
                        await asyncio.sleep(delay)

        aborts_tree = True
        if item.rollback is not None:
            try:
                logger.warning(f"{'  ' * depth}{item.title}: rolling back")
                await invoke_body(item.rollback, ctx, handle)
                aborts_tree = item.exit_after_rollback is not False
            except Exception as rollback_error:
                logger.error(f"{'  ' * depth}{item.title}: rollback failed: {rollback_error}")
                error = rollback_error

        return RenderOutcome(title=item.title, status=OutcomeStatus.FAILED, error=error,
                             attempts=attempts, aborts_tree=aborts_tree)

    def _settle(self, item: RenderTask, outcome: RenderOutcome):
        if item.on_settle is None:
            return
        try:
            item.on_settle(outcome)
        except Exception:
            logger.exception(f"{self.name}: settle callback of '{item.title}' raised")

    def __repr__(self):
        return f"AsyncTreeRenderer({self.name!r})"
