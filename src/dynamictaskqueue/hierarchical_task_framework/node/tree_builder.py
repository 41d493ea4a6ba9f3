"""
TreeBuilder - compiles task nodes into renderer execution trees.

Each ExecutionMode has its own composition function that decides how a
node's body and its children are combined into one renderer item.
"""

from typing import Any, Callable, Dict, List, Optional

from dynamictaskqueue.core.logging_config import log_node
from dynamictaskqueue.exceptions import ExecutionAbortedError
from dynamictaskqueue.hierarchical_task_framework.node.node_configs import SubtaskOptions
from dynamictaskqueue.hierarchical_task_framework.node.task_node import TaskNode
from dynamictaskqueue.hierarchical_task_framework.renderer.base import (
    ExecutionTree, RenderOutcome, RenderTask, invoke_body
)
from dynamictaskqueue.hierarchical_task_framework.types import ExecutionMode, OutcomeStatus, SUCCESSFUL_OUTCOMES

SettleHook = Callable[[TaskNode, RenderOutcome], None]
Body = Callable[..., Any]


def settle_node(node: TaskNode, outcome: RenderOutcome) -> None:
    """
    Settle a node's own completion from the renderer outcome.

    Children that never got compiled share the fate of their parent: skipped
    along with a skipped or disabled parent, rejected with
    ExecutionAbortedError when it failed or was aborted.
    """
    if outcome.status in SUCCESSFUL_OUTCOMES:
        node.completion.resolve(outcome.result)
        if outcome.status != OutcomeStatus.COMPLETED:
            node.skip_unstarted()
        return
    node.completion.reject(outcome.error)
    node.reject_unstarted(ExecutionAbortedError(node.title, outcome.error))


class TreeBuilder:
    """Turns TaskNodes into RenderTasks and ExecutionTrees."""

    def __init__(self):
        self._compositions: Dict[ExecutionMode, Callable[[TaskNode, SubtaskOptions], Body]] = {
            ExecutionMode.BEFORE: self._compose_before,
            ExecutionMode.AFTER: self._compose_after,
            ExecutionMode.WRAP: self._compose_after,
            ExecutionMode.ONLY: self._compose_only,
        }

    def build_tree(self,
                   nodes: List[TaskNode],
                   policy: SubtaskOptions,
                   inherited: SubtaskOptions,
                   on_settle: Optional[SettleHook] = None,
                   title: str = "batch") -> ExecutionTree:
        """
        Compile ``nodes`` into one tree run under ``policy``.

        Args:
            nodes: Items in registration order
            policy: Concurrency policy of the tree itself
            inherited: Options the children of each node start from
            on_settle: Called for each top-level node after its completion settled
            title: Label used in logs and errors
        """
        resolved = policy.resolved()
        return ExecutionTree(
            items=[self.build_item(node, inherited, on_settle) for node in nodes],
            concurrent=resolved.concurrent,
            exit_on_error=resolved.exit_on_error,
            title=title,
        )

    def build_item(self,
                   node: TaskNode,
                   inherited: SubtaskOptions,
                   on_settle: Optional[SettleHook] = None) -> RenderTask:
        """Compile a single node; flips its ``executed`` flag."""
        node.mark_executed()
        children_policy = inherited.merged_with(node.options)
        body = self._compositions[node.mode](node, children_policy)

        def settle(outcome: RenderOutcome):
            settle_node(node, outcome)
            if on_settle is not None:
                on_settle(node, outcome)

        config = node.config
        return RenderTask(
            title=node.title,
            task=body,
            skip=config.skip,
            retry=config.retry,
            rollback=config.rollback,
            exit_after_rollback=config.exit_after_rollback,
            enabled=config.enabled,
            on_settle=settle,
        )

    def build_body_item(self,
                        title: str,
                        body: Optional[Body],
                        on_settle: Optional[Callable[[RenderOutcome], None]] = None,
                        **directives) -> RenderTask:
        """Wrap a unit's own body as a renderer item."""
        return RenderTask(title=title, task=body, on_settle=on_settle, **directives)

    def _children_tree(self, node: TaskNode, children_policy: SubtaskOptions) -> ExecutionTree:
        return self.build_tree(node.children, children_policy, children_policy, title=node.title)

    # Compositions, one per mode

    def _compose_before(self, node: TaskNode, children_policy: SubtaskOptions) -> Body:
        async def run_before(ctx, handle):
            result = await invoke_body(node.body, ctx, handle)
            if node.child_count:
                log_node(node.title, f"body done, running {node.child_count} child(ren)")
                await handle.run_subtree(self._children_tree(node, children_policy))
            return result
        return run_before

    def _compose_after(self, node: TaskNode, children_policy: SubtaskOptions) -> Body:
        async def run_after(ctx, handle):
            result = await invoke_body(node.body, ctx, handle)
            if isinstance(result, ExecutionTree):
                log_node(node.title, f"body returned a tree of {len(result)} item(s)")
                # The returned tree replaces the static children
                node.skip_unstarted()
                return await handle.run_subtree(result)
            if node.child_count:
                await handle.run_subtree(self._children_tree(node, children_policy))
            return result
        return run_after

    def _compose_only(self, node: TaskNode, children_policy: SubtaskOptions) -> Body:
        async def run_only(ctx, handle):
            if node.child_count:
                await handle.run_subtree(self._children_tree(node, children_policy))
                return None
            return await invoke_body(node.body, ctx, handle)
        return run_only
