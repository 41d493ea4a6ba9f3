from typing import TYPE_CHECKING, Any, Dict, List, Optional

from loguru import logger

from dynamictaskqueue.exceptions import ExecutionAbortedError
from dynamictaskqueue.hierarchical_task_framework.renderer.base import ExecutionTree, RenderReport, RenderTask

if TYPE_CHECKING:
    from dynamictaskqueue.hierarchical_task_framework.renderer.async_renderer import AsyncTreeRenderer


class LiveHandle:
    """
    Handle passed to a running body.

    ``title`` and ``output`` can be changed while the body runs; changes are
    reported through loguru. ``run_subtree`` executes nested work with the same
    renderer and context.
    """

    def __init__(self, title: str, renderer: "AsyncTreeRenderer", ctx: Dict[str, Any], depth: int = 0):
        self._title = title
        self._output: Optional[str] = None
        self.renderer = renderer
        self.ctx = ctx
        self.depth = depth

    @property
    def title(self) -> str:
        return self._title

    @title.setter
    def title(self, value: str):
        if value != self._title:
            logger.info(f"{self._indent}{self._title} -> {value}")
            self._title = value

    @property
    def output(self) -> Optional[str]:
        return self._output

    @output.setter
    def output(self, value: Any):
        self._output = None if value is None else str(value)
        if self._output:
            logger.info(f"{self._indent}  > {self._output}")

    @property
    def _indent(self) -> str:
        return "  " * self.depth

    def new_tree(self, items: List[RenderTask], concurrent: bool = False, exit_on_error: bool = True) -> ExecutionTree:
        return ExecutionTree(items=list(items), concurrent=concurrent, exit_on_error=exit_on_error, title=self._title)

    async def run_subtree(self, tree: ExecutionTree) -> RenderReport:
        """
        Run nested work under this item.

        Raises:
            Exception: The first failure of the subtree when it stops on error
        """
        try:
            return await self.renderer.run(tree, self.ctx, depth=self.depth + 1)
        except ExecutionAbortedError as e:
            raise e.error

    def __repr__(self):
        return f"LiveHandle(title={self._title!r}, depth={self.depth})"
