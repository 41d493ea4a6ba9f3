"""
Renderer contract.

The scheduler compiles work into an ``ExecutionTree`` of ``RenderTask`` items and
hands it to a ``Renderer``. The renderer owns skip/retry/rollback handling and
reports every item back through ``RenderTask.on_settle``.
"""

import inspect
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Protocol, Union, runtime_checkable

from dynamictaskqueue.hierarchical_task_framework.types import OutcomeStatus, SUCCESSFUL_OUTCOMES

if TYPE_CHECKING:
    from dynamictaskqueue.hierarchical_task_framework.node.node_configs import RetryPolicy

Context = Dict[str, Any]


@dataclass
class RenderOutcome:
    """How a single item settled."""
    title: str
    status: OutcomeStatus
    result: Any = None
    error: Optional[BaseException] = None
    attempts: int = 0
    # False when a rollback ran and the item asked not to abort its tree
    aborts_tree: bool = True

    @property
    def succeeded(self) -> bool:
        return self.status in SUCCESSFUL_OUTCOMES


@dataclass
class RenderTask:
    """One renderer item: a title, a body and the directives the renderer applies."""
    title: str
    task: Optional[Callable[..., Any]] = None
    skip: Optional[Union[bool, str, Callable[..., Any]]] = None
    retry: Optional["RetryPolicy"] = None
    rollback: Optional[Callable[..., Any]] = None
    exit_after_rollback: Optional[bool] = None
    enabled: Optional[Union[bool, Callable[..., Any]]] = None
    on_settle: Optional[Callable[[RenderOutcome], None]] = None


@dataclass
class ExecutionTree:
    """An ordered list of items plus the policy they run under."""
    items: List[RenderTask] = field(default_factory=list)
    concurrent: bool = False
    exit_on_error: bool = True
    title: str = "tree"

    def __len__(self):
        return len(self.items)


@dataclass
class RenderReport:
    """Outcomes of one ``Renderer.run`` call, in item order."""
    title: str
    outcomes: List[RenderOutcome] = field(default_factory=list)

    @property
    def completed(self) -> int:
        return sum(1 for o in self.outcomes if o.succeeded)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == OutcomeStatus.FAILED)

    @property
    def aborted(self) -> int:
        return sum(1 for o in self.outcomes if o.status == OutcomeStatus.ABORTED)

    @property
    def errors(self) -> List[BaseException]:
        return [o.error for o in self.outcomes if o.status == OutcomeStatus.FAILED and o.error is not None]

    @property
    def first_error(self) -> Optional[BaseException]:
        errors = self.errors
        return errors[0] if errors else None

    @property
    def succeeded(self) -> bool:
        return all(o.succeeded for o in self.outcomes)


@runtime_checkable
class Renderer(Protocol):
    """Executes an execution tree against a shared context."""

    async def run(self, tree: ExecutionTree, ctx: Context) -> RenderReport:
        ...


def _accepts_handle(func: Callable[..., Any]) -> bool:
    try:
        params = list(inspect.signature(func).parameters.values())
    except (TypeError, ValueError):
        return True
    if any(p.kind == inspect.Parameter.VAR_POSITIONAL for p in params):
        return True
    positional = [p for p in params
                  if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)]
    return len(positional) >= 2


async def invoke_body(func: Optional[Callable[..., Any]], ctx: Context, handle: Any = None) -> Any:
    """
    Call a body as ``func(ctx)`` or ``func(ctx, handle)`` depending on its signature.

    Sync and async callables are both accepted; an awaitable result is awaited.
    """
    if func is None:
        return None
    if _accepts_handle(func):
        result = func(ctx, handle)
    else:
        result = func(ctx)
    if inspect.isawaitable(result):
        result = await result
    return result


async def evaluate_directive(value: Any, ctx: Context) -> Any:
    """Resolve a ``skip``/``enabled`` directive that may be a value or a predicate."""
    if callable(value):
        value = value(ctx)
        if inspect.isawaitable(value):
            value = await value
    return value
