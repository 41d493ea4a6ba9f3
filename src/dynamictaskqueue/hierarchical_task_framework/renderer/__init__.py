from .base import (
    Context,
    ExecutionTree,
    RenderOutcome,
    RenderReport,
    RenderTask,
    Renderer,
    evaluate_directive,
    invoke_body,
)
from .live_handle import LiveHandle
from .async_renderer import AsyncTreeRenderer

__all__ = [
    "Context",
    "ExecutionTree",
    "RenderOutcome",
    "RenderReport",
    "RenderTask",
    "Renderer",
    "LiveHandle",
    "AsyncTreeRenderer",
    "evaluate_directive",
    "invoke_body",
]
