"""
Shared pytest fixtures for dynamictaskqueue tests.
"""

import asyncio
from typing import Any, Dict, List

import pytest
import pytest_asyncio

from dynamictaskqueue.error_handler import ErrorHandler, get_error_handler, set_error_handler
from dynamictaskqueue.hierarchical_task_framework.renderer import AsyncTreeRenderer, ExecutionTree
from dynamictaskqueue.registry import get_registry


# ============================================================================
# ISOLATION
# ============================================================================

@pytest.fixture(autouse=True)
def error_handler():
    """Give every test its own error statistics."""
    previous = get_error_handler()
    handler = ErrorHandler(enable_detailed_logging=False)
    set_error_handler(handler)
    yield handler
    set_error_handler(previous)


@pytest_asyncio.fixture
async def shared_registry():
    """The process-wide registry, reset after the test."""
    registry = get_registry()
    yield registry
    await registry.reset()


# ============================================================================
# RENDERER HELPERS
# ============================================================================

class RecordingRenderer(AsyncTreeRenderer):
    """AsyncTreeRenderer that remembers every tree it was asked to run."""

    def __init__(self):
        super().__init__(name="recording")
        self.trees: List[ExecutionTree] = []

    async def run(self, tree: ExecutionTree, ctx: Dict[str, Any], depth: int = 0):
        self.trees.append(tree)
        return await super().run(tree, ctx, depth)

    def tree(self, title: str) -> ExecutionTree:
        return next(t for t in self.trees if t.title == title)


@pytest.fixture
def recording_renderer():
    return RecordingRenderer()


@pytest.fixture
def order():
    """Execution log shared by the bodies of a test."""
    return []


@pytest.fixture
def body_factory(order):
    """Build bodies that append their name to ``order``."""
    def make(name, result=None, delay=0.0, error=None):
        async def body(ctx):
            if delay:
                await asyncio.sleep(delay)
            order.append(name)
            if error is not None:
                raise error
            return result if result is not None else name
        return body
    return make
