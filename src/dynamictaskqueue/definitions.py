"""Small helpers to build task definitions."""

from typing import Any, Callable, Dict, List, Optional, Union

from dynamictaskqueue.hierarchical_task_framework.node.node_configs import SubtaskOptions


def subtask(title: str, task: Optional[Callable[..., Any]] = None, **options) -> Dict[str, Any]:
    """Build a subtask definition, e.g. ``subtask("Lint", run_lint, retry=2)``."""
    return {"title": title, "task": task, **options}


def nested_subtasks(title: str,
                    subtasks: List[Dict[str, Any]],
                    options: Optional[Union[SubtaskOptions, Dict[str, Any]]] = None) -> Dict[str, Any]:
    """Build a definition that only groups other subtasks."""
    return {"title": title, "subtasks": list(subtasks), "options": options or {}}
