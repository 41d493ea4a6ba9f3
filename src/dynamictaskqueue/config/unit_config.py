"""
Construction parameters of a Task or TaskQueue unit.

Values left unset are filled from the engine-wide ``SchedulingConfig`` by
``with_engine_defaults``; explicit unit values always win.
"""

from typing import Any, Callable, ClassVar, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from dynamictaskqueue.config.config import EngineConfig
from dynamictaskqueue.exceptions import TaskConstructionError
from dynamictaskqueue.hierarchical_task_framework.node.node_configs import RetryPolicy, SubtaskOptions
from dynamictaskqueue.hierarchical_task_framework.types import ExecutionMode, safe_execution_mode


class UnitConfig(BaseModel):
    """Fields shared by both unit variants."""
    title: str
    task: Optional[Callable[..., Any]] = None
    mode: Optional[ExecutionMode] = None
    options: SubtaskOptions = Field(default_factory=SubtaskOptions)
    default_subtask_options: SubtaskOptions = Field(default_factory=SubtaskOptions)

    # Idle behaviour, in milliseconds; None or <= 0 disables the timer
    auto_complete: Optional[float] = None
    auto_execute: Optional[float] = None
    batch_debounce_ms: Optional[float] = None

    # Directives applied to the unit's own body
    retry: Optional[RetryPolicy] = None
    rollback: Optional[Callable[..., Any]] = None
    skip: Optional[Union[bool, str, Callable[..., Any]]] = None

    renderer: Optional[Any] = None
    engine_config: Optional[EngineConfig] = None

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    default_mode: ClassVar[ExecutionMode] = ExecutionMode.BEFORE
    child_mode: ClassVar[ExecutionMode] = ExecutionMode.BEFORE
    seed_subtask_defaults: ClassVar[bool] = True

    @field_validator('title')
    @classmethod
    def validate_title(cls, v):
        if not v or not v.strip():
            raise ValueError('title is required')
        return v

    @field_validator('mode', mode='before')
    @classmethod
    def validate_mode(cls, v):
        return None if v is None else safe_execution_mode(v)

    @field_validator('options', 'default_subtask_options', mode='before')
    @classmethod
    def validate_options(cls, v):
        return SubtaskOptions() if v is None else v

    @field_validator('retry', mode='before')
    @classmethod
    def validate_retry(cls, v):
        if isinstance(v, int) and not isinstance(v, bool):
            return {"tries": v}
        return v

    @field_validator('auto_complete', 'auto_execute')
    @classmethod
    def validate_idle_timer(cls, v):
        if v is not None and v <= 0:
            return None
        return v

    @field_validator('batch_debounce_ms')
    @classmethod
    def validate_debounce(cls, v):
        if v is not None and v < 0:
            raise ValueError('batch_debounce_ms must not be negative')
        return v

    @property
    def resolved_mode(self) -> ExecutionMode:
        return self.mode or self.default_mode

    def _engine_policy(self, engine: EngineConfig) -> SubtaskOptions:
        """Engine-wide top-level policy of this unit variant; the task policy unless overridden."""
        return SubtaskOptions(
            concurrent=engine.scheduling.task_concurrent,
            exit_on_error=engine.scheduling.task_exit_on_error,
        )

    def with_engine_defaults(self, engine: Optional[EngineConfig] = None) -> "UnitConfig":
        """
        Return a copy where every unset scheduling field comes from ``engine``.

        The unit's top-level policy is completed from the engine defaults, and
        for tasks an empty ``default_subtask_options`` is seeded from that policy.
        """
        engine = engine or self.engine_config or EngineConfig()
        scheduling = engine.scheduling

        options = self._engine_policy(engine).merged_with(self.options)
        defaults = self.default_subtask_options
        if self.seed_subtask_defaults and defaults.concurrent is None and defaults.exit_on_error is None:
            defaults = options

        return self.model_copy(update={
            "mode": self.resolved_mode,
            "options": options,
            "default_subtask_options": defaults,
            "auto_complete": self.auto_complete if self.auto_complete is not None else scheduling.auto_complete_ms,
            "auto_execute": self.auto_execute if self.auto_execute is not None else scheduling.auto_execute_ms,
            "batch_debounce_ms": (self.batch_debounce_ms if self.batch_debounce_ms is not None
                                  else scheduling.batch_debounce_ms),
            "engine_config": engine,
        })

    @classmethod
    def coerce(cls, config: Union["UnitConfig", Dict[str, Any], None] = None, **kwargs) -> "UnitConfig":
        """
        Build a unit config from a model, a dict and/or keyword arguments.

        Keyword arguments override keys of ``config``.

        Raises:
            TaskConstructionError: If the configuration is invalid
        """
        if isinstance(config, cls) and not kwargs:
            return config

        if isinstance(config, UnitConfig):
            data = config.model_dump(exclude_unset=True)
        elif config is None:
            data = {}
        elif isinstance(config, dict):
            data = dict(config)
        else:
            raise TaskConstructionError(None, f"expected a dict or {cls.__name__}, got {type(config).__name__}")
        data.update(kwargs)

        try:
            return cls(**data)
        except ValidationError as e:
            title = data.get("title") if isinstance(data.get("title"), str) else None
            reasons = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}" for err in e.errors()
            )
            raise TaskConstructionError(title, reasons, cause=e) from e


class TaskConfig(UnitConfig):
    """A standalone task: body first, children sequential and stop on error."""
    default_mode: ClassVar[ExecutionMode] = ExecutionMode.BEFORE
    child_mode: ClassVar[ExecutionMode] = ExecutionMode.BEFORE


class QueueConfig(UnitConfig):
    """A task queue: items default to AFTER mode and failures do not stop it."""
    title: str = "Task queue"

    default_mode: ClassVar[ExecutionMode] = ExecutionMode.AFTER
    child_mode: ClassVar[ExecutionMode] = ExecutionMode.AFTER
    # Queue subtasks start from the framework defaults, not from the queue policy
    seed_subtask_defaults: ClassVar[bool] = False

    def _engine_policy(self, engine: EngineConfig) -> SubtaskOptions:
        return SubtaskOptions(
            concurrent=engine.scheduling.queue_concurrent,
            exit_on_error=engine.scheduling.queue_exit_on_error,
        )
