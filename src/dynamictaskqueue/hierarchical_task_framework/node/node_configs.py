from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from dynamictaskqueue.exceptions import TaskConstructionError
from dynamictaskqueue.hierarchical_task_framework.types import ExecutionMode, safe_execution_mode


class RetryPolicy(BaseModel):
    """Retry directive forwarded verbatim to the renderer."""
    tries: int = 0
    delay_ms: float = Field(default=0.0, validation_alias=AliasChoices("delay_ms", "delay"))

    @field_validator('tries')
    @classmethod
    def validate_tries(cls, v):
        if v < 0:
            raise ValueError('retry tries must not be negative')
        return v

    @field_validator('delay_ms')
    @classmethod
    def validate_delay(cls, v):
        if v < 0:
            raise ValueError('retry delay must not be negative')
        return v


class SubtaskOptions(BaseModel):
    """
    Execution policy for the direct children of a node or unit.

    Unset fields inherit from the enclosing policy; see ``merged_with``.
    """
    concurrent: Optional[bool] = None
    exit_on_error: Optional[bool] = None

    model_config = ConfigDict(frozen=True)

    def merged_with(self, override: Optional["SubtaskOptions"]) -> "SubtaskOptions":
        """Return a copy where every field explicitly set on ``override`` wins."""
        if override is None:
            return self
        return SubtaskOptions(
            concurrent=self.concurrent if override.concurrent is None else override.concurrent,
            exit_on_error=self.exit_on_error if override.exit_on_error is None else override.exit_on_error,
        )

    def resolved(self) -> "SubtaskOptions":
        """Fill unset fields with the framework defaults (sequential, stop on error)."""
        return SubtaskOptions(
            concurrent=bool(self.concurrent) if self.concurrent is not None else False,
            exit_on_error=self.exit_on_error if self.exit_on_error is not None else True,
        )

    @classmethod
    def coerce(cls, value: Union["SubtaskOptions", Dict[str, Any], None]) -> "SubtaskOptions":
        if value is None:
            return cls()
        if isinstance(value, SubtaskOptions):
            return value
        return cls(**value)


class TaskNodeConfig(BaseModel):
    """Validated definition of a single node (task, subtask or queue item)."""
    title: str
    task: Optional[Callable[..., Any]] = None
    subtasks: List["TaskNodeConfig"] = Field(default_factory=list)
    options: SubtaskOptions = Field(default_factory=SubtaskOptions)
    mode: Optional[ExecutionMode] = None  # None: the owner decides

    # Directives, opaque to the scheduler
    skip: Optional[Union[bool, str, Callable[..., Any]]] = None
    retry: Optional[RetryPolicy] = None
    rollback: Optional[Callable[..., Any]] = None
    enabled: Optional[Union[bool, Callable[..., Any]]] = None
    exit_after_rollback: Optional[bool] = None

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    @field_validator('title')
    @classmethod
    def validate_title(cls, v):
        if not v or not v.strip():
            raise ValueError('title is required')
        return v

    @field_validator('mode', mode='before')
    @classmethod
    def validate_mode(cls, v):
        if v is None:
            return v
        return safe_execution_mode(v)

    @field_validator('retry', mode='before')
    @classmethod
    def validate_retry(cls, v):
        # A bare number means "this many retries"
        if isinstance(v, int) and not isinstance(v, bool):
            return {"tries": v}
        return v

    @field_validator('options', mode='before')
    @classmethod
    def validate_options(cls, v):
        return SubtaskOptions() if v is None else v

    @classmethod
    def coerce(cls, config: Union["TaskNodeConfig", Dict[str, Any]]) -> "TaskNodeConfig":
        """
        Build a config from a dict (or pass a config through).

        Raises:
            TaskConstructionError: If the definition is invalid, e.g. has no title
        """
        if isinstance(config, TaskNodeConfig):
            return config
        if not isinstance(config, dict):
            raise TaskConstructionError(None, f"expected a dict or TaskNodeConfig, got {type(config).__name__}")
        try:
            return cls(**config)
        except ValidationError as e:
            title = config.get("title") if isinstance(config.get("title"), str) else None
            reasons = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}" for err in e.errors()
            )
            raise TaskConstructionError(title, reasons, cause=e) from e


TaskNodeConfig.model_rebuild()
