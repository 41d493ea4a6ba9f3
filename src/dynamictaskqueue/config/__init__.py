"""
Configuration module for dynamictaskqueue.

This module centralizes the loading, validation, and access of configuration
settings, leveraging Pydantic for data modeling.

Exports:
    - EngineConfig: The main Pydantic model for all configuration settings.
    - SchedulingConfig, LoggingConfig: Sub-models for specific configuration sections.
    - TaskConfig, QueueConfig: Validated construction parameters of a unit.
    - load_config: Function to load configuration from files and environment variables.
"""
from .config import (
    EngineConfig,
    SchedulingConfig,
    LoggingConfig,
    load_config
)

from .unit_config import (
    UnitConfig,
    TaskConfig,
    QueueConfig
)

__all__ = [
    "EngineConfig",
    "SchedulingConfig",
    "LoggingConfig",
    "load_config",
    "UnitConfig",
    "TaskConfig",
    "QueueConfig",
]
