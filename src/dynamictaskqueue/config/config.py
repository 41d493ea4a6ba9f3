"""
Configuration system for the dynamic task queue framework.

This module provides a flexible configuration system that can load settings from:
- Environment variables
- YAML files
- Python dictionaries
- Programmatic configuration
"""

import os
import yaml
from pathlib import Path
from typing import Optional, Dict, Any, Union
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from loguru import logger

from dynamictaskqueue.exceptions import InvalidConfigurationError


class SchedulingConfig(BaseModel):
    """Engine-wide scheduling defaults, overridable per unit."""
    batch_debounce_ms: float = 50.0   # Window after the last add() before a batch drains
    auto_complete_ms: Optional[float] = None  # Idle time before a unit completes itself
    auto_execute_ms: Optional[float] = None   # Idle time before an AFTER-mode body runs
    queue_concurrent: bool = False
    queue_exit_on_error: bool = False
    task_concurrent: bool = False
    task_exit_on_error: bool = True

    @field_validator('batch_debounce_ms')
    @classmethod
    def validate_debounce(cls, v):
        if v < 0:
            raise ValueError('batch_debounce_ms must not be negative')
        if v > 10_000:
            logger.warning(f'Very long debounce window ({v}ms) delays every batch')
        return v

    @field_validator('auto_complete_ms', 'auto_execute_ms')
    @classmethod
    def validate_idle_timer(cls, v):
        # Non-positive durations disable the timer
        if v is not None and v <= 0:
            return None
        return v

class LoggingConfig(BaseModel):
    """Configuration for logging."""
    level: str = "INFO"
    format: str = "<green>{time:HH:mm:ss}</green> | <level>{level: <5}</level> | <level>{message}</level>"
    file_path: Optional[str] = None  # No file sink unless a path is given
    file_rotation: str = "10 MB"
    file_retention: int = 3
    enable_console: bool = True
    enable_file: bool = False
    module_levels: Optional[Dict[str, str]] = None  # Module-specific log levels
    console_style: str = "clean"  # "clean", "timestamp", or "detailed"

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        valid_levels = ['TRACE', 'DEBUG', 'INFO', 'SUCCESS', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'Log level must be one of: {valid_levels}')
        return v.upper()

    @field_validator('console_style')
    @classmethod
    def validate_console_style(cls, v):
        valid_styles = ['clean', 'timestamp', 'detailed']
        if v not in valid_styles:
            raise ValueError(f'console_style must be one of: {valid_styles}')
        return v

    def get_log_file_path(self) -> Optional[Path]:
        """Get the log file path."""
        if self.file_path:
            return Path(self.file_path)
        return None

class EngineConfig(BaseModel):
    """Main configuration class for the dynamic task queue framework."""

    scheduling: SchedulingConfig = Field(default_factory=SchedulingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    # Custom configurations for extensions
    custom: Dict[str, Any] = Field(default_factory=dict)

    # Metadata
    config_version: str = "1.0.0"
    environment: str = Field(default_factory=lambda: os.getenv("DYNTASK_ENV", "development"))

    model_config = ConfigDict(extra="allow", validate_assignment=True)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "EngineConfig":
        """
        Load configuration from a YAML file.

        Args:
            path: Path to the YAML configuration file

        Returns:
            EngineConfig instance

        Raises:
            FileNotFoundError: If the config file doesn't exist
            InvalidConfigurationError: If the YAML or its values are invalid
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(f"Invalid YAML in configuration file {path}: {e}")
            raise InvalidConfigurationError(
                f"Invalid YAML in configuration file {path}: {e}",
                context={"path": str(path)},
                cause=e
            ) from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise InvalidConfigurationError(
                f"Configuration file {path} must contain a mapping, got {type(data).__name__}",
                context={"path": str(path)}
            )

        config = cls._validated(data, source=str(path))
        logger.info(f"Loaded configuration from {path}")
        return config

    @classmethod
    def _validated(cls, data: Dict[str, Any], source: str) -> "EngineConfig":
        try:
            return cls(**data)
        except ValidationError as e:
            logger.error(f"Invalid configuration from {source}: {e}")
            raise InvalidConfigurationError(
                f"Invalid configuration from {source}: {e}",
                context={"source": source},
                cause=e
            ) from e

    @classmethod
    def from_env(cls, prefix: str = "DYNTASK_") -> "EngineConfig":
        """
        Load configuration from environment variables.

        Args:
            prefix: Prefix for environment variables (default: "DYNTASK_")

        Returns:
            EngineConfig instance with values from environment
        """
        data: Dict[str, Any] = {}

        # Map environment variables to config fields
        env_mappings = {
            f"{prefix}BATCH_DEBOUNCE_MS": ("scheduling", "batch_debounce_ms"),
            f"{prefix}AUTO_COMPLETE_MS": ("scheduling", "auto_complete_ms"),
            f"{prefix}AUTO_EXECUTE_MS": ("scheduling", "auto_execute_ms"),
            f"{prefix}QUEUE_CONCURRENT": ("scheduling", "queue_concurrent"),
            f"{prefix}QUEUE_EXIT_ON_ERROR": ("scheduling", "queue_exit_on_error"),
            f"{prefix}TASK_CONCURRENT": ("scheduling", "task_concurrent"),
            f"{prefix}TASK_EXIT_ON_ERROR": ("scheduling", "task_exit_on_error"),
            f"{prefix}LOG_LEVEL": ("logging", "level"),
            f"{prefix}LOG_FILE": ("logging", "file_path"),
            f"{prefix}ENVIRONMENT": ("environment",),
        }

        for env_var, config_path in env_mappings.items():
            value = os.getenv(env_var)
            if value is not None:
                try:
                    # Convert string values to appropriate types
                    if env_var.endswith(('_CONCURRENT', '_ON_ERROR')):
                        value = value.lower() in ('true', '1', 'yes', 'on')
                    elif env_var.endswith('_MS'):
                        value = float(value)

                    if len(config_path) == 1:
                        data[config_path[0]] = value
                    else:
                        data.setdefault(config_path[0], {})[config_path[1]] = value

                    logger.debug(f"Set config from {env_var}: {config_path} = {value}")
                except ValueError as e:
                    logger.warning(f"Failed to set config from {env_var}: {e}")

        return cls._validated(data, source=f"{prefix}* environment variables")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        """
        Create configuration from a dictionary.

        Args:
            data: Dictionary containing configuration data

        Returns:
            EngineConfig instance
        """
        return cls(**data)

    def to_yaml(self, path: Union[str, Path]) -> None:
        """
        Save configuration to a YAML file.

        Args:
            path: Path where to save the configuration
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(exclude_none=True)

        with open(path, 'w', encoding='utf-8') as f:
            yaml.dump(data, f, default_flow_style=False, indent=2, sort_keys=True)

        logger.info(f"Configuration saved to {path}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return self.model_dump(exclude_none=True)

    def merge_with(self, other: "EngineConfig") -> "EngineConfig":
        """
        Merge this configuration with another, with other taking precedence.

        Only fields explicitly set on ``other`` override this configuration.

        Args:
            other: Another EngineConfig to merge with

        Returns:
            New EngineConfig with merged values
        """
        self_dict = self.to_dict()
        other_dict = other.model_dump(exclude_unset=True, exclude_none=True)

        def deep_merge(base: dict, overlay: dict) -> dict:
            """Recursively merge dictionaries."""
            result = base.copy()
            for key, value in overlay.items():
                if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                    result[key] = deep_merge(result[key], value)
                else:
                    result[key] = value
            return result

        merged_dict = deep_merge(self_dict, other_dict)
        return EngineConfig.from_dict(merged_dict)

    def setup_logging(self) -> None:
        """Configure logging based on the current settings."""
        from ..core.logging_config import setup_logging, create_module_filter

        console_filter = None
        if self.logging.module_levels:
            console_filter = create_module_filter(self.logging.module_levels)

        setup_logging(self.logging, console_filter)

# Convenience functions
def load_config(
    config_file: Optional[Union[str, Path]] = None,
    use_env: bool = True,
    env_prefix: str = "DYNTASK_",
    configure_logging: bool = False
) -> EngineConfig:
    """
    Load configuration using the standard precedence:
    1. Default configuration
    2. Environment variables (if use_env=True)
    3. Configuration file (if provided)

    Args:
        config_file: Optional path to YAML configuration file
        use_env: Whether to load from environment variables
        env_prefix: Prefix for environment variables
        configure_logging: Install loguru sinks from the logging section

    Returns:
        EngineConfig instance
    """
    config = EngineConfig()

    if use_env:
        env_config = EngineConfig.from_env(env_prefix)
        config = config.merge_with(env_config)

    if config_file:
        file_config = EngineConfig.from_yaml(config_file)
        config = config.merge_with(file_config)

    if configure_logging:
        config.setup_logging()
    return config
