"""
Logging configuration for dynamictaskqueue.

The library only emits records through loguru; hosts opt into sinks by calling
``setup_logging`` (directly or through ``EngineConfig.setup_logging``).
"""

import os
import re
import sys
from typing import Callable, Dict, Optional, TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from dynamictaskqueue.config import LoggingConfig


def format_record(record: Dict) -> str:
    """
    Clean format: just the message with colors by level.
    """
    message = record["message"]

    # Escape curly braces to prevent format string errors
    message = message.replace("{", "{{").replace("}", "}}").replace("<", r"\<")

    level = record["level"].name
    if level in ("DEBUG", "TRACE"):
        return f"<dim>{message}</dim>\n"

    # Remove module paths like "dynamictaskqueue.task:120 - "
    message = re.sub(r'^[\w\.]+:\d+ - ', '', message)

    if level in ["ERROR", "CRITICAL"]:
        return f"<red>{message}</red>\n"
    elif level == "WARNING":
        return f"<yellow>{message}</yellow>\n"
    elif level == "SUCCESS":
        return f"<green><bold>{message}</bold></green>\n"
    else:
        return f"{message}\n"


def get_console_format(style: str = "clean"):
    """Get console format based on style preference."""
    if style == "timestamp":
        return "<dim>{time:HH:mm:ss.SSS}</dim> | <level>{message}</level>"
    elif style == "detailed":
        return "<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <7}</level> | <dim>{name}</dim> | <level>{message}</level>"
    else:
        return format_record


def setup_logging(config: "LoggingConfig", console_filter: Optional[Callable] = None):
    """
    Set up logging sinks.

    Args:
        config: LoggingConfig instance
        console_filter: Optional filter function for console output
    """
    logger.remove()

    if config.enable_console:
        logger.add(
            sys.stderr,
            format=get_console_format(config.console_style),
            level=config.level,
            colorize=True,
            filter=console_filter,
            backtrace=True,
            diagnose=True,
        )

    if config.enable_file:
        log_path = config.get_log_file_path()
        if log_path:
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_format = (
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "{name: <40} | "
                "{function: <20} | "
                "{message}"
            )

            # "w" truncates, anything else appends
            log_mode = os.getenv('DYNTASK_LOG_FILE_MODE', 'a').lower()
            if log_mode not in ['w', 'a']:
                log_mode = 'a'

            logger.add(
                str(log_path),
                format=file_format,
                level=config.level,
                rotation=config.file_rotation,
                retention=config.file_retention,
                backtrace=True,
                diagnose=False,  # No variable values in file logs
                enqueue=True,
                mode=log_mode,
            )
        else:
            logger.warning("File logging enabled but no file_path configured; skipping file sink")

    logger.debug(f"Logging configured: level={config.level}")


def create_module_filter(module_levels: Dict[str, str]):
    """
    Create a filter function based on module-specific log levels.

    Args:
        module_levels: Dict mapping module names to log levels

    Returns:
        Filter function for loguru
    """
    def filter_func(record):
        module = record["name"]

        for pattern, level in module_levels.items():
            if module.startswith(pattern):
                level_no = logger.level(level).no
                return record["level"].no >= level_no

        return True

    return filter_func


# Convenient log functions used across the scheduler
def log_unit(unit_title: str, message: str):
    """Log a unit-level lifecycle event."""
    logger.info(f"[{unit_title}] {message}")


def log_node(title: str, message: str):
    """Log a node-related event."""
    logger.debug(f"  [{title}] {message}")


def log_batch(unit_title: str, size: int, cycle: int):
    """Log the start of a batch."""
    logger.info(f"[{unit_title}] Running batch #{cycle} with {size} item(s)")
