from .logging_config import setup_logging, create_module_filter

__all__ = ["setup_logging", "create_module_filter"]
