"""Common utilities and shared components for WatchLater."""

from .config import (
    Config,
    DatabaseConfig,
    FileLoggingConfig,
    LibraryConfig,
    LoggingConfig,
)
from .logging_config import bind_context, clear_context, get_logger, setup_logging

__all__ = [
    "Config",
    "DatabaseConfig",
    "FileLoggingConfig",
    "LibraryConfig",
    "LoggingConfig",
    "setup_logging",
    "get_logger",
    "bind_context",
    "clear_context",
]
