"""Flowserver configuration and logging."""

from flowserver.core.config import Config, deep_merge
from flowserver.core.logging import (
    LOG_LEVELS,
    JsonFormatter,
    LoggingConfig,
    get_logger,
    get_uvicorn_log_config,
    setup_logging,
)

__all__ = [
    # Config
    "Config",
    "deep_merge",
    # Logging
    "LoggingConfig",
    "JsonFormatter",
    "setup_logging",
    "get_logger",
    "get_uvicorn_log_config",
    "LOG_LEVELS",
]
