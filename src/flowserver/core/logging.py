"""
Logging setup for flowserver.

Library modules only call logging.getLogger(__name__); nothing is
configured on import. Applications (and the CLI) call setup_logging() once.
"""

import json
import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

# Chatty third-party loggers kept at WARNING unless debugging
THIRD_PARTY_LOGGERS = ["uvicorn", "uvicorn.error", "httpx", "httpcore", "asyncio"]


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "info"
    json_format: bool = False
    quiet_third_party: bool = True
    extra_loggers: dict[str, str] = field(default_factory=dict)


class JsonFormatter(logging.Formatter):
    """Format records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _make_formatter(json_format: bool) -> logging.Formatter:
    return JsonFormatter() if json_format else logging.Formatter(LOG_FORMAT)


def setup_logging(config: LoggingConfig | None = None) -> logging.Logger:
    """Configure the root logger and return it."""
    config = config or LoggingConfig()
    level = LOG_LEVELS.get(config.level.lower(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_make_formatter(config.json_format))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    if config.quiet_third_party and level > logging.DEBUG:
        for name in THIRD_PARTY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    for name, name_level in config.extra_loggers.items():
        logging.getLogger(name).setLevel(LOG_LEVELS.get(name_level.lower(), logging.INFO))

    return root


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def get_uvicorn_log_config() -> dict[str, Any]:
    """
    uvicorn log config that routes its loggers through the root handlers.

    Passing this instead of uvicorn's default keeps one format for the
    whole process.
    """
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "loggers": {
            "uvicorn": {"handlers": [], "propagate": True},
            "uvicorn.error": {"handlers": [], "propagate": True},
            "uvicorn.access": {"handlers": [], "propagate": True},
        },
    }
