"""
Cacher — Logging Setup

Configures the "cacher" logger with either a plain text format or one JSON
object per record. Structured context passed via ``extra=`` is carried into
the JSON output.
"""

import json
import logging
from datetime import UTC, datetime
from typing import Any

from ..config.loader import get_log_settings

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# LogRecord attributes that are not user-supplied extra fields
_RESERVED_ATTRS = frozenset(
    {
        "args",
        "msg",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "name",
        "message",
    }
)


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # Add any extra fields from record.__dict__
        for key, value in record.__dict__.items():
            if key not in log_data and not key.startswith("_") and key not in _RESERVED_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def configure_logging(
    level: str | None = None,
    fmt: str | None = None,
    logger_name: str = "cacher",
) -> logging.Logger:
    """
    Install a stream handler on the package logger.

    Args:
        level: Log level name (None = LOG_LEVEL from the environment)
        fmt: "text" or "json" (None = LOG_FORMAT from the environment)
        logger_name: Logger to configure

    Returns:
        The configured logger
    """
    env_level, env_fmt = get_log_settings()
    level = level or env_level
    fmt = (fmt or env_fmt).lower()

    logger = logging.getLogger(logger_name)

    # Remove existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    return logger
