"""Structured logging configuration for the Portal Assistant.

Handlers live on the ``portal_assistant`` package logger; module loggers
propagate to it, so ``logging.getLogger(__name__)`` and ``get_logger(__name__)``
produce the same key=value lines.
"""

import logging
import sys
from typing import Any

PACKAGE_LOGGER = "portal_assistant"


class StructuredFormatter(logging.Formatter):
    """JSON-like structured log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured output."""
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "module": record.module,
            "function": record.funcName,
            "message": record.getMessage(),
        }

        if hasattr(record, "user_id"):
            log_data["user_id"] = record.user_id

        if hasattr(record, "extra_data"):
            log_data.update(record.extra_data)

        parts = [f"{k}={v}" for k, v in log_data.items()]
        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging() -> logging.Logger:
    """Attach the structured handler to the package logger (idempotent)."""
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    if package_logger.handlers:
        return package_logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter())
    package_logger.addHandler(handler)
    package_logger.propagate = False

    # DEBUG in dev, INFO elsewhere
    try:
        from portal_assistant.core.config import get_settings

        env = get_settings().ASSISTANT_ENV
    except Exception:
        env = "prod"
    package_logger.setLevel(logging.DEBUG if env == "dev" else logging.INFO)
    return package_logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger that propagates to the structured package handler
    """
    setup_logging()
    return logging.getLogger(name)


def log_with_context(logger: logging.Logger, level: int, msg: str, **kwargs: Any) -> None:
    """
    Log with additional context fields.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, etc.)
        msg: Log message
        **kwargs: Additional context fields (e.g., user_id, feature)
    """
    extra: dict[str, Any] = {}
    if "user_id" in kwargs:
        extra["user_id"] = kwargs.pop("user_id")
    extra["extra_data"] = kwargs
    logger.log(level, msg, extra=extra)
