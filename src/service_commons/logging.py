"""
Shared structured JSON logging utilities.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import time
from datetime import UTC, datetime
from decimal import Decimal
from logging.handlers import TimedRotatingFileHandler
from typing import Any

# Attributes every LogRecord carries; anything else arrived through `extra=`.
_STANDARD_ATTRS: frozenset[str] = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    }
)

VALID_LOG_LEVELS: frozenset[str] = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def _json_default(value: object) -> str:
    """Render money as its exact decimal string, everything else via str()."""
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)


class JSONFormatter(logging.Formatter):
    """
    Formats log records as single-line JSON objects.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON string."""
        timestamp = (
            datetime.fromtimestamp(record.created, tz=UTC)
            .isoformat(timespec="seconds")
            .replace("+00:00", "Z")
        )

        log_data: dict[str, Any] = {
            "timestamp": timestamp,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra = {key: value for key, value in record.__dict__.items() if key not in _STANDARD_ATTRS}
        if extra:
            log_data["extra"] = extra

        return json.dumps(log_data, default=_json_default)


class DailyRotatingFileHandler(TimedRotatingFileHandler):
    """Rotating file handler that writes one YYYY-MM-DD.log file per UTC day."""

    def __init__(self, directory: str) -> None:
        self._log_directory = directory
        super().__init__(self._make_filename(), when="midnight", utc=True)

    def _make_filename(self) -> str:
        today = datetime.now(tz=UTC).strftime("%Y-%m-%d")
        return os.path.join(self._log_directory, f"{today}.log")

    def doRollover(self) -> None:  # noqa: N802
        if self.stream:
            self.stream.close()
            self.stream = None  # type: ignore[assignment]
        self.baseFilename = os.path.abspath(self._make_filename())
        if not self.delay:
            self.stream = self._open()
        self.rolloverAt = self.computeRollover(int(time.time()))


def setup_logging(level: str, service_name: str, log_directory: str | None) -> logging.Logger:
    """
    Configure structured JSON logging for a service.

    Always logs to stdout. When log_directory is given, also logs to a
    daily rotating file in that directory.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        service_name: Root logger name for the service
        log_directory: Directory for rotating log files, or None for stdout only

    Returns:
        Configured service logger

    Raises:
        ValueError: If level is not a valid log level
    """
    level_upper = level.upper()
    if level_upper not in VALID_LOG_LEVELS:
        raise ValueError(f"Invalid log level: {level}. Must be one of {sorted(VALID_LOG_LEVELS)}")

    numeric_level = getattr(logging, level_upper)

    logger = logging.getLogger(service_name)
    logger.setLevel(numeric_level)
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    formatter = JSONFormatter()

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(numeric_level)
    stdout_handler.setFormatter(formatter)
    logger.addHandler(stdout_handler)

    if log_directory:
        os.makedirs(log_directory, exist_ok=True)
        file_handler = DailyRotatingFileHandler(directory=log_directory)
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger


def get_named_logger(service_name: str, logger_name: str) -> logging.Logger:
    """
    Get a logger under the service namespace.

    Module names that already start with the service name are used as-is,
    so ``get_named_logger("svc", "svc.core")`` returns ``svc.core``.
    """
    if logger_name == service_name or logger_name.startswith(f"{service_name}."):
        return logging.getLogger(logger_name)
    return logging.getLogger(f"{service_name}.{logger_name}")
