"""Service-level logging helpers."""

from __future__ import annotations

import logging

from service_commons.logging import get_named_logger
from service_commons.logging import setup_logging as setup_service_logging

SERVICE_LOGGER_NAME = "marketplace_service"


def setup_logging(level: str, service_name: str, log_directory: str | None) -> logging.Logger:
    """Configure JSON logging for the marketplace service namespace."""
    logger = setup_service_logging(level, SERVICE_LOGGER_NAME, log_directory)
    logger.debug("Logging configured", extra={"service": service_name})
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger scoped under the service namespace."""
    return get_named_logger(SERVICE_LOGGER_NAME, name)
