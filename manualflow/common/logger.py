"""Logging setup for manualflow.

Modules log through ``logging.getLogger(__name__)``; configuring the
``manualflow`` package logger once routes all of them to the console
and, optionally, a size-rotated file. Timestamps are ISO 8601 in UTC.
"""

import logging
import logging.handlers
import os
import time
from typing import Optional

PACKAGE_LOGGER = "manualflow"

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"


class UTCFormatter(logging.Formatter):
    """Formatter that renders ``asctime`` as ``2026-10-19T08:15:00Z``."""

    converter = time.gmtime

    def __init__(self, fmt: str = LOG_FORMAT):
        super().__init__(fmt, datefmt="%Y-%m-%dT%H:%M:%SZ")


def _parse_level(level: str) -> int:
    value = logging.getLevelName(level.upper())
    if not isinstance(value, int):
        raise ValueError(
            f"Invalid log level: {level}. "
            f"Must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL"
        )
    return value


def setup_logger(
    name: str = PACKAGE_LOGGER,
    *,
    level: str = "INFO",
    log_dir: Optional[str] = None,
    console: bool = True,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """Attach handlers to a logger.

    Args:
        name: Logger to configure; child loggers inherit its handlers
        level: Level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for ``<name>.log``; no file output when None
        console: Also write to stderr
        max_bytes: Size at which the log file is rotated
        backup_count: Rotated files to keep

    Returns:
        The configured logger. Calling again only updates the level.
    """
    logger = logging.getLogger(name)
    logger.setLevel(_parse_level(level))

    if logger.handlers:
        return logger

    formatter = UTCFormatter()
    handlers = []
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, f"{name}.log"),
            maxBytes=max_bytes,
            backupCount=backup_count,
        ))
    if console:
        handlers.append(logging.StreamHandler())

    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


def configure_from_settings(settings) -> logging.Logger:
    """Configure the package logger from application settings."""
    return setup_logger(
        PACKAGE_LOGGER,
        level=settings.log_level,
        log_dir=settings.log_dir if settings.file_logging else None,
    )
