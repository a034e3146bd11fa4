"""Logging setup for the CLI and server."""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

VALID_LOG_LEVELS = ("debug", "info", "warning", "error", "critical")

# Libraries that log every request at INFO
_NOISY_LOGGERS = ("httpx", "httpcore")


def parse_log_level(level: str | int) -> int:
    """Convert a level name or number to a logging level.

    Args:
        level: Level name (case-insensitive) or numeric level

    Returns:
        The numeric logging level

    Raises:
        ValueError: If the name is not a known level
    """
    if isinstance(level, int):
        return level
    name = level.strip().lower()
    if name not in VALID_LOG_LEVELS:
        raise ValueError(
            f"Invalid log level: {level}. Must be one of: {', '.join(VALID_LOG_LEVELS)}"
        )
    return logging.getLevelNamesMapping()[name.upper()]


def configure_logging(level: str | int = "info") -> None:
    """Configure the root logger with a single stderr handler.

    Calling this again replaces the previous handler.

    Args:
        level: Level name or number

    Raises:
        ValueError: If the level name is invalid
    """
    numeric_level = parse_log_level(level)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(numeric_level)

    noisy_level = max(numeric_level, logging.WARNING)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)
