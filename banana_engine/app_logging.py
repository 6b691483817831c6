"""Logging configuration helpers."""

from __future__ import annotations

import logging
import os

LOGGER_NAME = "banana_engine"


def configure_logging(level: str | int | None = None) -> logging.Logger:
    """Configure the package logger with a single stderr stream handler."""
    logger = logging.getLogger(LOGGER_NAME)
    resolved = level if level is not None else os.getenv("BANANA_LOG_LEVEL", "WARNING")
    if isinstance(resolved, str):
        resolved = logging.getLevelName(resolved.strip().upper())
        if not isinstance(resolved, int):
            resolved = logging.WARNING
    logger.setLevel(resolved)
    if logger.handlers:
        return logger
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(levelname)s: %(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
