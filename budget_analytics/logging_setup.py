"""Logging for the ``budget_analytics`` package.

The CLI calls :func:`configure_logging` once at startup; library modules only
ever call :func:`get_logger`. Until a handler is installed the package logger
carries a ``NullHandler``, so importing the package prints nothing.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO, Optional, Union

LOG_LEVEL_ENV = "BUDGET_ANALYTICS_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

_PACKAGE = "budget_analytics"
_handler: Optional[logging.Handler] = None


def resolve_level(level: Union[int, str, None] = None) -> int:
    """Turn a level number, a level name or ``None`` into a logging level.

    ``None`` reads ``BUDGET_ANALYTICS_LOG_LEVEL``. Names that ``logging`` does
    not know resolve to ``INFO``.
    """
    if level is None:
        level = os.getenv(LOG_LEVEL_ENV) or logging.INFO
    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    value = logging.getLevelName(name)
    return value if isinstance(value, int) else logging.INFO


def configure_logging(
    level: Union[int, str, None] = None,
    stream: Optional[IO[str]] = None,
) -> logging.Logger:
    """Install the package's stream handler; later calls are no-ops.

    Args:
        level: Level number or name; see :func:`resolve_level`.
        stream: Destination, ``sys.stderr`` (looked up at call time) when omitted.

    Returns:
        The package logger.
    """
    global _handler
    logger = logging.getLogger(_PACKAGE)
    if _handler is not None:
        return logger

    for quiet in [h for h in logger.handlers if isinstance(h, logging.NullHandler)]:
        logger.removeHandler(quiet)
    _handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    _handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(_handler)
    logger.setLevel(resolve_level(level))
    logger.propagate = False
    return logger


def reset_logging() -> None:
    """Drop every package handler so the next :func:`configure_logging` starts fresh."""
    global _handler
    logger = logging.getLogger(_PACKAGE)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
    _handler = None


def get_logger(name: str) -> logging.Logger:
    package_logger = logging.getLogger(_PACKAGE)
    if _handler is None and not package_logger.handlers:
        package_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)
