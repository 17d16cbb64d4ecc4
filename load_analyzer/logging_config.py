"""
Logging setup for the load analyzer.

All modules log under the ``load_analyzer`` namespace; the service calls
``setup_logging`` once at startup.
"""

import logging
import sys
from typing import Optional

ROOT_LOGGER = "load_analyzer"

SIMPLE_FORMAT = "%(levelname)s: %(message)s"
DETAILED_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: Optional[str] = None, format_detailed: bool = False) -> logging.Logger:
    """
    Configure the package logger with a single stdout handler.

    Args:
        level: Logging level name. Falls back to the configured ``LOG_LEVEL``.
        format_detailed: Use the timestamped format instead of the short one.

    Returns:
        The package logger.
    """
    from .config import get_settings

    settings = get_settings()
    logger = logging.getLogger(ROOT_LOGGER)
    logger.handlers.clear()

    numeric_level = getattr(logging, (level or settings.log_level).upper(), logging.INFO)
    logger.setLevel(numeric_level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    detailed = format_detailed or settings.log_format == "detailed"
    handler.setFormatter(logging.Formatter(DETAILED_FORMAT if detailed else SIMPLE_FORMAT))
    logger.addHandler(handler)

    # Keep records out of the root logger so uvicorn does not print them twice.
    logger.propagate = False

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger under the package namespace."""
    if name is None:
        return logging.getLogger(ROOT_LOGGER)
    if not name.startswith(ROOT_LOGGER):
        name = f"{ROOT_LOGGER}.{name.rsplit('.', 1)[-1]}"
    return logging.getLogger(name)
