"""
Logging setup.

The chart owns the terminal (alternate screen), so log records go to a
rotating file instead of the console.
"""

from __future__ import annotations

import logging
import os
from logging.handlers import TimedRotatingFileHandler

ROOT_LOGGER = "odds_chart"

_formatter = logging.Formatter(
    '[%(asctime)s][%(levelname)s][%(name)s] %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)


def get_logger(name: str) -> logging.Logger:
    """Child of the package logger, e.g. get_logger("feed") -> odds_chart.feed."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def setup_logging(log_file: str, level: str = "INFO") -> logging.Logger:
    """
    Attach a daily-rotating file handler to the package logger.

    Safe to call more than once; existing handlers are replaced.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    log_dir = os.path.dirname(log_file)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    # Keep 7 days
    handler = TimedRotatingFileHandler(
        log_file, when='midnight', backupCount=7, encoding='utf-8'
    )
    handler.setFormatter(_formatter)
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.propagate = False  # Never leak records onto the chart
    return logger
