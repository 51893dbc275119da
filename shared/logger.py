"""
Simple logging module for the data-flow engine.

Everything logs to console (stdout) with colored, structured output.

Usage:
    from shared.logger import get_logger

    logger = get_logger(__name__)  # Use module name
    # or
    logger = get_logger('my_component')  # Use custom name

    logger.info("Message here")
"""

import logging
import sys
from typing import Dict, Optional, Union

from shared.config import config

# Global cache of loggers
_loggers: Dict[str, logging.Logger] = {}

LOG_FORMAT = '%(asctime)s | %(name)s | %(levelname)s | %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class ColoredFormatter(logging.Formatter):
    """Formatter that adds colors to console output"""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m'       # Reset
    }

    def format(self, record):
        # Restored afterwards so other handlers see the plain levelname
        levelname = record.levelname
        if levelname not in self.COLORS:
            return super().format(record)
        record.levelname = f"{self.COLORS[levelname]}{levelname}{self.COLORS['RESET']}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


def resolve_level(level: Union[int, str, None]) -> int:
    """Turn a level name such as "debug" (or an int) into a logging level."""
    if level is None:
        level = config.log_level
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def get_logger(name: str, level: Optional[Union[int, str]] = None) -> logging.Logger:
    """
    Get a logger that outputs colored, structured logs to console.

    Args:
        name: Logger name (typically __name__ or component name)
        level: Logging level (default: ``config.log_level``)

    Returns:
        Configured logger instance
    """
    if name in _loggers:
        return _loggers[name]

    effective_level = resolve_level(level)

    logger = logging.getLogger(name)
    logger.setLevel(effective_level)
    logger.propagate = False
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(effective_level)

    if sys.stdout.isatty():
        formatter: logging.Formatter = ColoredFormatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    else:
        formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    console_handler.setFormatter(formatter)

    logger.addHandler(console_handler)

    _loggers[name] = logger
    return logger


def set_level(level: Union[int, str]) -> None:
    """Change the level of every logger handed out so far (e.g. for ``--verbose``)."""
    effective_level = resolve_level(level)
    for logger in _loggers.values():
        logger.setLevel(effective_level)
        for handler in logger.handlers:
            handler.setLevel(effective_level)
