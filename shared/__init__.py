"""Shared configuration and logging for the data-flow engine and its CLI"""

from .config import config
from .logger import get_logger

__all__ = [
    "config",
    "get_logger",
]
