"""
Core module for the ClickHouse manager.

Provides configuration, logging, errors and the request context.
"""
from chmanager.core.config import settings
from chmanager.core.logger import setup_logger, get_logger

__all__ = [
    "settings",
    "setup_logger",
    "get_logger",
]
