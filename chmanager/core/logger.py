"""
Simple logging configuration for the ClickHouse manager.
"""
import logging
import sys


def setup_logger(name: str, level: str = "INFO") -> logging.Logger:
    """
    Setup and return a configured logger.

    Args:
        name: Logger name (usually __name__)
        level: Logging level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))

    # Console handler
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    handler.setFormatter(formatter)

    # Add handler if not already added
    if not logger.handlers:
        logger.addHandler(handler)

    # Written once, by the handler above
    logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a logger configured with the application log level."""
    from chmanager.core.config import settings

    return setup_logger(name, settings.log_level)
