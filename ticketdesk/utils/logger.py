"""
Logging configuration

All ticketdesk loggers write to stdout in one format; the level comes from
LOG_LEVEL.
"""
import logging
import sys

from ticketdesk.config import get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _level() -> int:
    return getattr(logging, get_settings().log_level.upper(), logging.INFO)


def setup_logger(name: str) -> logging.Logger:
    """
    Attach the stdout handler to the named logger.

    Calling it again for the same name only refreshes the level.
    """
    logger = logging.getLogger(name)
    logger.setLevel(_level())

    if not any(getattr(h, "_ticketdesk", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        handler._ticketdesk = True
        logger.addHandler(handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Return the named logger, configured on first use"""
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger
    return setup_logger(name)
