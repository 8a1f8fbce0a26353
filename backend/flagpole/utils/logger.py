"""Logging configuration for the flag service."""
import logging
import sys
from flagpole.config import settings

LOGGER_NAME = "flagpole"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def resolve_level(level_name=None, environment: str = "development") -> int:
    """
    Pick the log level.

    An explicit level name wins; unknown names fall back to INFO. Without one,
    development logs at DEBUG and everything else at INFO.
    """
    if level_name:
        level = logging.getLevelName(level_name.upper())
        return level if isinstance(level, int) else logging.INFO
    return logging.DEBUG if environment == "development" else logging.INFO


def configure_logger(name: str = LOGGER_NAME) -> logging.Logger:
    """Return the service logger, attaching the stdout handler only once."""
    log = logging.getLogger(name)
    level = resolve_level(settings.log_level, settings.environment)
    log.setLevel(level)

    if not log.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        log.addHandler(handler)

    # Keep flag service logs out of uvicorn's root handlers
    log.propagate = False
    return log


logger = configure_logger()

__all__ = ["logger", "configure_logger"]
