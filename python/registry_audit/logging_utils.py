"""Logging setup shared by the audit modules and the CLI."""

import logging
import os
import traceback
from typing import Optional, Union

DEFAULT_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'

# Client libraries that log every request at INFO/DEBUG
_CHATTY_LOGGERS = ("urllib3", "kubernetes")


def _resolve_level(level: Union[int, str, None]) -> int:
    if level is None:
        level = os.environ.get("LOG_LEVEL", "INFO")
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        return resolved if isinstance(resolved, int) else logging.INFO
    return level


def setup_logging(level: Union[int, str, None] = None, fmt: Optional[str] = None) -> None:
    """Configure root logging once. Subsequent calls are no-ops.

    level defaults to LOG_LEVEL from the environment, then INFO.
    """
    if logging.getLogger().handlers:
        return
    logging.basicConfig(level=_resolve_level(level), format=fmt or DEFAULT_FORMAT)
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def set_level(level: Union[int, str]) -> None:
    """Change the root level after setup, e.g. from --log-level"""
    resolved = _resolve_level(level)
    logging.getLogger().setLevel(resolved)
    if resolved <= logging.DEBUG:
        for name in _CHATTY_LOGGERS:
            logging.getLogger(name).setLevel(logging.DEBUG)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger by name, after ensuring logging is configured."""
    setup_logging()
    return logging.getLogger(name) if name else logging.getLogger(__name__)


def log_exception(logger: logging.Logger, message: str = "An error occurred", exc_info: Exception = None) -> None:
    """Log an unexpected failure with its full traceback.

    Args:
        logger: Logger instance to use
        message: Error message logged before the traceback
        exc_info: Exception instance (if None, uses current exception context)
    """
    logger.error(message)
    if exc_info is not None:
        logger.error(f"{type(exc_info).__name__}: {exc_info}")
    logger.error("Traceback:\n" + traceback.format_exc().rstrip())
