"""Structured logging helpers.

Every module binds a module-level ``LOGGER = get_logger(__name__)`` and passes
context through ``extra={...}``; the JSON formatter renders those keys as
top-level fields.
"""

import logging
import sys
from typing import Optional

from pythonjsonlogger import jsonlogger

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Get a JSON logger for the given module name.

    Args:
        name: Logger name, usually ``__name__``
        level: Optional log level name (e.g. "INFO"); applied on every call

    Returns:
        logging.Logger: Configured logger instance
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(jsonlogger.JsonFormatter(_LOG_FORMAT))
        logger.addHandler(handler)
        logger.propagate = False
        logger.setLevel(logging.INFO)

    if level:
        logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    return logger
