"""Handlers for the ``brepcore`` logger namespace.

Every module logs through ``logging.getLogger(__name__)``.  The package
logger carries a :class:`logging.NullHandler` so a library user sees
nothing until they configure logging themselves or call
:func:`setup_logging`.
"""

from __future__ import annotations

import logging
import sys
from typing import IO, Optional

PACKAGE_LOGGER = "brepcore"

## record layout shared by the console and file handlers
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%H:%M:%S"

logging.getLogger(PACKAGE_LOGGER).addHandler(logging.NullHandler())


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = None, *,
                  stream: Optional[IO[str]] = None) -> logging.Logger:
    """Send ``brepcore`` records at ``level`` and above to ``stream``.

    ``stream`` defaults to standard error.  With ``log_file`` the same
    records are also written to that file, which is truncated first.
    Calling again replaces the handlers of the previous call and closes
    them.  Returns the package logger.
    """

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers = [logging.StreamHandler(stream if stream is not None else sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="w", encoding="utf-8"))
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.debug("logging to %s", log_file or "the console")
    return logger


__all__ = ["PACKAGE_LOGGER", "LOG_FORMAT", "setup_logging"]
