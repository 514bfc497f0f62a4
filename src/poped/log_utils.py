"""
Logging helpers for design optimization runs.

Functions
---------
configure_logger
    Attach a stdout handler with the standard progress format
log_to_file
    Context manager copying a logger's output to a file
"""

import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union

LOG_FORMAT = "%(levelname)s: %(message)s"


def configure_logger(
    name: Optional[str] = "src.poped", level: int = logging.INFO
) -> logging.Logger:
    """
    Configure a logger with standard output formatting for optimization runs.

    Existing handlers are removed first so repeated calls do not duplicate
    messages. Output goes to stdout and propagation is disabled.

    Parameters
    ----------
    name : str, optional
        Logger name. Defaults to the package logger, so every module of the
        package reports through it. None configures the root logger.
    level : int, default=logging.INFO
        Logging level.

    Returns
    -------
    logging.Logger
        Configured logger instance.

    Examples
    --------
    >>> logger = configure_logger(level=logging.DEBUG)
    >>> logger.info("Starting optimization")
    INFO: Starting optimization
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if logger.hasHandlers():
        logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)

    logger.propagate = False

    return logger


@contextmanager
def log_to_file(
    logger: logging.Logger,
    path: Optional[Union[str, Path]],
    level: int = logging.INFO,
) -> Iterator[Optional[logging.FileHandler]]:
    """
    Append everything ``logger`` emits at ``level`` or above to ``path``
    while the block runs.

    The logger level is lowered to ``level`` for the block when its
    effective level is higher, and restored afterwards. A falsy ``path``
    makes this a no-op, so callers can pass an optional output file
    straight through.
    """
    if not path:
        yield None
        return

    handler = logging.FileHandler(path, mode="a")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.setLevel(level)
    saved_level = logger.level
    if logger.getEffectiveLevel() > level:
        logger.setLevel(level)
    logger.addHandler(handler)
    try:
        yield handler
    finally:
        logger.removeHandler(handler)
        logger.setLevel(saved_level)
        handler.close()
