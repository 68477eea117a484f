"""Logging configuration for the command line and MCP entry points.

Library modules only ever call ``logging.getLogger(__name__)``; handlers are
attached here, by the processes that own the terminal.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "WARNING") -> logging.Logger:
    """Configure and return the ``labfold`` package logger."""
    logger = logging.getLogger("labfold")
    resolved = getattr(logging, level.upper(), logging.WARNING)
    logger.setLevel(resolved)

    # Prevent duplicate handlers on repeated calls
    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(handler)

    for h in logger.handlers:
        h.setLevel(resolved)

    logger.debug("Logging configured with level: %s", level.upper())
    return logger
