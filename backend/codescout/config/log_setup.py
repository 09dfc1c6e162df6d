from __future__ import annotations

"""backend/codescout/config/log_setup.py

Logging bootstrap for the backend.

Modules log through ``logging.getLogger(__name__)``; this helper only
attaches one stream handler to the package logger so that repeated calls
(tests, reloads) never stack handlers.
"""

import logging

LOGGER_NAME = "codescout"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str | int = logging.INFO) -> logging.Logger:
    """Configure and return the ``codescout`` package logger."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
