"""Logging configuration for BatteryLens.

Modules log through ``logging.getLogger(__name__)``, so every record from
the session, the extraction controller and the dashboard routes ends up on
the ``batterylens`` package logger configured here. Batch runs are chatty at
DEBUG (one line per settled job), so the level can be raised or lowered with
``BATTERYLENS_LOG_LEVEL`` without touching code.
"""

import logging
import os
import sys

logger = logging.getLogger("batterylens")

LOG_FORMAT = "batterylens[%(name)s] %(levelname)s: %(message)s"


def _level_from_env(default: int) -> int:
    name = os.environ.get("BATTERYLENS_LOG_LEVEL", "").upper()
    level = logging.getLevelName(name) if name else default
    return level if isinstance(level, int) else default


def setup_logger(level: int | None = None) -> logging.Logger:
    """Attach the stdout handler to the package logger.

    Calling it again only changes the level, the handler is installed once.

    Args:
        level: Logging level. Defaults to ``BATTERYLENS_LOG_LEVEL`` or INFO.

    Returns:
        The ``batterylens`` logger
    """
    if level is None:
        level = _level_from_env(logging.INFO)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
        # uvicorn configures the root logger; keep records from printing twice
        logger.propagate = False

    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)
    return logger


setup_logger()
