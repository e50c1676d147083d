"""Logging setup for the riotplan CLI.

Library modules only create module loggers; handlers are installed here.
"""

import logging
import sys

LOGGER_NAME = "riotplan"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: int | str = logging.WARNING) -> logging.Logger:
    """Send riotplan logs to stderr at the given level.

    Calling it again only updates the level (no duplicate handlers).
    """
    riotplan_logger = logging.getLogger(LOGGER_NAME)
    riotplan_logger.setLevel(level)

    for handler in riotplan_logger.handlers:
        if getattr(handler, "_riotplan_cli", False):
            handler.setLevel(level)
            return riotplan_logger

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    console_handler._riotplan_cli = True  # type: ignore[attr-defined]
    riotplan_logger.addHandler(console_handler)
    return riotplan_logger
