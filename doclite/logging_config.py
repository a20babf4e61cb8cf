"""
Logging configuration for doclite.

Library code only creates module loggers; handlers are attached here.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

OPS_LOG_FILENAME = "doclite-ops.log"


def configure_quiet_mode(quiet: bool = True):
    """
    Keep doclite's own loggers at WARNING unless verbose output is wanted.

    Args:
        quiet: If True, suppress debug/info output. If False, show everything.
    """
    level = logging.WARNING if quiet else logging.DEBUG
    logging.getLogger("doclite").setLevel(level)


def enable_debug_mode():
    """Enable debug-level logging to stderr."""
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Add stderr handler if not already present
    if not any(isinstance(h, logging.StreamHandler) and h.stream == sys.stderr
               for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S"
        ))
        root_logger.addHandler(handler)

    logging.getLogger("doclite").setLevel(logging.DEBUG)


def configure_ops_log(store_path):
    """Configure a persistent operations log for a doclite store.

    Writes to {store_path}/doclite-ops.log using a rotating file handler
    (1MB max, 3 backups). Returns the handler so it can be removed on close().
    """
    log_path = Path(store_path) / OPS_LOG_FILENAME
    handler = RotatingFileHandler(
        str(log_path),
        maxBytes=1_000_000,
        backupCount=3,
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    doclite_logger = logging.getLogger("doclite")
    doclite_logger.addHandler(handler)
    # Ensure doclite logger allows INFO through even in quiet mode
    if doclite_logger.level == logging.NOTSET or doclite_logger.level > logging.INFO:
        doclite_logger.setLevel(logging.INFO)

    return handler
