"""
Logging configuration for telescope.

Quiet by default; debug output goes to stderr on request.
"""

import logging
import os
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path


def configure_quiet_mode(quiet: bool = True):
    """
    Configure logging to keep the command line quiet.

    Args:
        quiet: If True, only warnings and errors from telescope get through.
    """
    if quiet:
        warnings.filterwarnings("ignore")
        logging.getLogger("telescope").setLevel(logging.WARNING)


def enable_debug_mode():
    """Enable debug-level logging to stderr."""
    warnings.filterwarnings("default")

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

    logging.getLogger("telescope").setLevel(logging.DEBUG)


def configure_ops_log(store_path):
    """Configure a persistent operations log for a store.

    Writes to {store_path}/telescope-ops.log using a rotating file handler
    (1MB max, 3 backups). Always active regardless of --verbose.
    Returns the handler so it can be removed on close().
    """
    log_path = Path(store_path) / "telescope-ops.log"
    log_path.parent.mkdir(parents=True, exist_ok=True)
    telescope_logger = logging.getLogger("telescope")

    for existing in telescope_logger.handlers:
        if (isinstance(existing, RotatingFileHandler)
                and existing.baseFilename == os.path.abspath(log_path)):
            return existing

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

    telescope_logger.addHandler(handler)
    # Ensure INFO gets through even in quiet mode
    if telescope_logger.level == logging.NOTSET or telescope_logger.level > logging.INFO:
        telescope_logger.setLevel(logging.INFO)

    return handler
