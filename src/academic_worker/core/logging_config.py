"""
Logging Setup

Single-line console logging with timestamps, configured once at startup.
Modules log through ``logging.getLogger(__name__)``.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str = "INFO") -> None:
    """
    Configure the root logger for the worker process.

    Replaces any handlers installed earlier so repeated calls (tests,
    reloads) don't duplicate output.

    Args:
        level: Log level name, e.g. "INFO" or "DEBUG"
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())

    # APScheduler is chatty at INFO about every interval execution
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
