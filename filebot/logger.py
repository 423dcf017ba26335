"""
Logger configuration.

One stdout handler with timestamped lines, installed once at process start.
Modules log through `logging.getLogger(__name__)`.
"""

import logging
import sys

HANDLER_NAME = "filebot"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with ISO timestamps. Safe to call repeatedly."""
    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())

    if any(h.get_name() == HANDLER_NAME for h in root_logger.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    root_logger.addHandler(handler)

    # Scheduler logs every job run at INFO
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("pdfminer").setLevel(logging.WARNING)
