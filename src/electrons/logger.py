"""Package logger for the electron selection stage."""

import logging
import sys

logger = logging.getLogger("electrons")
logger.setLevel(logging.INFO)


def setup_logging():
    """
    Send log records to stdout as plain messages.

    Called by the command-line host; a library user keeps control of
    the root logger.
    """
    logging.basicConfig(format="%(message)s", stream=sys.stdout)

    # Route warnings.warn through the logger
    logging.captureWarnings(True)


def set_debug(debug):
    """Switch per-cut and per-variant tracing on or off."""
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
