"""Loguru setup for the CLI."""

import sys

from loguru import logger

LOG_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan> - <level>{message}</level>"
)


def configure_logging(verbose: bool = False) -> None:
    """Route loguru to stderr.

    Normal runs only surface errors through loguru; the console renderer
    covers everything else. ``--verbose`` shows the full debug trail.
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else "ERROR",
        format=LOG_FORMAT,
        colorize=None,
    )
