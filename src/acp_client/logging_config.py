"""Logging configuration for the ACP client."""

import logging
import sys


def setup_logging(level: str = "INFO", debug: bool = False) -> None:
    """
    Configure logging for the application.

    Logs go to stderr so they never interleave with the chat transcript
    printed on stdout.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        debug: Enable debug mode with verbose formatting
    """
    log_level = logging.DEBUG if debug else getattr(logging, level.upper(), logging.INFO)

    # Format
    if debug:
        log_format = (
            "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
        )
    else:
        log_format = "%(asctime)s | %(levelname)-8s | %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )

    # Suppress noisy third-party loggers
    logging.getLogger("websockets").setLevel(
        logging.DEBUG if debug else logging.WARNING
    )
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)