"""Logging setup for the conductor CLI.

Library modules only call ``get_logger(__name__)``. The CLI calls
``configure_logging`` once per invocation: log records go to stderr so that
agent output on stdout can be piped, and optionally to a rotating
``conductor.log`` under ``CONDUCTOR_LOG_DIR``.
"""

import logging
import logging.handlers
import sys
from pathlib import Path

PACKAGE_LOGGER = "conductor"
LOG_FILENAME = "conductor.log"

_CONSOLE_FORMAT = "%(levelname)-8s %(name)s: %(message)s"
_FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_debug_mode(enabled: bool) -> None:
    """Switch the package logger between DEBUG and INFO."""
    logging.getLogger(PACKAGE_LOGGER).setLevel(
        logging.DEBUG if enabled else logging.INFO
    )


def configure_logging(
    log_dir: str | Path | None = None,
    console_level: int = logging.WARNING,
    max_file_size_mb: int = 10,
    backup_count: int = 5,
) -> None:
    """Install the stderr handler and, with a log dir, a rotating file handler.

    Calling it again replaces the handlers from the previous call.

    Args:
        log_dir: Directory for conductor.log; no file logging when None
        console_level: Minimum level printed to stderr
        max_file_size_mb: Size at which the log file rotates
        backup_count: Rotated files to keep
    """
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    root.setLevel(logging.DEBUG)
    logging.getLogger(PACKAGE_LOGGER).setLevel(logging.INFO)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    root.addHandler(console)

    if log_dir:
        directory = Path(log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            directory / LOG_FILENAME,
            maxBytes=max_file_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        root.addHandler(file_handler)
