"""
Logging setup for HET.

Modules log through ``logging.getLogger(__name__)``. configure_logging wires
the ``het`` logger to:

- het.log: everything at the configured level (rotating, 10 MB x 5)
- error.log: errors only (rotating, 10 MB x 3)
- stderr: Rich-formatted console output

stdout is never used for logs; hook callers read the decision from it.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "het"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
MAX_LOG_BYTES = 10 * 1024 * 1024

_HANDLER_MARKER = "_het_handler"


def configure_logging(
    level: str = "info",
    log_dir: Path | str | None = None,
    console: bool = True,
) -> logging.Logger:
    """
    Configure the package logger.

    Safe to call more than once; handlers installed by a previous call are
    replaced rather than duplicated.

    Args:
        level: Level name (debug, info, warning, error)
        log_dir: Directory for het.log and error.log. None disables file logs.
        console: Whether to log to stderr

    Returns:
        The configured ``het`` logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper())
    logger.propagate = False

    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            logger.removeHandler(handler)
            handler.close()

    handlers: list[logging.Handler] = []

    if log_dir is not None:
        log_path = Path(log_dir)
        try:
            log_path.mkdir(parents=True, exist_ok=True)
            main_handler = RotatingFileHandler(
                log_path / "het.log", maxBytes=MAX_LOG_BYTES, backupCount=5
            )
            main_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            error_handler = RotatingFileHandler(
                log_path / "error.log", maxBytes=MAX_LOG_BYTES, backupCount=3
            )
            error_handler.setLevel(logging.ERROR)
            error_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            handlers.extend([main_handler, error_handler])
        except OSError as e:
            # Unwritable home: keep going with console logging only
            print(f"het: cannot open log files in {log_path}: {e}", file=sys.stderr)

    if console:
        console_handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        )
        handlers.append(console_handler)

    for handler in handlers:
        setattr(handler, _HANDLER_MARKER, True)
        logger.addHandler(handler)

    return logger
