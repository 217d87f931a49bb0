"""Logging setup shared by the CLI entry point and the daemon."""

import logging
import sys
from pathlib import Path
from typing import Optional

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEBUG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"

# Libraries that log every request or job run at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "apscheduler")


def parse_level(name: str, default: int = logging.INFO) -> int:
    """Map a level name such as ``"warning"`` to its number, or ``default``."""
    value = logging.getLevelName(name.strip().upper())
    return value if isinstance(value, int) else default


def configure_logging(
    level: int,
    format_str: str = DEFAULT_FORMAT,
    log_file: Optional[Path] = None,
    file_level: Optional[int] = None,
    console: bool = True,
) -> None:
    """Replace the root logger's handlers.

    Args:
        level: Level for the console handler
        format_str: Record format for every handler
        log_file: Also write records here, creating parent directories
        file_level: Level for the file handler, ``level`` when omitted
        console: Write records to stderr
    """
    handlers: list[logging.Handler] = []
    levels = [level]

    if console:
        stream = logging.StreamHandler(sys.stderr)
        stream.setLevel(level)
        handlers.append(stream)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level if file_level is None else file_level)
        handlers.append(file_handler)
        levels.append(file_handler.level)

    if not handlers:
        handlers.append(logging.NullHandler())

    logging.basicConfig(level=min(levels), format=format_str, handlers=handlers, force=True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logging.getLogger(__name__).debug("Logging configured: level=%s", logging.getLevelName(level))
