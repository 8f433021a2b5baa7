"""Root logger configuration for the command-line entry point.

Console output is meant for someone running one command: short lines, our
own modules only (third-party records only at ERROR). The log file keeps
the full picture and is rotated by size.
"""
from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

# modules whose loggers count as "ours" on the console
APP_LOGGERS = frozenset({
    "store", "ordering", "tags", "selection", "storage", "snapshot", "export", "cli", "main",
})
LOG_FILE_NAME = "tasktrack.log"
LOG_FILE_MAX_BYTES = 512 * 1024
LOG_FILE_BACKUPS = 3

CONSOLE_FORMAT = "%(levelname)s %(name)s: %(message)s"
FILE_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)-7s %(name)s: %(message)s"

# marks handlers installed here so a second call replaces only those
_OWNED = "_tasktrack_handler"


class _ConsoleNoiseFilter(logging.Filter):
    """Keep our own records; everything else (py.warnings included) only at ERROR+."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name.split(".", 1)[0] in APP_LOGGERS:
            return True
        return record.levelno >= logging.ERROR


def _own(handler: logging.Handler, level: int, fmt: logging.Formatter) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(fmt)
    setattr(handler, _OWNED, True)
    return handler


def setup_logging(
    *,
    log_dir: str | Path = "data/logs",
    console_level: int = logging.WARNING,
    file_level: int = logging.DEBUG,
) -> Path:
    """Install the console and rotating file handlers; returns the log file path."""
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(min(console_level, file_level))
    for handler in [h for h in root.handlers if getattr(h, _OWNED, False)]:
        root.removeHandler(handler)
        handler.close()

    console = _own(logging.StreamHandler(sys.stderr), console_level,
                   logging.Formatter(CONSOLE_FORMAT))
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    root.addHandler(_own(
        RotatingFileHandler(log_file, maxBytes=LOG_FILE_MAX_BYTES,
                            backupCount=LOG_FILE_BACKUPS, encoding="utf-8"),
        file_level,
        logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"),
    ))

    logging.captureWarnings(True)
    return log_file
