"""Process-wide logging: stdout plus an append-only log file."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

HANDLER_NAME = "hashsoak"
LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

logger = logging.getLogger(__name__)


def configure_logging(log_file: str | Path | None = None, level: str | int = "INFO") -> logging.Logger:
    """Send log records to stdout and, when possible, to *log_file*.

    A log file that cannot be opened is reported and skipped; stdout
    logging still works.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        if handler.get_name() == HANDLER_NAME:
            root.removeHandler(handler)
            handler.close()

    if isinstance(level, str):
        level = level.upper()
    root.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    stream_handler.set_name(HANDLER_NAME)
    root.addHandler(stream_handler)

    if log_file is not None:
        try:
            file_handler = logging.FileHandler(Path(log_file), mode="a", encoding="utf-8")
        except OSError as exc:
            logger.error("Could not write to log file %s: %s", log_file, exc)
        else:
            file_handler.setFormatter(formatter)
            file_handler.set_name(HANDLER_NAME)
            root.addHandler(file_handler)

    return root
