"""Append-only action log: ``<timestamp> - (<status>) - <message>`` per line."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from hostpanel.errors import LogSinkError

LOG_FORMAT = "%(asctime)s - (%(levelname)s) - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class _BestEffortFileHandler(logging.FileHandler):
    """A full disk or revoked file must not take the session down."""

    def handleError(self, record: logging.LogRecord) -> None:
        pass


def _writable(path: Path) -> bool:
    """Open *path* for appending, creating it owner-only (0600) if missing."""
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
    except OSError:
        return False
    os.close(fd)
    return True


def open_log_sink(
    primary: Path,
    fallback: Path,
    name: str = "hostpanel",
) -> logging.Logger:
    """Attach a file handler on *primary*, or *fallback* if that isn't writable.

    Raises:
        LogSinkError: Neither location can be opened for appending.
    """
    for path in (primary, fallback):
        if _writable(path):
            break
    else:
        raise LogSinkError(f"cannot open log file {primary} or {fallback}")

    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    logger.propagate = False
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()

    handler = _BestEffortFileHandler(path, mode="a", encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)
    return logger
