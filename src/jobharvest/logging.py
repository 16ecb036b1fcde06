"""Package logger for jobharvest.

Every module logs through the ``logger`` exported here.  At import it
writes INFO and above to stderr; the CLI's ``-v`` flag lowers that to
DEBUG via :func:`set_verbose`.

Scrape jobs can run for many minutes of polite pacing, so
:func:`configure_file_logging` adds a per-run file under ``data/logs/``
that keeps the full record after the terminal has scrolled away.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from pathlib import Path

_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

DEFAULT_LOG_DIR = "data/logs"


def _formatter() -> logging.Formatter:
    return logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATEFMT)


logger = logging.getLogger("jobharvest")
logger.setLevel(logging.INFO)

handler = logging.StreamHandler(sys.stderr)
handler.setLevel(logging.INFO)
handler.setFormatter(_formatter())
logger.addHandler(handler)


def _admit(level: int) -> None:
    """Lower the logger's own threshold so *level* records reach handlers."""
    if level < logger.level:
        logger.setLevel(level)


def configure_file_logging(
    log_dir: str = DEFAULT_LOG_DIR,
    *,
    level: int = logging.INFO,
) -> logging.FileHandler:
    """Attach a handler writing to ``<log_dir>/jobharvest_<timestamp>.log``.

    The directory is created if needed.  The handler is returned so the
    caller can detach and close it.
    """
    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S")

    file_handler = logging.FileHandler(
        str(directory / f"jobharvest_{stamp}.log"), encoding="utf-8"
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(_formatter())
    _admit(level)
    logger.addHandler(file_handler)
    return file_handler


def set_verbose(verbose: bool) -> None:
    """Switch the stderr handler between INFO and DEBUG."""
    level = logging.DEBUG if verbose else logging.INFO
    handler.setLevel(level)
    _admit(level)


__all__ = ["configure_file_logging", "logger", "set_verbose"]
