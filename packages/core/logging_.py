from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional, TextIO

from packages.shared.paths import log_path, ensure_app_dirs

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def console_handler(stream: TextIO, level: str = "INFO") -> Optional[logging.Handler]:
    """
    Handler for interactive runs, or None when the stream is not a terminal.

    Under a parent process stderr is a pipe carrying one JSON error record per
    line; free-text log lines must never be interleaved with them.
    """
    isatty = getattr(stream, "isatty", None)
    if isatty is None or not isatty():
        return None
    ch = logging.StreamHandler(stream)
    ch.setLevel(level)
    ch.setFormatter(logging.Formatter(LOG_FORMAT))
    return ch


def setup_logging(level: str = "INFO", console: bool = False) -> None:
    """
    Log to a rotating file under the app data dir.

    stdout carries the event protocol and stderr the structured error records,
    so the console handler stays off unless explicitly requested, and even then
    only attaches when stderr is a terminal.
    """
    ensure_app_dirs()
    root = logging.getLogger()
    root.setLevel(level)

    if root.handlers:
        return

    fh = RotatingFileHandler(str(log_path()), maxBytes=2_000_000, backupCount=3, encoding="utf-8")
    fh.setLevel(level)
    fh.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(fh)

    if console:
        ch = console_handler(sys.stderr, level)
        if ch is None:
            root.warning("Console logging requested but stderr is not a terminal; logging to file only")
        else:
            root.addHandler(ch)

    # Pillow plugin discovery is noisy at DEBUG
    logging.getLogger("PIL").setLevel(logging.INFO)
