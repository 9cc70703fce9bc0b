# src/scandash/logging_setup.py

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

# Background engine loggers: reconnects and polls are routine, so the console
# only hears about them when something is actually wrong.
ENGINE_LOGGERS: tuple[str, ...] = (
    "scandash.sync.",
    "scandash.tasks.task_poller",
    "scandash.tasks.task_cache",
)

LOG_FILE_NAME = "scandash.log"
LOG_FILE_MAX_BYTES = 2 * 1024 * 1024
LOG_FILE_BACKUPS = 3


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keep the interactive console readable:
    - scandash front-end logs pass through,
    - sync engine logs only at WARNING+,
    - third-party and captured Python warnings only at ERROR+.
    """

    def __init__(self, engine_prefixes: tuple[str, ...] = ENGINE_LOGGERS) -> None:
        super().__init__()
        self._engine_prefixes = engine_prefixes

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if not name.startswith("scandash."):
            return record.levelno >= logging.ERROR
        if name.startswith(self._engine_prefixes):
            return record.levelno >= logging.WARNING
        return True


def setup_logging(
    *,
    log_dir: str | Path = ".local/scandash",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Console handler (filtered, stderr so it does not interleave with command
    output on stdout) plus a size-rotated DEBUG file for reconnect forensics.

    Call once, before the sync engine starts. Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(threadName)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
        encoding="utf-8",
    )
    file_handler.setLevel(file_level)
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    logging.captureWarnings(True)

    # httpx logs every request at INFO; fallback polling alone would flood the file.
    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return log_file
