# src/scandash/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState (which already shows cached tasks),
then starts:
- the task sync engine in a background thread (own asyncio loop),
- the console REPL in the main thread, or a plain wait when the console is off.
"""

from __future__ import annotations

import logging
import signal
import threading

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..connectors.sync_runner import start_sync_in_background
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)

SHUTDOWN_TIMEOUT_S = 10.0


def _console_level(level_name: str) -> int:
    level = logging.getLevelName(str(level_name).upper())
    return level if isinstance(level, int) else logging.INFO


def _install_signal_handlers(stop: threading.Event) -> None:
    def _handle(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop.set()

    for name in ("SIGINT", "SIGTERM"):
        sig = getattr(signal, name, None)
        if sig is None:
            continue
        try:
            signal.signal(sig, _handle)
        except (ValueError, OSError):
            logger.debug("Cannot install handler for %s", name)


def main() -> int:
    settings = get_settings()
    log_file = setup_logging(log_dir=settings.data_dir, console_level=_console_level(settings.log_level))
    logger.info("Starting %s (log file: %s)", settings.app_name, log_file)

    state = create_initial_state(settings=settings)
    runner = start_sync_in_background(state)
    if runner is None:
        logger.error("Sync engine failed to start.")
        return 1

    stop = threading.Event()
    try:
        if settings.console_enabled:
            run_console_loop(state)
        else:
            _install_signal_handlers(stop)
            logger.info("Console disabled; syncing in the background. Press Ctrl+C to stop.")
            while not stop.wait(1.0) and runner.alive:
                pass
    finally:
        runner.stop()
        runner.join(timeout=SHUTDOWN_TIMEOUT_S)
        logger.info("Bye.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
