# src/scandash/connectors/console_connector.py

"""
Interactive console front-end.

Reads slash commands on the main thread; everything the engine reports
(connection changes, tasks finishing) arrives via listeners that run on the
engine thread, so those only print and never touch AppState.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import AppState
from ..sync.connection import STATUS_MESSAGES, ConnectionState
from ..tasks.task_models import Task, TaskStatus
from ..tasks.task_view import STATUS_LABELS

logger = logging.getLogger(__name__)

PROMPT = "scandash> "
EXIT_COMMANDS = frozenset({"/exit", "/quit", "/q"})

_ANNOUNCED_STATES = frozenset({ConnectionState.LIVE, ConnectionState.POLLING, ConnectionState.STOPPED})
_FINISHED = frozenset({TaskStatus.COMPLETE, TaskStatus.FAILED})

_print_lock = threading.Lock()


def _say(text: str) -> None:
    stamp = datetime.now().astimezone().strftime("%H:%M:%S")
    with _print_lock:
        print(f"[{stamp}] {text}", flush=True)


class _TaskFinishReporter:
    """Announce tasks that reach complete/failed since the last change."""

    def __init__(self, initial: tuple[Task, ...]) -> None:
        self._status = {t.id: t.status for t in initial}

    def __call__(self, tasks: tuple[Task, ...]) -> None:
        current = {t.id: t.status for t in tasks}
        for t in tasks:
            before = self._status.get(t.id)
            if before is not None and before != t.status and t.status in _FINISHED:
                _say(f"[TASK] {t.name} ({t.id}): {STATUS_LABELS.get(t.status, t.status)}, found {t.found}")
        self._status = current


def _attach_listeners(state: AppState) -> list:
    service = state.service

    def on_connection(_old: ConnectionState, new: ConnectionState) -> None:
        if new in _ANNOUNCED_STATES:
            _say(f"[SYNC] {STATUS_MESSAGES[new]}")

    return [
        service.connection.subscribe(on_connection),
        service.reconciler.subscribe(_TaskFinishReporter(service.reconciler.tasks)),
    ]


def run_console_loop(state: AppState) -> None:
    logger.info("Console connector started.")
    _say("Type /tasks to list tasks, /help for commands, /exit to quit. Bare text searches.")

    unsubscribers = _attach_listeners(state)
    try:
        while True:
            try:
                line = input(PROMPT).strip()
            except (EOFError, KeyboardInterrupt):
                print()
                logger.info("Console input closed, exiting.")
                break

            if not line:
                continue
            if line.lower() in EXIT_COMMANDS:
                break
            if not line.startswith("/"):
                line = f"/tasks {line}"

            try:
                reply = command_registry.handle(state, line, emit=_say)
            except Exception:
                logger.exception("Command handler crashed: %s", line)
                reply = "Internal error while handling a command."

            if reply:
                with _print_lock:
                    print(reply + "\n", flush=True)
    finally:
        for unsubscribe in unsubscribers:
            unsubscribe()
        logger.info("Console connector finished.")
