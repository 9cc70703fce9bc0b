# src/scandash/cli/commands.py

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from typing import cast

from ..core.state import AppState, EngineNotRunningError
from ..tasks.task_api import TaskApiError
from ..tasks.task_view import (
    FILTER_ALL,
    FILTER_COMPLETE,
    FILTER_PENDING,
    FILTER_RUNNING,
    STATUS_LABELS,
    filter_tasks,
    render_task_line,
    usage,
)

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)

USER_ACTION_TIMEOUT_S = 30.0

_FILTER_CHOICES = (FILTER_ALL, FILTER_PENDING, FILTER_RUNNING, FILTER_COMPLETE, *STATUS_LABELS.keys())


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /tasks, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except Exception:
            nparams = 3

        if nparams >= 3:
            h3 = cast(CommandHandler3, handler)
            return h3(state, args, emit)

        h2 = cast(CommandHandler2, handler)
        return h2(state, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _run_action(state: AppState, coro) -> str | None:
    """Run a user action on the engine loop; returns an error message or None on success."""
    runner = state.runner
    if runner is None:
        coro.close()
        return "Sync engine is not running."
    try:
        runner.call(coro, timeout=USER_ACTION_TIMEOUT_S)
    except TaskApiError as e:
        logger.info("User action failed: status=%s code=%s", e.status, e.code)
        return str(e)
    except TimeoutError:
        return "The server did not answer in time. Please try again."
    except EngineNotRunningError:
        logger.warning("User action dropped: sync engine is gone", exc_info=True)
        return "Sync engine is not running."
    return None


def cmd_help(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    service = state.service
    rec = service.reconciler
    conn = service.connection.state

    lines = [
        "Status:",
        f"  Connection: {service.connection.message} ({conn})",
        f"  Tasks: {len(rec.tasks)}",
    ]
    if getattr(service, "loading", False):
        lines.append("  Loading tasks...")
    if rec.stale:
        lines.append("  Showing cached data (not yet synced)")
    if rec.slow_server:
        lines.append("  Server is responding slowly")
    if state.plan is not None:
        remaining, percent = usage(len(rec.tasks), state.plan.max_tasks)
        lines.append(
            f"  Plan: {state.plan.plan} ({len(rec.tasks)}/{state.plan.max_tasks} used, "
            f"{remaining} remaining, {percent}%)"
        )
    return "\n".join(lines)


def cmd_tasks(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /tasks                 -> list with the current filter
    /tasks <text>          -> search name/id/target/file
    """
    if args:
        state.query = " ".join(args)

    tasks = filter_tasks(state.service.reconciler.tasks, status=state.status_filter, query=state.query)
    header = f"{len(tasks)} results (filter={state.status_filter}, query={state.query or '-'})"
    if not tasks:
        return header + "\nNo tasks yet. Create your first task to start scanning."
    return "\n".join([header, *(render_task_line(t) for t in tasks)])


def cmd_filter(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /filter                -> show current filter
    /filter <status>       -> all | pending | running | complete | <exact status>
    /filter clear          -> reset status filter and search text
    """
    if not args:
        return f"Filter: status={state.status_filter} query={state.query or '-'}"

    arg = args[0].lower()
    if arg == "clear":
        state.status_filter = FILTER_ALL
        state.query = ""
        return "Filter cleared."
    if arg not in _FILTER_CHOICES:
        return "Usage: /filter " + " | ".join(_FILTER_CHOICES) + " | clear"

    state.status_filter = arg
    return f"Status filter set to {arg}."


def cmd_create(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """/create <file_id> <task name...>"""
    if len(args) < 2:
        return "Usage: /create <file_id> <task name>"

    plan = state.plan
    if plan is not None:
        count = len(state.service.reconciler.tasks)
        if plan.plan == "Free":
            return "Free plan users cannot create tasks. Please upgrade to Pro or Pro+."
        if plan.max_tasks > 0 and count >= plan.max_tasks:
            return (
                f"Task limit reached. You have {count} of {plan.max_tasks} tasks. "
                "Please delete some tasks or upgrade your plan."
            )

    file_id, name = args[0], " ".join(args[1:])
    if emit is not None:
        emit(f"Creating task '{name}'...")
    err = _run_action(state, state.service.create_task(name=name, file_id=file_id))
    return err or "Task created successfully."


def cmd_delete(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """/delete <task_id>"""
    if len(args) != 1:
        return "Usage: /delete <task_id>"
    err = _run_action(state, state.service.delete_task(args[0]))
    return err or f"Task {args[0]} deleted."


def cmd_start(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """/start <task_id>"""
    if len(args) != 1:
        return "Usage: /start <task_id>"
    if state.plan is not None and state.plan.plan == "Free":
        return "Free plan users cannot start tasks. Please upgrade to Pro or Pro+."
    if emit is not None:
        emit(f"Starting task {args[0]}...")
    err = _run_action(state, state.service.start_task(args[0]))
    return err or f"Task {args[0]} started; progress will follow live."


def _status_action(action: str, done: str):
    def handler(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
        if len(args) != 1:
            return f"Usage: /{action} <task_id>"
        err = _run_action(state, state.service.update_task_status(args[0], action))
        return err or f"Task {args[0]} {done}."

    return handler


def _post(state: AppState, fn) -> str | None:
    runner = state.runner
    if runner is None:
        return "Sync engine is not running."
    try:
        runner.post(fn)
    except EngineNotRunningError:
        return "Sync engine is not running."
    return None


def cmd_reconnect(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return _post(state, state.service.session.force_reconnect) or "Reconnecting..."


def cmd_refresh(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return _post(state, state.service.refresh_in_background) or "Refreshing in background..."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show connection, cache and plan status.")
registry.register("tasks", cmd_tasks, help_text="List tasks: /tasks [search text].", aliases=["ls"])
registry.register(
    "filter", cmd_filter, help_text="Status filter: /filter all|pending|running|complete|<status>|clear."
)
registry.register("create", cmd_create, help_text="Create a task: /create <file_id> <name>.")
registry.register("delete", cmd_delete, help_text="Delete a task: /delete <task_id>.", aliases=["rm"])
registry.register("start", cmd_start, help_text="Start a scan: /start <task_id>.")
registry.register("pause", _status_action("pause", "paused"), help_text="Pause a task: /pause <task_id>.")
registry.register(
    "restart", _status_action("restart", "reset to pending"), help_text="Reset a task to pending: /restart <task_id>."
)
registry.register("reconnect", cmd_reconnect, help_text="Force the live stream to reconnect.")
registry.register("refresh", cmd_refresh, help_text="Fetch the full task list now.")
