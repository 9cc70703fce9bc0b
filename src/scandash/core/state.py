# src/scandash/core/state.py

from __future__ import annotations

from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any, Protocol

from ..tasks.task_api import PlanInfo
from ..tasks.task_view import FILTER_ALL


class EngineNotRunningError(RuntimeError):
    """The sync engine thread is not (or no longer) accepting work."""


class CoroutineRunner(Protocol):
    """Runs a coroutine on the sync engine's event loop and returns its result."""

    def call(self, coro: Coroutine[Any, Any, Any], timeout: float | None = None) -> Any: ...

    def post(self, fn: Callable[[], Any]) -> None: ...


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: Any

    # TaskSyncService (kept as Any so front-ends can be tested with fakes)
    service: Any
    runner: CoroutineRunner | None = None

    plan: PlanInfo | None = None

    # Current view of the tasks list (console /tasks).
    status_filter: str = FILTER_ALL
    query: str = ""
