# src/scandash/tasks/task_reconciler.py

"""
Authoritative in-memory task list.

Every producer (stream session, fallback poller, bootstrap load, user actions,
cache bridge) goes through this class; nothing else mutates the list.

Key invariants:
- ids are unique within the list,
- no task with status "deleted" is ever retained,
- a snapshot is authoritative for membership (tasks absent from it are dropped),
- an update is a partial merge: fields absent from it keep their previous value.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from typing import Any

from ..core.ports import RawRecord, TaskListListener
from .task_mapper import from_stream_summary, normalize_status
from .task_models import Task, TaskStatus

logger = logging.getLogger(__name__)

Mapper = Callable[..., Task | None]

DEFAULT_SLOW_SERVER_MS = 1800.0


class TaskReconciler:
    def __init__(
        self,
        *,
        slow_server_ms: float = DEFAULT_SLOW_SERVER_MS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._tasks: tuple[Task, ...] = ()
        self._listeners: list[TaskListListener] = []
        self._clock = clock
        self.slow_server_ms = float(slow_server_ms)

        self.stale = False
        self.slow_server = False
        self.last_sync_at: float | None = None

    # ---- read API ----

    @property
    def tasks(self) -> tuple[Task, ...]:
        return self._tasks

    def find(self, task_id: str) -> Task | None:
        for t in self._tasks:
            if t.id == task_id:
                return t
        return None

    def subscribe(self, listener: TaskListListener) -> Callable[[], None]:
        """Register a change listener; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ---- write API ----

    def seed_from_cache(self, tasks: Iterable[Task]) -> None:
        """Show last-known-good data; stays marked stale until a real sync lands."""
        self._tasks = self._dedupe(tasks)
        self.stale = True
        self._notify()

    def apply_snapshot(
        self,
        raw_items: list[RawRecord],
        *,
        mapper: Mapper | None = None,
        latency_ms: float | None = None,
    ) -> bool:
        """
        Full replace. Each record is mapped with the previous task of the same id
        as `existing`, so fields the snapshot shape does not carry survive.
        """
        map_fn = mapper or from_stream_summary
        if not isinstance(raw_items, list):
            logger.warning("Snapshot ignored: tasks is %s, not a list", type(raw_items).__name__)
            return False

        now = self._clock()
        previous = {t.id: t for t in self._tasks}
        seen: set[str] = set()
        out: list[Task] = []
        dropped = 0

        for raw in raw_items:
            raw_id = _raw_id(raw)
            task = map_fn(raw, previous.get(raw_id) if raw_id else None, now=now)
            if task is None:
                dropped += 1
                continue
            if task.id in seen:
                continue
            seen.add(task.id)
            out.append(task)

        if dropped:
            logger.debug("Snapshot: dropped %d unusable/deleted records", dropped)

        self._tasks = tuple(out)
        self._mark_synced(now)
        if latency_ms is not None:
            self.slow_server = float(latency_ms) > self.slow_server_ms
        self._notify()
        return True

    def apply_update(self, event: RawRecord, *, mapper: Mapper | None = None) -> bool:
        """
        Incremental change from a task_update event: {"task": {...}, "reason": "..."}.
        Returns True when the list changed shape or content was applied.
        """
        if not isinstance(event, dict):
            return False
        raw = event.get("task")
        if not isinstance(raw, dict):
            logger.warning("task_update without a task object ignored")
            return False

        task_id = _raw_id(raw)
        if not task_id:
            logger.warning("task_update without taskid ignored")
            return False

        now = self._clock()
        reason = str(event.get("reason") or "").strip().lower()

        if reason == "delete" or normalize_status(raw.get("status")) == TaskStatus.DELETED:
            self._tasks = tuple(t for t in self._tasks if t.id != task_id)
            self._mark_synced(now)
            self._notify()
            return True

        existing = self.find(task_id)
        mapped = (mapper or from_stream_summary)(raw, existing, now=now)
        if mapped is None:
            return False

        if (
            existing is not None
            and existing.updated_at is not None
            and mapped.updated_at is not None
            and mapped.updated_at < existing.updated_at
        ):
            logger.debug(
                "task_update for %s older than current state (%.3f < %.3f); ignored",
                task_id,
                mapped.updated_at,
                existing.updated_at,
            )
            return False

        if existing is None:
            self._tasks = (mapped, *self._tasks)
        else:
            self._tasks = tuple(mapped if t.id == task_id else t for t in self._tasks)

        self._mark_synced(now)
        self._notify()
        return True

    # ---- internals ----

    def _mark_synced(self, now: float) -> None:
        self.stale = False
        self.last_sync_at = now

    @staticmethod
    def _dedupe(tasks: Iterable[Task]) -> tuple[Task, ...]:
        seen: set[str] = set()
        out: list[Task] = []
        for t in tasks:
            if t.id in seen or t.status == TaskStatus.DELETED:
                continue
            seen.add(t.id)
            out.append(t)
        return tuple(out)

    def _notify(self) -> None:
        snapshot = self._tasks
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Task list listener failed")


def _raw_id(raw: Any) -> str | None:
    if not isinstance(raw, dict):
        return None
    for key in ("taskid", "id"):
        v = raw.get(key)
        if isinstance(v, (str, int)) and not isinstance(v, bool):
            s = str(v).strip()
            if s:
                return s
    return None
