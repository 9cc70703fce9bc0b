# src/scandash/tasks/task_view.py

from __future__ import annotations

"""
Read-only helpers for whatever renders the task list.

Nothing here mutates tasks: filtering, labels and the client-side ETA
countdown are all derived from the reconciler's current tuple.
"""

import math
import time
from collections.abc import Iterable
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .task_models import Task

FILTER_ALL = "all"
FILTER_PENDING = "pending"
FILTER_RUNNING = "running"
FILTER_COMPLETE = "complete"

_COLLAPSED = {
    "pending": FILTER_PENDING,
    "paused": FILTER_PENDING,
    "running": FILTER_RUNNING,
    "running_recon": FILTER_RUNNING,
    "complete": FILTER_COMPLETE,
    "failed": FILTER_COMPLETE,
}

STATUS_LABELS = {
    "pending": "Pending",
    "running_recon": "Running recon",
    "running": "Running",
    "paused": "Paused",
    "complete": "Complete",
    "failed": "Failed",
}


def _parse_iso(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00")).timestamp()
    except ValueError:
        return None


def format_duration(seconds: float) -> str:
    secs = max(0, int(seconds))
    mins = secs // 60
    hours = mins // 60
    days = hours // 24
    if secs < 60:
        return f"{secs}s"
    if mins < 60:
        return f"{mins}m {secs % 60}s"
    if hours < 24:
        return f"{hours}h {mins % 60}m"
    return f"{days}d {hours % 24}h"


def format_time_ago(started_time: str | None, *, now: float | None = None) -> str:
    """'42s', '3m 5s', '2h 10m', '1d 4h'; '-' when the timestamp is missing or invalid."""
    ts = _parse_iso(started_time)
    if ts is None:
        return "-"
    now_ts = time.time() if now is None else now
    return format_duration(now_ts - ts)


def collapse_status(status: str) -> str:
    return _COLLAPSED.get(str(status), FILTER_PENDING)


def filter_tasks(tasks: Iterable[Task], *, status: str = FILTER_ALL, query: str = "") -> list[Task]:
    """
    status:
    - "all" -> no status filtering,
    - "pending" / "running" / "complete" -> collapsed status match,
    - any exact TaskStatus value (e.g. "paused") -> exact match.
    query: case-insensitive substring over name, id, target and file.
    """
    q = (query or "").strip().lower()
    st = (status or FILTER_ALL).strip().lower()

    out: list[Task] = []
    for t in tasks:
        if st != FILTER_ALL:
            if st in (FILTER_PENDING, FILTER_RUNNING, FILTER_COMPLETE):
                if collapse_status(t.status) != st:
                    continue
            elif str(t.status) != st:
                continue
        if q and not (
            q in t.name.lower()
            or q in t.id.lower()
            or q in (t.target or "").lower()
            or q in (t.file or "").lower()
        ):
            continue
        out.append(t)
    return out


def eta_remaining(task: Task, *, now: float | None = None) -> float | None:
    """Client-side countdown: the last server ETA minus time elapsed since it arrived."""
    if task.eta_seconds is None:
        return None
    if task.eta_synced_at is None:
        return task.eta_seconds
    now_ts = time.time() if now is None else now
    left = task.eta_seconds - max(0.0, now_ts - task.eta_synced_at)
    return max(0.0, left) if math.isfinite(left) else None


def format_eta(task: Task, *, now: float | None = None) -> str:
    left = eta_remaining(task, now=now)
    if left is None:
        return "-"
    return format_duration(left)


def usage(task_count: int, max_tasks: int) -> tuple[int, int]:
    """(remaining slots, usage percent) for a plan quota; (0, 0) when the quota is unknown."""
    if max_tasks <= 0:
        return 0, 0
    remaining = max(0, max_tasks - task_count)
    percent = min(100, round(task_count / max_tasks * 100))
    return remaining, percent


def render_task_line(task: Task, *, now: float | None = None) -> str:
    label = STATUS_LABELS.get(str(task.status), str(task.status))
    target = task.target or (str(task.target_total) if task.target_total is not None else "-")
    started = format_time_ago(task.started_time, now=now) if task.is_running else task.started
    return (
        f"{task.id}  {task.name}  [{label} {task.progress_percent}%]  "
        f"found={task.found} target={target} eta={format_eta(task, now=now)}  "
        f"file={task.file or '-'}  started={started or '-'}"
    )
