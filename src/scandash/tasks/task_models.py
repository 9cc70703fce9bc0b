# src/scandash/tasks/task_models.py

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from enum import StrEnum
from typing import Any


class TaskStatus(StrEnum):
    """
    Scan task lifecycle status.

    Notes:
    - DELETED never lives in a task list; it only exists so that the mapper can
      recognize a tombstone coming from upstream.
    """

    PENDING = "pending"
    RUNNING_RECON = "running_recon"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETE = "complete"
    FAILED = "failed"
    DELETED = "deleted"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.PENDING
        try:
            return cls(raw)
        except Exception:
            return cls.PENDING


RUNNING_STATUSES = frozenset({TaskStatus.RUNNING, TaskStatus.RUNNING_RECON})


@dataclass(slots=True, frozen=True)
class Task:
    id: str
    name: str
    status: TaskStatus

    found: int = 0
    target: str | None = None
    target_total: int | None = None
    remaining: int | None = None
    progress_percent: int = 0

    eta_seconds: float | None = None
    eta_synced_at: float | None = None

    file: str = ""
    started: str = "-"
    started_time: str | None = None
    updated_at: float | None = None

    @property
    def is_running(self) -> bool:
        return self.status in RUNNING_STATUSES


@dataclass(slots=True, frozen=True)
class TaskPatch:
    """
    Partial task state parsed from one upstream record.

    Every field is optional: None means "not present in this record" and the
    merge keeps whatever the existing task had. Upstream updates are partial,
    so absence is never a request to clear a field.
    """

    id: str
    name: str | None = None
    status: TaskStatus | None = None

    found: int | None = None
    target: str | None = None
    target_total: int | None = None
    remaining: int | None = None
    progress_percent: int | None = None
    done: int | None = None

    eta_seconds: float | None = None
    eta_synced_at: float | None = None

    file: str | None = None
    started: str | None = None
    started_time: str | None = None
    updated_at: float | None = None


def _pick(new: Any, old: Any, default: Any) -> Any:
    if new is not None:
        return new
    if old is not None:
        return old
    return default


def _ratio_percent(done: int | None, total: int | None) -> int | None:
    if done is None or not total or total <= 0:
        return None
    return clamp_percent(done / total * 100.0)


def clamp_percent(value: float) -> int:
    if not math.isfinite(value):
        return 0
    return int(max(0, min(100, round(value))))


def merge_patch(existing: Task | None, patch: TaskPatch) -> Task:
    """
    Merge rules (per field):
    - patch value wins when present,
    - else the existing task's value,
    - else the field default.

    Derived fields:
    - remaining: explicit value, else max(0, target_total - found), else existing/None.
    - progress_percent: explicit value, else done/target_total, else found/target_total,
      else existing/0.
    """
    status = patch.status if patch.status is not None else (existing.status if existing else TaskStatus.PENDING)
    found = _pick(patch.found, existing.found if existing else None, 0)
    target_total = _pick(patch.target_total, existing.target_total if existing else None, None)

    if patch.remaining is not None:
        remaining: int | None = patch.remaining
    elif target_total is not None:
        remaining = max(0, target_total - found)
    else:
        remaining = existing.remaining if existing else None

    progress = patch.progress_percent
    if progress is None:
        progress = _ratio_percent(patch.done, target_total)
    if progress is None and (patch.found is not None or patch.target_total is not None):
        progress = _ratio_percent(found, target_total)
    if progress is None:
        progress = existing.progress_percent if existing else 0

    if patch.eta_seconds is not None:
        eta_seconds = patch.eta_seconds
        eta_synced_at = patch.eta_synced_at
    else:
        eta_seconds = existing.eta_seconds if existing else None
        eta_synced_at = existing.eta_synced_at if existing else None

    return Task(
        id=patch.id,
        name=_pick(patch.name, existing.name if existing else None, patch.id),
        status=status,
        found=found,
        target=_pick(patch.target, existing.target if existing else None, None),
        target_total=target_total,
        remaining=remaining,
        progress_percent=progress,
        eta_seconds=eta_seconds,
        eta_synced_at=eta_synced_at,
        file=_pick(patch.file, existing.file if existing else None, ""),
        started=_pick(patch.started, existing.started if existing else None, "-"),
        started_time=_pick(patch.started_time, existing.started_time if existing else None, None),
        updated_at=_pick(patch.updated_at, existing.updated_at if existing else None, None),
    )


# ---- cache serialization ----


def task_to_dict(task: Task) -> dict[str, Any]:
    d = asdict(task)
    d["status"] = str(task.status)
    return d

