# src/scandash/tasks/task_mapper.py

"""
Upstream record -> Task mapping.

Two upstream shapes exist:
- full REST task objects (GET /api/v1/tasks),
- streamed task summaries (user_snapshot / task_update events from the scan engine).
Cached tasks are read back through the same coercers (from_cache_record).

Both mappers are total: they never raise on bad input. A record without an id,
or whose status normalizes to "deleted", maps to None. Malformed numbers fall
back to the existing task's value, then to a safe default.
"""

from __future__ import annotations

import math
import time
from datetime import datetime
from typing import Any

from .task_models import Task, TaskPatch, TaskStatus, clamp_percent, merge_patch
from .task_view import format_time_ago

_STATUS_ALIASES: dict[str, TaskStatus] = {
    "done": TaskStatus.COMPLETE,
    "completed": TaskStatus.COMPLETE,
    "finished": TaskStatus.COMPLETE,
    "success": TaskStatus.COMPLETE,
    "task_done": TaskStatus.COMPLETE,
    "error": TaskStatus.FAILED,
    "failure": TaskStatus.FAILED,
    "recon": TaskStatus.RUNNING_RECON,
    "running-recon": TaskStatus.RUNNING_RECON,
    "queued": TaskStatus.PENDING,
    "waiting": TaskStatus.PENDING,
    "removed": TaskStatus.DELETED,
}


def normalize_status(raw: Any) -> TaskStatus | None:
    """Map an upstream status string to TaskStatus; None if absent or unknown."""
    if not isinstance(raw, str):
        return None
    s = raw.strip().lower().replace(" ", "_")
    if not s:
        return None
    try:
        return TaskStatus(s)
    except ValueError:
        return _STATUS_ALIASES.get(s)


def _to_text(value: Any) -> str | None:
    if isinstance(value, str):
        s = value.strip()
        return s or None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _to_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    return n if math.isfinite(n) else None


def _to_count(value: Any) -> int | None:
    """Non-negative integer count; negatives clamp to 0, garbage -> None."""
    n = _to_number(value)
    if n is None:
        return None
    return max(0, int(n))


def _to_seconds(value: Any) -> float | None:
    n = _to_number(value)
    if n is None:
        return None
    return max(0.0, n)


def _to_epoch(value: Any) -> float | None:
    """Epoch seconds from a number (seconds or milliseconds) or an ISO string."""
    n = _to_number(value)
    if n is not None:
        # Anything past year ~33658 in seconds is really milliseconds.
        return n / 1000.0 if n > 1e12 else n
    text = _to_text(value)
    if text is None:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return None


def _record_id(raw: dict[str, Any], *keys: str) -> str | None:
    for k in keys:
        v = _to_text(raw.get(k))
        if v:
            return v
    return None


def patch_from_snapshot_record(raw: Any, *, now: float | None = None) -> TaskPatch | None:
    if not isinstance(raw, dict):
        return None
    task_id = _record_id(raw, "id", "taskid")
    if task_id is None:
        return None

    target = _to_text(raw.get("target"))
    started_time = _to_text(raw.get("started_time"))

    return TaskPatch(
        id=task_id,
        name=_to_text(raw.get("name")),
        status=normalize_status(raw.get("status")),
        found=_to_count(raw.get("found")),
        target=target,
        target_total=_to_count(target) if target is not None else None,
        file=_to_text(raw.get("file")),
        started=format_time_ago(started_time, now=now) if started_time else None,
        started_time=started_time,
        updated_at=_to_epoch(raw.get("updated_at")),
    )


def patch_from_stream_summary(raw: Any, *, now: float | None = None) -> TaskPatch | None:
    if not isinstance(raw, dict):
        return None
    task_id = _record_id(raw, "taskid", "id")
    if task_id is None:
        return None

    now_ts = time.time() if now is None else now

    ratio = _to_number(raw.get("progress_ratio"))
    progress = clamp_percent(ratio * 100.0) if ratio is not None else None

    remaining_raw = raw.get("remaining")
    if remaining_raw is None:
        # Upstream has shipped this field misspelled; accept both.
        remaining_raw = raw.get("remainng")

    eta = _to_seconds(raw.get("eta_seconds"))
    started_time = _to_text(raw.get("started_time"))

    return TaskPatch(
        id=task_id,
        name=_to_text(raw.get("taskname")) or _to_text(raw.get("name")),
        status=normalize_status(raw.get("status")),
        found=_to_count(raw.get("success")),
        target_total=_to_count(raw.get("websites_total")),
        remaining=_to_count(remaining_raw),
        progress_percent=progress,
        done=_to_count(raw.get("websites_done")),
        eta_seconds=eta,
        eta_synced_at=now_ts if eta is not None else None,
        file=_to_text(raw.get("file")),
        started=format_time_ago(started_time, now=now) if started_time else None,
        started_time=started_time,
        updated_at=_to_epoch(raw.get("updated_at")),
    )


def _finish(existing: Task | None, patch: TaskPatch | None) -> Task | None:
    if patch is None or patch.status == TaskStatus.DELETED:
        return None
    if existing is not None and existing.id != patch.id:
        existing = None
    return merge_patch(existing, patch)


def from_snapshot_record(raw: Any, existing: Task | None = None, *, now: float | None = None) -> Task | None:
    """Map a full REST task object; None if it has no id or is deleted."""
    return _finish(existing, patch_from_snapshot_record(raw, now=now))


def from_stream_summary(raw: Any, existing: Task | None = None, *, now: float | None = None) -> Task | None:
    """Map a (partial) streamed summary; None if it has no id or is deleted."""
    return _finish(existing, patch_from_stream_summary(raw, now=now))


def from_cache_record(raw: Any) -> Task | None:
    """
    Rebuild a Task from the local cache.

    The cache file is outside our control once written, so every field goes
    through the same coercers as upstream data; wrong types fall back to defaults.
    """
    if not isinstance(raw, dict):
        return None
    task_id = _to_text(raw.get("id"))
    if task_id is None:
        return None

    status = normalize_status(raw.get("status")) or TaskStatus.PENDING
    if status == TaskStatus.DELETED:
        return None

    progress = _to_number(raw.get("progress_percent"))

    return Task(
        id=task_id,
        name=_to_text(raw.get("name")) or task_id,
        status=status,
        found=_to_count(raw.get("found")) or 0,
        target=_to_text(raw.get("target")),
        target_total=_to_count(raw.get("target_total")),
        remaining=_to_count(raw.get("remaining")),
        progress_percent=clamp_percent(progress) if progress is not None else 0,
        eta_seconds=_to_seconds(raw.get("eta_seconds")),
        eta_synced_at=_to_number(raw.get("eta_synced_at")),
        file=_to_text(raw.get("file")) or "",
        started=_to_text(raw.get("started")) or "-",
        started_time=_to_text(raw.get("started_time")),
        updated_at=_to_number(raw.get("updated_at")),
    )
