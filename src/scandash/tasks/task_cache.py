# src/scandash/tasks/task_cache.py

"""
Local last-known-good task list.

- restore() runs once at startup, before any network round trip, and seeds the
  reconciler with cached tasks marked stale.
- After the bootstrap load finishes (success or failure), every reconciled
  change is written back as {"v", "ts", "tasks"}.
- Nothing is written before that point, so an empty bootstrapping list can
  never overwrite good cached data.

Cache problems never block rendering: corrupt blobs are a miss, write
failures are logged.
"""

from __future__ import annotations

import contextlib
import hashlib
import json
import logging
import os
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from ..core.ports import KeyValueStore
from .task_mapper import from_cache_record
from .task_models import Task, task_to_dict
from .task_reconciler import TaskReconciler

logger = logging.getLogger(__name__)

CACHE_SCHEMA_VERSION = 1


class MemoryStore:
    """Dict-backed KeyValueStore (tests, ephemeral runs)."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


class JsonFileStore:
    """
    One file per key under a directory.

    Writes go to a temp file and are moved into place, so a crash mid-write
    leaves the previous value intact.
    """

    def __init__(self, directory: str | Path) -> None:
        self._dir = Path(directory)

    def _path(self, key: str) -> Path:
        digest = hashlib.sha1(key.encode("utf-8")).hexdigest()[:16]
        safe = "".join(c if c.isalnum() or c in "-_." else "_" for c in key)[:80]
        return self._dir / f"{safe}-{digest}.json"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        try:
            return path.read_text("utf-8")
        except FileNotFoundError:
            return None

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(value, "utf-8")
        os.replace(tmp, path)
        with contextlib.suppress(Exception):
            # Task names and targets are user data; keep the file private on disk.
            os.chmod(path, 0o600)

    def delete(self, key: str) -> None:
        with contextlib.suppress(FileNotFoundError):
            self._path(key).unlink()


def cache_key(namespace: str, user_key: str) -> str:
    return f"{namespace}:v{CACHE_SCHEMA_VERSION}:tasks:{user_key}"


class TaskCacheBridge:
    def __init__(
        self,
        store: KeyValueStore,
        reconciler: TaskReconciler,
        *,
        namespace: str = "scandash",
        user_key: str = "default",
        max_age_hours: float = 24.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._reconciler = reconciler
        self._key = cache_key(namespace, user_key)
        self._max_age_s = max(0.0, float(max_age_hours)) * 3600.0
        self._clock = clock

        self.loaded = False
        self._unsubscribe: Callable[[], None] | None = reconciler.subscribe(self._on_change)

    @property
    def key(self) -> str:
        return self._key

    def read(self) -> list[Task] | None:
        """Parse the persisted blob; None on miss, corruption, version mismatch or expiry."""
        try:
            raw = self._store.get(self._key)
        except Exception:
            logger.warning("Task cache read failed", exc_info=True)
            return None
        if not raw:
            return None

        try:
            blob: Any = json.loads(raw)
        except ValueError:
            logger.warning("Task cache is corrupt; ignoring")
            return None

        if not isinstance(blob, dict) or blob.get("v") != CACHE_SCHEMA_VERSION:
            logger.info("Task cache has an unknown schema; ignoring")
            return None

        ts = blob.get("ts")
        if not isinstance(ts, (int, float)) or isinstance(ts, bool):
            return None
        age_s = self._clock() - ts / 1000.0
        if self._max_age_s and age_s > self._max_age_s:
            logger.info("Task cache expired (%.0fh old); dropping", age_s / 3600.0)
            with contextlib.suppress(Exception):
                self._store.delete(self._key)
            return None

        items = blob.get("tasks")
        if not isinstance(items, list):
            return None
        tasks = [t for t in (from_cache_record(x) for x in items) if t is not None]
        return tasks

    def restore(self) -> bool:
        """Seed the reconciler from cache. Returns True when cached data is now shown."""
        tasks = self.read()
        if tasks is None:
            return False
        self._reconciler.seed_from_cache(tasks)
        logger.info("Showing %d cached tasks until first sync", len(tasks))
        return True

    def mark_loaded(self) -> None:
        """Bootstrap finished; from now on every change is persisted."""
        if self.loaded:
            return
        self.loaded = True
        if self._reconciler.last_sync_at is not None:
            self.persist(self._reconciler.tasks)

    def persist(self, tasks: tuple[Task, ...]) -> None:
        blob = {
            "v": CACHE_SCHEMA_VERSION,
            "ts": int(self._clock() * 1000),
            "tasks": [task_to_dict(t) for t in tasks],
        }
        try:
            self._store.set(self._key, json.dumps(blob, ensure_ascii=False))
        except Exception:
            logger.warning("Task cache write failed", exc_info=True)

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_change(self, tasks: tuple[Task, ...]) -> None:
        if not self.loaded:
            return
        self.persist(tasks)
