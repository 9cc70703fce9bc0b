# tests/test_task_cache.py

from __future__ import annotations

import json
import os
import stat

from scandash.tasks.task_cache import (
    CACHE_SCHEMA_VERSION,
    JsonFileStore,
    MemoryStore,
    TaskCacheBridge,
    cache_key,
)
from scandash.tasks.task_reconciler import TaskReconciler
from scandash.tasks.task_view import filter_tasks

from .conftest import FIXED_NOW


def _bridge(store, reconciler, *, now: float = FIXED_NOW) -> TaskCacheBridge:
    return TaskCacheBridge(store, reconciler, namespace="ns", user_key="u1", max_age_hours=24, clock=lambda: now)


def test_cache_key_format() -> None:
    assert cache_key("ns", "u1") == f"ns:v{CACHE_SCHEMA_VERSION}:tasks:u1"


def test_nothing_persisted_before_loaded(store, reconciler) -> None:
    _bridge(store, reconciler)
    reconciler.apply_snapshot([{"taskid": "a"}])
    assert store.data == {}


def test_mark_loaded_persists_and_later_changes_follow(store, reconciler) -> None:
    bridge = _bridge(store, reconciler)
    reconciler.apply_snapshot([{"taskid": "a"}])
    bridge.mark_loaded()

    blob = json.loads(store.data[bridge.key])
    assert blob["v"] == CACHE_SCHEMA_VERSION
    assert blob["ts"] == int(FIXED_NOW * 1000)
    assert [t["id"] for t in blob["tasks"]] == ["a"]

    reconciler.apply_update({"task": {"taskid": "b"}, "reason": "start"})
    blob = json.loads(store.data[bridge.key])
    assert [t["id"] for t in blob["tasks"]] == ["b", "a"]


def test_failed_bootstrap_does_not_overwrite_cache(store, reconciler) -> None:
    store.set(cache_key("ns", "u1"), json.dumps({"v": 1, "ts": int(FIXED_NOW * 1000), "tasks": [{"id": "old", "name": "old", "status": "running"}]}))
    bridge = _bridge(store, reconciler)
    assert bridge.restore() is True

    # Bootstrap failed: no sync happened yet.
    bridge.mark_loaded()
    blob = json.loads(store.data[bridge.key])
    assert [t["id"] for t in blob["tasks"]] == ["old"]


def test_round_trip_restores_tasks_as_stale(store) -> None:
    first = TaskReconciler(clock=lambda: FIXED_NOW)
    bridge = _bridge(store, first)
    first.apply_snapshot(
        [{"taskid": "a", "taskname": "scan", "status": "running", "success": 3, "websites_total": 10, "eta_seconds": 60}]
    )
    bridge.mark_loaded()

    second = TaskReconciler(clock=lambda: FIXED_NOW)
    assert _bridge(store, second).restore() is True
    assert second.tasks == first.tasks
    assert second.stale is True


def test_corrupt_or_foreign_blob_is_a_miss(store, reconciler) -> None:
    bridge = _bridge(store, reconciler)

    store.set(bridge.key, "{not json")
    assert bridge.restore() is False

    store.set(bridge.key, json.dumps({"v": 99, "ts": int(FIXED_NOW * 1000), "tasks": []}))
    assert bridge.read() is None

    store.set(bridge.key, json.dumps({"v": 1, "ts": int(FIXED_NOW * 1000), "tasks": "nope"}))
    assert bridge.read() is None
    assert reconciler.tasks == ()


def test_expired_blob_is_dropped(store, reconciler) -> None:
    old_ts = int((FIXED_NOW - 25 * 3600) * 1000)
    store.set(cache_key("ns", "u1"), json.dumps({"v": 1, "ts": old_ts, "tasks": [{"id": "a", "status": "running"}]}))

    bridge = _bridge(store, reconciler)
    assert bridge.restore() is False
    assert store.data == {}


def test_invalid_entries_are_skipped(store, reconciler) -> None:
    tasks = [{"id": "ok", "name": "ok", "status": "paused"}, {"id": ""}, {"id": "gone", "status": "deleted"}, 5]
    store.set(cache_key("ns", "u1"), json.dumps({"v": 1, "ts": int(FIXED_NOW * 1000), "tasks": tasks}))

    bridge = _bridge(store, reconciler)
    assert bridge.restore() is True
    assert [t.id for t in reconciler.tasks] == ["ok"]


def test_write_failure_is_swallowed(reconciler) -> None:
    class BrokenStore(MemoryStore):
        def set(self, key: str, value: str) -> None:
            raise OSError("disk full")

    bridge = _bridge(BrokenStore(), reconciler)
    bridge.mark_loaded()
    reconciler.apply_snapshot([{"taskid": "a"}])
    assert [t.id for t in reconciler.tasks] == ["a"]


def test_close_stops_persisting(store, reconciler) -> None:
    bridge = _bridge(store, reconciler)
    bridge.mark_loaded()
    bridge.close()
    reconciler.apply_snapshot([{"taskid": "a"}])
    assert store.data == {}


def test_json_file_store_round_trip_and_permissions(tmp_path) -> None:
    fs = JsonFileStore(tmp_path / "cache")
    key = "ns:v1:tasks:user/with:odd chars"

    assert fs.get(key) is None
    fs.set(key, '{"v": 1}')
    assert fs.get(key) == '{"v": 1}'

    files = list((tmp_path / "cache").iterdir())
    assert len(files) == 1
    assert files[0].suffix == ".json"
    if os.name == "posix":
        assert stat.S_IMODE(files[0].stat().st_mode) == 0o600

    fs.delete(key)
    fs.delete(key)
    assert fs.get(key) is None


def test_wrongly_typed_fields_are_coerced_on_restore(store, reconciler) -> None:
    tasks = [
        {"id": "t1", "name": 123, "found": "7", "target_total": 10, "progress_percent": "x", "eta_seconds": [1]},
        {"id": 42, "name": None, "status": 5, "file": {"a": 1}, "remaining": -3, "updated_at": "soon"},
    ]
    store.set(cache_key("ns", "u1"), json.dumps({"v": 1, "ts": int(FIXED_NOW * 1000), "tasks": tasks}))

    assert _bridge(store, reconciler).restore() is True
    t1, t42 = reconciler.tasks
    assert (t1.name, t1.found, t1.target_total, t1.progress_percent, t1.eta_seconds) == ("123", 7, 10, 0, None)
    assert (t42.id, t42.name, t42.status, t42.file, t42.remaining, t42.updated_at) == ("42", "42", "pending", "", 0, None)

    # The restored list must stay usable by every later producer and by the view.
    reconciler.apply_update({"task": {"taskid": "t1", "eta_seconds": 3}, "reason": "progress"})
    assert reconciler.find("t1").remaining == 3
    assert filter_tasks(reconciler.tasks, query="x") == []
    reconciler.apply_snapshot([{"taskid": "t1"}])
    assert [t.id for t in reconciler.tasks] == ["t1"]
