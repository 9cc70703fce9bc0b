# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from scandash.sync.connection import ConnectionModel
from scandash.tasks.task_cache import MemoryStore
from scandash.tasks.task_reconciler import TaskReconciler

FIXED_NOW = 1_700_000_000.0


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with the composition root.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic (tiny retry/poll delays).
    """
    return SimpleNamespace(
        app_name="scandash-test",
        api_base_url="http://dashboard.test",
        stream_base_url="http://engine.test",
        access_token="tok",
        access_token_file=None,
        user_key="u1",
        data_dir=tmp_path,
        cache_dir=tmp_path / "cache",
        cache_namespace="scandash-test",
        cache_max_age_hours=24.0,
        snapshot_timeout_seconds=1.0,
        connect_timeout_seconds=1.0,
        poll_interval_seconds=0.01,
        retry_base_seconds=0.001,
        retry_max_seconds=0.01,
        polling_after_retries=3,
        slow_server_ms=1800.0,
        console_enabled=False,
    )


@pytest.fixture()
def reconciler() -> TaskReconciler:
    """Reconciler with a frozen clock so ETA sync stamps are reproducible."""
    return TaskReconciler(clock=lambda: FIXED_NOW)


@pytest.fixture()
def connection() -> ConnectionModel:
    return ConnectionModel()


@pytest.fixture()
def store() -> MemoryStore:
    return MemoryStore()
