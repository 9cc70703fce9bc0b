# tests/test_task_poller.py

from __future__ import annotations

import asyncio

import pytest

from scandash.sync.connection import ConnectionState
from scandash.tasks.task_poller import FallbackPoller, refresh_snapshot, run_fallback_poller

from .fakes import FakeSnapshotSource, wait_for


@pytest.mark.asyncio
async def test_poller_fetches_while_not_live(reconciler, connection) -> None:
    connection.set(ConnectionState.RETRYING)
    source = FakeSnapshotSource([{"id": "p1", "status": "running"}])

    runner = asyncio.create_task(run_fallback_poller(source, reconciler, connection, interval_seconds=0.01))

    await asyncio.sleep(0.05)
    runner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await runner

    assert source.calls >= 1, "Poller should fetch at least one snapshot"
    assert [t.id for t in reconciler.tasks] == ["p1"]


@pytest.mark.asyncio
async def test_poller_exits_once_live(reconciler, connection) -> None:
    connection.set(ConnectionState.LIVE)
    source = FakeSnapshotSource()

    await asyncio.wait_for(run_fallback_poller(source, reconciler, connection, interval_seconds=0.01), 1.0)
    assert source.calls == 0


@pytest.mark.asyncio
async def test_poller_survives_fetch_errors(reconciler, connection) -> None:
    connection.set(ConnectionState.POLLING)
    source = FakeSnapshotSource(error=RuntimeError("boom"))

    runner = asyncio.create_task(run_fallback_poller(source, reconciler, connection, interval_seconds=0.01))
    await wait_for(lambda: source.calls >= 2)
    runner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await runner

    assert reconciler.last_sync_at is None


@pytest.mark.asyncio
async def test_fallback_poller_follows_connection_state(reconciler, connection) -> None:
    source = FakeSnapshotSource([{"id": "p1"}])
    poller = FallbackPoller(source, reconciler, connection, interval_seconds=0.01)

    connection.set(ConnectionState.CONNECTING)
    poller.start()
    assert poller.running is True

    connection.set(ConnectionState.LIVE)
    assert poller.running is False

    connection.set(ConnectionState.RETRYING)
    assert poller.running is True
    await wait_for(lambda: source.calls >= 1)

    await poller.stop()
    assert poller.running is False

    calls = source.calls
    connection.set(ConnectionState.POLLING)
    await asyncio.sleep(0.03)
    assert source.calls == calls, "stopped poller must not resubscribe"


@pytest.mark.asyncio
async def test_refresh_snapshot_silent_and_loud(reconciler) -> None:
    ok = FakeSnapshotSource([{"id": "a"}])
    assert await refresh_snapshot(ok, reconciler) is True
    assert reconciler.slow_server is False

    bad = FakeSnapshotSource(error=RuntimeError("down"))
    assert await refresh_snapshot(bad, reconciler, silent=True) is False
    with pytest.raises(RuntimeError):
        await refresh_snapshot(bad, reconciler, silent=False)
    assert [t.id for t in reconciler.tasks] == ["a"]


class _BrokenSink:
    def __init__(self) -> None:
        self.calls = 0

    def apply_snapshot(self, raw_items, *, mapper=None, latency_ms=None) -> bool:
        self.calls += 1
        raise TypeError("bad existing record")


@pytest.mark.asyncio
async def test_apply_failure_does_not_kill_the_poller(connection) -> None:
    sink = _BrokenSink()
    source = FakeSnapshotSource([{"id": "a"}])

    assert await refresh_snapshot(source, sink, silent=True) is False
    with pytest.raises(TypeError):
        await refresh_snapshot(source, sink, silent=False)

    connection.set(ConnectionState.POLLING)
    runner = asyncio.create_task(run_fallback_poller(source, sink, connection, interval_seconds=0.01))
    await wait_for(lambda: sink.calls >= 4)
    assert not runner.done()
    runner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await runner
