# src/scandash/tasks/task_poller.py

from __future__ import annotations

"""
Fallback snapshot poller.

A small polling loop that runs only while the stream is not live:
- every interval_seconds fetch the full task list over REST,
- hand it to the reconciler as a snapshot,
- log failures quietly (the stream path owns user-facing connection status).

It is started/stopped by connection state changes: leaving "live" starts it,
entering "live" cancels it without waiting for a fetch in flight.
"""

import asyncio
import contextlib
import logging
import time

from ..core.ports import SnapshotSource, TaskSink
from ..sync.connection import ConnectionModel, ConnectionState
from .task_mapper import from_snapshot_record

logger = logging.getLogger(__name__)


async def refresh_snapshot(source: SnapshotSource, sink: TaskSink, *, silent: bool = True) -> bool:
    """
    One snapshot fetch + apply, with latency measured for the slow-server flag.

    silent=True: failures are logged and reported as False.
    silent=False: failures propagate to the caller.
    """
    t0 = time.monotonic()
    try:
        raw_tasks = await source.fetch_snapshot()
    except asyncio.CancelledError:
        raise
    except Exception as e:
        if not silent:
            raise
        logger.info("Snapshot refresh failed (%s)", e.__class__.__name__)
        return False

    latency_ms = (time.monotonic() - t0) * 1000.0
    try:
        return sink.apply_snapshot(raw_tasks, mapper=from_snapshot_record, latency_ms=latency_ms)
    except Exception:
        if not silent:
            raise
        logger.exception("Snapshot apply failed; keeping the current list")
        return False


async def run_fallback_poller(
        source: SnapshotSource,
        sink: TaskSink,
        connection: ConnectionModel,
        *,
        interval_seconds: float = 15.0,
) -> None:
    """
    Poll while the connection is not live.

    To stop the poller, cancel the coroutine/task.
    """
    sleep_s = max(0.01, float(interval_seconds))

    while connection.state not in (ConnectionState.LIVE, ConnectionState.STOPPED):
        await asyncio.sleep(sleep_s)
        if connection.state in (ConnectionState.LIVE, ConnectionState.STOPPED):
            break
        await refresh_snapshot(source, sink, silent=True)

    logger.debug("Fallback poller exiting (state=%s)", connection.state)


class FallbackPoller:
    """Starts/stops run_fallback_poller as the connection state changes."""

    def __init__(
        self,
        source: SnapshotSource,
        sink: TaskSink,
        connection: ConnectionModel,
        *,
        interval_seconds: float = 15.0,
    ) -> None:
        self._source = source
        self._sink = sink
        self._connection = connection
        self._interval = float(interval_seconds)
        self._task: asyncio.Task[None] | None = None
        self._unsubscribe = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self._connection.subscribe(self._on_state)
        self._sync_with(self._connection.state)

    async def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def _on_state(self, _old: ConnectionState, new: ConnectionState) -> None:
        self._sync_with(new)

    def _sync_with(self, state: ConnectionState) -> None:
        if state in (ConnectionState.LIVE, ConnectionState.STOPPED):
            if self._task is not None and not self._task.done():
                logger.info("Stream is %s; fallback polling stopped", state)
                self._task.cancel()
            self._task = None
            return

        if not self.running:
            logger.info("Stream is %s; fallback polling every %.0fs", state, self._interval)
            self._task = asyncio.create_task(
                run_fallback_poller(
                    self._source,
                    self._sink,
                    self._connection,
                    interval_seconds=self._interval,
                )
            )
