# src/scandash/sync/service.py

"""
Task sync service: the tasks view's engine without the view.

Wires the producers around one reconciler:
- cache bridge (instant render from last-known-good data),
- bootstrap REST load,
- stream session (primary, real-time),
- fallback poller (only while the stream is not live),
- user actions (create, delete, start, pause/restart), which also force a
  stream reconnect and a background refresh since the server-side stream
  state may be outdated.

Key invariant: only user actions raise (TaskApiError); everything else turns
failures into connection state and log lines.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from ..tasks.task_api import CreateTaskOptions, TaskApiClient
from ..tasks.task_cache import TaskCacheBridge
from ..tasks.task_mapper import from_snapshot_record
from ..tasks.task_poller import FallbackPoller, refresh_snapshot
from ..tasks.task_reconciler import TaskReconciler
from .connection import ConnectionModel
from .stream_session import StreamSession

logger = logging.getLogger(__name__)


class TaskSyncService:
    def __init__(
        self,
        *,
        api: TaskApiClient,
        reconciler: TaskReconciler,
        connection: ConnectionModel,
        session: StreamSession,
        poller: FallbackPoller,
        cache: TaskCacheBridge | None = None,
    ) -> None:
        self.api = api
        self.reconciler = reconciler
        self.connection = connection
        self.session = session
        self.poller = poller
        self.cache = cache

        self.loading = False
        self.load_error: Exception | None = None
        self._background: set[asyncio.Task[bool]] = set()
        self._started = False

    def restore_cache(self) -> bool:
        """Synchronous; call before anything is rendered."""
        if self.cache is None:
            return False
        return self.cache.restore()

    async def start(self) -> None:
        if self._started:
            return
        self._started = True

        self.session.start()
        self.poller.start()

        self.loading = True
        try:
            await refresh_snapshot(self.api, self.reconciler, silent=False)
            self.load_error = None
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.load_error = e
            logger.warning("Initial task load failed (%s); relying on stream/poller", e.__class__.__name__)
        finally:
            self.loading = False
            if self.cache is not None:
                self.cache.mark_loaded()

    async def stop(self) -> None:
        await self.poller.stop()
        await self.session.stop()

        for task in list(self._background):
            task.cancel()
        for task in list(self._background):
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await task
        self._background.clear()

        if self.cache is not None:
            self.cache.close()

    def refresh_in_background(self) -> asyncio.Task[bool]:
        task = asyncio.create_task(refresh_snapshot(self.api, self.reconciler, silent=True))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def _after_mutation(self) -> None:
        self.session.force_reconnect()
        self.refresh_in_background()

    # ---- user actions (errors surface to the caller) ----

    async def create_task(self, *, name: str, file_id: str, options: CreateTaskOptions | None = None) -> None:
        created = await self.api.create_task(name=name, file_id=file_id, options=options)
        if created:
            self.reconciler.apply_update({"task": created, "reason": "start"}, mapper=from_snapshot_record)
        self._after_mutation()

    async def delete_task(self, task_id: str) -> None:
        await self.api.delete_task(task_id)
        self.reconciler.apply_update({"task": {"taskid": task_id}, "reason": "delete"})
        self._after_mutation()

    async def start_task(self, task_id: str) -> None:
        await self.api.start_task(task_id)
        self.reconciler.apply_update({"task": {"taskid": task_id, "status": "running_recon"}, "reason": "start"})
        self._after_mutation()

    async def update_task_status(self, task_id: str, action: str) -> None:
        updated = await self.api.update_task_status(task_id, action)
        if updated:
            self.reconciler.apply_update({"task": updated, "reason": action}, mapper=from_snapshot_record)
        self._after_mutation()
