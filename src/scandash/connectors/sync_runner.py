# src/scandash/connectors/sync_runner.py

"""
Sync engine host thread.

The console blocks on input(), the sync engine wants an event loop of its own.
The engine therefore lives on a daemon thread; other threads talk to it only
through `call()` (run a coroutine there and wait) and `post()` (schedule a plain
callable there), both thread-safe.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from collections.abc import Callable, Coroutine
from typing import Any

from ..core.state import AppState, EngineNotRunningError

logger = logging.getLogger(__name__)

STARTUP_TIMEOUT_S = 5.0


async def _run_sync_engine(state: AppState, stop_event: asyncio.Event) -> None:
    service = state.service
    try:
        await service.start()
        try:
            state.plan = await service.api.fetch_plan()
            logger.info("Plan: %s (max %d tasks)", state.plan.plan, state.plan.max_tasks)
        except Exception as e:
            logger.info("Plan info unavailable (%s); quota checks disabled", e.__class__.__name__)

        await stop_event.wait()
    except asyncio.CancelledError:
        logger.info("Sync engine cancelled.")
    except Exception:
        logger.exception("Sync engine crashed.")
    finally:
        try:
            await service.stop()
        except Exception:
            logger.exception("Sync service teardown failed.")
        with contextlib.suppress(Exception):
            await service.api.aclose()
        logger.info("Sync engine stopped.")


class SyncBackgroundRunner:
    def __init__(self, state: AppState) -> None:
        self._state = state
        self._ready = threading.Event()
        self._thread = threading.Thread(target=self._main, name="sync-engine", daemon=True)
        self.loop: asyncio.AbstractEventLoop | None = None
        self._stop_event: asyncio.Event | None = None

    @property
    def alive(self) -> bool:
        return self._thread.is_alive()

    def start(self, timeout: float = STARTUP_TIMEOUT_S) -> bool:
        self._thread.start()
        return self._ready.wait(timeout) and self.loop is not None

    def _main(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self.loop = loop
        self._stop_event = asyncio.Event()
        self._ready.set()
        try:
            loop.run_until_complete(_run_sync_engine(self._state, self._stop_event))
        finally:
            loop.close()

    def call(self, coro: Coroutine[Any, Any, Any], timeout: float | None = None) -> Any:
        """Run coro on the engine loop and block for its result (TimeoutError on timeout)."""
        if self.loop is None or self.loop.is_closed():
            coro.close()
            raise EngineNotRunningError("sync engine is not running")
        fut = asyncio.run_coroutine_threadsafe(coro, self.loop)
        try:
            return fut.result(timeout=timeout)
        except TimeoutError:
            fut.cancel()
            raise

    def post(self, fn: Callable[[], Any]) -> None:
        """Schedule fn on the engine loop without waiting."""
        if self.loop is None or self.loop.is_closed():
            raise EngineNotRunningError("sync engine is not running")
        self.loop.call_soon_threadsafe(fn)

    def stop(self) -> None:
        if self.loop is None or self._stop_event is None:
            return
        try:
            self.loop.call_soon_threadsafe(self._stop_event.set)
        except RuntimeError:
            # Loop already closed: engine has exited on its own.
            logger.debug("Sync engine loop already closed.")

    def join(self, timeout: float | None = None) -> None:
        self._thread.join(timeout=timeout)


def start_sync_in_background(state: AppState) -> SyncBackgroundRunner | None:
    runner = SyncBackgroundRunner(state)
    if not runner.start():
        logger.error("Sync thread did not initialize in %.0fs.", STARTUP_TIMEOUT_S)
        return None

    state.runner = runner
    logger.info("Sync engine thread started.")
    return runner
