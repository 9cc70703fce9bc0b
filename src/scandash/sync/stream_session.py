# src/scandash/sync/stream_session.py

from __future__ import annotations

"""
Task event-stream session.

Owns at most one streaming connection at a time:
- opens it with a bearer token and the resume cursor (last seen event id),
- decodes the body with iter_frames (a fresh parser per attempt),
- dispatches user_snapshot / task_update payloads to the reconciler in
  decode order,
- on any failure schedules a reconnect with exponential backoff and flips the
  connection state to retrying, or to polling once retries pile up.

Nothing raised inside an attempt escapes: failures become state transitions
and log lines. Cancellation (stop / forced reconnect) always propagates.
"""

import asyncio
import contextlib
import json
import logging
from typing import Any

import httpx

from ..core.ports import AccessTokenProvider, TaskSink
from ..tasks.task_mapper import from_stream_summary
from .connection import ConnectionModel, ConnectionState
from .sse import SseFrame, iter_frames

logger = logging.getLogger(__name__)

EVENT_USER_SNAPSHOT = "user_snapshot"
EVENT_TASK_UPDATE = "task_update"


def backoff_delay(retries: int, *, base_seconds: float = 1.0, max_seconds: float = 30.0) -> float:
    """min(max, base * 2^min(retries, 5)): 2s, 4s, 8s, 16s, 30s, 30s... for base=1."""
    exp = min(max(0, int(retries)), 5)
    return min(float(max_seconds), float(base_seconds) * (2 ** exp))


class StreamSession:
    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        stream_url: str,
        token_provider: AccessTokenProvider,
        sink: TaskSink,
        connection: ConnectionModel,
        retry_base_seconds: float = 1.0,
        retry_max_seconds: float = 30.0,
        polling_after_retries: int = 3,
        connect_timeout_seconds: float = 10.0,
    ) -> None:
        self._client = client
        self._stream_url = stream_url
        self._tokens = token_provider
        self._sink = sink
        self.connection = connection

        self._retry_base = float(retry_base_seconds)
        self._retry_max = float(retry_max_seconds)
        self._polling_after = max(1, int(polling_after_retries))
        # No read timeout: a quiet stream is still a live stream.
        self._timeout = httpx.Timeout(connect=connect_timeout_seconds, read=None, write=10.0, pool=connect_timeout_seconds)

        self.retries = 0
        self.last_event_id: str | None = None

        self._attempt: asyncio.Task[None] | None = None
        self._attempt_id = 0
        self._retry_handle: asyncio.TimerHandle | None = None
        self._stopped = False

    # ---- public API ----

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def pending_retry(self) -> bool:
        return self._retry_handle is not None

    def start(self) -> None:
        """Begin connecting (no-op after stop)."""
        if self._stopped:
            return
        self._connect()

    def force_reconnect(self) -> None:
        """
        Drop the current connection (if any) and connect again right away.
        Used after local mutations that may have invalidated server-side stream state.
        """
        if self._stopped:
            return
        logger.info("Forced reconnect requested")
        self.retries = 0
        self._connect()

    async def stop(self) -> None:
        """Teardown: cancel the retry timer and the in-flight attempt; no more reconnects."""
        if self._stopped:
            return
        self._stopped = True
        self._cancel_retry_timer()

        attempt = self._attempt
        self._attempt = None
        if attempt is not None and not attempt.done():
            attempt.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await attempt

        self.connection.set(ConnectionState.STOPPED)
        logger.info("Stream session stopped")

    # ---- connection lifecycle ----

    def _cancel_retry_timer(self) -> None:
        if self._retry_handle is not None:
            self._retry_handle.cancel()
            self._retry_handle = None

    def _connect(self) -> None:
        self._cancel_retry_timer()

        previous = self._attempt
        if previous is not None and not previous.done():
            previous.cancel()

        self._attempt_id += 1
        self.connection.set(ConnectionState.CONNECTING)
        self._attempt = asyncio.create_task(self._run_attempt(self._attempt_id))

    def _is_current(self, attempt_id: int) -> bool:
        return not self._stopped and attempt_id == self._attempt_id

    async def _run_attempt(self, attempt_id: int) -> None:
        try:
            token = await self._tokens.get_access_token()
            if not token:
                logger.warning("No access token available; will retry")
                self._schedule_reconnect(attempt_id)
                return

            headers = {
                "Authorization": f"Bearer {token}",
                "Accept": "text/event-stream",
                "Cache-Control": "no-cache",
            }
            params: dict[str, str] = {}
            if self.last_event_id:
                params["since"] = self.last_event_id
                headers["Last-Event-ID"] = self.last_event_id

            logger.info("Connecting to task stream (since=%s)", self.last_event_id or "-")
            async with self._client.stream(
                "GET",
                self._stream_url,
                params=params,
                headers=headers,
                timeout=self._timeout,
            ) as resp:
                if not 200 <= resp.status_code < 300:
                    logger.warning("Task stream open failed: HTTP %s", resp.status_code)
                    self._schedule_reconnect(attempt_id)
                    return

                if not self._is_current(attempt_id):
                    return

                self.retries = 0
                self.connection.set(ConnectionState.LIVE)

                async for frame in iter_frames(resp.aiter_text()):
                    if not self._is_current(attempt_id):
                        return
                    self._handle_frame(frame)

            logger.info("Task stream closed by server")
            self._schedule_reconnect(attempt_id)

        except asyncio.CancelledError:
            raise
        except httpx.HTTPError as e:
            logger.warning("Task stream transport error: %s", e.__class__.__name__)
            self._schedule_reconnect(attempt_id)
        except Exception:
            logger.exception("Task stream attempt crashed")
            self._schedule_reconnect(attempt_id)

    def _schedule_reconnect(self, attempt_id: int) -> None:
        if not self._is_current(attempt_id):
            return

        self._cancel_retry_timer()
        self.retries += 1
        delay = backoff_delay(self.retries, base_seconds=self._retry_base, max_seconds=self._retry_max)

        if self.retries >= self._polling_after:
            self.connection.set(ConnectionState.POLLING)
        else:
            self.connection.set(ConnectionState.RETRYING)

        logger.info("Reconnect %d scheduled in %.1fs", self.retries, delay)
        loop = asyncio.get_running_loop()
        self._retry_handle = loop.call_later(delay, self._on_retry_timer)

    def _on_retry_timer(self) -> None:
        self._retry_handle = None
        if self._stopped:
            return
        self._connect()

    # ---- frame dispatch ----

    def _handle_frame(self, frame: SseFrame) -> None:
        if frame.id:
            self.last_event_id = frame.id

        if not frame.data.strip():
            return

        try:
            packet: Any = json.loads(frame.data)
        except ValueError:
            logger.warning("Dropping malformed frame (event=%s id=%s)", frame.event, frame.id)
            return

        if not isinstance(packet, dict):
            logger.warning("Dropping non-object frame (event=%s id=%s)", frame.event, frame.id)
            return

        packet_type = packet.get("type")
        event_type = packet_type if isinstance(packet_type, str) and packet_type else (frame.event or "message")

        try:
            if event_type == EVENT_USER_SNAPSHOT:
                self._sink.apply_snapshot(packet.get("tasks"), mapper=from_stream_summary)
            elif event_type == EVENT_TASK_UPDATE:
                self._sink.apply_update(packet)
            else:
                logger.debug("Ignoring event type %s", event_type)
        except Exception:
            logger.exception("Failed to apply %s event (id=%s)", event_type, frame.id)
