# tests/fakes.py

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx

from scandash.tasks.task_api import TaskApiError


class FakeTokenProvider:
    """Returns a fixed token (or None) and counts calls."""

    def __init__(self, token: str | None = "tok") -> None:
        self.token = token
        self.calls = 0

    async def get_access_token(self) -> str | None:
        self.calls += 1
        return self.token


class FakeSnapshotSource:
    """
    Deterministic snapshot source for poller tests.

    - returns `tasks` on each call
    - or raises `error` when set
    """

    def __init__(self, tasks: list[dict[str, Any]] | None = None, error: Exception | None = None) -> None:
        self.tasks = tasks or []
        self.error = error
        self.calls = 0

    async def fetch_snapshot(self) -> list[dict[str, Any]]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.tasks)


class FakeRunner:
    """CoroutineRunner that runs each coroutine on a fresh loop (console command tests)."""

    def __init__(self) -> None:
        self.calls = 0
        self.posted: list = []

    def call(self, coro, timeout: float | None = None):
        self.calls += 1
        return asyncio.run(coro)

    def post(self, fn) -> None:
        self.posted.append(fn)


class FakeSession:
    def __init__(self) -> None:
        self.reconnects = 0

    def force_reconnect(self) -> None:
        self.reconnects += 1


class FakeService:
    """Stands in for TaskSyncService in console command tests."""

    def __init__(self, reconciler, connection, *, error: TaskApiError | None = None) -> None:
        self.reconciler = reconciler
        self.connection = connection
        self.loading = False
        self.error = error
        self.created: list[tuple[str, str]] = []
        self.deleted: list[str] = []
        self.started: list[str] = []
        self.status_actions: list[tuple[str, str]] = []
        self.session = FakeSession()
        self.refreshes = 0

    def refresh_in_background(self) -> None:
        self.refreshes += 1

    async def create_task(self, *, name: str, file_id: str, options=None) -> None:
        if self.error is not None:
            raise self.error
        self.created.append((name, file_id))

    async def delete_task(self, task_id: str) -> None:
        if self.error is not None:
            raise self.error
        self.deleted.append(task_id)

    async def start_task(self, task_id: str) -> None:
        if self.error is not None:
            raise self.error
        self.started.append(task_id)

    async def update_task_status(self, task_id: str, action: str) -> None:
        if self.error is not None:
            raise self.error
        self.status_actions.append((task_id, action))


# ---- SSE helpers ----


def sse_frame(payload: dict[str, Any] | str, *, event: str | None = None, id: str | None = None) -> str:
    lines = []
    if event is not None:
        lines.append(f"event: {event}")
    if id is not None:
        lines.append(f"id: {id}")
    data = payload if isinstance(payload, str) else json.dumps(payload)
    for part in data.split("\n"):
        lines.append(f"data: {part}")
    return "\n".join(lines) + "\n\n"


async def byte_chunks(parts: list[str], hold: asyncio.Event | None = None) -> AsyncIterator[bytes]:
    """Yield parts as separate reads; optionally keep the stream open until `hold` is set."""
    for p in parts:
        yield p.encode("utf-8")
        await asyncio.sleep(0)
    if hold is not None:
        await hold.wait()


class StreamServer:
    """
    Scripted event-stream endpoint for httpx.MockTransport.

    Each connection pops the next script entry:
    - int -> respond with that HTTP status and no body,
    - list[str] -> 200 text/event-stream with those chunks, then close,
    - ("hold", list[str]) -> same, but keep the stream open until released.
    When the script runs out, connections hang open with no data.
    """

    def __init__(self, script: list[Any]) -> None:
        self.script = list(script)
        self.requests: list[httpx.Request] = []
        self.release = asyncio.Event()

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        entry: Any = self.script.pop(0) if self.script else ("hold", [])

        if isinstance(entry, int):
            return httpx.Response(entry, text="")

        hold = None
        parts = entry
        if isinstance(entry, tuple):
            _, parts = entry
            hold = self.release

        return httpx.Response(
            200,
            headers={"content-type": "text/event-stream"},
            content=byte_chunks(list(parts), hold),
        )

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)
