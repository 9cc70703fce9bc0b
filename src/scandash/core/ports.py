# src/scandash/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the sync core.

The core depends on Protocols instead of concrete implementations.
This keeps the auth provider, the cache medium and the rendering layer
swappable and makes testing easier.
"""

from typing import Any, Awaitable, Callable, Protocol

RawRecord = dict[str, Any]
# A JSON object as received from the REST endpoint or the event stream.

TaskListListener = Callable[[tuple[Any, ...]], None]
# Called with the new immutable task tuple after every reconciled change.


class AccessTokenProvider(Protocol):
    """Supplies a bearer token on demand; None means "not signed in right now"."""

    def get_access_token(self) -> Awaitable[str | None]: ...


class KeyValueStore(Protocol):
    """
    Opaque string storage used by the cache bridge.

    Implementations must raise on I/O failure; the bridge decides
    whether a failure matters.
    """

    def get(self, key: str) -> str | None: ...
    def set(self, key: str, value: str) -> None: ...
    def delete(self, key: str) -> None: ...


class SnapshotSource(Protocol):
    """Full task list fetch (REST). Raises on transport/HTTP failure."""

    def fetch_snapshot(self) -> Awaitable[list[RawRecord]]: ...


class TaskSink(Protocol):
    """Producer-facing side of the reconciler."""

    def apply_snapshot(
            self,
            raw_items: list[RawRecord],
            *,
            mapper: Callable[..., Any] | None = None,
            latency_ms: float | None = None,
    ) -> bool: ...

    def apply_update(self, event: RawRecord, *, mapper: Callable[..., Any] | None = None) -> bool: ...
