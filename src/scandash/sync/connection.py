# src/scandash/sync/connection.py

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import StrEnum

logger = logging.getLogger(__name__)


class ConnectionState(StrEnum):
    """
    Stream connection lifecycle.

    idle -> connecting -> live -> (retrying | polling) -> connecting -> ...
    stopped is terminal and only reachable through explicit teardown.
    """

    IDLE = "idle"
    CONNECTING = "connecting"
    LIVE = "live"
    RETRYING = "retrying"
    POLLING = "polling"
    STOPPED = "stopped"


STATUS_MESSAGES = {
    ConnectionState.IDLE: "Not connected",
    ConnectionState.CONNECTING: "Connecting...",
    ConnectionState.LIVE: "Live",
    ConnectionState.RETRYING: "Connection lost, retrying...",
    ConnectionState.POLLING: "Live updates unavailable, refreshing periodically",
    ConnectionState.STOPPED: "Stopped",
}

StateListener = Callable[[ConnectionState, ConnectionState], None]


class ConnectionModel:
    """Current connection state plus change notification (old, new)."""

    def __init__(self) -> None:
        self._state = ConnectionState.IDLE
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def message(self) -> str:
        return STATUS_MESSAGES[self._state]

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def set(self, new_state: ConnectionState) -> None:
        old = self._state
        if old == new_state:
            return
        if old == ConnectionState.STOPPED:
            logger.debug("Ignoring transition %s -> %s after stop", old, new_state)
            return

        self._state = new_state
        logger.info("Connection state: %s -> %s", old, new_state)
        for listener in list(self._listeners):
            try:
                listener(old, new_state)
            except Exception:
                logger.exception("Connection state listener failed")
