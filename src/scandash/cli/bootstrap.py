# src/scandash/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations (httpx client, token provider, file cache)
  into a TaskSyncService and AppState.
"""

from __future__ import annotations

import logging

import httpx

from ..config import get_settings
from ..core.auth import build_token_provider
from ..core.ports import AccessTokenProvider, KeyValueStore
from ..core.state import AppState
from ..sync.connection import ConnectionModel
from ..sync.service import TaskSyncService
from ..sync.stream_session import StreamSession
from ..tasks.task_api import TaskApiClient
from ..tasks.task_cache import JsonFileStore, TaskCacheBridge
from ..tasks.task_poller import FallbackPoller
from ..tasks.task_reconciler import TaskReconciler

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.cache_dir.mkdir(parents=True, exist_ok=True)


def build_sync_service(
    settings,
    client: httpx.AsyncClient,
    *,
    store: KeyValueStore | None = None,
    token_provider: AccessTokenProvider | None = None,
) -> TaskSyncService:
    """
    Wire one TaskSyncService.

    Keeping the client/store/token provider injectable makes the engine easy to
    test with httpx.MockTransport and an in-memory store.
    """
    tokens = token_provider or build_token_provider(settings)

    reconciler = TaskReconciler(slow_server_ms=settings.slow_server_ms)
    connection = ConnectionModel()

    api = TaskApiClient(
        client,
        base_url=settings.api_base_url,
        token_provider=tokens,
        snapshot_timeout_seconds=settings.snapshot_timeout_seconds,
    )
    session = StreamSession(
        client,
        stream_url=f"{settings.stream_base_url.rstrip('/')}/sse/tasks",
        token_provider=tokens,
        sink=reconciler,
        connection=connection,
        retry_base_seconds=settings.retry_base_seconds,
        retry_max_seconds=settings.retry_max_seconds,
        polling_after_retries=settings.polling_after_retries,
        connect_timeout_seconds=settings.connect_timeout_seconds,
    )
    poller = FallbackPoller(
        api,
        reconciler,
        connection,
        interval_seconds=settings.poll_interval_seconds,
    )

    cache = None
    if store is not None:
        cache = TaskCacheBridge(
            store,
            reconciler,
            namespace=settings.cache_namespace,
            user_key=settings.user_key,
            max_age_hours=settings.cache_max_age_hours,
        )

    return TaskSyncService(
        api=api,
        reconciler=reconciler,
        connection=connection,
        session=session,
        poller=poller,
        cache=cache,
    )


def create_initial_state(*, settings=None, client: httpx.AsyncClient | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    The httpx client is created here but only used from the sync engine's loop.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    if client is None:
        client = httpx.AsyncClient(follow_redirects=True)

    service = build_sync_service(settings, client, store=JsonFileStore(settings.cache_dir))
    restored = service.restore_cache()
    logger.info("Sync service ready (cache restored=%s)", restored)

    return AppState(settings=settings, service=service)
