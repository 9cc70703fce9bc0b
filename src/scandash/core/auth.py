# src/scandash/core/auth.py

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class StaticTokenProvider:
    """Token fixed at startup (e.g. SCANDASH_ACCESS_TOKEN)."""

    def __init__(self, token: str | None) -> None:
        self._token = (token or "").strip() or None

    async def get_access_token(self) -> str | None:
        return self._token


class FileTokenProvider:
    """
    Token read from a file on every call.

    Re-reading lets a separate login step refresh the session while the sync
    engine keeps running: a missing file just means "not signed in yet".
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    async def get_access_token(self) -> str | None:
        return await asyncio.to_thread(self._read)

    def _read(self) -> str | None:
        try:
            text = self._path.read_text("utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError:
            logger.warning("Failed to read access token file %s", self._path, exc_info=True)
            return None
        return text or None


def build_token_provider(settings) -> StaticTokenProvider | FileTokenProvider:
    token_file = getattr(settings, "access_token_file", None)
    if token_file:
        return FileTokenProvider(token_file)
    return StaticTokenProvider(getattr(settings, "access_token", None))
