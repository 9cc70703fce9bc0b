# src/scandash/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time.
- Every heuristic threshold of the sync engine is a setting, not a constant.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

ENV_PREFIX = "SCANDASH"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env locally if python-dotenv is installed. Safe no-op otherwise."""
    try:
        from dotenv import load_dotenv  # type: ignore
    except Exception:
        return
    load_dotenv(override=False)


_load_dotenv_if_available()


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Connector flags ----
    console_enabled: bool

    # ---- Endpoints ----
    api_base_url: str
    stream_base_url: str

    # ---- Auth ----
    access_token: Optional[str]
    access_token_file: Optional[Path]
    user_key: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    cache_dir: Path
    cache_namespace: str
    cache_max_age_hours: float

    # ---- Sync tuning ----
    snapshot_timeout_seconds: float
    connect_timeout_seconds: float
    poll_interval_seconds: float
    retry_base_seconds: float
    retry_max_seconds: float
    polling_after_retries: int
    slow_server_ms: float

    @staticmethod
    def from_env() -> "Settings":
        app_name = _first_env(_k("APP_NAME"), default="scandash") or "scandash"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)

        api_base_url = _env(_k("API_BASE_URL"), "http://localhost:3000").rstrip("/")
        # The scan engine serves the event stream; it usually lives on another origin.
        stream_base_url = (
            _first_env(_k("STREAM_BASE_URL"), "NEXT_PUBLIC_EXTERNAL_API_DOMAIN", default="http://localhost:8080")
            or "http://localhost:8080"
        ).rstrip("/")

        access_token = _first_env(_k("ACCESS_TOKEN"), default=None)
        raw_token_file = _first_env(_k("ACCESS_TOKEN_FILE"), default=None)
        access_token_file = Path(raw_token_file).expanduser() if raw_token_file else None
        user_key = (_env(_k("USER_KEY"), "default").strip() or "default")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/scandash"))
        cache_dir = _env_path(_k("CACHE_DIR"), data_dir / "cache")
        cache_namespace = _env(_k("CACHE_NAMESPACE"), "scandash").strip() or "scandash"
        cache_max_age_hours = _env_float(_k("CACHE_MAX_AGE_HOURS"), 24.0)

        snapshot_timeout_seconds = _env_float(_k("SNAPSHOT_TIMEOUT_SECONDS"), 8.0)
        connect_timeout_seconds = _env_float(_k("CONNECT_TIMEOUT_SECONDS"), 10.0)
        poll_interval_seconds = _env_float(_k("POLL_INTERVAL_SECONDS"), 15.0)
        retry_base_seconds = _env_float(_k("RETRY_BASE_SECONDS"), 1.0)
        retry_max_seconds = _env_float(_k("RETRY_MAX_SECONDS"), 30.0)
        polling_after_retries = _env_int(_k("POLLING_AFTER_RETRIES"), 3)
        slow_server_ms = _env_float(_k("SLOW_SERVER_MS"), 1800.0)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            api_base_url=api_base_url,
            stream_base_url=stream_base_url,
            access_token=access_token,
            access_token_file=access_token_file,
            user_key=user_key,
            data_dir=data_dir,
            cache_dir=cache_dir,
            cache_namespace=cache_namespace,
            cache_max_age_hours=cache_max_age_hours,
            snapshot_timeout_seconds=snapshot_timeout_seconds,
            connect_timeout_seconds=connect_timeout_seconds,
            poll_interval_seconds=poll_interval_seconds,
            retry_base_seconds=retry_base_seconds,
            retry_max_seconds=retry_max_seconds,
            polling_after_retries=polling_after_retries,
            slow_server_ms=slow_server_ms,
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    """Return the process-wide Settings, reading the environment on first use."""
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS
