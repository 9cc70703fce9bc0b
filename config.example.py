# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real tokens. Put them in .env (local, gitignored) or point
SCANDASH_ACCESS_TOKEN_FILE at a file your login step keeps fresh.
"""

ENV_VARS = {
    # App / logging
    "SCANDASH_APP_NAME": "App display name (default: scandash).",
    "SCANDASH_LOG_LEVEL": "Console logging level (default: INFO). The log file always gets DEBUG.",
    "SCANDASH_CONSOLE_ENABLED": "Run the interactive console (true/false, default: true).",
    # Endpoints
    "SCANDASH_API_BASE_URL": "Dashboard REST origin serving /api/v1/tasks (default: http://localhost:3000).",
    "SCANDASH_STREAM_BASE_URL": (
        "Scan engine origin serving /sse/tasks (default: NEXT_PUBLIC_EXTERNAL_API_DOMAIN, "
        "else http://localhost:8080)."
    ),
    # Auth
    "SCANDASH_ACCESS_TOKEN": "Bearer token used for REST and the event stream.",
    "SCANDASH_ACCESS_TOKEN_FILE": "File holding the token; re-read on every request (wins over ACCESS_TOKEN).",
    "SCANDASH_USER_KEY": "Cache owner key, one cached task list per user (default: default).",
    # Paths (gitignored)
    "SCANDASH_DATA_DIR": "Local data directory for logs (default: .local/scandash).",
    "SCANDASH_CACHE_DIR": "Task cache directory (default: <data_dir>/cache).",
    "SCANDASH_CACHE_NAMESPACE": "Cache key namespace (default: scandash).",
    "SCANDASH_CACHE_MAX_AGE_HOURS": "Cached task lists older than this are discarded (default: 24).",
    # Sync tuning
    "SCANDASH_SNAPSHOT_TIMEOUT_SECONDS": "Timeout for a full task list fetch (default: 8).",
    "SCANDASH_CONNECT_TIMEOUT_SECONDS": "Connect timeout for the event stream (default: 10).",
    "SCANDASH_POLL_INTERVAL_SECONDS": "Fallback polling interval while the stream is down (default: 15).",
    "SCANDASH_RETRY_BASE_SECONDS": "Reconnect backoff base (default: 1).",
    "SCANDASH_RETRY_MAX_SECONDS": "Reconnect backoff cap (default: 30).",
    "SCANDASH_POLLING_AFTER_RETRIES": "Failed attempts before reporting 'polling' (default: 3).",
    "SCANDASH_SLOW_SERVER_MS": "Snapshot latency above this sets the slow-server flag (default: 1800).",
}
