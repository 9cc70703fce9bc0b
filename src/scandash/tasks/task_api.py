# src/scandash/tasks/task_api.py

"""
Dashboard REST client for tasks.

Snapshot fetches are background traffic: callers decide whether a failure is
user-visible. User actions on tasks raise TaskApiError carrying a
ready-to-show message.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from ..core.ports import AccessTokenProvider, RawRecord

logger = logging.getLogger(__name__)

_PLAN_CODES = {"FREE_PLAN_LIMIT", "TASK_LIMIT_REACHED"}

_FREE_PLAN_MESSAGE = "Free plan users cannot create tasks. Please upgrade your plan."
_TASK_LIMIT_MESSAGE = "Task limit reached. Please delete some tasks or upgrade your plan."

TASK_ACTIONS = ("pause", "restart", "start")


class TaskApiError(RuntimeError):
    def __init__(self, message: str, *, status: int | None = None, code: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.code = code


def friendly_http_error_message(status: int | None, code: str | None = None, message: str | None = None) -> str:
    """Fixed status -> message table for user-initiated actions."""
    if status == 403 and code in _PLAN_CODES:
        if message:
            return message
        return _FREE_PLAN_MESSAGE if code == "FREE_PLAN_LIMIT" else _TASK_LIMIT_MESSAGE

    if status in (400, 422):
        return "Invalid data. Please check your input and try again."
    if status == 401:
        return "Your session has expired. Please sign in again."
    if status == 403:
        return "You don't have permission to do that."
    if status == 404:
        return "Not found. It may have been deleted."
    if status == 409:
        return "Conflict. The task changed on the server; refresh and try again."
    if status == 429:
        return "Too many requests. Please slow down and try again shortly."
    if status is not None and 500 <= status <= 599:
        return "Server error. Please try again later."
    return "Something went wrong. Please try again."


@dataclass(slots=True, frozen=True)
class PlanInfo:
    plan: str
    max_tasks: int


@dataclass(slots=True)
class CreateTaskOptions:
    """Scan options accepted by POST /api/v1/tasks (server defaults mirrored here)."""

    auto_dumper: bool = False
    preset: str | None = None
    ai_mode: bool = True
    parameter_risk_filter: str = "medium-high"
    ai_sensitivity_level: str = "medium"
    response_pattern_drift: bool = True
    baseline_profiling: bool = True
    structural_change_detection: bool = False
    injection_union: bool = True
    injection_error: bool = True
    injection_boolean: bool = False
    injection_timebased: bool = False


def _safe_json(resp: httpx.Response) -> dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


class TaskApiClient:
    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        base_url: str,
        token_provider: AccessTokenProvider,
        snapshot_timeout_seconds: float = 8.0,
    ) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._tokens = token_provider
        self._snapshot_timeout_s = float(snapshot_timeout_seconds)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        token = await self._tokens.get_access_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _raise_for(self, resp: httpx.Response, data: dict[str, Any]) -> None:
        code = data.get("code") if isinstance(data.get("code"), str) else None
        server_msg = data.get("message") if isinstance(data.get("message"), str) else None
        raise TaskApiError(
            friendly_http_error_message(resp.status_code, code, server_msg),
            status=resp.status_code,
            code=code,
        )

    # ---- background reads ----

    async def _get_bounded(self, path: str) -> httpx.Response:
        # httpx timeouts are per phase; a slow-dripping body would never trip them.
        async with asyncio.timeout(self._snapshot_timeout_s):
            return await self._client.get(
                f"{self._base_url}{path}",
                headers=await self._headers(),
                timeout=self._snapshot_timeout_s,
            )

    async def fetch_snapshot(self) -> list[RawRecord]:
        """GET /api/v1/tasks -> raw task records. Raises on any failure (incl. TimeoutError)."""
        resp = await self._get_bounded("/api/v1/tasks")
        data = _safe_json(resp)
        if resp.status_code >= 400:
            self._raise_for(resp, data)
        if data.get("success") is False:
            raise TaskApiError(friendly_http_error_message(None), status=resp.status_code)

        tasks = data.get("tasks")
        if not isinstance(tasks, list):
            logger.warning("Snapshot response has no tasks list; treating as empty")
            return []
        return tasks

    async def fetch_plan(self) -> PlanInfo:
        resp = await self._get_bounded("/api/settings")
        data = _safe_json(resp)
        if resp.status_code >= 400:
            self._raise_for(resp, data)

        plan = data.get("plan") if isinstance(data.get("plan"), str) else "Free"
        try:
            max_tasks = max(0, int(data.get("max_tasks") or 0))
        except (TypeError, ValueError):
            max_tasks = 0
        return PlanInfo(plan=plan or "Free", max_tasks=max_tasks)

    # ---- user actions ----

    async def create_task(self, *, name: str, file_id: str, options: CreateTaskOptions | None = None) -> RawRecord:
        name = (name or "").strip()
        if not name:
            raise TaskApiError("Please enter a task name", status=None)
        if not file_id:
            raise TaskApiError("Please select a file", status=None)

        opts = options or CreateTaskOptions()
        body: dict[str, Any] = {
            "name": name,
            "file_id": file_id,
            "auto_dumper": opts.auto_dumper,
            "preset": opts.preset or None,
            "ai_mode": opts.ai_mode,
            "parameter_risk_filter": opts.parameter_risk_filter,
            "ai_sensitivity_level": opts.ai_sensitivity_level,
            "response_pattern_drift": opts.response_pattern_drift,
            "baseline_profiling": opts.baseline_profiling,
            "structural_change_detection": opts.structural_change_detection,
            "injection_union": opts.injection_union,
            "injection_error": opts.injection_error,
            "injection_boolean": opts.injection_boolean,
            "injection_timebased": opts.injection_timebased,
        }

        try:
            resp = await self._client.post(
                f"{self._base_url}/api/v1/tasks",
                headers=await self._headers(),
                json=body,
            )
        except httpx.HTTPError as e:
            raise TaskApiError(friendly_http_error_message(None)) from e

        data = _safe_json(resp)
        if resp.status_code >= 400 or not data.get("success"):
            self._raise_for(resp, data)

        task = data.get("task")
        logger.info("Task created name=%s file_id=%s", name, file_id)
        return task if isinstance(task, dict) else {}

    def _task_url(self, task_id: str, suffix: str = "") -> str:
        # "." and ".." survive quoting and would be resolved as path segments.
        if not task_id or task_id.strip(".") == "":
            raise TaskApiError(friendly_http_error_message(404), status=404)
        return f"{self._base_url}/api/v1/tasks/{quote(task_id, safe='')}{suffix}"

    async def _task_action(self, method: str, url: str, *, json: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            resp = await self._client.request(method, url, headers=await self._headers(), json=json)
        except httpx.HTTPError as e:
            raise TaskApiError(friendly_http_error_message(None)) from e

        data = _safe_json(resp)
        if resp.status_code >= 400 or data.get("success") is False:
            self._raise_for(resp, data)
        return data

    async def delete_task(self, task_id: str) -> None:
        await self._task_action("DELETE", self._task_url(task_id))
        logger.info("Task deleted id=%s", task_id)

    async def start_task(self, task_id: str) -> None:
        """POST /api/v1/tasks/{id}/start. The response carries no task; progress arrives over the stream."""
        await self._task_action("POST", self._task_url(task_id, "/start"))
        logger.info("Task started id=%s", task_id)

    async def update_task_status(self, task_id: str, action: str) -> RawRecord:
        """PATCH /api/v1/tasks/{id} with {"action": "pause" | "restart" | "start"}."""
        if action not in TASK_ACTIONS:
            raise TaskApiError(friendly_http_error_message(400), status=None)
        data = await self._task_action("PATCH", self._task_url(task_id), json={"action": action})
        logger.info("Task updated id=%s action=%s", task_id, action)
        task = data.get("task")
        return task if isinstance(task, dict) else {}
