# src/deckproxy/services/upstream.py
"""
Thin authenticated client for the upstream task/file API.

No logic of its own: every call forwards a bearer credential supplied by the
caller and hands back the decoded JSON. Non-2xx answers become UpstreamAPIError
carrying the upstream status and message.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from deckproxy.core.config import settings
from deckproxy.core.logging import get_logger

log = get_logger(__name__)

DEFAULT_AGENT_PROFILE = "manus-1.6-max"
DEFAULT_TASK_MODE = "agent"


class UpstreamAPIError(Exception):
    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status
        self.message = message


def _error_message(resp: httpx.Response, fallback: str) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text.strip() or fallback
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str) and err:
            return err
        if data.get("message"):
            return str(data["message"])
    return fallback


class UpstreamClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.UPSTREAM_API_BASE).rstrip("/"),
            timeout=timeout if timeout is not None else float(settings.UPSTREAM_TIMEOUT_SEC),
            transport=transport,
        )

    @staticmethod
    def _auth(api_key: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {api_key}"}

    async def _call(self, method: str, path: str, api_key: str, fallback: str, **kwargs) -> Any:
        resp = await self._client.request(method, path, headers=self._auth(api_key), **kwargs)
        if not resp.is_success:
            message = _error_message(resp, fallback)
            log.error("upstream %s %s -> %s: %s", method, path, resp.status_code, message)
            raise UpstreamAPIError(resp.status_code, message)
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as e:
            log.error("upstream %s %s -> %s: body is not JSON", method, path, resp.status_code)
            raise UpstreamAPIError(500, f"invalid upstream response: {e}") from e

    async def create_task(
        self,
        api_key: str,
        prompt: str,
        *,
        task_id: Optional[str] = None,
        agent_profile: Optional[str] = None,
        task_mode: Optional[str] = None,
        attachments: Optional[List[Any]] = None,
    ) -> Any:
        body: Dict[str, Any] = {
            "prompt": prompt,
            "agent_profile": agent_profile or DEFAULT_AGENT_PROFILE,
            "task_mode": task_mode or DEFAULT_TASK_MODE,
        }
        if task_id:
            body["task_id"] = task_id
        if attachments:
            body["attachments"] = attachments
        data = await self._call("POST", "/tasks", api_key, "failed to create task", json=body)
        log.info("task created: %s", data.get("id") if isinstance(data, dict) else None)
        return data

    async def get_task(self, api_key: str, task_id: str) -> Any:
        return await self._call("GET", f"/tasks/{task_id}", api_key, "failed to get task")

    async def upload_file(self, api_key: str, filename: str, content: bytes, content_type: Optional[str]) -> Any:
        files = {"file": (filename, content, content_type or "application/octet-stream")}
        return await self._call("POST", "/files", api_key, "failed to upload file", files=files)

    async def list_files(self, api_key: str) -> Any:
        return await self._call("GET", "/files", api_key, "failed to list files")

    async def delete_file(self, api_key: str, file_id: str) -> None:
        await self._call("DELETE", f"/files/{file_id}", api_key, "failed to delete file")

    async def aclose(self) -> None:
        await self._client.aclose()
