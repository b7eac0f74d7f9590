# src/deckproxy/api/routes/tasks.py
"""Authenticated passthrough to the upstream task/file API."""
from __future__ import annotations

from typing import Any, Dict, Optional

import httpx
from fastapi import APIRouter, Body, Depends, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse

from deckproxy.core.logging import get_logger
from deckproxy.core.safety import UploadBlocked, validate_upload
from deckproxy.services.upstream import UpstreamAPIError, UpstreamClient

router = APIRouter(prefix="/api", tags=["tasks"])
log = get_logger(__name__)


def get_upstream(request: Request) -> UpstreamClient:
    return request.app.state.upstream


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message})


async def _forward(call):
    try:
        return await call
    except UpstreamAPIError as e:
        return _error(e.status, e.message)
    except httpx.HTTPError as e:
        log.error("upstream transport error: %s", e)
        return _error(500, str(e) or "server error")


@router.post("/create-task")
async def create_task(body: Dict[str, Any] = Body(...), upstream: UpstreamClient = Depends(get_upstream)):
    api_key = body.get("api_key")
    prompt = body.get("prompt")
    if not api_key:
        return _error(400, "Missing API key")
    if not prompt:
        return _error(400, "Missing prompt")
    return await _forward(upstream.create_task(
        api_key,
        prompt,
        task_id=body.get("task_id"),
        agent_profile=body.get("agent_profile"),
        task_mode=body.get("task_mode"),
        attachments=body.get("attachments"),
    ))


@router.post("/get-task/{task_id}")
async def get_task(task_id: str, body: Optional[Dict[str, Any]] = Body(None), upstream: UpstreamClient = Depends(get_upstream)):
    api_key = (body or {}).get("api_key")
    if not api_key:
        return _error(400, "Missing API key")
    log.info("getting task %s", task_id)
    return await _forward(upstream.get_task(api_key, task_id))


@router.post("/upload-file")
async def upload_file(
    file: Optional[UploadFile] = File(None),
    api_key: Optional[str] = Form(None),
    upstream: UpstreamClient = Depends(get_upstream),
):
    if not api_key:
        return _error(400, "Missing API key")
    if file is None:
        return _error(400, "Missing file")

    content = await file.read()
    filename = file.filename or ""
    try:
        validate_upload(filename, len(content))
    except UploadBlocked as e:
        return _error(400, str(e))

    log.info("uploading file %s (%d bytes)", filename, len(content))
    data = await _forward(upstream.upload_file(api_key, filename, content, file.content_type))
    if isinstance(data, JSONResponse):
        return data
    file_id = data.get("id") if isinstance(data, dict) else None
    log.info("file uploaded: %s", file_id)
    return {"file_id": file_id, "filename": filename}


@router.post("/list-files")
async def list_files(body: Optional[Dict[str, Any]] = Body(None), upstream: UpstreamClient = Depends(get_upstream)):
    api_key = (body or {}).get("api_key")
    if not api_key:
        return _error(400, "Missing API key")
    return await _forward(upstream.list_files(api_key))


@router.delete("/delete-file/{file_id}")
async def delete_file(file_id: str, body: Optional[Dict[str, Any]] = Body(None), upstream: UpstreamClient = Depends(get_upstream)):
    api_key = (body or {}).get("api_key")
    if not api_key:
        return _error(400, "Missing API key")
    log.info("deleting file %s", file_id)
    result = await _forward(upstream.delete_file(api_key, file_id))
    if isinstance(result, JSONResponse):
        return result
    return {"success": True}
