# src/deckproxy/api/routes/proxy.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response, StreamingResponse
from starlette.background import BackgroundTask

from deckproxy.core.logging import get_logger
from deckproxy.core.metrics import PAYLOADS_EMITTED
from deckproxy.kernel.errors import ValidationError
from deckproxy.services.fetch import ResourceFetcher
from deckproxy.services.pipeline import build_payload

router = APIRouter()
log = get_logger(__name__)


def get_fetcher(request: Request) -> ResourceFetcher:
    return request.app.state.fetcher


@router.get("/proxy-download")
async def proxy_download(
    url: Optional[str] = Query(None, description="Remote resource to fetch"),
    filename: Optional[str] = Query(None, description="Base name for Content-Disposition"),
    fetcher: ResourceFetcher = Depends(get_fetcher),
):
    if not url or not url.strip():
        raise ValidationError("url is required", op="proxy")
    url = url.strip()
    log.info("proxy download %s", url)

    result = await fetcher.fetch(url, stream=True)
    try:
        payload = await build_payload(result, url, filename, fetcher)
    except Exception:
        await result.aclose()
        raise
    PAYLOADS_EMITTED.labels(payload.kind.value).inc()
    log.info("emitting %s as %s (%s)", payload.kind.value, payload.filename, payload.content_type)

    if payload.stream is not None:
        return StreamingResponse(
            payload.stream,
            media_type=payload.content_type,
            headers=payload.headers(),
            background=BackgroundTask(result.aclose),
        )
    return Response(content=payload.body, media_type=payload.content_type, headers=payload.headers())
