from __future__ import annotations
import uuid
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from typing import Callable

from deckproxy.core.ctx import set_ctx


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Tag every request with an id (incoming X-Request-ID or a fresh one) so log
    lines from the proxy pipeline can be correlated, and echo it back.
    """
    async def dispatch(self, request: Request, call_next: Callable):
        rid = request.headers.get("x-request-id") or uuid.uuid4().hex[:12]
        set_ctx(request_id=rid, route=request.url.path)
        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response
