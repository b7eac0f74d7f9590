# src/deckproxy/core/ctx.py
from __future__ import annotations
import contextvars
from typing import Optional, Mapping

_request_id = contextvars.ContextVar("request_id", default=None)
_route      = contextvars.ContextVar("route",      default=None)

def set_ctx(*, request_id: Optional[str]=None, route: Optional[str]=None) -> None:
    if request_id is not None: _request_id.set(request_id)
    if route is not None:      _route.set(route)

def get_ctx() -> Mapping[str, Optional[str]]:
    return {
        "request_id": _request_id.get(),
        "route":      _route.get(),
    }
