from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Dict, Any


@dataclass(eq=False)
class ProblemDetails(Exception):
    type: str = "about:blank"
    title: str = "Proxy operation failed"
    detail: str = ""
    status: int = 400
    op: Optional[str] = None
    code: Optional[str] = None
    meta: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "type": self.type,
            "title": self.title,
            "detail": self.detail,
            "status": self.status,
        }
        if self.op is not None:
            data["op"] = self.op
        if self.code is not None:
            data["code"] = self.code
        if self.meta is not None:
            data["meta"] = self.meta
        return data

    def __str__(self) -> str:
        return f"{self.title} ({self.code or ''}): {self.detail}"


# Request-fatal errors

class ValidationError(ProblemDetails):
    """Bad or disallowed input; surfaced as a 400."""
    def __init__(self, detail: str, *, op: Optional[str] = None, meta: Optional[Dict[str, Any]] = None):
        super().__init__(title="Invalid request", detail=detail, status=400,
                         op=op, code="E_VALIDATION", meta=meta)


class UpstreamFetchError(ProblemDetails):
    """Top-level fetch failed (network error or non-2xx)."""
    def __init__(self, detail: str, *, upstream_status: Optional[int] = None,
                 reason: Optional[str] = None, url: Optional[str] = None):
        meta: Dict[str, Any] = {}
        if upstream_status is not None:
            meta["upstream_status"] = upstream_status
        if reason:
            meta["reason"] = reason
        if url:
            meta["url"] = url
        super().__init__(title="Upstream fetch failed", detail=detail, status=502,
                         op="fetch", code="E_UPSTREAM", meta=meta or None)

    @property
    def upstream_status(self) -> Optional[int]:
        return (self.meta or {}).get("upstream_status")


# Absorbed errors: never reach the client, they select a degraded output

class ManifestParseError(ProblemDetails):
    def __init__(self, detail: str):
        super().__init__(title="Manifest parse failed", detail=detail, status=422,
                         op="classify", code="E_MANIFEST_PARSE")


class SlideDownloadError(ProblemDetails):
    def __init__(self, detail: str, *, url: Optional[str] = None):
        super().__init__(title="Slide image download failed", detail=detail, status=502,
                         op="compile", code="E_SLIDE_DOWNLOAD",
                         meta={"url": url} if url else None)


class CompileError(ProblemDetails):
    def __init__(self, detail: str, *, position: Optional[int] = None):
        super().__init__(title="Slide build failed", detail=detail, status=500,
                         op="compile", code="E_COMPILE",
                         meta={"position": position} if position is not None else None)
