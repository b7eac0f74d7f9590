# src/deckproxy/services/emitter.py
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from email.message import Message
from typing import Any, AsyncIterator, Optional
from urllib.parse import quote, unquote, urlparse

from deckproxy.services.classifier import PayloadKind
from deckproxy.services.extensions import ExtensionResolver, default_resolver, split_extension
from deckproxy.services.fetch import FetchResult
from deckproxy.slides.compiler import CompiledDeck

PPTX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.presentationml.presentation"
JSON_MEDIA_TYPE = "application/json"
OCTET_STREAM = "application/octet-stream"

DEFAULT_DECK_NAME = "presentation"
DEFAULT_JSON_NAME = "data"
DEFAULT_BINARY_NAME = "download"

_UNSAFE_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f]+')


@dataclass
class EmittedPayload:
    kind: PayloadKind
    content_type: str
    filename: str
    body: Optional[bytes] = None
    stream: Optional[AsyncIterator[bytes]] = None
    content_length: Optional[int] = None

    def headers(self) -> dict:
        h = {"Content-Disposition": content_disposition(self.filename), "X-Payload-Kind": self.kind.value}
        length = len(self.body) if self.body is not None else self.content_length
        if length is not None:
            h["Content-Length"] = str(length)
        return h


def safe_filename(name: Optional[str]) -> str:
    """Strip path separators and control characters; "" when nothing usable remains."""
    return _UNSAFE_CHARS.sub("_", (name or "").strip()).strip(" ._")


def content_disposition(filename: str) -> str:
    encoded = quote(filename, safe="")
    return f"attachment; filename=\"{encoded}\"; filename*=UTF-8''{encoded}"


def upstream_filename(headers) -> Optional[str]:
    """Filename from an upstream Content-Disposition header, if it names one."""
    raw = (headers or {}).get("content-disposition")
    if not raw:
        return None
    msg = Message()
    msg["content-disposition"] = raw
    name = msg.get_filename()
    return unquote(name) if name else None


def url_filename(url: str) -> Optional[str]:
    try:
        last = urlparse(url).path.rsplit("/", 1)[-1]
    except ValueError:
        return None
    return unquote(last) or None


def emit_manifest(deck: CompiledDeck, requested_name: Optional[str], manifest_title: Optional[str]) -> EmittedPayload:
    base = safe_filename(split_extension(requested_name)) if requested_name else ""
    base = base or safe_filename(manifest_title) or DEFAULT_DECK_NAME
    body = deck.to_bytes()
    return EmittedPayload(
        kind=PayloadKind.MANIFEST,
        content_type=PPTX_MEDIA_TYPE,
        filename=f"{base}.pptx",
        body=body,
    )


def emit_json(parsed: Any, requested_name: Optional[str]) -> EmittedPayload:
    name = safe_filename(requested_name) or DEFAULT_JSON_NAME
    if not name.lower().endswith(".json"):
        name += ".json"
    body = json.dumps(parsed, indent=2, ensure_ascii=False).encode("utf-8")
    return EmittedPayload(
        kind=PayloadKind.GENERIC_JSON,
        content_type=JSON_MEDIA_TYPE,
        filename=name,
        body=body,
    )


def emit_passthrough(
    result: FetchResult,
    requested_name: Optional[str],
    source_url: str,
    body: Optional[bytes] = None,
    resolver: ExtensionResolver = default_resolver,
) -> EmittedPayload:
    """
    Original bytes, unmodified. `body` is given when the response was already
    buffered (e.g. a JSON candidate that failed to parse); otherwise the
    fetch result's stream is forwarded.
    """
    name = (
        safe_filename(requested_name)
        or safe_filename(upstream_filename(result.headers))
        or safe_filename(url_filename(source_url))
        or DEFAULT_BINARY_NAME
    )
    name += resolver.resolve(result.content_type, source_url, name)

    if body is None and result.content is not None:
        body = result.content
    return EmittedPayload(
        kind=PayloadKind.BINARY,
        content_type=result.content_type or OCTET_STREAM,
        filename=name,
        body=body,
        stream=None if body is not None else result.aiter_bytes(),
        content_length=None if body is not None else result.content_length,
    )
