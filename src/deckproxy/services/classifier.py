# src/deckproxy/services/classifier.py
from __future__ import annotations

import base64
import enum
import json
from typing import Any, Optional, Sequence

from deckproxy.core.config import settings
from deckproxy.kernel.errors import ManifestParseError

LIST_KEYS = ("slide_ids", "slides", "files")
IMAGE_KEYS = ("images", "outline", "isImageSlides")

# Base64 of the word "slides". The CDN sometimes serves deck manifests without a
# JSON content type, but their URLs carry this fragment.
SLIDES_URL_MARKER = base64.b64encode(b"slides").decode("ascii").rstrip("=")


class PayloadKind(str, enum.Enum):
    MANIFEST = "manifest"
    GENERIC_JSON = "json"
    BINARY = "binary"


def is_manifest(payload: Any) -> bool:
    if not isinstance(payload, dict):
        return False
    return any(k in payload for k in LIST_KEYS) and any(k in payload for k in IMAGE_KEYS)


def classify(payload: Any) -> PayloadKind:
    """MANIFEST for deck-shaped objects, GENERIC_JSON for any other JSON value."""
    return PayloadKind.MANIFEST if is_manifest(payload) else PayloadKind.GENERIC_JSON


def manifest_url_markers() -> Sequence[str]:
    raw = settings.MANIFEST_URL_MARKERS
    if raw is None:
        return (SLIDES_URL_MARKER,)
    return tuple(m.strip() for m in raw.split(",") if m.strip())


def is_candidate_json(
    content_type: Optional[str],
    url: Optional[str],
    markers: Optional[Sequence[str]] = None,
) -> bool:
    """Whether a response is worth trying to parse as JSON before passthrough."""
    if "application/json" in (content_type or "").lower():
        return True
    if markers is None:
        markers = manifest_url_markers()
    return any(m in (url or "") for m in markers)


def parse_candidate(raw: bytes) -> Any:
    try:
        return json.loads(raw.decode("utf-8-sig"))
    except (UnicodeDecodeError, ValueError) as e:
        raise ManifestParseError(f"not valid JSON: {e}") from e
