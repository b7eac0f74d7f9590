# src/deckproxy/services/extensions.py
"""
Filename extension inference for passthrough downloads.

Origin servers are unreliable about both Content-Disposition and Content-Type,
so the extension is resolved in tiers: existing filename suffix, then the
content-type table, then the URL path, then known substrings anywhere in the
URL. A content-type hit always wins over the URL heuristics.
"""
from __future__ import annotations

import re
from types import MappingProxyType
from typing import Mapping, Optional, Sequence
from urllib.parse import unquote, urlparse

_SUFFIX_RE = re.compile(r"\.([A-Za-z0-9]{1,8})$")

CONTENT_TYPE_EXTENSIONS: Mapping[str, str] = MappingProxyType({
    "application/pdf": ".pdf",
    "application/msword": ".doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
    "application/vnd.ms-powerpoint": ".ppt",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": ".pptx",
    "application/vnd.ms-excel": ".xls",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ".xlsx",
    "application/zip": ".zip",
    "application/x-zip-compressed": ".zip",
    "application/gzip": ".gz",
    "application/json": ".json",
    "application/xml": ".xml",
    "text/xml": ".xml",
    "text/plain": ".txt",
    "text/markdown": ".md",
    "text/html": ".html",
    "text/csv": ".csv",
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/svg+xml": ".svg",
    "audio/mpeg": ".mp3",
    "audio/wav": ".wav",
    "video/mp4": ".mp4",
    "video/webm": ".webm",
})

# Priority order matters: longer variants precede their prefixes (.docx before .doc).
URL_EXTENSION_MARKERS: Sequence[str] = (
    ".pdf",
    ".docx",
    ".doc",
    ".pptx",
    ".ppt",
    ".xlsx",
    ".xls",
    ".csv",
    ".zip",
    ".png",
    ".jpeg",
    ".jpg",
    ".gif",
    ".webp",
    ".svg",
    ".mp4",
    ".mp3",
    ".wav",
    ".json",
    ".html",
    ".txt",
    ".md",
)


def has_extension(filename: Optional[str]) -> bool:
    return bool(filename) and bool(_SUFFIX_RE.search(filename.strip()))


def split_extension(filename: str) -> str:
    """Return `filename` without its dotted suffix (if any)."""
    return _SUFFIX_RE.sub("", filename.strip())


def normalize_content_type(content_type: Optional[str]) -> str:
    return (content_type or "").split(";", 1)[0].strip().lower()


class ExtensionResolver:
    def __init__(
        self,
        content_types: Mapping[str, str] = CONTENT_TYPE_EXTENSIONS,
        url_markers: Sequence[str] = URL_EXTENSION_MARKERS,
    ):
        self._content_types = content_types
        self._url_markers = tuple(url_markers)

    def from_content_type(self, content_type: Optional[str]) -> str:
        return self._content_types.get(normalize_content_type(content_type), "")

    @staticmethod
    def from_url_path(source_url: Optional[str]) -> str:
        if not source_url:
            return ""
        try:
            path = urlparse(source_url).path
        except ValueError:
            return ""
        last = unquote(path.rsplit("/", 1)[-1])
        m = _SUFFIX_RE.search(last)
        return ("." + m.group(1).lower()) if m else ""

    def from_url_markers(self, source_url: Optional[str]) -> str:
        raw = (source_url or "").lower()
        for marker in self._url_markers:
            if marker in raw:
                return marker
        return ""

    def resolve(self, content_type: Optional[str], source_url: Optional[str], current_filename: Optional[str]) -> str:
        """Extension (with dot) to append to `current_filename`, or "" for none."""
        if has_extension(current_filename):
            return ""
        return (
            self.from_content_type(content_type)
            or self.from_url_path(source_url)
            or self.from_url_markers(source_url)
        )


default_resolver = ExtensionResolver()


def resolve(content_type: Optional[str], source_url: Optional[str], current_filename: Optional[str]) -> str:
    return default_resolver.resolve(content_type, source_url, current_filename)
