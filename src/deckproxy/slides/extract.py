# src/deckproxy/slides/extract.py
"""
Turn a classified deck manifest into an ordered list of SlideEntry.

Two strategies, picked by manifest shape:
  - images: `images` maps slide id -> image URL, ordered by `slide_ids`
    (or by the mapping itself when `slide_ids` is absent)
  - files: each block in `files` embeds its image as `src="..."` inside an
    HTML-ish `content` string
Display titles come from `outline` in both cases.
"""
from __future__ import annotations

import html
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

_SRC_RE = re.compile(r"""\bsrc\s*=\s*(["'])(.*?)\1""", re.IGNORECASE | re.DOTALL)


@dataclass(frozen=True)
class SlideEntry:
    id: str
    image_url: str
    title: str


def find_embedded_image(content: Any) -> Optional[str]:
    """First `src="..."` reference in an HTML-ish string, entity-unescaped."""
    if not isinstance(content, str) or not content:
        return None
    for m in _SRC_RE.finditer(content):
        url = html.unescape(m.group(2)).strip()
        if url:
            return url
    return None


def manifest_title(manifest: Mapping[str, Any]) -> Optional[str]:
    title = manifest.get("title")
    if isinstance(title, str) and title.strip():
        return title.strip()
    return None


def _outline_titles(manifest: Mapping[str, Any]) -> Dict[str, str]:
    titles: Dict[str, str] = {}
    outline = manifest.get("outline")
    if not isinstance(outline, list):
        return titles
    for item in outline:
        if not isinstance(item, dict) or item.get("id") is None:
            continue
        for key in ("title", "summary"):
            val = item.get(key)
            if isinstance(val, str) and val.strip():
                titles.setdefault(str(item["id"]), val.strip())
                break
    return titles


def _image_url(value: Any) -> str:
    if isinstance(value, dict):
        value = value.get("url") or value.get("src")
    return value.strip() if isinstance(value, str) else ""


def _from_images(manifest: Mapping[str, Any], titles: Dict[str, str]) -> List[SlideEntry]:
    images = manifest.get("images")
    if isinstance(images, list):
        images = {str(i + 1): v for i, v in enumerate(images)}
    if not isinstance(images, dict):
        return []
    images = {str(k): v for k, v in images.items()}

    slide_ids = manifest.get("slide_ids")
    ids = [str(s) for s in slide_ids] if isinstance(slide_ids, list) else list(images.keys())

    entries: List[SlideEntry] = []
    for sid in ids:
        url = _image_url(images.get(sid))
        if url:
            entries.append(SlideEntry(id=sid, image_url=url, title=titles.get(sid, sid)))
    return entries


def _from_files(manifest: Mapping[str, Any], titles: Dict[str, str]) -> List[SlideEntry]:
    files = manifest.get("files")
    if not isinstance(files, list):
        return []
    entries: List[SlideEntry] = []
    for idx, block in enumerate(files, 1):
        if not isinstance(block, dict):
            continue
        url = find_embedded_image(block.get("content"))
        if not url:
            continue
        raw_id = block.get("id")
        sid = str(raw_id) if raw_id is not None else str(block.get("name") or idx)
        entries.append(SlideEntry(id=sid, image_url=url, title=titles.get(sid, sid)))
    return entries


Strategy = Callable[[Mapping[str, Any], Dict[str, str]], List[SlideEntry]]


def select_strategy(manifest: Mapping[str, Any]) -> Optional[Strategy]:
    if manifest.get("images") is not None:
        return _from_images
    if manifest.get("files") is not None:
        return _from_files
    return None


def extract(manifest: Mapping[str, Any]) -> List[SlideEntry]:
    strategy = select_strategy(manifest)
    if strategy is None:
        return []
    return strategy(manifest, _outline_titles(manifest))
