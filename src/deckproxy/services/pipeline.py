# src/deckproxy/services/pipeline.py
from __future__ import annotations

from typing import Optional

from deckproxy.core.logging import get_logger
from deckproxy.kernel.errors import ManifestParseError
from deckproxy.services.classifier import PayloadKind, classify, is_candidate_json, parse_candidate
from deckproxy.services.emitter import EmittedPayload, emit_json, emit_manifest, emit_passthrough
from deckproxy.services.extensions import split_extension
from deckproxy.services.fetch import FetchResult
from deckproxy.slides.compiler import DeckCompiler, ImageSource
from deckproxy.slides.extract import extract, manifest_title

log = get_logger(__name__)


async def build_payload(
    result: FetchResult,
    source_url: str,
    requested_name: Optional[str],
    images: ImageSource,
    compiler: Optional[DeckCompiler] = None,
) -> EmittedPayload:
    """
    Decide what to send back for a successfully fetched resource:
    compiled deck, re-serialized JSON, or the original bytes.
    """
    if not is_candidate_json(result.content_type, source_url):
        return emit_passthrough(result, requested_name, source_url)

    raw = await result.aread()
    try:
        parsed = parse_candidate(raw)
    except ManifestParseError as e:
        log.info("JSON candidate %s did not parse, passing through: %s", source_url, e.detail)
        return emit_passthrough(result, requested_name, source_url, body=raw)

    if classify(parsed) is PayloadKind.GENERIC_JSON:
        return emit_json(parsed, requested_name)

    entries = extract(parsed)
    title = manifest_title(parsed)
    log.info("manifest %r with %d slide entries", title, len(entries))
    fallback = split_extension(requested_name) if requested_name else None
    deck = await (compiler or DeckCompiler(images)).compile(entries, title, fallback_title=fallback)
    return emit_manifest(deck, requested_name, title)
