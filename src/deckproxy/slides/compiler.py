# src/deckproxy/slides/compiler.py
"""
Compile SlideEntry lists into a 16:9 PPTX deck, one full-bleed image per slide.

Each slide moves PENDING -> DOWNLOADED | DEGRADED, and DOWNLOADED may still end
as FAILED if the picture cannot be placed. Degraded and failed slides get
placeholder text; nothing a single slide does can abort the deck.
"""
from __future__ import annotations

import asyncio
import enum
import io
from dataclasses import dataclass, field
from typing import Awaitable, Dict, List, Optional, Protocol, Sequence, Tuple

from PIL import Image
from pptx import Presentation
from pptx.dml.color import RGBColor
from pptx.enum.text import MSO_ANCHOR, PP_ALIGN
from pptx.util import Inches, Pt

from deckproxy.core.config import settings
from deckproxy.core.logging import get_logger
from deckproxy.core.metrics import DECK_SLIDES
from deckproxy.kernel.errors import CompileError, SlideDownloadError
from deckproxy.slides.extract import SlideEntry

log = get_logger(__name__)

SLIDE_WIDTH = Inches(10)
SLIDE_HEIGHT = Inches(5.625)
BLANK_SLIDE_LAYOUT = 6

TEXT_COLOR = RGBColor(0x36, 0x36, 0x36)
MUTED_COLOR = RGBColor(0x88, 0x88, 0x88)

# Formats python-pptx can embed as-is; anything else is re-encoded.
EMBEDDABLE_FORMATS = {"PNG", "JPEG", "GIF", "BMP", "TIFF"}

IMAGE_UNAVAILABLE = "Image could not be loaded"
CONTENT_ERROR = "Error loading content"
# python-pptx rejects longer core property values
CORE_PROPERTY_LIMIT = 255


class ImageSource(Protocol):
    def fetch_image(self, url: str) -> Awaitable[bytes]: ...


class SlideState(str, enum.Enum):
    PENDING = "pending"
    DOWNLOADED = "downloaded"
    DEGRADED = "degraded"
    FAILED = "failed"


@dataclass
class SlideOutcome:
    position: int
    entry: SlideEntry
    state: SlideState = SlideState.PENDING
    image: Optional[bytes] = field(default=None, repr=False)
    image_format: Optional[str] = None
    reason: Optional[str] = None


@dataclass
class CompiledDeck:
    presentation: Presentation
    title: str
    outcomes: List[SlideOutcome] = field(default_factory=list)

    @property
    def slide_count(self) -> int:
        return len(self.presentation.slides)

    def summary(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for o in self.outcomes:
            counts[o.state.value] = counts.get(o.state.value, 0) + 1
        return counts

    def to_bytes(self) -> bytes:
        buf = io.BytesIO()
        self.presentation.save(buf)
        return buf.getvalue()


def infer_image_format(url: str) -> str:
    return "png" if ".png" in (url or "").lower() else "jpeg"


def prepare_image(data: bytes, format_hint: str) -> Tuple[bytes, str]:
    """
    Return bytes python-pptx can embed, plus their format. Embeddable sources
    pass through untouched; others (e.g. WebP) are re-encoded to the hinted format.
    """
    with Image.open(io.BytesIO(data)) as im:
        source_format = (im.format or "").upper()
        if source_format in EMBEDDABLE_FORMATS:
            return data, source_format.lower()
        target = "PNG" if format_hint == "png" else "JPEG"
        frame = im
        if target == "JPEG" and im.mode not in ("RGB", "L"):
            frame = im.convert("RGB")
        out = io.BytesIO()
        frame.save(out, format=target)
        return out.getvalue(), target.lower()


# ---------- slide painters ----------

def _centered_text(slide, lines: Sequence[Tuple[str, int, bool, RGBColor]], top=Inches(2.0), height=Inches(1.6)):
    tb = slide.shapes.add_textbox(Inches(0.5), top, Inches(9), height)
    tf = tb.text_frame
    tf.word_wrap = True
    tf.vertical_anchor = MSO_ANCHOR.MIDDLE
    for i, (text, size, bold, color) in enumerate(lines):
        p = tf.paragraphs[0] if i == 0 else tf.add_paragraph()
        p.alignment = PP_ALIGN.CENTER
        run = p.add_run()
        run.text = text
        run.font.size = Pt(size)
        run.font.bold = bold
        run.font.color.rgb = color
    return tb


def _image_slide(slide, data: bytes) -> None:
    # stretched over the whole canvas; the source decks are rendered 16:9
    slide.shapes.add_picture(io.BytesIO(data), 0, 0, width=SLIDE_WIDTH, height=SLIDE_HEIGHT)


def _placeholder_slide(slide, position: int, title: str) -> None:
    _centered_text(slide, [
        (f"Slide {position}: {title}", 24, False, TEXT_COLOR),
        (IMAGE_UNAVAILABLE, 14, False, MUTED_COLOR),
    ])


def _error_slide(slide, position: int) -> None:
    _centered_text(slide, [
        (f"Slide {position}", 24, False, TEXT_COLOR),
        (CONTENT_ERROR, 14, False, MUTED_COLOR),
    ])


def _title_slide(slide, title: str) -> None:
    _centered_text(slide, [(title, 36, True, TEXT_COLOR)], top=Inches(1.8), height=Inches(2.0))


def _clear(slide) -> None:
    for shape in list(slide.shapes):
        el = shape._element
        el.getparent().remove(el)


def new_presentation(title: str, author: Optional[str] = None) -> Presentation:
    prs = Presentation()
    prs.slide_width = SLIDE_WIDTH
    prs.slide_height = SLIDE_HEIGHT
    props = prs.core_properties
    props.title = title[:CORE_PROPERTY_LIMIT]
    props.subject = title[:CORE_PROPERTY_LIMIT]
    props.author = (author or settings.DECK_AUTHOR)[:CORE_PROPERTY_LIMIT]
    return prs


class DeckCompiler:
    def __init__(self, images: ImageSource, *, concurrency: Optional[int] = None, author: Optional[str] = None):
        self._images = images
        self._concurrency = max(1, int(concurrency if concurrency is not None else settings.SLIDE_FETCH_CONCURRENCY))
        self._author = author

    async def _download(self, outcome: SlideOutcome) -> None:
        url = outcome.entry.image_url
        try:
            outcome.image = await self._images.fetch_image(url)
            outcome.image_format = infer_image_format(url)
            outcome.state = SlideState.DOWNLOADED
        except SlideDownloadError as e:
            outcome.state = SlideState.DEGRADED
            outcome.reason = e.detail
            log.warning("slide %s (%s) image unavailable: %s", outcome.position, outcome.entry.id, e.detail)
        except Exception as e:
            outcome.state = SlideState.FAILED
            outcome.reason = f"{type(e).__name__}: {e}"
            log.exception("slide %s (%s) download crashed", outcome.position, outcome.entry.id)

    def _build(self, prs: Presentation, outcome: SlideOutcome) -> None:
        slide = prs.slides.add_slide(prs.slide_layouts[BLANK_SLIDE_LAYOUT])
        try:
            if outcome.state is SlideState.DOWNLOADED:
                data, outcome.image_format = prepare_image(outcome.image or b"", outcome.image_format or "jpeg")
                _image_slide(slide, data)
            elif outcome.state is SlideState.DEGRADED:
                _placeholder_slide(slide, outcome.position, outcome.entry.title)
            else:
                raise CompileError(outcome.reason or "download failed", position=outcome.position)
        except Exception as e:
            err = e if isinstance(e, CompileError) else CompileError(f"{type(e).__name__}: {e}", position=outcome.position)
            log.warning("slide %s (%s) build failed: %s", outcome.position, outcome.entry.id, err.detail)
            _clear(slide)
            _error_slide(slide, outcome.position)
            outcome.state = SlideState.FAILED
            outcome.reason = err.detail
        finally:
            outcome.image = None
        DECK_SLIDES.labels(outcome.state.value).inc()

    async def compile(
        self,
        entries: Sequence[SlideEntry],
        title: Optional[str] = None,
        fallback_title: Optional[str] = None,
    ) -> CompiledDeck:
        deck_title = title or fallback_title or settings.DEFAULT_DECK_TITLE
        prs = new_presentation(deck_title, self._author)
        deck = CompiledDeck(presentation=prs, title=deck_title)

        if not entries:
            _title_slide(prs.slides.add_slide(prs.slide_layouts[BLANK_SLIDE_LAYOUT]), deck_title)
            log.info("compiled empty deck %r", deck_title)
            return deck

        # Download a window of images, place them in entry order, then drop the
        # buffers before the next window. Window size 1 is fully sequential.
        for start in range(0, len(entries), self._concurrency):
            window = [
                SlideOutcome(position=start + i + 1, entry=entry)
                for i, entry in enumerate(entries[start:start + self._concurrency])
            ]
            await asyncio.gather(*(self._download(o) for o in window))
            for outcome in window:
                self._build(prs, outcome)
                deck.outcomes.append(outcome)

        log.info("compiled deck %r: %s", deck_title, deck.summary())
        return deck
