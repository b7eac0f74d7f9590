# tests/conftest.py
import io
import os
import sys
import pathlib
from typing import Callable, Dict, Union

import httpx
import pytest

# Test-friendly policy: fixed allow-list, no DNS checks, no static mount
os.environ.setdefault("ALLOWED_ORIGIN_PATTERNS", "files.manuscdn.com,*.example-cdn.com")
os.environ.setdefault("BLOCK_PRIVATE_NETWORKS", "false")
os.environ.setdefault("PUBLIC_DIR", "")

# Add <repo>/src to sys.path so `import deckproxy...` works under pytest
ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from PIL import Image  # noqa: E402

from deckproxy.kernel.errors import SlideDownloadError  # noqa: E402
from deckproxy.services.fetch import ResourceFetcher  # noqa: E402

Route = Union[httpx.Response, Callable[[httpx.Request], httpx.Response], Exception]


def _image_bytes(fmt: str, color=(200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (32, 18), color).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return _image_bytes("PNG")


@pytest.fixture
def jpeg_bytes() -> bytes:
    return _image_bytes("JPEG", (20, 120, 200))


class FakeCDN:
    """httpx MockTransport keyed by full URL; records every requested URL."""
    def __init__(self, routes: Dict[str, Route]):
        self.routes = routes
        self.requested = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requested.append(url)
        route = self.routes.get(url)
        if route is None:
            return httpx.Response(404, text="not found")
        if isinstance(route, Exception):
            raise route
        if callable(route):
            return route(request)
        return route

    def fetcher(self, **kwargs) -> ResourceFetcher:
        return ResourceFetcher(transport=httpx.MockTransport(self), **kwargs)


@pytest.fixture
def cdn():
    def make(routes: Dict[str, Route]) -> FakeCDN:
        return FakeCDN(routes)
    return make


class FakeImages:
    """Image source for the compiler: bytes, an exception to raise, or missing (404)."""
    def __init__(self, table):
        self.table = table
        self.calls = []

    async def fetch_image(self, url: str) -> bytes:
        self.calls.append(url)
        value = self.table.get(url)
        if isinstance(value, Exception):
            raise value
        if value is None:
            raise SlideDownloadError("upstream returned 404", url=url)
        return value


@pytest.fixture
def fake_images():
    return FakeImages
