import asyncio

import httpx
import pytest

from deckproxy.core import safety
from deckproxy.core.safety import FetchBlocked, host_matches, validate_url
from deckproxy.kernel.errors import SlideDownloadError, UpstreamFetchError, ValidationError

OK_URL = "https://files.manuscdn.com/doc.pdf"


def test_host_patterns():
    patterns = ["files.manuscdn.com", "*.example-cdn.com"]
    assert host_matches("files.manuscdn.com", patterns)
    assert host_matches("IMG.Example-CDN.com", patterns)
    assert not host_matches("example-cdn.com", patterns)
    assert not host_matches("evil.com", patterns)
    assert not host_matches("files.manuscdn.com.evil.com", patterns)


@pytest.mark.parametrize("url", [
    "",
    "ftp://files.manuscdn.com/a",
    "https://user:pw@files.manuscdn.com/a",
    "https://files.manuscdn.com:8443/a",
    "https://evil.com/a",
    "https:///nohost",
])
def test_validate_url_rejects(url):
    with pytest.raises(FetchBlocked):
        validate_url(url)


def test_validate_url_blocks_private_resolution(monkeypatch):
    monkeypatch.setattr(safety, "_resolve_all", lambda host: ["10.1.2.3"])
    with pytest.raises(FetchBlocked):
        validate_url(OK_URL, block_private=True)
    validate_url(OK_URL, block_private=False)


def test_empty_allowlist_refuses_unless_opted_out(monkeypatch):
    with pytest.raises(FetchBlocked):
        validate_url("https://anything.org/a", patterns=[])
    monkeypatch.setattr(safety.settings, "ALLOW_ANY_ORIGIN", True)
    validate_url("https://anything.org/a", patterns=[])


def test_fetch_buffered(cdn):
    fake = cdn({OK_URL: httpx.Response(200, content=b"%PDF", headers={"content-type": "application/pdf"})})

    async def go():
        async with fake.fetcher() as fetcher:
            return await fetcher.fetch(OK_URL)

    result = asyncio.run(go())
    assert result.status_code == 200
    assert result.content == b"%PDF"
    assert result.content_type == "application/pdf"
    assert not result.streaming


def test_fetch_streaming(cdn):
    fake = cdn({OK_URL: httpx.Response(200, content=b"x" * 200_000)})

    async def go():
        async with fake.fetcher() as fetcher:
            result = await fetcher.fetch(OK_URL, stream=True)
            assert result.streaming
            assert result.content_length == 200_000
            chunks = [c async for c in result.aiter_bytes()]
            return b"".join(chunks)

    assert asyncio.run(go()) == b"x" * 200_000


def test_disallowed_host_never_hits_network(cdn):
    fake = cdn({})

    async def go():
        async with fake.fetcher() as fetcher:
            await fetcher.fetch("https://evil.com/a")

    with pytest.raises(ValidationError) as e:
        asyncio.run(go())
    assert e.value.status == 400
    assert fake.requested == []


def test_redirect_off_allowlist_is_refused(cdn):
    fake = cdn({OK_URL: httpx.Response(302, headers={"location": "https://evil.com/steal"})})

    async def go():
        async with fake.fetcher() as fetcher:
            await fetcher.fetch(OK_URL)

    with pytest.raises(UpstreamFetchError):
        asyncio.run(go())
    assert fake.requested == [OK_URL]


def test_non_2xx_is_upstream_error(cdn):
    fake = cdn({OK_URL: httpx.Response(403, text="denied")})

    async def go():
        async with fake.fetcher() as fetcher:
            await fetcher.fetch(OK_URL)

    with pytest.raises(UpstreamFetchError) as e:
        asyncio.run(go())
    assert e.value.upstream_status == 403
    assert e.value.status == 502
    assert e.value.meta["reason"] == "Forbidden"


def test_network_error_is_upstream_error(cdn):
    fake = cdn({OK_URL: httpx.ConnectError("refused")})

    async def go():
        async with fake.fetcher() as fetcher:
            await fetcher.fetch(OK_URL)

    with pytest.raises(UpstreamFetchError) as e:
        asyncio.run(go())
    assert e.value.meta["reason"] == "ConnectError"


def test_size_cap(cdn):
    fake = cdn({OK_URL: httpx.Response(200, content=b"y" * 1000)})

    async def go():
        async with fake.fetcher(max_bytes=100) as fetcher:
            await fetcher.fetch(OK_URL)

    with pytest.raises(UpstreamFetchError):
        asyncio.run(go())


@pytest.mark.parametrize("route", [
    httpx.Response(500),
    httpx.ReadTimeout("slow"),
    httpx.Response(200, content=b""),
])
def test_fetch_image_failures_are_slide_errors(cdn, route):
    url = "https://img.example-cdn.com/1.png"
    fake = cdn({url: route})

    async def go():
        async with fake.fetcher() as fetcher:
            await fetcher.fetch_image(url)

    with pytest.raises(SlideDownloadError):
        asyncio.run(go())


def test_fetch_image_disallowed_host_is_slide_error(cdn):
    fake = cdn({})

    async def go():
        async with fake.fetcher() as fetcher:
            await fetcher.fetch_image("https://evil.com/1.png")

    with pytest.raises(SlideDownloadError):
        asyncio.run(go())
    assert fake.requested == []


def test_fetch_image_has_a_total_deadline(cdn):
    url = "https://img.example-cdn.com/slow.png"

    async def trickle():
        for _ in range(50):
            await asyncio.sleep(0.05)
            yield b"x"

    fake = cdn({url: lambda req: httpx.Response(200, content=trickle())})

    async def go():
        async with fake.fetcher(image_timeout=0.2) as fetcher:
            await fetcher.fetch_image(url)

    with pytest.raises(SlideDownloadError, match="timed out"):
        asyncio.run(go())
