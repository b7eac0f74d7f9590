# src/deckproxy/services/fetch.py
"""
Resource fetcher for the download proxy.

One GET per call, no retries. Every URL (including each redirect hop) is
checked against the origin allow-list before it is requested.
"""
from __future__ import annotations

import asyncio

from dataclasses import dataclass, field
from typing import AsyncIterator, Mapping, Optional, Sequence

import httpx

from deckproxy.core.config import settings
from deckproxy.core.logging import get_logger
from deckproxy.core.safety import DEFAULT_HTTP_HEADERS, FetchBlocked, validate_url
from deckproxy.kernel.errors import (
    ProblemDetails,
    SlideDownloadError,
    UpstreamFetchError,
    ValidationError,
)

log = get_logger(__name__)

CHUNK_SIZE = 64 * 1024


@dataclass
class FetchResult:
    url: str
    status_code: int
    content_type: Optional[str]
    headers: Mapping[str, str] = field(default_factory=dict)
    content: Optional[bytes] = None
    final_url: Optional[str] = None
    max_bytes: int = 0
    _response: Optional[httpx.Response] = field(default=None, repr=False)

    @property
    def streaming(self) -> bool:
        return self.content is None and self._response is not None

    @property
    def content_length(self) -> Optional[int]:
        if self.content is not None:
            return len(self.content)
        # httpx hands back decoded bytes, so an encoded length would lie
        encoding = (self.headers.get("content-encoding") or "identity").lower()
        if encoding != "identity":
            return None
        raw = self.headers.get("content-length") or ""
        return int(raw) if raw.isdigit() else None

    async def aread(self) -> bytes:
        """Buffer the whole body (size-capped) and release the connection."""
        if self.content is not None:
            return self.content
        if self._response is None:
            return b""
        buf = bytearray()
        try:
            async for chunk in self._response.aiter_bytes(CHUNK_SIZE):
                buf.extend(chunk)
                if self.max_bytes and len(buf) > self.max_bytes:
                    raise UpstreamFetchError(
                        f"body exceeds cap ({len(buf)}>{self.max_bytes})",
                        reason="too large", url=self.url,
                    )
        except httpx.HTTPError as e:
            raise UpstreamFetchError(f"read failed: {e}", reason=type(e).__name__, url=self.url) from e
        finally:
            await self.aclose()
        self.content = bytes(buf)
        return self.content

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        if self.content is not None:
            yield self.content
            return
        if self._response is None:
            return
        try:
            async for chunk in self._response.aiter_bytes(CHUNK_SIZE):
                yield chunk
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._response is not None:
            await self._response.aclose()
            self._response = None


class ResourceFetcher:
    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
        image_timeout: Optional[float] = None,
        max_bytes: Optional[int] = None,
        patterns: Optional[Sequence[str]] = None,
    ):
        self._timeout = timeout if timeout is not None else float(settings.FETCH_TIMEOUT_SEC)
        self._image_timeout = image_timeout if image_timeout is not None else float(settings.IMAGE_TIMEOUT_SEC)
        self._max_bytes = max_bytes if max_bytes is not None else int(settings.MAX_FETCH_BYTES)
        self._patterns = list(patterns) if patterns is not None else None
        self._owns_client = client is None
        if client is None:
            client = httpx.AsyncClient(
                follow_redirects=True,
                headers=DEFAULT_HTTP_HEADERS,
                transport=transport,
                event_hooks={"request": [self._guard_hop]},
            )
        self._client = client

    async def _guard_hop(self, request: httpx.Request) -> None:
        # runs for redirects too, so a hop off the allow-list is refused
        validate_url(str(request.url), patterns=self._patterns)

    async def fetch(self, url: str, *, stream: bool = False, timeout: Optional[float] = None) -> FetchResult:
        """
        GET `url`. Returns a buffered result, or with stream=True one whose
        body must be consumed via aiter_bytes()/aread() (or closed).
        Raises ValidationError (policy) or UpstreamFetchError (network/non-2xx).
        """
        try:
            validate_url(url, patterns=self._patterns)
        except FetchBlocked as e:
            raise ValidationError(str(e), op="fetch", meta={"url": url}) from e

        timeout = timeout if timeout is not None else self._timeout
        request = self._client.build_request("GET", url, timeout=timeout)
        try:
            response = await self._client.send(request, stream=True)
        except FetchBlocked as e:
            raise UpstreamFetchError(str(e), reason="redirect blocked", url=url) from e
        except httpx.TimeoutException as e:
            raise UpstreamFetchError(f"timed out after {timeout}s", reason="timeout", url=url) from e
        except httpx.HTTPError as e:
            raise UpstreamFetchError(f"network error: {e}", reason=type(e).__name__, url=url) from e

        if not response.is_success:
            await response.aclose()
            log.warning("upstream %s answered %s %s", url, response.status_code, response.reason_phrase)
            raise UpstreamFetchError(
                f"upstream returned {response.status_code}",
                upstream_status=response.status_code,
                reason=response.reason_phrase,
                url=url,
            )

        result = FetchResult(
            url=url,
            status_code=response.status_code,
            content_type=response.headers.get("content-type"),
            headers=response.headers,
            final_url=str(response.url),
            max_bytes=self._max_bytes,
            _response=response,
        )
        if not stream:
            await result.aread()
        return result

    async def fetch_image(self, url: str) -> bytes:
        """Per-slide download; every failure comes back as SlideDownloadError."""
        # httpx timeouts are per read, so a trickling origin needs a total deadline
        try:
            result = await asyncio.wait_for(self.fetch(url, timeout=self._image_timeout), self._image_timeout)
        except asyncio.TimeoutError as e:
            raise SlideDownloadError(f"timed out after {self._image_timeout}s", url=url) from e
        except ProblemDetails as e:
            raise SlideDownloadError(e.detail, url=url) from e
        if not result.content:
            raise SlideDownloadError("empty image body", url=url)
        return result.content

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ResourceFetcher":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()
