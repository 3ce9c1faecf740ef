"""Unit tests for vidproxy/proxy/prober.py — HEAD-then-GET metadata discovery.

Test strategy:
  - httpx.MockTransport records every upstream request so the HEAD/GET order
    and call counts can be asserted exactly.
  - The fallback GET body is a counting AsyncByteStream: the prober must close
    it without reading it.
"""

from __future__ import annotations

from typing import AsyncIterator, Callable, Optional

import httpx
import pytest

from vidproxy.errors import UpstreamUnreachable
from vidproxy.models.resource import ResourceMetadata
from vidproxy.proxy.prober import MetadataProber, build_metadata, parse_content_length
from vidproxy.proxy.validator import validate_url

MOVIE_URL = "https://example.com/movie.mp4"


# ─── Helpers ──────────────────────────────────────────────────────────────────


class _TrackedBody(httpx.AsyncByteStream):
    """Response body that records whether it was read and closed."""

    def __init__(self, payload: bytes = b"x" * 4096) -> None:
        self.payload = payload
        self.chunks_read = 0
        self.closed = False

    async def __aiter__(self) -> AsyncIterator[bytes]:
        self.chunks_read += 1
        yield self.payload

    async def aclose(self) -> None:
        self.closed = True


class _Upstream:
    """Mock origin whose HEAD and GET behaviour is configured per test."""

    def __init__(
        self,
        head: Optional[Callable[[httpx.Request], httpx.Response]] = None,
        get: Optional[Callable[[httpx.Request], httpx.Response]] = None,
    ) -> None:
        self.requests: list[httpx.Request] = []
        self._head = head
        self._get = get

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self._head if request.method == "HEAD" else self._get
        if route is None:
            raise httpx.ConnectError("connection refused", request=request)
        return route(request)

    @property
    def methods(self) -> list[str]:
        return [r.method for r in self.requests]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def _ok(content_type: Optional[str], length: Optional[str] = None, status: int = 200):
    def respond(request: httpx.Request) -> httpx.Response:
        headers = {}
        if content_type is not None:
            headers["content-type"] = content_type
        if length is not None:
            headers["content-length"] = length
        return httpx.Response(status, headers=headers)

    return respond


async def _probe(upstream: _Upstream, url: str = MOVIE_URL) -> ResourceMetadata:
    async with upstream.client() as client:
        prober = MetadataProber(client, request_headers={"User-Agent": "vidproxy-test"})
        return await prober.probe(validate_url(url))


# ─── parse_content_length ─────────────────────────────────────────────────────


class TestParseContentLength:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("1048576", 1048576),
            (" 42 ", 42),
            ("0", 0),
            (None, 0),
            ("", 0),
            ("-1", 0),
            ("12abc", 0),
            ("1e6", 0),
            ("١٢", 0),
        ],
    )
    def test_values(self, value: Optional[str], expected: int) -> None:
        assert parse_content_length(value) == expected


# ─── HEAD success ─────────────────────────────────────────────────────────────


class TestHeadSuccess:
    @pytest.mark.asyncio
    async def test_head_with_type_is_used(self) -> None:
        upstream = _Upstream(head=_ok("video/mp4", "1048576"))
        metadata = await _probe(upstream)

        assert upstream.methods == ["HEAD"]
        assert metadata == ResourceMetadata(
            content_type="video/mp4",
            content_length=1048576,
            is_likely_media=True,
            filename="movie.mp4",
        )

    @pytest.mark.asyncio
    async def test_head_sends_configured_headers(self) -> None:
        upstream = _Upstream(head=_ok("video/mp4"))
        await _probe(upstream)
        assert upstream.requests[0].headers["user-agent"] == "vidproxy-test"

    @pytest.mark.asyncio
    async def test_missing_length_is_unknown(self) -> None:
        upstream = _Upstream(head=_ok("video/webm"))
        metadata = await _probe(upstream)
        assert metadata.content_length == 0
        assert not metadata.length_known

    @pytest.mark.asyncio
    async def test_html_is_not_likely_media(self) -> None:
        upstream = _Upstream(head=_ok("text/html; charset=utf-8", "512"))
        metadata = await _probe(upstream, "https://example.com/page")
        assert metadata.is_likely_media is False
        assert metadata.filename == "page.html"


# ─── GET fallback ─────────────────────────────────────────────────────────────


class TestGetFallback:
    @pytest.mark.asyncio
    async def test_head_405_falls_back_to_get(self) -> None:
        upstream = _Upstream(head=_ok(None, status=405), get=_ok("video/mp4", "2048"))
        metadata = await _probe(upstream)

        assert upstream.methods == ["HEAD", "GET"]
        assert metadata.content_type == "video/mp4"
        assert metadata.content_length == 2048

    @pytest.mark.asyncio
    async def test_head_without_type_falls_back_to_get(self) -> None:
        upstream = _Upstream(head=_ok(None, "2048"), get=_ok("video/webm", "2048"))
        metadata = await _probe(upstream)
        assert upstream.methods == ["HEAD", "GET"]
        assert metadata.content_type == "video/webm"

    @pytest.mark.asyncio
    async def test_head_transport_error_falls_back_to_get(self) -> None:
        def head(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        upstream = _Upstream(head=head, get=_ok("video/mp4", "10"))
        metadata = await _probe(upstream)
        assert upstream.methods == ["HEAD", "GET"]
        assert metadata.is_likely_media

    @pytest.mark.asyncio
    async def test_fallback_get_body_is_not_read(self) -> None:
        body = _TrackedBody()

        def get(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers={"content-type": "video/mp4"}, stream=body)

        upstream = _Upstream(head=_ok(None, status=403), get=get)
        await _probe(upstream)

        assert body.chunks_read == 0
        assert body.closed is True

    @pytest.mark.asyncio
    async def test_fallback_get_status_is_not_inspected(self) -> None:
        """An error page from the GET probes as its own type, not as a failure."""
        upstream = _Upstream(
            head=_ok(None, status=404),
            get=_ok("text/html", "120", status=404),
        )
        metadata = await _probe(upstream)
        assert metadata.content_type == "text/html"
        assert metadata.is_likely_media is False

    @pytest.mark.asyncio
    async def test_both_without_type(self) -> None:
        upstream = _Upstream(head=_ok(None), get=_ok(None))
        metadata = await _probe(upstream, "https://example.com/clip")
        assert metadata.content_type == ""
        assert metadata.is_likely_media is False
        assert metadata.filename == "clip"


# ─── Unreachable ──────────────────────────────────────────────────────────────


class TestUnreachable:
    @pytest.mark.asyncio
    async def test_head_and_get_failing_raise_unreachable(self) -> None:
        upstream = _Upstream()
        with pytest.raises(UpstreamUnreachable) as exc_info:
            await _probe(upstream)
        assert upstream.methods == ["HEAD", "GET"]
        assert exc_info.value.message == "Could not reach the source URL."


# ─── Idempotence ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_probing_twice_yields_equal_metadata() -> None:
    upstream = _Upstream(head=_ok("video/mp4", "1048576"))
    async with upstream.client() as client:
        prober = MetadataProber(client)
        url = validate_url(MOVIE_URL)
        first = await prober.probe(url)
        second = await prober.probe(url)
    assert first == second
    assert upstream.methods == ["HEAD", "HEAD"]


def test_build_metadata_default_content_type() -> None:
    url = validate_url("https://example.com/download")
    metadata = build_metadata(
        url, httpx.Headers({}), default_content_type="application/octet-stream"
    )
    assert metadata.content_type == "application/octet-stream"
    assert metadata.is_likely_media is False
    assert metadata.filename.startswith("download")
