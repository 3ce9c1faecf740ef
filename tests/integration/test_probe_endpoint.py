"""Integration tests for GET /probe.

Test strategy:
  - httpx.MockTransport: a mock origin returning controlled HEAD/GET headers
  - starlette.testclient.TestClient: drives the lifespan + requests in-process
  - vidproxy.main.create_http_client is patched so the lifespan builds a
    client over the mock origin
"""

from __future__ import annotations

import re
from typing import Any, Callable, Optional

import httpx
import pytest
from starlette.testclient import TestClient

from vidproxy.config import Config
from vidproxy.main import create_app

ULID_PATTERN = re.compile(r"^[0-9A-HJKMNP-TV-Z]{26}$")


# ─── Fixtures & Helpers ───────────────────────────────────────────────────────


class _MockOrigin:
    """In-process mock origin. Records requests; answers via a handler function."""

    def __init__(self, respond: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: list[httpx.Request] = []
        self._respond = respond

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._respond(request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def _headers_only(content_type: Optional[str], length: Optional[str] = None):
    def respond(request: httpx.Request) -> httpx.Response:
        headers = {}
        if content_type is not None:
            headers["content-type"] = content_type
        if length is not None:
            headers["content-length"] = length
        return httpx.Response(200, headers=headers)

    return respond


def _build_test_app(origin: _MockOrigin, monkeypatch: pytest.MonkeyPatch) -> Any:
    monkeypatch.setattr("vidproxy.main.create_http_client", lambda config: origin.client())
    return create_app(Config.defaults())


def _probe(origin: _MockOrigin, monkeypatch: pytest.MonkeyPatch, url: Optional[str]) -> httpx.Response:
    params = {"url": url} if url is not None else {}
    with TestClient(_build_test_app(origin, monkeypatch)) as client:
        return client.get("/probe", params=params)


# ─── Success ──────────────────────────────────────────────────────────────────


class TestProbeSuccess:
    def test_movie_mp4(self, monkeypatch: pytest.MonkeyPatch) -> None:
        origin = _MockOrigin(_headers_only("video/mp4", "1048576"))
        response = _probe(origin, monkeypatch, "https://example.com/movie.mp4")

        assert response.status_code == 200
        assert response.json() == {
            "ok": True,
            "contentType": "video/mp4",
            "contentLength": 1048576,
            "filename": "movie.mp4",
            "tooLarge": False,
            "isLikelyVideo": True,
        }
        assert ULID_PATTERN.match(response.headers["x-request-id"])
        assert [r.method for r in origin.requests] == ["HEAD"]

    def test_too_large_is_reported_not_refused(self, monkeypatch: pytest.MonkeyPatch) -> None:
        origin = _MockOrigin(_headers_only("video/mp4", str(600 * 1024 * 1024)))
        response = _probe(origin, monkeypatch, "https://example.com/big.mp4")
        assert response.status_code == 200
        assert response.json()["tooLarge"] is True

    def test_html_page_is_not_likely_video(self, monkeypatch: pytest.MonkeyPatch) -> None:
        origin = _MockOrigin(_headers_only("text/html; charset=utf-8", "3000"))
        body = _probe(origin, monkeypatch, "https://example.com/watch").json()
        assert body["ok"] is True
        assert body["isLikelyVideo"] is False
        assert body["tooLarge"] is False
        assert body["filename"] == "watch.html"

    def test_unknown_length_is_zero(self, monkeypatch: pytest.MonkeyPatch) -> None:
        origin = _MockOrigin(_headers_only("video/webm"))
        body = _probe(origin, monkeypatch, "https://example.com/clip").json()
        assert body["contentLength"] == 0
        assert body["tooLarge"] is False
        assert body["filename"] == "clip.webm"

    def test_head_rejected_uses_get_headers(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def respond(request: httpx.Request) -> httpx.Response:
            if request.method == "HEAD":
                return httpx.Response(405)
            return httpx.Response(
                200, headers={"content-type": "video/mp4", "content-length": "77"}
            )

        origin = _MockOrigin(respond)
        body = _probe(origin, monkeypatch, "https://example.com/movie.mp4").json()
        assert body["contentLength"] == 77
        assert [r.method for r in origin.requests] == ["HEAD", "GET"]


# ─── Failures (always 400) ────────────────────────────────────────────────────


class TestProbeFailures:
    @pytest.mark.parametrize(
        "url,error",
        [
            (None, "URL required"),
            ("", "URL required"),
            ("not a url", "Invalid URL"),
            ("ftp://example.com/movie.mp4", "Only http/https allowed"),
            ("file:///etc/passwd", "Only http/https allowed"),
        ],
    )
    def test_validation_errors(
        self, monkeypatch: pytest.MonkeyPatch, url: Optional[str], error: str
    ) -> None:
        origin = _MockOrigin(_headers_only("video/mp4"))
        response = _probe(origin, monkeypatch, url)
        assert response.status_code == 400
        assert response.json() == {"ok": False, "error": error}
        assert origin.requests == []

    def test_unreachable_is_400(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def respond(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("name resolution failed", request=request)

        origin = _MockOrigin(respond)
        response = _probe(origin, monkeypatch, "https://unreachable.invalid/movie.mp4")
        assert response.status_code == 400
        assert response.json() == {"ok": False, "error": "Could not reach the source URL."}
        assert "x-request-id" in response.headers


# ─── Rate limiting ────────────────────────────────────────────────────────────


def test_probe_is_rate_limited(monkeypatch: pytest.MonkeyPatch) -> None:
    origin = _MockOrigin(_headers_only("video/mp4", "10"))
    with TestClient(_build_test_app(origin, monkeypatch)) as client:
        statuses = [
            client.get("/probe", params={"url": "https://example.com/a.mp4"}).status_code
            for _ in range(101)
        ]
    assert statuses[:100] == [200] * 100
    assert statuses[100] == 429
