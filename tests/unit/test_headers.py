"""Unit tests for vidproxy/proxy/headers.py and vidproxy/models/responses.py."""

from __future__ import annotations

import json

from vidproxy.errors import InvalidInput, TooLarge, UpstreamUnreachable
from vidproxy.models.resource import ResourceMetadata
from vidproxy.models.responses import build_error_response, build_probe_response
from vidproxy.proxy.headers import (
    REQUEST_ID_HEADER,
    build_download_headers,
    build_upstream_headers,
    content_disposition,
)

META = ResourceMetadata(
    content_type="video/mp4",
    content_length=1048576,
    is_likely_media=True,
    filename="movie.mp4",
)


# ─── Download headers ─────────────────────────────────────────────────────────


class TestDownloadHeaders:
    def test_with_declared_length(self) -> None:
        headers = build_download_headers(META, "1048576", request_id="01TESTREQUESTID0000000000A")
        assert headers == {
            "content-type": "video/mp4",
            "content-disposition": 'attachment; filename="movie.mp4"',
            "content-length": "1048576",
            REQUEST_ID_HEADER: "01TESTREQUESTID0000000000A",
        }

    def test_length_omitted_when_unknown(self) -> None:
        headers = build_download_headers(META, None)
        assert "content-length" not in headers
        assert REQUEST_ID_HEADER not in headers

    def test_missing_type_falls_back_to_binary(self) -> None:
        meta = ResourceMetadata(
            content_type="", content_length=0, is_likely_media=False, filename="video"
        )
        assert build_download_headers(meta, None)["content-type"] == "application/octet-stream"

    def test_content_disposition(self) -> None:
        assert content_disposition("a_b.webm") == 'attachment; filename="a_b.webm"'


def test_upstream_headers() -> None:
    headers = build_upstream_headers("agent/1.0")
    assert headers == {"User-Agent": "agent/1.0", "Accept-Encoding": "identity"}


# ─── JSON responses ───────────────────────────────────────────────────────────


class TestProbeResponse:
    def test_body_shape(self) -> None:
        response = build_probe_response(META, too_large=False, request_id="RID")
        assert response.status_code == 200
        assert json.loads(response.body) == {
            "ok": True,
            "contentType": "video/mp4",
            "contentLength": 1048576,
            "filename": "movie.mp4",
            "tooLarge": False,
            "isLikelyVideo": True,
        }
        assert response.headers[REQUEST_ID_HEADER] == "RID"


class TestErrorResponse:
    def test_uses_error_status(self) -> None:
        response = build_error_response(TooLarge())
        assert response.status_code == 413
        assert json.loads(response.body) == {"ok": False, "error": "File too large (over 500MB)."}

    def test_status_override(self) -> None:
        response = build_error_response(UpstreamUnreachable(), status_code=400)
        assert response.status_code == 400
        assert json.loads(response.body)["error"] == "Could not reach the source URL."

    def test_custom_message(self) -> None:
        response = build_error_response(InvalidInput("URL required"), request_id="RID")
        assert json.loads(response.body) == {"ok": False, "error": "URL required"}
        assert response.headers[REQUEST_ID_HEADER] == "RID"
