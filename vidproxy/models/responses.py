"""JSON response builders for /probe and error outcomes.

Body shapes:

  probe success (200)::

      {"ok": true, "contentType": "video/mp4", "contentLength": 1048576,
       "filename": "movie.mp4", "tooLarge": false, "isLikelyVideo": true}

  any structured failure::

      {"ok": false, "error": "<human-readable message>"}

Every response carries ``X-Request-ID`` when a request ID is supplied, so a
client-visible failure can be matched to its log entries.
"""

from __future__ import annotations

from typing import Optional

from fastapi.responses import JSONResponse

from vidproxy.errors import ProxyError
from vidproxy.models.resource import ResourceMetadata
from vidproxy.proxy.headers import REQUEST_ID_HEADER


def build_probe_response(
    metadata: ResourceMetadata,
    too_large: bool,
    request_id: Optional[str] = None,
) -> JSONResponse:
    """Build the HTTP 200 /probe body from probed metadata."""
    response = JSONResponse(
        status_code=200,
        content={
            "ok": True,
            "contentType": metadata.content_type,
            "contentLength": metadata.content_length,
            "filename": metadata.filename,
            "tooLarge": too_large,
            "isLikelyVideo": metadata.is_likely_media,
        },
    )
    if request_id:
        response.headers[REQUEST_ID_HEADER] = request_id
    return response


def build_error_response(
    error: ProxyError,
    status_code: Optional[int] = None,
    request_id: Optional[str] = None,
) -> JSONResponse:
    """Build a ``{"ok": false, "error": ...}`` response.

    Args:
        error:       The structured failure.
        status_code: Override for ``error.status_code`` (/probe always uses 400).
        request_id:  Optional ULID echoed as ``X-Request-ID``.
    """
    response = JSONResponse(
        status_code=status_code if status_code is not None else error.status_code,
        content={"ok": False, "error": error.message},
    )
    if request_id:
        response.headers[REQUEST_ID_HEADER] = request_id
    return response
