"""HTTP routes for the proxy engine: /probe and /download.

  GET /probe?url=<url>
      200 {ok, contentType, contentLength, filename, tooLarge, isLikelyVideo}
      400 {ok: false, error} — validation OR network failure (always 400)

  GET /download?url=<url>
      200 streamed body with content-type, content-disposition and (when
          upstream declared one) content-length
      400 invalid input / disallowed scheme
      413 declared size over the ceiling
      415 type not accepted
      502 upstream fetch failed

The host contract the engine relies on — query parameter access, a single
header commit followed by streamed bytes, and client-disconnect observation —
is provided by FastAPI/Starlette and ``RelayResponse``.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Request, Response

from vidproxy.errors import ProxyError
from vidproxy.limiter import PROXY_RATE_LIMIT, limiter
from vidproxy.models.responses import build_error_response, build_probe_response
from vidproxy.proxy.engine import ProxyEngine
from vidproxy.proxy.headers import build_download_headers
from vidproxy.proxy.relay import RelayResponse
from vidproxy.utils.logger import bind_request_id, get_logger
from vidproxy.utils.ulid import generate_ulid

logger = get_logger(__name__)

router = APIRouter(tags=["proxy"])


@router.get("/probe")
@limiter.limit(PROXY_RATE_LIMIT)
async def probe(request: Request, url: Optional[str] = None) -> Response:
    """Inspect a remote resource's type and size without downloading it."""
    request_id = generate_ulid()
    bind_request_id(request_id)
    engine: ProxyEngine = request.app.state.engine

    try:
        metadata, _ = await engine.probe(url)
    except ProxyError as exc:
        logger.info("probe_failed", code=exc.code, error=exc.message)
        return build_error_response(exc, status_code=400, request_id=request_id)

    return build_probe_response(
        metadata,
        too_large=engine.policy.is_too_large(metadata),
        request_id=request_id,
    )


@router.get("/download")
@limiter.limit(PROXY_RATE_LIMIT)
async def download(request: Request, url: Optional[str] = None) -> Response:
    """Relay a remote resource to the client as an attachment."""
    request_id = generate_ulid()
    bind_request_id(request_id)
    engine: ProxyEngine = request.app.state.engine

    try:
        session, metadata = await engine.open_download(url)
    except ProxyError as exc:
        logger.info(
            "download_failed",
            code=exc.code,
            status_code=exc.status_code,
            error=exc.message,
        )
        return build_error_response(exc, request_id=request_id)

    return RelayResponse(
        session,
        headers=build_download_headers(metadata, session.declared_length, request_id),
        request_id=request_id,
    )
