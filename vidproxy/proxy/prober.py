"""Metadata prober — learn type and size without downloading the body.

Request order is fixed (tests assert call counts against a mock transport):

  1. HEAD — cheapest; used when it is 2xx AND carries a Content-Type.
  2. GET  — when HEAD is non-2xx, lacks Content-Type, or raises a transport
            error (DNS, refused, TLS, timeout). Only the GET's headers are used;
            its body is never read and the response is closed immediately.
            The download path re-fetches independently.

If the fallback GET also raises, the failure surfaces as ``UpstreamUnreachable``.
The GET fallback's status is not inspected: an HTML error page simply probes as
``text/html`` and is reported as not-likely-media.
"""

from __future__ import annotations

import re
from typing import Mapping, Optional

import httpx

from vidproxy.constants import MEDIA_TYPE_PREFIX
from vidproxy.errors import UpstreamUnreachable
from vidproxy.models.resource import ResourceMetadata, ValidatedURL
from vidproxy.proxy.filename import derive_filename
from vidproxy.utils.logger import get_logger

logger = get_logger(__name__)

_DIGITS = re.compile(r"[0-9]+")


def parse_content_length(value: Optional[str]) -> int:
    """Parse a Content-Length header value; missing or malformed → 0 (unknown)."""
    if not value:
        return 0
    value = value.strip()
    if not _DIGITS.fullmatch(value):
        return 0
    return int(value)


def build_metadata(
    url: ValidatedURL,
    headers: Mapping[str, str],
    media_type_prefix: str = MEDIA_TYPE_PREFIX,
    default_content_type: str = "",
) -> ResourceMetadata:
    """Build ResourceMetadata from upstream response headers.

    Shared by the probe path (HEAD/GET headers) and the download path (full
    GET headers), so both derive type, length and filename identically.

    Args:
        url:                  Validated upstream URL (filename source).
        headers:              Upstream response headers.
        media_type_prefix:    Prefix marking a type as likely media.
        default_content_type: Substituted when upstream sends no Content-Type.
    """
    content_type = headers.get("content-type") or default_content_type
    return ResourceMetadata(
        content_type=content_type,
        content_length=parse_content_length(headers.get("content-length")),
        is_likely_media=content_type.startswith(media_type_prefix),
        filename=derive_filename(url, content_type),
    )


class MetadataProber:
    """HEAD-then-GET metadata discovery over an injected ``httpx.AsyncClient``.

    Stateless between calls: probing the same unchanged resource twice yields
    equal ``ResourceMetadata``.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        media_type_prefix: str = MEDIA_TYPE_PREFIX,
        request_headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._client = client
        self._media_type_prefix = media_type_prefix
        self._request_headers = dict(request_headers or {})

    async def probe(self, url: ValidatedURL) -> ResourceMetadata:
        """Probe ``url`` and return its metadata.

        Raises:
            UpstreamUnreachable: HEAD and the fallback GET both failed to connect.
        """
        headers = await self._fetch_headers(url)
        return build_metadata(url, headers, self._media_type_prefix)

    async def _fetch_headers(self, url: ValidatedURL) -> httpx.Headers:
        try:
            response = await self._client.head(url.value, headers=self._request_headers)
        except httpx.HTTPError as exc:
            logger.debug(
                "probe_head_error",
                url=url.value,
                error_type=type(exc).__name__,
            )
        else:
            if response.is_success and response.headers.get("content-type"):
                return response.headers
            logger.debug(
                "probe_head_insufficient",
                url=url.value,
                status_code=response.status_code,
                has_content_type=bool(response.headers.get("content-type")),
            )
        return await self._fetch_get_headers(url)

    async def _fetch_get_headers(self, url: ValidatedURL) -> httpx.Headers:
        request = self._client.build_request("GET", url.value, headers=self._request_headers)
        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as exc:
            logger.warning(
                "upstream_unreachable",
                url=url.value,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise UpstreamUnreachable() from exc
        # Headers only; close before any body byte is consumed.
        await response.aclose()
        return response.headers
