"""Outbound header construction for /download responses.

  - content-type:        upstream type, or the generic binary type when absent
  - content-disposition: ``attachment; filename="<name>"`` — the name comes
                         from derive_filename(), whose alphabet needs no quoting
  - content-length:      only when upstream declared a usable length; never
                         guessed, never computed by buffering
"""

from __future__ import annotations

from typing import Optional

from vidproxy.constants import GENERIC_BINARY_TYPE
from vidproxy.models.resource import ResourceMetadata

REQUEST_ID_HEADER: str = "X-Request-ID"

# Sent on every upstream request. Keeps the relayed body byte-identical to the
# declared Content-Length (no transparent decompression).
UPSTREAM_ACCEPT_ENCODING: str = "identity"


def build_upstream_headers(user_agent: str) -> dict[str, str]:
    """Headers for probe and download requests sent to the upstream origin."""
    return {
        "User-Agent": user_agent,
        "Accept-Encoding": UPSTREAM_ACCEPT_ENCODING,
    }


def content_disposition(filename: str) -> str:
    return f'attachment; filename="{filename}"'


def build_download_headers(
    metadata: ResourceMetadata,
    declared_length: Optional[str],
    request_id: Optional[str] = None,
) -> dict[str, str]:
    """Build the response headers for a relayed download.

    Args:
        metadata:        Metadata derived from the download GET's headers.
        declared_length: ``RelaySession.declared_length`` (None → header omitted).
        request_id:      Optional ULID echoed as ``X-Request-ID``.
    """
    headers: dict[str, str] = {
        "content-type": metadata.content_type or GENERIC_BINARY_TYPE,
        "content-disposition": content_disposition(metadata.filename),
    }
    if declared_length is not None:
        headers["content-length"] = declared_length
    if request_id:
        headers[REQUEST_ID_HEADER] = request_id
    return headers
