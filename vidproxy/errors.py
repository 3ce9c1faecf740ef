"""Error taxonomy for the probe/download engine.

Every failure the engine can report before response bytes are committed is a
``ProxyError`` subclass carrying the HTTP status it maps to on /download, a
stable machine-readable ``code`` and a human-readable message. The /probe route
reports all of them as HTTP 400 (see ``vidproxy.proxy.router``).

``RelayInterrupted`` is deliberately NOT a ``ProxyError``: it is raised only
after the response headers (and possibly bytes) have been sent, when no
structured error can be delivered any more. Letting it propagate makes the ASGI
server abort the connection so the client sees a truncated transfer.
"""

from __future__ import annotations

from typing import Optional


class ProxyError(Exception):
    """Base class for structured, client-reportable failures."""

    status_code: int = 400
    code: str = "proxy_error"
    default_message: str = "Request failed"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(ProxyError):
    """The url parameter is missing or does not parse as an absolute URL."""

    status_code = 400
    code = "invalid_input"
    default_message = "Invalid URL"


class DisallowedScheme(ProxyError):
    """The URL parsed but its scheme is not http or https."""

    status_code = 400
    code = "disallowed_scheme"
    default_message = "Only http/https allowed"


class UpstreamUnreachable(ProxyError):
    """Neither HEAD nor the fallback GET reached the upstream server."""

    status_code = 502
    code = "upstream_unreachable"
    default_message = "Could not reach the source URL."


class UpstreamFetchFailed(ProxyError):
    """The full download fetch did not yield a usable response or body."""

    status_code = 502
    code = "upstream_fetch_failed"
    default_message = "Source fetch failed."


class TooLarge(ProxyError):
    """Declared Content-Length exceeds the configured size ceiling."""

    status_code = 413
    code = "too_large"
    default_message = "File too large (over 500MB)."


class UnsupportedType(ProxyError):
    """Declared Content-Type is not accepted for download."""

    status_code = 415
    code = "unsupported_type"
    default_message = "The URL does not appear to be a video."


class RelayInterrupted(Exception):
    """Upstream body read failed after the response was committed."""
