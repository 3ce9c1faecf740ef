"""URL validation — the single trust boundary of the engine.

``validate_url()`` turns an untrusted query-string value into a ``ValidatedURL``.
Nothing downstream (prober, relay, filename deriver) ever sees a raw string, so
scheme smuggling (``file:``, ``ftp:``, ``javascript:``) and malformed URLs are
stopped here, before any socket is opened.

Parsing is delegated to ``httpx.URL`` — the same parser the upstream client
uses — so a URL accepted here is exactly the URL that will be fetched. httpx
rejects non-printable characters (CR/LF header-injection attempts included);
hosts outside the hostname / IP-literal alphabet and ports outside 1-65535
are rejected on top of that. The result is normalised to canonical form:
lower-case scheme and host, default port dropped, empty path written as ``/``.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional

import httpx

from vidproxy.constants import ALLOWED_SCHEMES
from vidproxy.errors import DisallowedScheme, InvalidInput
from vidproxy.models.resource import ValidatedURL

# Registered names (IDNA already applied by httpx) or IPv4 literals.
_HOST_NAME = re.compile(r"^[A-Za-z0-9_-]+(?:\.[A-Za-z0-9_-]+)*\.?$")
# IPv6 literals, brackets stripped.
_HOST_IPV6 = re.compile(r"^[0-9A-Fa-f:.]+$")

_DEFAULT_PORTS = {"http": 80, "https": 443}


def validate_url(
    raw: Optional[str],
    allowed_schemes: Iterable[str] = ALLOWED_SCHEMES,
) -> ValidatedURL:
    """Validate and canonicalise an untrusted URL string.

    Args:
        raw:             The value of the ``url`` query parameter (may be None).
        allowed_schemes: Accepted schemes; defaults to http and https.

    Returns:
        ValidatedURL wrapping the canonical string form.

    Raises:
        InvalidInput:     ``raw`` is empty/absent or not an absolute URL.
        DisallowedScheme: the URL parsed but its scheme is not allowed.
    """
    if not raw or not isinstance(raw, str) or not raw.strip():
        raise InvalidInput("URL required")

    try:
        url = httpx.URL(raw.strip())
    except (httpx.InvalidURL, TypeError, ValueError) as exc:
        raise InvalidInput("Invalid URL") from exc

    if not url.scheme:
        raise InvalidInput("Invalid URL")
    if url.scheme not in frozenset(allowed_schemes):
        raise DisallowedScheme("Only http/https allowed")
    if not url.host or not _valid_host(url.raw_host):
        raise InvalidInput("Invalid URL")
    if url.port is not None and not 1 <= url.port <= 65535:
        raise InvalidInput("Invalid URL")

    if url.port == _DEFAULT_PORTS.get(url.scheme):
        url = url.copy_with(port=None)

    # An empty path reads back as "/"; make it explicit in the string form.
    if url.path == "/":
        url = url.copy_with(path="/")

    return ValidatedURL(str(url))


def _valid_host(raw_host: bytes) -> bool:
    host = raw_host.decode("ascii", errors="replace")
    return bool(_HOST_NAME.match(host) or (":" in host and _HOST_IPV6.match(host)))
