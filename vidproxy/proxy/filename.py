"""Download filename derivation.

The filename ends up inside ``Content-Disposition: attachment; filename="..."``,
so the output alphabet is restricted to ``[A-Za-z0-9._-]``. No quoting or
escaping is needed and no path separator, quote, CR/LF or NUL can reach the
header, whatever the upstream URL contains.
"""

from __future__ import annotations

import mimetypes
import re

import httpx

from vidproxy.constants import DEFAULT_FILENAME, EXTRA_MEDIA_EXTENSIONS
from vidproxy.models.resource import ValidatedURL

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")
_SAFE_EXTENSION = re.compile(r"^\.[A-Za-z0-9]+$")

# Built-in table only (no /etc/mime.types), so results do not vary by host.
_MIME_TABLE = mimetypes.MimeTypes()


def extension_for(content_type: str) -> str:
    """Map a Content-Type to a ``.ext`` suffix, or "" when unknown.

    Parameters such as ``; charset=binary`` are ignored.
    """
    mime = content_type.split(";", 1)[0].strip().lower()
    if not mime:
        return ""
    ext = EXTRA_MEDIA_EXTENSIONS.get(mime) or _MIME_TABLE.guess_extension(mime) or ""
    if "/" in ext or not _SAFE_EXTENSION.match(ext):
        return ""
    return ext


def derive_filename(url: ValidatedURL, content_type: str) -> str:
    """Derive a header-safe download filename.

    Takes the last segment of the decoded URL path (query and fragment are not
    part of the path), replaces every character outside ``[A-Za-z0-9._-]`` with
    ``_`` and falls back to ``"video"`` for an empty or dots-only segment. A
    name that already contains ``.`` is returned as is; otherwise the extension
    for ``content_type`` is appended when one is known.

    Args:
        url:          Validated upstream URL.
        content_type: Upstream Content-Type ("" when absent).

    Returns:
        Filename matching ``^[A-Za-z0-9._-]+$``.
    """
    segment = httpx.URL(url.value).path.rsplit("/", 1)[-1]
    base = _UNSAFE_CHARS.sub("_", segment)
    if not base.strip("."):
        base = DEFAULT_FILENAME

    if "." in base:
        return base
    return base + extension_for(content_type)
