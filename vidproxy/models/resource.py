"""Value types passed between the engine components.

All three types are frozen dataclasses computed fresh for every request.
Nothing here is cached or shared between requests.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ValidatedURL:
    """A URL string that parsed as absolute and uses an allowed scheme.

    Construct only through ``vidproxy.proxy.validator.validate_url``. The prober,
    filename deriver and relay accept this type, never a raw string.
    """

    value: str

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ResourceMetadata:
    """Header-declared facts about an upstream resource.

    Fields:
        content_type:    Upstream Content-Type verbatim ("" when absent).
        content_length:  Declared Content-Length; 0 means unknown.
        is_likely_media: content_type starts with the media prefix ("video/").
        filename:        Sanitised download name, safe for Content-Disposition.
    """

    content_type: str
    content_length: int
    is_likely_media: bool
    filename: str

    @property
    def length_known(self) -> bool:
        return self.content_length > 0


@dataclass(frozen=True)
class AdmissionDecision:
    """Outcome of an admission check; ``reason`` is set only when refused."""

    allowed: bool
    reason: Optional[str] = None
