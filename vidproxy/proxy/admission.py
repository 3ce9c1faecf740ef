"""Admission policy — may this resource be downloaded?

Two entry points apply the same constants with a deliberate asymmetry:

  admit_probe()    — advisory UX hint returned by /probe.
                     Requires a media type; unknown length (0) counts as
                     acceptable because HEAD responses often omit it.

  admit_download() — the enforced gate in front of the byte relay.
                     Size is checked first (413), then type (415). Accepts
                     video/* OR the exact generic binary type, so video served
                     as application/octet-stream is not blocked.

Both are pure functions of ``ResourceMetadata`` and the policy constants.
"""

from __future__ import annotations

from dataclasses import dataclass

from vidproxy.config import PolicyConfig
from vidproxy.constants import GENERIC_BINARY_TYPE, MAX_SIZE_BYTES, MEDIA_TYPE_PREFIX
from vidproxy.models.resource import AdmissionDecision, ResourceMetadata

REASON_TOO_LARGE = "too_large"
REASON_UNSUPPORTED_TYPE = "unsupported_type"
REASON_NOT_MEDIA = "not_media"

_ALLOWED = AdmissionDecision(allowed=True)


@dataclass(frozen=True)
class AdmissionPolicy:
    """Size ceiling and accepted-type rule."""

    max_size_bytes: int = MAX_SIZE_BYTES
    media_type_prefix: str = MEDIA_TYPE_PREFIX
    generic_binary_type: str = GENERIC_BINARY_TYPE

    @classmethod
    def from_config(cls, policy: PolicyConfig) -> "AdmissionPolicy":
        return cls(
            max_size_bytes=policy.max_size_bytes,
            media_type_prefix=policy.media_type_prefix,
            generic_binary_type=policy.generic_binary_type,
        )

    def is_too_large(self, metadata: ResourceMetadata) -> bool:
        """True only when a length is declared and exceeds the ceiling."""
        return metadata.length_known and metadata.content_length > self.max_size_bytes

    def admit_probe(self, metadata: ResourceMetadata) -> AdmissionDecision:
        if not metadata.is_likely_media:
            return AdmissionDecision(allowed=False, reason=REASON_NOT_MEDIA)
        if self.is_too_large(metadata):
            return AdmissionDecision(allowed=False, reason=REASON_TOO_LARGE)
        return _ALLOWED

    def admit_download(self, metadata: ResourceMetadata) -> AdmissionDecision:
        if self.is_too_large(metadata):
            return AdmissionDecision(allowed=False, reason=REASON_TOO_LARGE)
        content_type = metadata.content_type
        if not (
            content_type.startswith(self.media_type_prefix)
            or content_type == self.generic_binary_type
        ):
            return AdmissionDecision(allowed=False, reason=REASON_UNSUPPORTED_TYPE)
        return _ALLOWED

    @property
    def ceiling_label(self) -> str:
        """Human-readable ceiling for error messages, e.g. ``"500MB"``."""
        return f"{self.max_size_bytes // (1024 * 1024)}MB"
