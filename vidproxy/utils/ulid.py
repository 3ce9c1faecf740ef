"""Request ID generation for vidproxy.

Each /probe and /download request gets a ULID used as:
  - the ``X-Request-ID`` response header
  - the ``request_id`` field bound into every structured log entry

Uses the ``python-ulid`` library — do NOT hand-roll ULID generation.
"""

from __future__ import annotations

from ulid import ULID


def generate_ulid() -> str:
    """Generate a new ULID as a 26-character uppercase string.

    Returns:
        str: Crockford Base32 ULID (charset ``[0-9A-HJKMNP-TV-Z]``), e.g.
             ``"01KJ0JRVHYA7KX32VPN5ZSCTMV"``.
    """
    return str(ULID())
