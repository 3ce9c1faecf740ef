"""Shared constants for vidproxy.

Policy defaults, upstream client sizing and relay framing values live here.
No magic numbers in other modules — import from here. Every value below is a
default; the effective value at runtime comes from the loaded ``Config``.
"""

# ─── Admission Policy ─────────────────────────────────────────────────────────

# Download size ceiling. Resources whose declared Content-Length exceeds this
# are reported as tooLarge on /probe and refused with HTTP 413 on /download.
MAX_SIZE_BYTES: int = 500 * 1024 * 1024  # 500 MiB = 524,288,000 bytes

# Content types starting with this prefix count as "likely media".
MEDIA_TYPE_PREFIX: str = "video/"

# Generic binary fallback. Accepted by the download gate even though it is not
# a video/* type; also the outbound Content-Type when upstream declares none.
GENERIC_BINARY_TYPE: str = "application/octet-stream"

# Only these URL schemes may ever reach the upstream client.
ALLOWED_SCHEMES: frozenset[str] = frozenset({"http", "https"})

# ─── Filename Derivation ──────────────────────────────────────────────────────

# Base name used when the URL path has no usable last segment.
DEFAULT_FILENAME: str = "video"

# Video types missing from the stdlib mimetypes table.
EXTRA_MEDIA_EXTENSIONS: dict[str, str] = {
    "video/x-matroska": ".mkv",
    "video/x-flv": ".flv",
    "video/x-m4v": ".m4v",
    "video/mp2t": ".ts",
    "video/ogg": ".ogv",
    "video/webm": ".webm",
}

# ─── Upstream Client ──────────────────────────────────────────────────────────

# Pool size matches the uvicorn --limit-concurrency value in run.py.
POOL_MAX_CONNECTIONS: int = 100
POOL_MAX_KEEPALIVE: int = 20
POOL_KEEPALIVE_EXPIRY: float = 30.0  # seconds

UPSTREAM_CONNECT_TIMEOUT_S: float = 10.0
# Read timeout: abort a relay when upstream sends no bytes for this long.
UPSTREAM_READ_TIMEOUT_S: float = 30.0
UPSTREAM_MAX_REDIRECTS: int = 5
UPSTREAM_USER_AGENT: str = "vidproxy/1.0 (+https://github.com/vidproxy/vidproxy)"

# ─── Rate Limiting ────────────────────────────────────────────────────────────

# 100 requests per client per 15 minute window on /probe and /download.
PROXY_RATE_LIMIT: str = "100 per 15 minutes"
