"""Programmatic uvicorn entry point for vidproxy.

Reads host and port from the loaded config (127.0.0.1:4000 by default) and starts
uvicorn with hardened connection limits:

  --limit-concurrency 100  Max 100 concurrent connections; HTTP 503 when exceeded
  --backlog 50             OS connection queue depth
  --timeout-keep-alive 5   Idle keep-alive window between requests

Usage:
    python -m vidproxy.run     # reads .vidproxy/config.yaml
    vidproxy                   # via pyproject.toml [project.scripts]

The app is built from the same Config that supplies the binding, so the
``cors`` section of the config file takes effect.
"""

from __future__ import annotations

import uvicorn

from vidproxy.config import load_config
from vidproxy.main import LOG_LEVEL, create_app

# ─── Uvicorn hardened defaults ───────────────────────────────────────────────

# Maximum number of concurrent connections accepted by uvicorn.
# Must match the httpx connection pool size (POOL_MAX_CONNECTIONS = 100).
UVICORN_LIMIT_CONCURRENCY: int = 100

# OS-level TCP connection backlog queue size.
UVICORN_BACKLOG: int = 50

# HTTP keep-alive timeout in seconds. Does not limit a download in progress.
UVICORN_TIMEOUT_KEEP_ALIVE: int = 5


def main() -> None:
    """Start the vidproxy server with hardened uvicorn defaults.

    Raises:
        SystemExit: Propagated from load_config() on config parse errors.
    """
    config = load_config()

    uvicorn.run(
        create_app(config),
        host=config.proxy.host,
        port=config.proxy.port,
        log_level=LOG_LEVEL.lower(),
        limit_concurrency=UVICORN_LIMIT_CONCURRENCY,
        backlog=UVICORN_BACKLOG,
        timeout_keep_alive=UVICORN_TIMEOUT_KEEP_ALIVE,
    )


if __name__ == "__main__":
    main()
