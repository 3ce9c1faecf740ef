"""vidproxy FastAPI application factory + lifespan lifecycle.

This module implements:
  - create_app() — testable application factory
  - lifespan — @asynccontextmanager startup/shutdown sequence
  - /health routers — delegated to vidproxy/health.py
  - /        route  — service discovery root (inline, not health-critical)
  - app = create_app() — module-level instance for uvicorn

Startup sequence:
  1. load_config()           → app.state.config (skipped when create_app got one)
  2. create_http_client()    → app.state.http_client
  3. RelayMetricsTracker()   → app.state.relay_metrics
  4. ProxyEngine()           → app.state.engine
  5. app.state.ready = True  → log "vidproxy ready"

Shutdown sequence (reverse):
  app.state.ready = False → close shared HTTP client

Uvicorn hardened defaults (see vidproxy/run.py):
  uvicorn vidproxy.main:app \\
    --host 127.0.0.1 \\
    --port 4000 \\
    --limit-concurrency 100 \\
    --backlog 50 \\
    --timeout-keep-alive 5
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import httpx
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.routing import APIRouter
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from vidproxy import __version__
from vidproxy.config import Config, load_config
from vidproxy.health import router as health_router
from vidproxy.limiter import limiter
from vidproxy.proxy.engine import ProxyEngine, create_http_client
from vidproxy.proxy.headers import REQUEST_ID_HEADER
from vidproxy.proxy.router import router as proxy_router
from vidproxy.utils.health import RelayMetricsTracker
from vidproxy.utils.logger import configure_logging, get_logger

# ─── Logging Setup ────────────────────────────────────────────────────────────
# Configure logging at module import time (before any other imports that may log).
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
JSON_LOGS = os.getenv("JSON_LOGS", "true").lower() == "true"

configure_logging(log_level=LOG_LEVEL, json_output=JSON_LOGS)
logger = get_logger(__name__)


# ─── Routers ──────────────────────────────────────────────────────────────────

# health_router: imported from vidproxy.health (/health, /health/relay)
# proxy_router:  imported from vidproxy.proxy.router (/probe, /download)
# root_router:   service-discovery root endpoint (defined below)
root_router = APIRouter(tags=["root"])


# ─── Dependencies ─────────────────────────────────────────────────────────────


async def require_ready(request: Request) -> None:
    """FastAPI dependency: raises HTTP 503 if app.state.ready is not True.

    Both proxy routes consume this dependency; ``app.state.engine`` only
    exists once the lifespan has finished startup.
    """
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(status_code=503, detail="vidproxy is starting up.")


# ─── Root Endpoint ────────────────────────────────────────────────────────────


@root_router.get("/")
async def root() -> dict[str, str]:
    """Root endpoint — service identity / discovery."""
    return {
        "service": "vidproxy",
        "version": __version__,
        "probe": "/probe?url=<url>",
        "download": "/download?url=<url>",
        "health": "/health",
    }


# ─── Lifespan ─────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan — startup and shutdown sequence.

    Startup steps (in order):
      1. load_config()           ← unless create_app() was given a Config
      2. create_http_client()    ← shared httpx client
      3. RelayMetricsTracker()   ← relay counters for /health/relay
      4. ProxyEngine()           ← per-request pipeline
      5. app.state.ready = True

    Shutdown (reverse order after yield):
      app.state.ready = False → close shared HTTP client
    """
    logger.info("vidproxy starting up...")

    # ── Step 1: Load configuration ────────────────────────────────────────────
    # load_config() raises SystemExit on parse error or missing version field.
    # This ensures the process exits non-zero before ready=True is ever set.
    config: Optional[Config] = getattr(app.state, "config", None)
    if config is None:
        config = load_config()
        app.state.config = config
    logger.info(
        "Config loaded",
        host=config.proxy.host,
        port=config.proxy.port,
        max_size_bytes=config.policy.max_size_bytes,
    )

    # ── Step 2: Create shared HTTP client ────────────────────────────────────
    # NEVER instantiated per-request; stored in app.state.http_client.
    http_client: httpx.AsyncClient = create_http_client(config)
    app.state.http_client = http_client
    logger.info(
        "HTTP upstream client created",
        max_connections=config.upstream.max_connections,
        connect_timeout_s=config.upstream.connect_timeout_s,
        read_timeout_s=config.upstream.read_timeout_s,
    )

    # ── Step 3: Relay metrics ────────────────────────────────────────────────
    relay_metrics = RelayMetricsTracker()
    app.state.relay_metrics = relay_metrics

    # ── Step 4: Proxy engine ─────────────────────────────────────────────────
    app.state.engine = ProxyEngine(config, http_client, metrics=relay_metrics)

    # ── Step 5: Mark as ready ─────────────────────────────────────────────────
    app.state.ready = True
    logger.info("vidproxy ready", version=__version__)

    # ── Server runs here ──────────────────────────────────────────────────────
    yield

    # ── Shutdown (reverse order) ──────────────────────────────────────────────
    logger.info("vidproxy shutting down...")

    # Mark as not ready; refuse new requests
    app.state.ready = False

    try:
        await http_client.aclose()
        logger.info("HTTP upstream client closed")
    except Exception as exc:
        logger.warning("HTTP upstream client close error (non-fatal)", error=str(exc))

    logger.info("vidproxy shutdown complete")


# ─── Application Factory ──────────────────────────────────────────────────────


def create_app(config: Optional[Config] = None) -> FastAPI:
    """Create and configure the vidproxy FastAPI application.

    Call this function directly in unit tests to get an isolated app instance:
        app = create_app()

    The module-level `app` is created at import time for uvicorn:
        uvicorn vidproxy.main:app --host 127.0.0.1 --port 4000

    Args:
        config: Pre-loaded configuration. When given, CORS origins are taken
                from it and the lifespan uses it instead of calling
                load_config(). When omitted, CORS uses the default origins.

    Returns:
        Configured FastAPI application with lifespan, routers, and middleware.
    """
    # Disable Swagger UI and ReDoc unless DEBUG=true (local development only).
    _debug = os.getenv("DEBUG", "false").lower() == "true"

    application = FastAPI(
        title="vidproxy",
        description="Probe-then-stream download proxy for remote video files",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if _debug else None,
        redoc_url="/redoc" if _debug else None,
        openapi_url="/openapi.json" if _debug else None,
    )

    # Initialize ready flag before lifespan so /health returns 503
    # on any request that somehow arrives before startup completes.
    application.state.ready = False
    application.state.config = config

    # Rate limiter, attached to app state as required by slowapi.
    # No SlowAPIMiddleware: it would wrap the streamed /download body.
    application.state.limiter = limiter
    application.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # CORS: browser front-ends call /probe and read the download headers.
    cors = config.cors if config is not None else Config.defaults().cors
    application.add_middleware(
        CORSMiddleware,
        allow_origins=list(cors.allow_origins),
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition", "Content-Length", REQUEST_ID_HEADER],
    )

    # Register routers
    # root_router:   / (service discovery; registered first for priority)
    application.include_router(root_router)
    # health_router: /health, /health/relay
    application.include_router(health_router)
    # proxy_router:  /probe, /download (gated on app.state.ready)
    application.include_router(proxy_router, dependencies=[Depends(require_ready)])

    # Global exception handlers
    @application.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        logger.warning(
            "HTTP exception",
            status_code=exc.status_code,
            detail=exc.detail,
            path=str(request.url.path),
        )
        return JSONResponse(
            status_code=exc.status_code, content={"ok": False, "error": exc.detail}
        )

    @application.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path),
        )
        return JSONResponse(
            status_code=500, content={"ok": False, "error": "Internal server error"}
        )

    return application


# ─── Module-Level App (for uvicorn) ───────────────────────────────────────────
# `create_app()` is the factory; this instance is used by uvicorn:
#   uvicorn vidproxy.main:app --host 127.0.0.1 --port 4000 --limit-concurrency 100 \
#     --backlog 50 --timeout-keep-alive 5

app = create_app()
