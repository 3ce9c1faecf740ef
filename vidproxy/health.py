"""Health endpoints for vidproxy.

Implements:
  GET /health       — liveness: 503 before ready, 200 ``{"ok": true}`` after
  GET /health/relay — relay counters from RelayMetricsTracker

Both share the ``app.state.ready`` gate set by the lifespan in main.py.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from vidproxy.utils.health import RelayMetricsTracker

router = APIRouter(tags=["health"])

_STARTING_BODY: dict[str, Any] = {"ok": False, "status": "starting"}


@router.get("/health")
async def health(request: Request) -> Any:
    """Primary liveness probe."""
    if not getattr(request.app.state, "ready", False):
        return JSONResponse(status_code=503, content=_STARTING_BODY)
    return {"ok": True}


@router.get("/health/relay")
async def health_relay(request: Request) -> Any:
    """Relay activity since startup.

    Response body (200)::

        {"ok": true, "active": 1, "completed": 12, "aborted": 3,
         "failed": 0, "bytes_relayed": 73400320}
    """
    if not getattr(request.app.state, "ready", False):
        return JSONResponse(status_code=503, content=_STARTING_BODY)

    tracker: Optional[RelayMetricsTracker] = getattr(request.app.state, "relay_metrics", None)
    snapshot = tracker.snapshot() if tracker is not None else RelayMetricsTracker().snapshot()
    return {"ok": True, **snapshot}
