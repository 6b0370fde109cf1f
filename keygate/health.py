"""Health endpoint for keygate.

  GET /health — 503 before ``app.state.ready``, 200 with status body after

The registry keeps answering from memory while the store is down, so a store
outage reports ``"degraded"`` rather than failing the probe.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request

from keygate.config import Config
from keygate.store.protocol import NullRowStore

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Primary health check endpoint.

    Response body (200):
        {
          "status": "ok" | "degraded",
          "store": "ok" | "unavailable" | "error",
          "active_keys": 12,
          "refresh_interval_s": 0.0
        }

    Response body (503):
        {"status": "starting", "message": "keygate is starting up..."}
    """
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(
            status_code=503,
            detail={
                "status": "starting",
                "message": "keygate is starting up. Hydrating credentials...",
            },
        )

    config: Config = request.app.state.config
    store = request.app.state.store
    registry = request.app.state.registry

    if isinstance(store, NullRowStore):
        store_status = "unavailable"
    elif await store.health_check():
        store_status = "ok"
    else:
        store_status = "error"

    return {
        "status": "ok" if store_status == "ok" else "degraded",
        "store": store_status,
        "active_keys": len(registry),
        "refresh_interval_s": config.registry.refresh_interval_s,
    }
