"""Admin API endpoints for credential management.

Provides (mounted under /admin):
  GET  /admin/keys           — list durable entries (values masked)
  PUT  /admin/keys           — upsert a key (create, update, or re-enable)
  POST /admin/keys/disable   — soft-delete a key
  POST /admin/keys/refresh   — re-hydrate the live registry from the store

Durable writes go to the store only. The live registry changes on
/admin/keys/refresh or on the periodic refresher; the listing reports
``in_registry`` per key so the two can be compared.

Access is restricted to loopback clients by AdminLocalhostMiddleware and rate
limited by slowapi. Full credential values are never returned.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from keygate.auth.keys import InvalidArgumentError, disable_key, list_entries, upsert_key
from keygate.auth.limiter import KEY_MANAGEMENT_RATE_LIMIT, limiter
from keygate.auth.registry import CredentialRegistry
from keygate.store.protocol import (
    DuplicateKeyError,
    RowStore,
    StoreError,
    StoreUnavailableError,
)
from keygate.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["admin-keys"])


# ─── Request Models ───────────────────────────────────────────────────────────


class UpsertKeyRequest(BaseModel):
    """Request body for PUT /admin/keys.

    Empty strings are accepted here and rejected by upsert_key() so the
    caller gets a 400 with the same message as any other client of the API.
    """

    key: str
    value: str


class DisableKeyRequest(BaseModel):
    """Request body for POST /admin/keys/disable."""

    key: str


def _store(request: Request) -> RowStore:
    return request.app.state.store


def _registry(request: Request) -> CredentialRegistry:
    return request.app.state.registry


# ─── Endpoints ────────────────────────────────────────────────────────────────


@router.get("/keys")
@limiter.limit(KEY_MANAGEMENT_RATE_LIMIT)
async def get_keys(request: Request) -> dict[str, Any]:
    """List every durable entry, active and disabled.

    Returns:
        JSON: {"keys": [{key, masked_value, disabled, in_registry,
                         created_at, updated_at}, ...]}
    """
    registry = _registry(request)
    entries = await list_entries(_store(request))
    return {
        "keys": [
            {
                "key": entry.key,
                "masked_value": entry.masked_value,
                "disabled": entry.disabled,
                "in_registry": entry.key in registry,
                "created_at": entry.created_at.isoformat(),
                "updated_at": entry.updated_at.isoformat(),
            }
            for entry in entries
        ]
    }


@router.put("/keys")
@limiter.limit(KEY_MANAGEMENT_RATE_LIMIT)
async def put_key(body: UpsertKeyRequest, request: Request) -> dict[str, Any]:
    """Create, update, or re-enable a key in the store.

    Raises:
        HTTP 400: Empty key or value.
        HTTP 409: Lost a concurrent insert race for the same key.
        HTTP 503: Store unavailable or the write failed.
    """
    try:
        await upsert_key(_store(request), body.key, body.value)
    except InvalidArgumentError as exc:
        raise HTTPException(status_code=400, detail=exc.message) from exc
    except DuplicateKeyError as exc:
        raise HTTPException(
            status_code=409,
            detail="Key was created concurrently; retry the request.",
        ) from exc
    except StoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail=exc.message) from exc
    except StoreError as exc:
        logger.error("Admin upsert failed", error=str(exc))
        raise HTTPException(status_code=503, detail="Credential store write failed") from exc

    key = body.key.strip()
    logger.info("Key upserted via admin API", key=key)
    return {
        "message": "Key stored. Call /admin/keys/refresh to apply it to the live registry.",
        "key": key,
    }


@router.post("/keys/disable", status_code=202)
@limiter.limit(KEY_MANAGEMENT_RATE_LIMIT)
async def post_disable_key(body: DisableKeyRequest, request: Request) -> dict[str, Any]:
    """Soft-delete a key in the store.

    Always 202: disabling is fire-and-forget and store failures are only logged.
    """
    await disable_key(_store(request), body.key)
    return {
        "message": "Disable requested. Call /admin/keys/refresh to apply it to the live registry.",
        "key": body.key.strip(),
    }


@router.post("/keys/refresh")
@limiter.limit(KEY_MANAGEMENT_RATE_LIMIT)
async def post_refresh(request: Request) -> dict[str, Any]:
    """Re-hydrate the live registry from the store.

    Raises:
        HTTP 503: Store unavailable or query failed; the registry is unchanged.
    """
    try:
        count = await _registry(request).refresh(_store(request))
    except StoreError as exc:
        logger.warning("Admin refresh failed", error=str(exc))
        raise HTTPException(
            status_code=503,
            detail="Credential store unavailable; registry unchanged.",
        ) from exc
    return {"message": "Registry refreshed.", "active_keys": count}
