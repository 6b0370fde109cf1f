"""Request-layer credential check.

Provides ``authenticate_request()``: a FastAPI Depends()-compatible dependency
that extracts the (key, value) pair from the request's query string and checks
it against the in-memory CredentialRegistry on ``app.state.registry``.

Credential form: ``http://endpoint?<key>=<value>`` — the parameter name is the
key and the parameter value is the secret. Parameters are tried in order and
the first trusted pair wins, so unrelated query parameters do not interfere.

No storage I/O happens here. A store outage therefore never fails this path;
it only means keys that were never hydrated are denied.

Auth control:
  - KEYGATE_AUTH_REQUIRED=true  → credential check enforced (default)
  - KEYGATE_AUTH_REQUIRED=false → check bypassed, returns 'anonymous' (dev/test only)
"""

from __future__ import annotations

import os
from typing import Optional

from fastapi import HTTPException, Request

from keygate.auth.registry import CredentialRegistry
from keygate.utils.logger import get_logger

logger = get_logger(__name__)

ANONYMOUS = "anonymous"


def _is_auth_required() -> bool:
    """Read KEYGATE_AUTH_REQUIRED per call so tests can monkeypatch it."""
    return os.environ.get("KEYGATE_AUTH_REQUIRED", "true").lower() == "true"


def match_query_credentials(
    registry: CredentialRegistry,
    params: list[tuple[str, str]],
) -> Optional[str]:
    """Return the matched value of the first trusted (name, value) pair, else None."""
    for name, value in params:
        matched = registry.authenticate(name, value)
        if matched is not None:
            return matched
    return None


async def authenticate_request(request: Request) -> str:
    """FastAPI dependency: authorize the request from its query parameters.

    Returns:
        The matched credential value, for downstream use (e.g. naming a
        rate-limit bucket). 'anonymous' when KEYGATE_AUTH_REQUIRED=false.

    Raises:
        HTTPException(401): No query parameter forms a trusted pair.
        HTTPException(503): The registry has not been created yet.
    """
    if not _is_auth_required():
        return ANONYMOUS

    registry: Optional[CredentialRegistry] = getattr(request.app.state, "registry", None)
    if registry is None:
        raise HTTPException(status_code=503, detail="Credential registry not ready")

    params = list(request.query_params.multi_items())
    if not params:
        logger.warning(
            "Authentication failed: no credentials",
            path=str(request.url.path),
            method=request.method,
        )
        raise HTTPException(status_code=401, detail="Missing credentials")

    matched = match_query_credentials(registry, params)
    if matched is None:
        logger.warning(
            "Authentication failed: invalid credentials",
            path=str(request.url.path),
            method=request.method,
            presented_keys=[name for name, _ in params],
        )
        raise HTTPException(status_code=401, detail="Invalid or disabled credentials")

    return matched
