"""Authorization gate endpoint for a fronting proxy.

  GET /authorize?<key>=<value>  — 204 when the pair is trusted, 401 otherwise

Intended for subrequest-style auth (e.g. nginx ``auth_request``): the proxy
forwards the original query string and lets the request through on 2xx.
Answered entirely from the in-memory registry.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from keygate.auth.middleware import authenticate_request

router = APIRouter(tags=["gate"])


@router.get("/authorize", status_code=204)
async def authorize(_matched: str = Depends(authenticate_request)) -> Response:
    return Response(status_code=204)
