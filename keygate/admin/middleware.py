"""Loopback-only guard for the admin API.

The admin routes can create and re-enable credentials, so they stay reachable
from the local host only, even when server.host is 0.0.0.0 so the gate can
serve a proxy on another machine.

Any request under the protected prefix whose client address is not a loopback
address (127.0.0.0/8, ::1) gets HTTP 403. Other paths pass through.
"""

from __future__ import annotations

import ipaddress
import os
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from keygate.utils.logger import get_logger

logger = get_logger(__name__)

ADMIN_PREFIX = "/admin"


def _enforced() -> bool:
    """KEYGATE_ADMIN_LOCALHOST_ONLY=false turns the guard off (tests only)."""
    return os.environ.get("KEYGATE_ADMIN_LOCALHOST_ONLY", "true").lower() != "false"


def is_loopback(host: Optional[str]) -> bool:
    if not host:
        return False
    if host == "localhost":
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


class AdminLocalhostMiddleware(BaseHTTPMiddleware):
    """Reject non-loopback clients on every path under ``prefix``."""

    def __init__(self, app: ASGIApp, prefix: str = ADMIN_PREFIX) -> None:
        super().__init__(app)
        self.prefix = prefix

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not request.url.path.startswith(self.prefix) or not _enforced():
            return await call_next(request)

        client_host = request.client.host if request.client else None
        if is_loopback(client_host):
            return await call_next(request)

        logger.warning("admin_access_denied", client_host=client_host, path=request.url.path)
        return JSONResponse(
            status_code=403,
            content={
                "error": {
                    "message": "Admin API is only reachable from localhost",
                    "code": "forbidden",
                }
            },
        )
