"""Shared rate limiter for the keygate admin endpoints.

Uses slowapi (Starlette-compatible rate limiting). The admin API is
localhost-only (AdminLocalhostMiddleware), so this is effectively a global cap
on credential writes rather than a per-client quota.

The Limiter instance is shared between:
  - keygate/auth/router.py  (route decorators)
  - keygate/main.py         (app.state.limiter + SlowAPIMiddleware registration)
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from keygate.constants import ADMIN_RATE_LIMIT

limiter = Limiter(key_func=get_remote_address)

KEY_MANAGEMENT_RATE_LIMIT = ADMIN_RATE_LIMIT
