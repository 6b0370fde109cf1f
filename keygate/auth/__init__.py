"""keygate credential package.

Public API:
  - CredentialRegistry      — in-memory trust set (authenticate / lookup / local mutation)
  - run_registry_refresher() — periodic refresh task
  - upsert_key()            — create / update / re-enable a durable key
  - disable_key()           — soft-delete a durable key
  - hydrate_keys()          — active keys from the store ({} on failure)
  - list_entries()          — all durable rows for the admin listing
  - authenticate_request()  — FastAPI Depends() dependency
  - InvalidArgumentError    — empty key/value passed to upsert_key()
"""

from __future__ import annotations

from keygate.auth.keys import (
    InvalidArgumentError,
    disable_key,
    hydrate_keys,
    list_entries,
    load_active_keys,
    upsert_key,
)
from keygate.auth.middleware import authenticate_request
from keygate.auth.registry import CredentialRegistry, run_registry_refresher

__all__ = [
    "CredentialRegistry",
    "InvalidArgumentError",
    "authenticate_request",
    "disable_key",
    "hydrate_keys",
    "list_entries",
    "load_active_keys",
    "run_registry_refresher",
    "upsert_key",
]
