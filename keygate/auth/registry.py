"""CredentialRegistry — the in-memory key → value trust set.

Consulted synchronously on every authentication check; never performs I/O on
that path. Two independent mutation surfaces exist:

  - local:   set_local() / delete_local() change this process's mapping only
  - durable: keys.upsert_key() / keys.disable_key() change the store only

Nothing reconciles them implicitly. The mapping follows the store on
create(), on refresh() (admin endpoint), and on each tick of
run_registry_refresher() when registry.refresh_interval_s > 0.

Every read and write of the mapping holds ``_lock``. refresh() hydrates
outside the lock and only swaps the finished mapping in under it, so a slow
store never blocks authentication.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Mapping, Optional

from keygate.auth.keys import hydrate_keys, load_active_keys
from keygate.constants import REFRESH_RETRY_DELAY_S
from keygate.store.protocol import RowStore
from keygate.utils.logger import get_logger

logger = get_logger(__name__)


class CredentialRegistry:
    """Thread-safe mapping of active credential keys to their values."""

    def __init__(self, keys: Optional[Mapping[str, str]] = None) -> None:
        self._lock = threading.RLock()
        self._keys: dict[str, str] = _active_only(keys or {})

    @classmethod
    async def create(cls, store: RowStore) -> "CredentialRegistry":
        """Hydrate a registry from ``store``.

        Hydration failure or an empty store yields an empty registry and a
        warning; it never raises.
        """
        keys = await hydrate_keys(store)
        if not keys:
            logger.warning("registry_empty_after_hydration")
        else:
            logger.info("registry_hydrated", active_keys=len(keys))
        return cls(keys)

    async def refresh(self, store: RowStore) -> int:
        """Replace the mapping with the store's current active keys.

        Returns the new active key count. On a store failure the current
        mapping is kept and the StoreError propagates.
        """
        keys = _active_only(await load_active_keys(store))
        with self._lock:
            self._keys = keys
        logger.info("registry_refreshed", active_keys=len(keys))
        return len(keys)

    # ── Local mutation ────────────────────────────────────────────────────────

    def set_local(self, key: str, value: str) -> None:
        """Insert or overwrite ``key``. Ignored when ``value`` is empty."""
        if not value:
            return
        with self._lock:
            self._keys[key] = value

    def delete_local(self, key: str) -> None:
        """Remove ``key`` if present."""
        with self._lock:
            self._keys.pop(key, None)

    # ── Hot path ──────────────────────────────────────────────────────────────

    def authenticate(self, key: str, value: str) -> Optional[str]:
        """Return the stored value if (key, value) is a trusted pair, else None.

        Exact, case-sensitive comparison; empty key or value never matches.
        """
        if not key or not value:
            return None
        with self._lock:
            stored = self._keys.get(key)
        if stored is None or stored != value:
            return None
        return stored

    def lookup(self, key: str) -> Optional[str]:
        """Return the stored value for ``key``, or None if absent or empty."""
        if not key:
            return None
        with self._lock:
            return self._keys.get(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._keys


def _active_only(keys: Mapping[str, str]) -> dict[str, str]:
    return {k: v for k, v in keys.items() if k and v}


# ─── Background refresher ─────────────────────────────────────────────────────


async def run_registry_refresher(
    registry: CredentialRegistry,
    store: RowStore,
    interval_s: float,
) -> None:
    """Background asyncio task: refresh ``registry`` from ``store`` every ``interval_s``.

    Registered with asyncio.create_task() during lifespan startup and
    cancelled on shutdown.

    Retry policy:
      - asyncio.CancelledError → re-raised for clean cancellation
      - Any other exception    → log ERROR, retry after REFRESH_RETRY_DELAY_S
    """
    logger.info("registry_refresher_started", interval_s=interval_s)
    while True:
        try:
            await asyncio.sleep(interval_s)
            await registry.refresh(store)
        except asyncio.CancelledError:
            logger.info("registry_refresher_cancelled")
            raise
        except Exception as exc:
            logger.error(
                "registry_refresh_error",
                error=str(exc),
                error_type=type(exc).__name__,
                retry_in_seconds=REFRESH_RETRY_DELAY_S,
            )
            await asyncio.sleep(REFRESH_RETRY_DELAY_S)
