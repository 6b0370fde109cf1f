"""Row store factory — store selection from the configured connection string.

Selection logic:
  1. store.url unset (and KEYGATE_DATABASE_URL unset) → NullRowStore
  2. "sqlite:///<path>", "sqlite://<path>" or a bare filesystem path → SQLiteRowStore
  3. Any other scheme → NullRowStore

Degradation: an unconfigured, unsupported, or unopenable store is logged and
replaced by NullRowStore so the service still starts with an empty registry.
The schema version guard is the exception: SQLiteRowStore.initialize() raises
RuntimeError for an incompatible schema and that propagates to the lifespan
so startup is refused.
"""

from __future__ import annotations

from typing import Optional

import aiosqlite

from keygate.config import Config
from keygate.store.protocol import NullRowStore, RowStore
from keygate.utils.logger import get_logger

logger = get_logger(__name__)

_SQLITE_PREFIXES = ("sqlite:///", "sqlite://")


def resolve_sqlite_path(url: str) -> Optional[str]:
    """Return the SQLite file path for a connection string, or None if not SQLite.

    "sqlite:///keys.db"        → "keys.db"       (relative)
    "sqlite:////var/keys.db"   → "/var/keys.db"  (absolute)
    "sqlite:///:memory:"       → ":memory:"
    "/var/keys.db"             → "/var/keys.db"  (bare path)
    "postgresql://..."         → None
    """
    for prefix in _SQLITE_PREFIXES:
        if url.startswith(prefix):
            path = url[len(prefix):]
            return path or None
    if "://" in url:
        return None
    return url


def _redact(url: str) -> str:
    """Drop any credentials from a connection string before logging it."""
    if "@" in url and "://" in url:
        scheme, rest = url.split("://", 1)
        return f"{scheme}://***@{rest.split('@', 1)[1]}"
    return url


async def create_row_store(config: Config) -> RowStore:
    """Create and initialize the configured row store.

    Raises:
      RuntimeError: If SQLiteRowStore.initialize() finds an incompatible
                    PRAGMA user_version. Propagated to the lifespan.

    Returns:
        An initialized RowStore. NullRowStore when the store is unconfigured
        or cannot be opened.
    """
    url = config.store.url
    if not url:
        logger.warning(
            "store_not_configured",
            hint="set store.url or KEYGATE_DATABASE_URL; registry will start empty",
        )
        return NullRowStore("Credential store not configured")

    path = resolve_sqlite_path(url)
    if path is None:
        logger.warning("store_scheme_unsupported", url=_redact(url))
        return NullRowStore(f"Unsupported store URL scheme: {url.split('://', 1)[0]}")

    from keygate.store.sqlite_backend import SQLiteRowStore

    store = SQLiteRowStore(db_path=path, pool_size=config.store.pool_size)
    try:
        await store.initialize()
    except (aiosqlite.Error, OSError) as exc:
        logger.warning(
            "store_open_failed",
            db_path=path,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return NullRowStore(f"Credential store could not be opened: {exc}")

    logger.info(
        "store_selected",
        backend="SQLiteRowStore",
        db_path=store.db_path,
        pool_size=store.pool_size,
    )
    return store
