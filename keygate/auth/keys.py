"""Durable credential operations on the auth_keys table.

Implements:
  - upsert_key()    — create, update, or re-enable a key (raises on failure)
  - disable_key()   — soft-delete a key (failures logged, never raised)
  - hydrate_keys()  — active key → value mapping for the in-memory registry
                      ({} on failure; load_active_keys() is the raising form)
  - list_entries()  — every row, active and disabled, for the admin listing

These functions write through to the store only. They never touch a live
CredentialRegistry; callers reconcile with CredentialRegistry.refresh().

Row state transitions:
  absent → active     (first upsert)
  active → active     (upsert again, same or new value)
  active → disabled   (disable)
  disabled → active   (upsert re-enables, optionally with a new value)
There is no hard delete, and disabling an absent key changes nothing.
"""

from __future__ import annotations

from datetime import datetime, timezone

from keygate.store.models import CredentialEntry
from keygate.store.protocol import NoRowsFoundError, RowStore, StoreError
from keygate.utils.logger import PerformanceLogger, get_logger

logger = get_logger(__name__)


# ─── Exceptions ───────────────────────────────────────────────────────────────


class InvalidArgumentError(ValueError):
    """Raised when upsert_key() receives an empty key or value.

    HTTP mapping: 400 Bad Request
    """

    def __init__(self, message: str = "key and value must be non-empty") -> None:
        super().__init__(message)
        self.message = message


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ─── Upsert ───────────────────────────────────────────────────────────────────


async def upsert_key(store: RowStore, key: str, value: str) -> None:
    """Create the row for ``key``, or update and re-enable the existing one.

    The key is trimmed of surrounding whitespace before lookup and write; the
    value is stored exactly as given.

    Flow:
      1. Reject empty key/value (before any I/O).
      2. Look up the row by trimmed key.
      3. Found        → UPDATE auth_value, is_disabled=0, updated_at.
         NoRowsFound  → INSERT with is_disabled=0, created_at=updated_at=now.
         Other error  → raise; the insert is never attempted.

    The lookup-then-write pair is not atomic. Two concurrent first upserts of
    the same key may both take the insert path; the UNIQUE constraint on
    auth_key turns the losing insert into DuplicateKeyError.

    Raises:
        InvalidArgumentError:  key or value empty (or key only whitespace).
        StoreUnavailableError: store not configured or unreachable.
        DuplicateKeyError:     lost an insert race for the same key.
        StoreError:            any other lookup or write failure.
    """
    if not key or not value:
        raise InvalidArgumentError()
    key = key.strip()
    if not key:
        raise InvalidArgumentError("key must contain non-whitespace characters")

    async with store.connect() as conn:
        now = _now()
        try:
            await conn.query_one(
                "SELECT auth_key FROM auth_keys WHERE auth_key = ?",
                (key,),
            )
        except NoRowsFoundError:
            await conn.execute(
                "INSERT INTO auth_keys "
                "(auth_key, auth_value, is_disabled, created_at, updated_at) "
                "VALUES (?, ?, 0, ?, ?)",
                (key, value, now, now),
            )
            logger.info("auth_key_created", key=key)
            return

        await conn.execute(
            "UPDATE auth_keys SET auth_value = ?, is_disabled = 0, updated_at = ? "
            "WHERE auth_key = ?",
            (value, now, key),
        )
    logger.info("auth_key_updated", key=key)


# ─── Disable ──────────────────────────────────────────────────────────────────


async def disable_key(store: RowStore, key: str) -> None:
    """Soft-delete ``key`` by setting is_disabled=1.

    Fire-and-forget administrative operation: an empty key is a no-op, and
    connection or execution failures are logged rather than raised.
    """
    key = key.strip() if key else ""
    if not key:
        return

    try:
        async with store.connect() as conn:
            affected = await conn.execute(
                "UPDATE auth_keys SET is_disabled = 1, updated_at = ? WHERE auth_key = ?",
                (_now(), key),
            )
    except StoreError as exc:
        logger.error(
            "auth_key_disable_failed",
            key=key,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return

    if affected:
        logger.info("auth_key_disabled", key=key)
    else:
        logger.debug("disable_key: no matching key", key=key)


# ─── Hydrate / list ───────────────────────────────────────────────────────────


async def load_active_keys(store: RowStore) -> dict[str, str]:
    """Read all rows and return the active key → value pairs.

    Raises:
        StoreError: On any store failure (including StoreUnavailableError).
    """
    with PerformanceLogger("load_active_keys", logger):
        async with store.connect() as conn:
            rows = await conn.query_rows(
                "SELECT auth_key, auth_value, is_disabled FROM auth_keys"
            )
    return {
        row["auth_key"]: row["auth_value"]
        for row in rows
        if not row["is_disabled"]
    }


async def hydrate_keys(store: RowStore) -> dict[str, str]:
    """Return every active key → value pair in the store.

    Any StoreError (unconfigured store, connection failure, query failure) is
    logged and yields an empty mapping; callers treat that as "no keys
    available".
    """
    try:
        return await load_active_keys(store)
    except StoreError as exc:
        logger.warning(
            "hydrate_keys_failed",
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return {}


async def list_entries(store: RowStore) -> list[CredentialEntry]:
    """Return every row (active and disabled), oldest first. [] on failure."""
    try:
        async with store.connect() as conn:
            rows = await conn.query_rows(
                "SELECT auth_key, auth_value, is_disabled, created_at, updated_at "
                "FROM auth_keys ORDER BY created_at, auth_key"
            )
    except StoreError as exc:
        logger.warning("list_entries_failed", error=str(exc))
        return []

    return [CredentialEntry.from_row(row) for row in rows]
