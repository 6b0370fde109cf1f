"""RowStore Protocol, storage exceptions, and the NullRowStore stub.

The registry consumes storage only through this interface:

    async with store.connect() as conn:
        rows = await conn.query_rows(sql, args)
        row = await conn.query_one(sql, args)     # NoRowsFoundError when empty
        affected = await conn.execute(sql, args)  # commits

Layout:
    protocol.py       — RowStore / StoreConnection Protocols, exceptions, NullRowStore
    models.py         — CredentialEntry (one auth_keys row)
    sqlite_backend.py — SQLiteRowStore (aiosqlite, WAL, pooled connections)
    factory.py        — create_row_store() — store selection by connection string
"""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Any, Mapping, Protocol, Sequence, runtime_checkable

from keygate.utils.logger import get_logger

logger = get_logger(__name__)

#: A result row. Backends return mapping-like rows addressable by column name.
Row = Mapping[str, Any]


# ─── Exceptions ───────────────────────────────────────────────────────────────


class StoreError(Exception):
    """Base class for durable storage failures."""


class StoreUnavailableError(StoreError):
    """The store is not configured or a connection could not be established."""

    def __init__(self, message: str = "Credential store unavailable") -> None:
        super().__init__(message)
        self.message = message


class NoRowsFoundError(StoreError):
    """query_one() matched no rows.

    This is an expected branch (e.g. the insert path of an upsert), distinct
    from every other StoreError.
    """


class DuplicateKeyError(StoreError):
    """A write violated a uniqueness constraint (e.g. two racing inserts)."""


# ─── Protocols ────────────────────────────────────────────────────────────────


@runtime_checkable
class StoreConnection(Protocol):
    """A checked-out connection. Valid only inside ``store.connect()``."""

    async def query_rows(self, sql: str, args: Sequence[Any] = ()) -> list[Row]:
        """Run a SELECT and return every row."""
        ...

    async def query_one(self, sql: str, args: Sequence[Any] = ()) -> Row:
        """Run a SELECT and return the first row.

        Raises:
            NoRowsFoundError: If the query matched nothing.
        """
        ...

    async def execute(self, sql: str, args: Sequence[Any] = ()) -> int:
        """Run a write statement, commit, and return the affected row count.

        Raises:
            DuplicateKeyError: On a uniqueness violation.
            StoreError:        On any other engine failure.
        """
        ...


@runtime_checkable
class RowStore(Protocol):
    """Pluggable durable store for the auth_keys table.

    Implementations: SQLiteRowStore (default), NullRowStore (unconfigured).
    Selection via create_row_store() (store/factory.py).

    connect() must release the connection on every exit path, including
    exceptions raised inside the ``async with`` block.
    """

    def connect(self) -> AbstractAsyncContextManager[StoreConnection]:
        """Check out a connection.

        Raises:
            StoreUnavailableError: On entering the context if no connection
                                   can be provided.
        """
        ...

    async def health_check(self) -> bool:
        """Returns True if the store is operational. Must not raise."""
        ...

    async def close(self) -> None:
        """Release every pooled connection. Called during graceful shutdown."""
        ...


# ─── NullRowStore ─────────────────────────────────────────────────────────────


class _UnavailableContext:
    def __init__(self, reason: str) -> None:
        self._reason = reason

    async def __aenter__(self) -> StoreConnection:
        raise StoreUnavailableError(self._reason)

    async def __aexit__(self, *exc_info: Any) -> None:
        return None


class NullRowStore:
    """Store used when no connection string is configured or the store failed to open.

    Every connect() raises StoreUnavailableError, so hydration yields an empty
    registry and upserts report the outage to the caller.
    """

    def __init__(self, reason: str = "Credential store not configured") -> None:
        self.reason = reason

    def connect(self) -> _UnavailableContext:
        return _UnavailableContext(self.reason)

    async def health_check(self) -> bool:
        return False

    async def close(self) -> None:
        logger.debug("NullRowStore.close (no-op)")


assert isinstance(NullRowStore(), RowStore), (
    "NullRowStore does not satisfy RowStore protocol — implementation error"
)
