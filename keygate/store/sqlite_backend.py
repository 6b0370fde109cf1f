"""SQLiteRowStore — aiosqlite-based async row store for the auth_keys table.

Uses aiosqlite EXCLUSIVELY; no synchronous sqlite3 calls on the event loop.

Features:
  - Connection pool: ``pool_size`` long-lived connections opened in initialize(),
    checked out per operation by connect(), closed in close()
  - WAL mode: PRAGMA journal_mode=WAL (concurrent readers while a write commits)
  - Schema version guard: PRAGMA user_version=1 — RuntimeError on mismatch, refuse startup
  - UNIQUE(auth_key): a losing concurrent insert surfaces as DuplicateKeyError
"""

from __future__ import annotations

import asyncio
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, Sequence

import aiosqlite

from keygate.constants import DEFAULT_POOL_SIZE, SCHEMA_VERSION
from keygate.store.protocol import (
    DuplicateKeyError,
    NoRowsFoundError,
    Row,
    StoreError,
    StoreUnavailableError,
)
from keygate.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Schema DDL ───────────────────────────────────────────────────────────────

_CREATE_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS auth_keys (
    auth_key     TEXT NOT NULL UNIQUE,
    auth_value   TEXT NOT NULL,
    is_disabled  INTEGER NOT NULL DEFAULT 0,
    created_at   TEXT NOT NULL,
    updated_at   TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_auth_keys_disabled
    ON auth_keys(is_disabled);
"""

# Wait this long for a competing writer's lock before failing with "database is locked".
_BUSY_TIMEOUT_MS = 5000

_MEMORY_DB = ":memory:"


# ─── Connection wrapper ───────────────────────────────────────────────────────


class SQLiteConnection:
    """StoreConnection over one pooled aiosqlite connection."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def query_rows(self, sql: str, args: Sequence[Any] = ()) -> list[Row]:
        try:
            async with self._db.execute(sql, tuple(args)) as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise StoreError(f"Query failed: {exc}") from exc
        return list(rows)

    async def query_one(self, sql: str, args: Sequence[Any] = ()) -> Row:
        try:
            async with self._db.execute(sql, tuple(args)) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise StoreError(f"Query failed: {exc}") from exc
        if row is None:
            raise NoRowsFoundError("No rows in result set")
        return row

    async def execute(self, sql: str, args: Sequence[Any] = ()) -> int:
        try:
            cursor = await self._db.execute(sql, tuple(args))
            rowcount: int = cursor.rowcount
            await cursor.close()
            await self._db.commit()
        except aiosqlite.IntegrityError as exc:
            await self._db.rollback()
            if "UNIQUE" in str(exc).upper():
                raise DuplicateKeyError(str(exc)) from exc
            raise StoreError(f"Integrity error: {exc}") from exc
        except aiosqlite.Error as exc:
            await self._db.rollback()
            raise StoreError(f"Execute failed: {exc}") from exc
        return rowcount


# ─── SQLiteRowStore ───────────────────────────────────────────────────────────


class SQLiteRowStore:
    """Async SQLite row store with a fixed-size connection pool.

    Usage:
        store = SQLiteRowStore(db_path="~/.keygate/keys.db")
        await store.initialize()   # raises RuntimeError on schema version mismatch
        async with store.connect() as conn:
            rows = await conn.query_rows("SELECT * FROM auth_keys")
        await store.close()

    An in-memory database (":memory:") is private to one connection, so the
    pool is clamped to a single connection in that case.
    """

    def __init__(self, db_path: str, pool_size: int = DEFAULT_POOL_SIZE) -> None:
        self._db_path: str = db_path if db_path == _MEMORY_DB else os.path.expanduser(db_path)
        self._pool_size: int = 1 if db_path == _MEMORY_DB else max(1, pool_size)
        self._connections: list[aiosqlite.Connection] = []
        self._pool: Optional[asyncio.Queue[aiosqlite.Connection]] = None

    @property
    def db_path(self) -> str:
        return self._db_path

    @property
    def pool_size(self) -> int:
        return self._pool_size

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Open the pool, enable WAL mode, and create/verify the schema.

        Steps:
          1. Create parent directory if absent
          2. Open the first connection; set WAL + busy timeout
          3. Read PRAGMA user_version
             - 0: fresh DB → create schema, set user_version=1
             - 1: compatible schema → no-op (idempotent)
             - other: close and raise RuntimeError
          4. Open the remaining pool connections

        Raises:
            RuntimeError:    If PRAGMA user_version is neither 0 nor 1.
            aiosqlite.Error: If the database file cannot be opened.
            OSError:         If the parent directory cannot be created.
        """
        if self._db_path != _MEMORY_DB:
            parent_dir = os.path.dirname(self._db_path)
            if parent_dir:
                os.makedirs(parent_dir, exist_ok=True)

        first = await self._open_connection()
        try:
            cursor = await first.execute("PRAGMA user_version;")
            row = await cursor.fetchone()
            await cursor.close()
            current_version: int = row[0] if row else 0

            if current_version == 0:
                await first.executescript(_CREATE_SCHEMA_SQL)
                await first.execute(f"PRAGMA user_version = {SCHEMA_VERSION};")
                await first.commit()
                logger.info(
                    "keys_db_schema_created",
                    db_path=self._db_path,
                    schema_version=SCHEMA_VERSION,
                )
            elif current_version == SCHEMA_VERSION:
                logger.info(
                    "keys_db_schema_ok",
                    db_path=self._db_path,
                    schema_version=current_version,
                )
            else:
                raise RuntimeError(
                    f"Unsupported keys database schema version: {current_version}. "
                    f"Expected {SCHEMA_VERSION}; migrate or point store.url at a new file."
                )
        except BaseException:
            await first.close()
            raise

        self._connections = [first]
        try:
            for _ in range(self._pool_size - 1):
                self._connections.append(await self._open_connection())
        except BaseException:
            await self._close_all()
            raise

        self._pool = asyncio.Queue()
        for conn in self._connections:
            self._pool.put_nowait(conn)

        logger.info("keys_db_pool_open", db_path=self._db_path, pool_size=self._pool_size)

    async def _open_connection(self) -> aiosqlite.Connection:
        db = await aiosqlite.connect(self._db_path)
        db.row_factory = aiosqlite.Row
        await db.execute("PRAGMA journal_mode=WAL;")
        await db.execute(f"PRAGMA busy_timeout = {_BUSY_TIMEOUT_MS};")
        return db

    async def _close_all(self) -> None:
        for conn in self._connections:
            try:
                await conn.close()
            except aiosqlite.Error as exc:
                logger.warning("keys_db_close_error", error=str(exc))
        self._connections = []

    async def close(self) -> None:
        """Close every pooled connection. Later connect() calls raise StoreUnavailableError."""
        self._pool = None
        if self._connections:
            await self._close_all()
            logger.debug("keys_db_closed", db_path=self._db_path)

    # ── RowStore Protocol ─────────────────────────────────────────────────────

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[SQLiteConnection]:
        """Check a connection out of the pool; always returned on exit."""
        pool = self._pool
        if pool is None:
            raise StoreUnavailableError("SQLite store is not open")
        db = await pool.get()
        try:
            yield SQLiteConnection(db)
        finally:
            pool.put_nowait(db)

    async def health_check(self) -> bool:
        """Returns True if a pooled connection answers SELECT 1."""
        try:
            async with self.connect() as conn:
                await conn.query_rows("SELECT 1")
            return True
        except StoreError:
            return False
