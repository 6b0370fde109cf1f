"""Root test configuration for keygate.

Every test starts from a clean environment: no connection string, no config
file lookups outside the test, admin localhost enforcement off (httpx test
clients do not always present a loopback address), and auth enforcement on.
Tests that need a different setting override it with monkeypatch.
"""

from __future__ import annotations

from pathlib import Path
from typing import AsyncIterator

import pytest

from keygate.store.sqlite_backend import SQLiteRowStore


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Strip keygate env vars and disable the default config search paths."""
    for name in (
        "KEYGATE_DATABASE_URL",
        "KEYGATE_CONFIG",
        "KEYGATE_PORT",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("KEYGATE_AUTH_REQUIRED", "true")
    monkeypatch.setenv("KEYGATE_ADMIN_LOCALHOST_ONLY", "false")
    monkeypatch.setattr("keygate.config.DEFAULT_CONFIG_PATHS", [])


@pytest.fixture(autouse=True)
def reset_rate_limiter() -> None:
    """Reset the in-memory admin rate limiter between tests."""
    from keygate.auth.limiter import limiter

    limiter.reset()


@pytest.fixture
async def store(tmp_path: Path) -> AsyncIterator[SQLiteRowStore]:
    """An initialized SQLite row store in a temp directory."""
    row_store = SQLiteRowStore(db_path=str(tmp_path / "keys.db"), pool_size=2)
    await row_store.initialize()
    yield row_store
    await row_store.close()
