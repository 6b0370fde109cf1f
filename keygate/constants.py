"""Shared constants for keygate.

Defaults referenced by more than one module live here.
"""

# ─── Storage ──────────────────────────────────────────────────────────────────

# Table of record for credentials.
AUTH_KEYS_TABLE: str = "auth_keys"

# Schema version written to PRAGMA user_version on a fresh SQLite database.
SCHEMA_VERSION: int = 1

# Number of pooled SQLite connections opened by SQLiteRowStore.initialize().
DEFAULT_POOL_SIZE: int = 4

# Environment variable carrying the store connection string.
# Accepted forms: "sqlite:///relative.db", "sqlite:////abs/path.db", a bare path.
DATABASE_URL_ENV: str = "KEYGATE_DATABASE_URL"

# ─── Registry ─────────────────────────────────────────────────────────────────

# Seconds between periodic registry refreshes. 0 disables the refresher task,
# leaving reconciliation to restarts and POST /admin/keys/refresh.
DEFAULT_REFRESH_INTERVAL_S: float = 0.0

# Retry delay after a refresher iteration fails unexpectedly.
REFRESH_RETRY_DELAY_S: float = 30.0

# ─── Server ───────────────────────────────────────────────────────────────────

DEFAULT_HOST: str = "127.0.0.1"
DEFAULT_PORT: int = 8420

# Admin API rate limit (slowapi syntax).
ADMIN_RATE_LIMIT: str = "30/minute"
