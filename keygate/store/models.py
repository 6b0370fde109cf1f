"""CredentialEntry — one row of the auth_keys table."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from keygate.store.protocol import Row


@dataclass(frozen=True)
class CredentialEntry:
    """Durable credential row.

    A key appears at most once regardless of ``disabled``; disabling is a
    soft delete and the row is kept so the key can be re-enabled.
    """

    key: str
    value: str
    disabled: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: Row) -> "CredentialEntry":
        """Build an entry from an auth_keys row.

        Field mapping:
          is_disabled : int (0/1)       → bool
          created_at  : ISO 8601 string → datetime
          updated_at  : ISO 8601 string → datetime
        """
        return cls(
            key=row["auth_key"],
            value=row["auth_value"],
            disabled=bool(row["is_disabled"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    @property
    def masked_value(self) -> str:
        """Display form of the value: last 4 characters only."""
        if len(self.value) <= 4:
            return "****"
        return f"...{self.value[-4:]}"
