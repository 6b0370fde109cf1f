"""keygate durable store package.

Re-exports the public API for ergonomic imports:

    from keygate.store import RowStore, StoreError, CredentialEntry
"""

from keygate.store.models import CredentialEntry
from keygate.store.protocol import (
    DuplicateKeyError,
    NoRowsFoundError,
    NullRowStore,
    Row,
    RowStore,
    StoreConnection,
    StoreError,
    StoreUnavailableError,
)

__all__ = [
    # Rows
    "CredentialEntry",
    "Row",
    # Protocols + implementations
    "RowStore",
    "StoreConnection",
    "NullRowStore",
    # Exceptions
    "StoreError",
    "StoreUnavailableError",
    "NoRowsFoundError",
    "DuplicateKeyError",
]
