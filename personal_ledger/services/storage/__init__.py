"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Ships an in-memory backend and a SQLite backend; both honour the same
unit-of-work contract.
"""

from typing import Optional

from personal_ledger.config import StorageSettings, get_settings
from personal_ledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    ConstraintError,
    DuplicateError,
    LedgerStorageInterface,
    StorageError,
)
from personal_ledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
)
from personal_ledger.services.storage.sqlite import (
    SQLiteAuditStorage,
    SQLiteClient,
    SQLiteLedgerStorage,
)


def create_storage(
    settings: Optional[StorageSettings] = None,
) -> tuple[LedgerStorageInterface, AuditStorageInterface]:
    """Build the (ledger, audit) storage pair for the configured backend."""
    settings = settings or get_settings().storage
    if settings.backend == "sqlite":
        client = SQLiteClient(settings)
        return SQLiteLedgerStorage(client), SQLiteAuditStorage(client)
    return InMemoryLedgerStorage(), InMemoryAuditStorage()


__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    # Exceptions
    "ConnectionError",
    "ConstraintError",
    "DuplicateError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    # SQLite implementation
    "SQLiteAuditStorage",
    "SQLiteClient",
    "SQLiteLedgerStorage",
    # Factory
    "create_storage",
]
