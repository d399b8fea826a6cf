"""Services package."""

from personal_ledger.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    ConstraintError,
    DuplicateError,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    SQLiteAuditStorage,
    SQLiteClient,
    SQLiteLedgerStorage,
    StorageError,
    create_storage,
)

__all__ = [
    "AuditStorageInterface",
    "ConnectionError",
    "ConstraintError",
    "DuplicateError",
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    "LedgerStorageInterface",
    "SQLiteAuditStorage",
    "SQLiteClient",
    "SQLiteLedgerStorage",
    "StorageError",
    "create_storage",
]
