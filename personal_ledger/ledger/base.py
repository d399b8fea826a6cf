"""
Shared plumbing for the mutating services.

Every public mutation runs inside `atomic()`:
- the store's unit of work, so all writes commit together or not at all
- the audit logger's transaction, so events are logged only after commit
- StorageError is turned into IntegrityError once the store has rolled back
"""

from contextlib import contextmanager
from typing import Iterator, Optional
from uuid import UUID

from personal_ledger.audit import AuditLogger
from personal_ledger.config import LedgerSettings, get_settings
from personal_ledger.errors import IntegrityError
from personal_ledger.services.storage import LedgerStorageInterface, StorageError
from personal_ledger.validation import ReferenceValidator


class LedgerService:
    """Base class holding the store, audit logger and settings."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._storage = storage
        self._audit = audit or AuditLogger()
        self._settings = settings or get_settings().ledger
        self._refs = ReferenceValidator(storage)

    @property
    def tz(self):
        return self._settings.tzinfo

    @contextmanager
    def atomic(self, operation: str, owner_id: Optional[UUID] = None) -> Iterator[UUID]:
        """
        Run the block as one all-or-nothing unit.

        Yields the correlation id shared by every event the block emits.

        Raises:
            IntegrityError: If the store rejected a write
        """
        correlation_id = None
        try:
            with self._audit.transaction() as correlation_id:
                with self._storage.unit_of_work():
                    yield correlation_id
        except StorageError as e:
            self._audit.log_unit_of_work_failed(
                operation=operation,
                error=e,
                owner_id=owner_id,
                correlation_id=correlation_id,
            )
            raise IntegrityError(f"{operation} failed: {e}") from e
