"""
Audit Logger

DESIGN DECISION: Every committed mutation is logged.
This provides:
1. Traceability of every balance change
2. Debugging capability when a unit of work fails
3. A record of detected balance drift

The audit logger:
- Runs after the unit of work commits, never inside it
- Gracefully handles failures (an audit-storage outage never fails a
  mutation that has already committed)
- Supports correlation IDs to trace related events
"""

import threading
from contextlib import contextmanager
from decimal import Decimal
from typing import Iterator, Optional
from uuid import UUID, uuid4

import structlog

from personal_ledger.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from personal_ledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class _TransactionState(threading.local):
    """Per-thread buffer of events waiting for a commit."""

    def __init__(self):
        self.depth = 0
        self.pending: list[AuditEvent] = []
        self.correlation_id: Optional[UUID] = None


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("personal_ledger.audit")
        self._state = _TransactionState()

    def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value == "error":
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    @contextmanager
    def transaction(self, correlation_id: Optional[UUID] = None) -> Iterator[UUID]:
        """
        Hold emitted events until the block exits cleanly.

        Events are logged in emission order when the outermost block
        completes and discarded if it raises. Nested blocks join the
        outer one and share its correlation id.
        """
        state = self._state
        if state.depth > 0:
            state.depth += 1
            try:
                yield state.correlation_id
            finally:
                state.depth -= 1
            return

        state.depth = 1
        state.pending = []
        state.correlation_id = correlation_id or create_correlation_id()
        try:
            yield state.correlation_id
            pending = state.pending
        finally:
            state.depth = 0
            state.pending = []
            state.correlation_id = None
        for event in pending:
            self.log(event)

    def emit(self, event: AuditEvent) -> None:
        """Log now, or at commit time when inside a transaction."""
        state = self._state
        if state.depth == 0:
            self.log(event)
            return
        if event.correlation_id is None:
            event.correlation_id = state.correlation_id
        state.pending.append(event)

    def log_record(
        self,
        event_type: AuditEventType,
        owner_id: UUID,
        entity_type: str,
        entity_id: UUID,
        description: str,
        correlation_id: Optional[UUID] = None,
        details: Optional[dict] = None,
    ) -> None:
        """Log a create/update/delete of a ledger record."""
        event = AuditEventBuilder.record_event(
            event_type=event_type,
            owner_id=owner_id,
            entity_type=entity_type,
            entity_id=entity_id,
            description=description,
            correlation_id=correlation_id,
            details=details,
        )
        self.emit(event)

    def log_balance_adjusted(
        self,
        owner_id: UUID,
        account_id: UUID,
        old_balance: Decimal,
        new_balance: Decimal,
        record_type: str,
        record_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.balance_adjusted(
            owner_id=owner_id,
            account_id=account_id,
            old_balance=old_balance,
            new_balance=new_balance,
            record_type=record_type,
            record_id=record_id,
            correlation_id=correlation_id,
        )
        self.emit(event)

    def log_allocation(
        self,
        owner_id: UUID,
        transfer_id: UUID,
        income_id: UUID,
        allocation: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.allocation_applied(
            owner_id=owner_id,
            transfer_id=transfer_id,
            income_id=income_id,
            allocation=allocation,
            amount=amount,
            correlation_id=correlation_id,
        )
        self.emit(event)

    def log_fee(
        self,
        owner_id: UUID,
        expense_id: UUID,
        transfer_id: UUID,
        fee: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.fee_recorded(
            owner_id=owner_id,
            expense_id=expense_id,
            transfer_id=transfer_id,
            fee=fee,
            correlation_id=correlation_id,
        )
        self.emit(event)

    def log_unit_of_work_failed(
        self,
        operation: str,
        error: Exception,
        owner_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a rolled-back unit of work."""
        event = AuditEventBuilder.unit_of_work_failed(
            operation=operation,
            error=error,
            owner_id=owner_id,
            correlation_id=correlation_id,
        )
        self.log(event)

    def log_balance_drift(
        self,
        owner_id: UUID,
        account_id: UUID,
        stored: Decimal,
        replayed: Decimal,
    ) -> None:
        event = AuditEventBuilder.balance_drift_detected(
            owner_id=owner_id,
            account_id=account_id,
            stored=stored,
            replayed=replayed,
        )
        self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., recording an income).
    Pass it through all subsequent operations.
    """
    return uuid4()
