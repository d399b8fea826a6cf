"""
Audit Models for Personal Ledger

Every committed mutation is recorded as an audit event. This provides:
1. Traceability of every balance change back to a user action
2. Debugging information when a unit of work fails
3. A place to surface balance drift without touching the ledger

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from personal_ledger.utils.dates import utcnow


class AuditEventType(str, Enum):
    """Types of events we audit."""

    # Accounts
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_UPDATED = "account_updated"
    ACCOUNT_ARCHIVED = "account_archived"
    ACCOUNT_DELETED = "account_deleted"
    BALANCE_ADJUSTED = "balance_adjusted"

    # Transactions
    INCOME_CREATED = "income_created"
    INCOME_UPDATED = "income_updated"
    INCOME_DELETED = "income_deleted"
    EXPENSE_CREATED = "expense_created"
    EXPENSE_UPDATED = "expense_updated"
    EXPENSE_DELETED = "expense_deleted"
    TRANSFER_CREATED = "transfer_created"
    TRANSFER_DELETED = "transfer_deleted"
    ALLOCATION_APPLIED = "allocation_applied"
    FEE_RECORDED = "fee_recorded"

    # Budgets and categories
    BUDGET_CREATED = "budget_created"
    BUDGET_UPDATED = "budget_updated"
    BUDGET_DELETED = "budget_deleted"
    CATEGORY_CREATED = "category_created"

    # System events
    UNIT_OF_WORK_FAILED = "unit_of_work_failed"
    BALANCE_DRIFT_DETECTED = "balance_drift_detected"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Events emitted by one user action share a correlation id, so an
    income and the allocation transfers it cascaded can be read back
    together.
    """

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    owner_id: Optional[UUID] = None
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'account', 'income', 'transfer')"
    )
    entity_id: Optional[UUID] = None
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID shared by all events of one user action"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "owner_id": str(self.owner_id) if self.owner_id else None,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


def _money(value: Decimal) -> str:
    return str(value)


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.record_event(AuditEventType.INCOME_CREATED, ...)
        event = AuditEventBuilder.unit_of_work_failed("create_income", error, ...)
    """

    @staticmethod
    def record_event(
        event_type: AuditEventType,
        owner_id: UUID,
        entity_type: str,
        entity_id: UUID,
        description: str,
        correlation_id: Optional[UUID] = None,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            owner_id=owner_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=description,
            details=details or {},
        )

    @staticmethod
    def balance_adjusted(
        owner_id: UUID,
        account_id: UUID,
        old_balance: Decimal,
        new_balance: Decimal,
        record_type: str,
        record_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_ADJUSTED,
            owner_id=owner_id,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Balance adjusted from {old_balance} to {new_balance}",
            details={
                "old_balance": _money(old_balance),
                "new_balance": _money(new_balance),
                "record_type": record_type,
                "record_id": str(record_id),
            },
        )

    @staticmethod
    def allocation_applied(
        owner_id: UUID,
        transfer_id: UUID,
        income_id: UUID,
        allocation: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ALLOCATION_APPLIED,
            owner_id=owner_id,
            entity_type="transfer",
            entity_id=transfer_id,
            correlation_id=correlation_id,
            description=f"{allocation} allocation of {amount} from income",
            details={
                "income_id": str(income_id),
                "allocation": allocation,
                "amount": _money(amount),
            },
        )

    @staticmethod
    def fee_recorded(
        owner_id: UUID,
        expense_id: UUID,
        transfer_id: UUID,
        fee: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FEE_RECORDED,
            owner_id=owner_id,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Transfer fee of {fee} recorded",
            details={
                "transfer_id": str(transfer_id),
                "fee": _money(fee),
            },
        )

    @staticmethod
    def unit_of_work_failed(
        operation: str,
        error: Exception,
        owner_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.UNIT_OF_WORK_FAILED,
            severity=AuditSeverity.ERROR,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"Unit of work failed: {operation}",
            error_message=str(error),
            details={
                "operation": operation,
                "error_type": type(error).__name__,
            },
        )

    @staticmethod
    def balance_drift_detected(
        owner_id: UUID,
        account_id: UUID,
        stored: Decimal,
        replayed: Decimal,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_DRIFT_DETECTED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type="account",
            entity_id=account_id,
            description=f"Stored balance {stored} differs from replayed {replayed}",
            details={
                "stored_balance": _money(stored),
                "replayed_balance": _money(replayed),
                "drift": _money(stored - replayed),
            },
        )
