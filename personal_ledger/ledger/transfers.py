"""
Transfer Engine

A transfer is two effects in one unit of work: a DEBIT of the amount on
the source and a CREDIT of the amount on the destination, each resolved
through the rule table for that account's classification. Paying a
credit card from a bank account therefore lowers both balances.

A fee is a third effect, a DEBIT of the fee on the source only, plus a
synthetic expense in the reserved fee category so the fee shows up in
expense analytics and budgets. The transfer and its fee expense point
at each other by id; deletion follows those links instead of matching
by value.

Transfers are not editable. Delete and recreate.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from personal_ledger.audit import AuditLogger
from personal_ledger.config import LedgerSettings
from personal_ledger.errors import NotFoundError, require_owner
from personal_ledger.ledger.base import LedgerService
from personal_ledger.ledger.categories import CategoryService
from personal_ledger.ledger.effects import BalanceMutationEngine
from personal_ledger.models.audit import AuditEventType
from personal_ledger.models.ledger import (
    AllocationKind,
    CategoryType,
    CreateTransferInput,
    EffectKind,
    Expense,
    Transfer,
)
from personal_ledger.services.storage import LedgerStorageInterface
from personal_ledger.utils.dates import month_start


class TransferEngine(LedgerService):
    """Creates and deletes transfers with their effects."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
        categories: Optional[CategoryService] = None,
        effects: Optional[BalanceMutationEngine] = None,
    ):
        super().__init__(storage, audit, settings)
        self._categories = categories or CategoryService(storage, self._audit, self._settings)
        self._effects = effects or BalanceMutationEngine(storage)

    def create(self, owner_id: Optional[UUID], data: CreateTransferInput) -> Transfer:
        """
        Move value between two of the owner's accounts.

        Raises:
            UnauthorizedError: No owner
            ValidationError: Same account on both sides, or an archived account
            NotFoundError: Either account missing or not owned
            IntegrityError: The store rejected a write
        """
        owner_id = require_owner(owner_id)
        self._refs.transfer_accounts(owner_id, data.from_account_id, data.to_account_id)

        with self.atomic("create_transfer", owner_id):
            return self.record(
                owner_id,
                from_account_id=data.from_account_id,
                to_account_id=data.to_account_id,
                amount=data.amount,
                occurred_at=data.occurred_at,
                description=data.description,
                fee=data.fee,
            )

    def record(
        self,
        owner_id: UUID,
        from_account_id: UUID,
        to_account_id: UUID,
        amount: Decimal,
        occurred_at: datetime,
        description: Optional[str] = None,
        fee: Decimal = Decimal("0"),
        income_id: Optional[UUID] = None,
        allocation: Optional[AllocationKind] = None,
    ) -> Transfer:
        """
        Write a transfer and apply its effects.

        Must run inside a unit of work; accounts are assumed validated.
        """
        fee_expense_id = uuid4() if fee > 0 else None
        transfer = self._storage.create_transfer(Transfer(
            owner_id=owner_id,
            amount=amount,
            fee=fee,
            description=description,
            occurred_at=occurred_at,
            from_account_id=from_account_id,
            to_account_id=to_account_id,
            fee_expense_id=fee_expense_id,
            income_id=income_id,
            allocation=allocation,
        ))

        self._effects.apply_effect(owner_id, from_account_id, amount, EffectKind.DEBIT)
        self._effects.apply_effect(owner_id, to_account_id, amount, EffectKind.CREDIT)

        if fee > 0:
            self._effects.apply_effect(owner_id, from_account_id, fee, EffectKind.DEBIT)
            self._record_fee_expense(owner_id, transfer, fee_expense_id)

        self._audit.log_record(
            AuditEventType.TRANSFER_CREATED,
            owner_id,
            "transfer",
            transfer.id,
            f"Transfer of {amount} recorded",
            details={
                "from_account_id": str(from_account_id),
                "to_account_id": str(to_account_id),
                "amount": str(amount),
                "fee": str(fee),
            },
        )
        return transfer

    def _record_fee_expense(self, owner_id: UUID, transfer: Transfer, expense_id: UUID) -> Expense:
        # The fee's balance effect is already applied; this only records it
        category = self._categories.resolve_or_create(
            owner_id, self._settings.fee_category_name, CategoryType.EXPENSE
        )
        budget = self._storage.find_budget(
            owner_id, category.id, month_start(transfer.occurred_at, self.tz)
        )
        expense = self._storage.create_expense(Expense(
            id=expense_id,
            owner_id=owner_id,
            amount=transfer.fee,
            description=self._settings.fee_description,
            occurred_at=transfer.occurred_at,
            category_id=category.id,
            account_id=transfer.from_account_id,
            budget_id=budget.id if budget else None,
            transfer_id=transfer.id,
        ))
        self._audit.log_fee(owner_id, expense.id, transfer.id, transfer.fee)
        return expense

    def delete(self, owner_id: Optional[UUID], transfer_id: UUID) -> None:
        """
        Delete a transfer, reversing all of its effects.

        Raises:
            NotFoundError: Missing or not owned
        """
        owner_id = require_owner(owner_id)
        transfer = self._storage.get_transfer(owner_id, transfer_id)
        if transfer is None:
            raise NotFoundError("Transfer", transfer_id)

        with self.atomic("delete_transfer", owner_id):
            self.remove(owner_id, transfer)

    def remove(self, owner_id: UUID, transfer: Transfer) -> None:
        """Reverse a transfer's effects and delete it. Must run inside a unit of work."""
        self._effects.reverse_effect(
            owner_id, transfer.from_account_id, transfer.amount, EffectKind.DEBIT
        )
        self._effects.reverse_effect(
            owner_id, transfer.to_account_id, transfer.amount, EffectKind.CREDIT
        )
        if transfer.fee > 0:
            self._effects.reverse_effect(
                owner_id, transfer.from_account_id, transfer.fee, EffectKind.DEBIT
            )
            if transfer.fee_expense_id is not None:
                self._storage.delete_expense(owner_id, transfer.fee_expense_id)

        self._storage.delete_transfer(owner_id, transfer.id)
        self._audit.log_record(
            AuditEventType.TRANSFER_DELETED,
            owner_id,
            "transfer",
            transfer.id,
            f"Transfer of {transfer.amount} deleted",
        )

    def get(self, owner_id: Optional[UUID], transfer_id: UUID) -> Transfer:
        owner_id = require_owner(owner_id)
        transfer = self._storage.get_transfer(owner_id, transfer_id)
        if transfer is None:
            raise NotFoundError("Transfer", transfer_id)
        return transfer

    def list(
        self,
        owner_id: Optional[UUID],
        account_id: Optional[UUID] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Transfer]:
        """Transfers touching `account_id` on either side, newest first."""
        owner_id = require_owner(owner_id)
        return self._storage.list_transfers(owner_id, account_id=account_id, start=start, end=end)
