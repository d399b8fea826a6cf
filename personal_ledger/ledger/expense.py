"""
Expense service.

An expense is naturally a DEBIT to its account: it lowers an asset
balance and raises what is owed on a liability.

Synthetic fee expenses belong to their transfer. They cannot be edited
or deleted here; deleting the transfer removes them.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from personal_ledger.audit import AuditLogger
from personal_ledger.config import LedgerSettings
from personal_ledger.errors import NotFoundError, ValidationError, require_owner
from personal_ledger.ledger.base import LedgerService
from personal_ledger.ledger.categories import CategoryService
from personal_ledger.ledger.effects import BalanceMutationEngine
from personal_ledger.ledger.reconciliation import Reconciler
from personal_ledger.models.audit import AuditEventType
from personal_ledger.models.ledger import (
    CategoryType,
    CreateExpenseInput,
    EffectKind,
    Expense,
    UpdateExpenseInput,
)
from personal_ledger.services.storage import LedgerStorageInterface
from personal_ledger.utils.dates import utcnow


class ExpenseService(LedgerService):
    """Create, update and delete expenses with their balance effects."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
        categories: Optional[CategoryService] = None,
        effects: Optional[BalanceMutationEngine] = None,
    ):
        super().__init__(storage, audit, settings)
        self._effects = effects or BalanceMutationEngine(storage)
        self._categories = categories or CategoryService(storage, self._audit, self._settings)
        self._reconciler = Reconciler(self._effects)

    def create(self, owner_id: Optional[UUID], data: CreateExpenseInput) -> Expense:
        """
        Record an expense and debit its account in one unit of work.

        Raises:
            UnauthorizedError: No owner
            NotFoundError: Account, category or budget missing or not owned
            ValidationError: Archived account or category of the wrong type
            IntegrityError: The store rejected a write
        """
        owner_id = require_owner(owner_id)
        self._refs.account(owner_id, data.account_id)
        self._refs.budget(owner_id, data.budget_id)

        with self.atomic("create_expense", owner_id):
            category = self._categories.resolve_or_create(
                owner_id,
                data.category_id if data.category_id is not None else data.category_name,
                CategoryType.EXPENSE,
            )
            expense = self._storage.create_expense(Expense(
                owner_id=owner_id,
                amount=data.amount,
                description=data.description,
                notes=data.notes,
                occurred_at=data.occurred_at,
                category_id=category.id,
                account_id=data.account_id,
                budget_id=data.budget_id,
                is_recurring=data.is_recurring,
                recurring_period=data.recurring_period,
            ))
            self._effects.apply_effect(owner_id, data.account_id, expense.amount, EffectKind.DEBIT)
            self._audit.log_record(
                AuditEventType.EXPENSE_CREATED,
                owner_id,
                "expense",
                expense.id,
                f"Expense of {expense.amount} recorded",
                details={"account_id": str(expense.account_id)},
            )
        return expense

    def _editable(self, owner_id: UUID, expense_id: UUID) -> Expense:
        expense = self._storage.get_expense(owner_id, expense_id)
        if expense is None:
            raise NotFoundError("Expense", expense_id)
        if expense.is_transfer_fee:
            raise ValidationError.single(
                "id",
                "transfer_fee",
                "Transfer fees can only be removed by deleting the transfer",
            )
        return expense

    def update(self, owner_id: Optional[UUID], data: UpdateExpenseInput) -> Expense:
        """Apply a partial update, reconciling the balance effect."""
        owner_id = require_owner(owner_id)
        expense = self._editable(owner_id, data.id)

        new_account_id = data.account_id or expense.account_id
        if new_account_id != expense.account_id:
            self._refs.account(owner_id, new_account_id)
        new_amount = data.amount if data.amount is not None else expense.amount

        updates = {
            name: getattr(data, name)
            for name in ("description", "notes", "occurred_at", "is_recurring", "recurring_period")
            if name in data.model_fields_set
        }
        if "budget_id" in data.model_fields_set:
            self._refs.budget(owner_id, data.budget_id)
            updates["budget_id"] = data.budget_id

        with self.atomic("update_expense", owner_id):
            if data.category_id is not None or data.category_name:
                updates["category_id"] = self._categories.resolve_or_create(
                    owner_id, data.category_id or data.category_name, CategoryType.EXPENSE
                ).id

            self._reconciler.reconcile(
                owner_id,
                EffectKind.DEBIT,
                expense.account_id,
                expense.amount,
                new_account_id,
                new_amount,
            )

            updated = Expense.model_validate({
                **expense.model_dump(),
                **updates,
                "amount": new_amount,
                "account_id": new_account_id,
                "updated_at": utcnow(),
            })
            updated = self._storage.update_expense(updated)
            self._audit.log_record(
                AuditEventType.EXPENSE_UPDATED,
                owner_id,
                "expense",
                expense.id,
                "Expense updated",
                details={
                    "old_amount": str(expense.amount),
                    "new_amount": str(new_amount),
                    "old_account_id": str(expense.account_id),
                    "new_account_id": str(new_account_id),
                },
            )
        return updated

    def delete(self, owner_id: Optional[UUID], expense_id: UUID) -> None:
        """
        Delete an expense and reverse its effect.

        Raises:
            NotFoundError: Missing or not owned
            ValidationError: The expense is a transfer fee
        """
        owner_id = require_owner(owner_id)
        expense = self._editable(owner_id, expense_id)

        with self.atomic("delete_expense", owner_id):
            self._reconciler.reverse(owner_id, EffectKind.DEBIT, expense.account_id, expense.amount)
            self._storage.delete_expense(owner_id, expense.id)
            self._audit.log_record(
                AuditEventType.EXPENSE_DELETED,
                owner_id,
                "expense",
                expense.id,
                f"Expense of {expense.amount} deleted",
            )

    def get(self, owner_id: Optional[UUID], expense_id: UUID) -> Expense:
        owner_id = require_owner(owner_id)
        expense = self._storage.get_expense(owner_id, expense_id)
        if expense is None:
            raise NotFoundError("Expense", expense_id)
        return expense

    def list(
        self,
        owner_id: Optional[UUID],
        account_id: Optional[UUID] = None,
        category_id: Optional[UUID] = None,
        budget_id: Optional[UUID] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Expense]:
        owner_id = require_owner(owner_id)
        return self._storage.list_expenses(owner_id, account_id, category_id, budget_id, start, end)
