"""
Income service.

An income is naturally a CREDIT to its funding account. The account is
optional; an income without one is recorded for analytics but moves no
balance and cascades nothing.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from personal_ledger.audit import AuditLogger
from personal_ledger.config import LedgerSettings
from personal_ledger.errors import NotFoundError, require_owner
from personal_ledger.ledger.allocation import AllocationEngine
from personal_ledger.ledger.base import LedgerService
from personal_ledger.ledger.categories import CategoryService
from personal_ledger.ledger.effects import BalanceMutationEngine
from personal_ledger.ledger.reconciliation import Reconciler
from personal_ledger.ledger.transfers import TransferEngine
from personal_ledger.models.audit import AuditEventType
from personal_ledger.models.ledger import (
    CategoryType,
    CreateIncomeInput,
    EffectKind,
    Income,
    UpdateIncomeInput,
)
from personal_ledger.services.storage import LedgerStorageInterface
from personal_ledger.utils.dates import utcnow


class IncomeService(LedgerService):
    """Create, update and delete incomes with their balance effects."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
        categories: Optional[CategoryService] = None,
        transfers: Optional[TransferEngine] = None,
        allocations: Optional[AllocationEngine] = None,
        effects: Optional[BalanceMutationEngine] = None,
    ):
        super().__init__(storage, audit, settings)
        self._effects = effects or BalanceMutationEngine(storage)
        self._categories = categories or CategoryService(storage, self._audit, self._settings)
        self._transfers = transfers or TransferEngine(
            storage, self._audit, self._settings, self._categories, self._effects
        )
        self._allocations = allocations or AllocationEngine(
            storage, self._audit, self._settings, self._transfers
        )
        self._reconciler = Reconciler(self._effects)

    def create(self, owner_id: Optional[UUID], data: CreateIncomeInput) -> Income:
        """
        Record an income, credit its account and run its allocations.

        The income, its effect and every allocation transfer commit
        together or not at all.

        Raises:
            UnauthorizedError: No owner
            NotFoundError: Account or category missing or not owned
            ValidationError: Archived account or category of the wrong type
            IntegrityError: The store rejected a write
        """
        owner_id = require_owner(owner_id)
        account = None
        if data.account_id is not None:
            account = self._refs.account(owner_id, data.account_id)

        with self.atomic("create_income", owner_id):
            category = self._categories.resolve_or_create(
                owner_id,
                data.category_id if data.category_id is not None else data.category_name,
                CategoryType.INCOME,
            )
            income = self._storage.create_income(Income(
                owner_id=owner_id,
                amount=data.amount,
                description=data.description,
                occurred_at=data.occurred_at,
                category_id=category.id,
                account_id=data.account_id,
                is_recurring=data.is_recurring,
                recurring_period=data.recurring_period,
            ))
            self._audit.log_record(
                AuditEventType.INCOME_CREATED,
                owner_id,
                "income",
                income.id,
                f"Income of {income.amount} recorded",
                details={"account_id": str(income.account_id) if income.account_id else None},
            )
            if account is not None:
                self._effects.apply_effect(owner_id, account.id, income.amount, EffectKind.CREDIT)
                self._allocations.apply(owner_id, income, account, data)
        return income

    def update(self, owner_id: Optional[UUID], data: UpdateIncomeInput) -> Income:
        """
        Apply a partial update, reconciling the balance effect.

        Allocation transfers made at creation are left as they are.
        """
        owner_id = require_owner(owner_id)
        income = self._storage.get_income(owner_id, data.id)
        if income is None:
            raise NotFoundError("Income", data.id)

        new_account_id = data.account_id or income.account_id
        if new_account_id != income.account_id:
            self._refs.account(owner_id, new_account_id)
        new_amount = data.amount if data.amount is not None else income.amount

        with self.atomic("update_income", owner_id):
            updates = {
                name: getattr(data, name)
                for name in ("description", "occurred_at", "is_recurring", "recurring_period")
                if name in data.model_fields_set
            }
            if data.category_id is not None or data.category_name:
                updates["category_id"] = self._categories.resolve_or_create(
                    owner_id, data.category_id or data.category_name, CategoryType.INCOME
                ).id

            self._reconciler.reconcile(
                owner_id,
                EffectKind.CREDIT,
                income.account_id,
                income.amount,
                new_account_id,
                new_amount,
            )

            updated = Income.model_validate({
                **income.model_dump(),
                **updates,
                "amount": new_amount,
                "account_id": new_account_id,
                "updated_at": utcnow(),
            })
            updated = self._storage.update_income(updated)
            self._audit.log_record(
                AuditEventType.INCOME_UPDATED,
                owner_id,
                "income",
                income.id,
                "Income updated",
                details={
                    "old_amount": str(income.amount),
                    "new_amount": str(new_amount),
                    "old_account_id": str(income.account_id) if income.account_id else None,
                    "new_account_id": str(new_account_id) if new_account_id else None,
                },
            )
        return updated

    def delete(self, owner_id: Optional[UUID], income_id: UUID) -> None:
        """
        Delete an income, its allocation transfers and all their effects.

        Raises:
            NotFoundError: Missing or not owned
        """
        owner_id = require_owner(owner_id)
        income = self._storage.get_income(owner_id, income_id)
        if income is None:
            raise NotFoundError("Income", income_id)

        with self.atomic("delete_income", owner_id):
            for transfer in self._storage.list_transfers(owner_id, income_id=income.id):
                self._transfers.remove(owner_id, transfer)
            self._reconciler.reverse(owner_id, EffectKind.CREDIT, income.account_id, income.amount)
            self._storage.delete_income(owner_id, income.id)
            self._audit.log_record(
                AuditEventType.INCOME_DELETED,
                owner_id,
                "income",
                income.id,
                f"Income of {income.amount} deleted",
            )

    def get(self, owner_id: Optional[UUID], income_id: UUID) -> Income:
        owner_id = require_owner(owner_id)
        income = self._storage.get_income(owner_id, income_id)
        if income is None:
            raise NotFoundError("Income", income_id)
        return income

    def list(
        self,
        owner_id: Optional[UUID],
        account_id: Optional[UUID] = None,
        category_id: Optional[UUID] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Income]:
        owner_id = require_owner(owner_id)
        return self._storage.list_incomes(owner_id, account_id, category_id, start, end)
