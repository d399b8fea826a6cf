"""
Budget service.

A budget is a monthly envelope for one expense category. Its `spent` is
never stored: it is the sum of the expenses linked to it, recomputed on
every read. Budgets move no balances.
"""

import math
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional
from uuid import UUID

from personal_ledger.audit import AuditLogger
from personal_ledger.config import AnalyticsSettings, LedgerSettings
from personal_ledger.errors import NotFoundError, ValidationError, require_owner
from personal_ledger.ledger.base import LedgerService
from personal_ledger.ledger.categories import CategoryService
from personal_ledger.models.analytics import (
    BudgetLedger,
    BudgetLedgerEntry,
    BudgetStatus,
    BudgetView,
    BurnStatus,
)
from personal_ledger.models.audit import AuditEventType
from personal_ledger.models.ledger import (
    Budget,
    CategoryType,
    CreateBudgetInput,
    UpdateBudgetInput,
)
from personal_ledger.services.storage import LedgerStorageInterface
from personal_ledger.utils.dates import days_in_month, month_end, month_start, utcnow


CENT = Decimal("0.01")


def budget_percentage(spent: Decimal, amount: Decimal) -> float:
    if amount <= 0:
        return 0.0
    return float(spent / amount * 100)


def budget_status(percentage: float, warning_percent: float) -> BudgetStatus:
    """on-track below the warning line, warning up to 100%, over beyond it."""
    if percentage > 100:
        return BudgetStatus.OVER
    if percentage >= warning_percent:
        return BudgetStatus.WARNING
    return BudgetStatus.ON_TRACK


class BudgetService(LedgerService):
    """Budget envelopes and their derived spending."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
        categories: Optional[CategoryService] = None,
        analytics_settings: Optional[AnalyticsSettings] = None,
    ):
        super().__init__(storage, audit, settings)
        self._warning_percent = (analytics_settings or AnalyticsSettings()).budget_warning_percent
        self._categories = categories or CategoryService(storage, self._audit, self._settings)

    def _ensure_unique(self, owner_id: UUID, budget: Budget) -> None:
        existing = self._storage.find_budget(owner_id, budget.category_id, budget.month)
        if existing is not None and existing.id != budget.id:
            raise ValidationError.single(
                "month",
                "duplicate",
                "A budget for this category already exists for this month",
            )

    def create(self, owner_id: Optional[UUID], data: CreateBudgetInput) -> Budget:
        """
        Create a budget; the month is normalized to its first instant.

        Raises:
            ValidationError: The category already has a budget that month
        """
        owner_id = require_owner(owner_id)
        with self.atomic("create_budget", owner_id):
            category = self._categories.resolve_or_create(
                owner_id,
                data.category_id if data.category_id is not None else data.category_name,
                CategoryType.EXPENSE,
            )
            budget = Budget(
                owner_id=owner_id,
                name=data.name,
                amount=data.amount,
                category_id=category.id,
                month=data.month,
            )
            self._ensure_unique(owner_id, budget)
            budget = self._storage.create_budget(budget)
            self._audit.log_record(
                AuditEventType.BUDGET_CREATED,
                owner_id,
                "budget",
                budget.id,
                f"Budget of {budget.amount} for {category.name}",
            )
        return budget

    def update(self, owner_id: Optional[UUID], data: UpdateBudgetInput) -> Budget:
        owner_id = require_owner(owner_id)
        budget = self._storage.get_budget(owner_id, data.id)
        if budget is None:
            raise NotFoundError("Budget", data.id)

        updates = {
            name: getattr(data, name)
            for name in ("name", "amount", "month")
            if name in data.model_fields_set and getattr(data, name) is not None
        }
        if "name" in data.model_fields_set:
            updates["name"] = data.name

        with self.atomic("update_budget", owner_id):
            if data.category_id is not None or data.category_name:
                updates["category_id"] = self._categories.resolve_or_create(
                    owner_id, data.category_id or data.category_name, CategoryType.EXPENSE
                ).id
            updated = Budget.model_validate({**budget.model_dump(), **updates})
            self._ensure_unique(owner_id, updated)
            updated = self._storage.update_budget(updated)
            self._audit.log_record(
                AuditEventType.BUDGET_UPDATED,
                owner_id,
                "budget",
                budget.id,
                "Budget updated",
                details={"fields": sorted(updates)},
            )
        return updated

    def delete(self, owner_id: Optional[UUID], budget_id: UUID) -> None:
        """Delete a budget. Its linked expenses are unlinked, not deleted."""
        owner_id = require_owner(owner_id)
        budget = self._storage.get_budget(owner_id, budget_id)
        if budget is None:
            raise NotFoundError("Budget", budget_id)

        with self.atomic("delete_budget", owner_id):
            for expense in self._storage.list_expenses(owner_id, budget_id=budget.id):
                self._storage.update_expense(expense.model_copy(update={"budget_id": None}))
            self._storage.delete_budget(owner_id, budget.id)
            self._audit.log_record(
                AuditEventType.BUDGET_DELETED,
                owner_id,
                "budget",
                budget.id,
                f"Budget of {budget.amount} deleted",
            )

    # =========================================================================
    # DERIVED VIEWS
    # =========================================================================

    def view(self, owner_id: UUID, budget: Budget) -> BudgetView:
        """A budget with spending summed from its linked expenses."""
        spent = sum(
            (e.amount for e in self._storage.list_expenses(owner_id, budget_id=budget.id)),
            Decimal("0"),
        )
        category = self._storage.get_category(owner_id, budget.category_id)
        percentage = budget_percentage(spent, budget.amount)
        return BudgetView(
            id=budget.id,
            name=budget.name,
            category_id=budget.category_id,
            category_name=category.name if category else "Uncategorized",
            month=budget.month,
            amount=budget.amount,
            spent=spent,
            remaining=budget.amount - spent,
            percentage=percentage,
            status=budget_status(percentage, self._warning_percent),
        )

    def get(self, owner_id: Optional[UUID], budget_id: UUID) -> BudgetView:
        owner_id = require_owner(owner_id)
        budget = self._storage.get_budget(owner_id, budget_id)
        if budget is None:
            raise NotFoundError("Budget", budget_id)
        return self.view(owner_id, budget)

    def budget_ledger(
        self,
        owner_id: Optional[UUID],
        budget_id: UUID,
        as_of: Optional[datetime] = None,
    ) -> BudgetLedger:
        """
        Every expense of the budget's category in its month, oldest first,
        with running totals and the month's burn rate.
        """
        owner_id = require_owner(owner_id)
        budget = self._storage.get_budget(owner_id, budget_id)
        if budget is None:
            raise NotFoundError("Budget", budget_id)

        start = budget.month
        end = month_end(start, self.tz)
        expenses = list(reversed(self._storage.list_expenses(
            owner_id, category_id=budget.category_id, start=start, end=end
        )))
        account_names = {a.id: a.name for a in self._storage.list_accounts(owner_id)}

        entries = []
        running = Decimal("0")
        for expense in expenses:
            running += expense.amount
            entries.append(BudgetLedgerEntry(
                expense_id=expense.id,
                occurred_at=expense.occurred_at,
                description=expense.description,
                amount=expense.amount,
                account_name=account_names.get(expense.account_id),
                running_total=running,
                remaining=budget.amount - running,
                is_over_budget=running > budget.amount,
            ))

        month_days = days_in_month(start, self.tz)
        now = as_of or utcnow()
        if now > end:
            elapsed = month_days
        else:
            elapsed = max(1, math.ceil((now - start) / timedelta(days=1)))
        elapsed = min(elapsed, month_days)
        daily_burn = (running / elapsed).quantize(CENT, rounding=ROUND_HALF_UP)
        allowed = (budget.amount / month_days).quantize(CENT, rounding=ROUND_HALF_UP)
        percentage = budget_percentage(running, budget.amount)

        return BudgetLedger(
            budget=self.view(owner_id, budget),
            entries=entries,
            spent=running,
            remaining=budget.amount - running,
            percentage=percentage,
            is_over_budget=percentage > 100,
            days_in_month=month_days,
            days_elapsed=elapsed,
            days_remaining=max(0, month_days - elapsed),
            daily_burn_rate=daily_burn,
            allowed_daily_rate=allowed,
            burn_status=BurnStatus.OVERPACE if daily_burn > allowed else BurnStatus.ONTRACK,
        )

    def list(self, owner_id: Optional[UUID], month: Optional[datetime] = None) -> list[BudgetView]:
        """Budgets for a month (default: the current one) with derived spending."""
        owner_id = require_owner(owner_id)
        start = month_start(month or utcnow(), self.tz)
        budgets = self._storage.list_budgets(owner_id, start=start, end=month_end(start, self.tz))
        return [self.view(owner_id, b) for b in budgets]
