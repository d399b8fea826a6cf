"""
Budget Analytics

Month health, month-over-month trends and per-category recommendations.
A budget's spending is always the sum of its linked expenses.
"""

import math
from collections import defaultdict
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional
from uuid import UUID

from personal_ledger.config import AnalyticsSettings, LedgerSettings
from personal_ledger.errors import require_owner
from personal_ledger.ledger.budgets import budget_percentage, budget_status
from personal_ledger.models.analytics import (
    BudgetHealthSummary,
    BudgetStatus,
    CategoryRecommendation,
    MonthlyBudgetTrend,
    ProblemCategory,
    Recommendation,
)
from personal_ledger.models.ledger import Budget
from personal_ledger.services.storage import LedgerStorageInterface
from personal_ledger.utils.dates import (
    each_month,
    month_end,
    month_start,
    trailing_window,
    utcnow,
)


CENT = Decimal("0.01")
ZERO = Decimal("0")

INCREASE_FACTOR = Decimal("1.1")
DECREASE_FACTOR = Decimal("1.2")
ROUNDING_INCREMENT = Decimal("10")

_STATUS_ORDER = {BudgetStatus.OVER: 0, BudgetStatus.WARNING: 1, BudgetStatus.ON_TRACK: 2}
_RECOMMENDATION_ORDER = {Recommendation.INCREASE: 0, Recommendation.DECREASE: 1, Recommendation.STABLE: 2}


def round_up_to_increment(amount: Decimal, increment: Decimal = ROUNDING_INCREMENT) -> Decimal:
    return Decimal(math.ceil(amount / increment)) * increment


class BudgetAnalytics:
    """Read-only views over budgets and their linked spending."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        settings: Optional[AnalyticsSettings] = None,
        ledger_settings: Optional[LedgerSettings] = None,
    ):
        self._storage = storage
        self._settings = settings or AnalyticsSettings()
        self.tz = (ledger_settings or LedgerSettings()).tzinfo

    def _budgets_with_spent(
        self,
        owner_id: UUID,
        start: datetime,
        end: datetime,
    ) -> list[tuple[Budget, Decimal]]:
        """Budgets in the month range, oldest first, with linked spending."""
        budgets = self._storage.list_budgets(owner_id, start=start, end=end)
        spent: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        for budget in budgets:
            for expense in self._storage.list_expenses(owner_id, budget_id=budget.id):
                spent[budget.id] += expense.amount
        return [(b, spent[b.id]) for b in budgets]

    def _category_names(self, owner_id: UUID) -> dict[UUID, str]:
        return {c.id: c.name for c in self._storage.list_categories(owner_id)}

    def health_summary(
        self,
        owner_id: Optional[UUID],
        month: Optional[datetime] = None,
    ) -> BudgetHealthSummary:
        """
        Status counts for a month plus the categories that need attention.

        A category is a problem when it ran over in enough of the trailing
        months, or is over or in warning right now.
        """
        owner_id = require_owner(owner_id)
        start = month_start(month or utcnow(), self.tz)
        warning = self._settings.budget_warning_percent
        history_months = self._settings.budget_history_months
        threshold = self._settings.problem_months_threshold

        current = self._budgets_with_spent(owner_id, start, month_end(start, self.tz))
        history_start, history_end = trailing_window(start, history_months, self.tz)
        history = self._budgets_with_spent(owner_id, history_start, history_end)

        months_over: dict[UUID, int] = defaultdict(int)
        for budget, spent in history:
            if spent > budget.amount:
                months_over[budget.category_id] += 1

        names = self._category_names(owner_id)
        counts = {status: 0 for status in BudgetStatus}
        current_by_category = {}
        for budget, spent in current:
            pct = budget_percentage(spent, budget.amount)
            counts[budget_status(pct, warning)] += 1
            current_by_category[budget.category_id] = pct

        problems = []
        for category_id in set(months_over) | set(current_by_category):
            over = months_over.get(category_id, 0)
            pct = current_by_category.get(category_id, 0.0)
            status = budget_status(pct, warning)
            if over >= threshold:
                status = BudgetStatus.OVER
                reason = f"over {over} of last {history_months} months"
            elif status in (BudgetStatus.OVER, BudgetStatus.WARNING):
                reason = f"at {pct:.0f}%"
            else:
                continue
            problems.append(ProblemCategory(
                category_id=category_id,
                category_name=names.get(category_id, "Uncategorized"),
                months_over=over,
                current_percentage=pct,
                status=status,
                reason=reason,
            ))
        problems.sort(key=lambda p: (_STATUS_ORDER[p.status], -p.months_over))

        return BudgetHealthSummary(
            month=start,
            total_budgeted=sum((b.amount for b, _ in current), ZERO),
            total_spent=sum((s for _, s in current), ZERO),
            on_track_count=counts[BudgetStatus.ON_TRACK],
            warning_count=counts[BudgetStatus.WARNING],
            over_count=counts[BudgetStatus.OVER],
            problem_categories=problems,
        )

    def trends(
        self,
        owner_id: Optional[UUID],
        start: datetime,
        end: datetime,
    ) -> list[MonthlyBudgetTrend]:
        """One row per month from `start` through `end`, months without budgets included."""
        owner_id = require_owner(owner_id)
        rows = self._budgets_with_spent(
            owner_id, month_start(start, self.tz), month_end(end, self.tz)
        )
        by_month: dict[datetime, list[tuple[Budget, Decimal]]] = defaultdict(list)
        for budget, spent in rows:
            by_month[month_start(budget.month, self.tz)].append((budget, spent))

        trends = []
        for month in each_month(start, end, self.tz):
            budgets = by_month.get(month, [])
            budgeted = sum((b.amount for b, _ in budgets), ZERO)
            spent = sum((s for _, s in budgets), ZERO)
            over = sum(1 for b, s in budgets if budget_percentage(s, b.amount) > 100)
            trends.append(MonthlyBudgetTrend(
                month=month,
                total_budgeted=budgeted,
                total_spent=spent,
                savings=budgeted - spent,
                adherence_percent=min(100.0, budget_percentage(spent, budgeted)),
                categories_on_track=len(budgets) - over,
                categories_over=over,
                total_categories=len(budgets),
            ))
        return trends

    def recommendations(
        self,
        owner_id: Optional[UUID],
        months: int = 6,
        as_of: Optional[datetime] = None,
    ) -> list[CategoryRecommendation]:
        """
        Suggest budget changes per category from the trailing window.

        Args:
            months: Window length, ending with the month of `as_of`

        Returns:
            Increases first, then decreases, then stable, each group by
            largest absolute variance
        """
        owner_id = require_owner(owner_id)
        start, end = trailing_window(as_of, months, self.tz)
        under_percent = self._settings.budget_under_percent
        threshold = self._settings.problem_months_threshold

        by_category: dict[UUID, list[tuple[Budget, Decimal]]] = defaultdict(list)
        for budget, spent in self._budgets_with_spent(owner_id, start, end):
            by_category[budget.category_id].append((budget, spent))

        names = self._category_names(owner_id)
        results = []
        for category_id, rows in by_category.items():
            tracked = len(rows)
            avg_budget = sum((b.amount for b, _ in rows), ZERO) / tracked
            avg_spent = sum((s for _, s in rows), ZERO) / tracked
            variance = float((avg_spent - avg_budget) / avg_budget * 100) if avg_budget > 0 else 0.0
            over = sum(1 for b, s in rows if budget_percentage(s, b.amount) > 100)
            under = sum(1 for b, s in rows if budget_percentage(s, b.amount) < under_percent)

            if over >= threshold and variance > 0:
                recommendation = Recommendation.INCREASE
                suggested = round_up_to_increment(avg_spent * INCREASE_FACTOR)
                trend = f"Over {over}/{tracked} months"
            elif under >= threshold:
                recommendation = Recommendation.DECREASE
                suggested = round_up_to_increment(avg_spent * DECREASE_FACTOR)
                trend = f"Under {under}/{tracked} months"
            else:
                recommendation = Recommendation.STABLE
                suggested = None
                trend = f"Stable {tracked - over - under}/{tracked} months"

            results.append(CategoryRecommendation(
                category_id=category_id,
                category_name=names.get(category_id, "Uncategorized"),
                average_budgeted=avg_budget.quantize(CENT, rounding=ROUND_HALF_UP),
                average_spent=avg_spent.quantize(CENT, rounding=ROUND_HALF_UP),
                variance_percent=round(variance, 1),
                months_over=over,
                months_under=under,
                months_tracked=tracked,
                recommendation=recommendation,
                suggested_amount=suggested,
                trend=trend,
            ))

        results.sort(key=lambda r: (_RECOMMENDATION_ORDER[r.recommendation], -abs(r.variance_percent)))
        return results
