"""
Analytics Engine

Pure functions of persisted state. Nothing here writes, and results are
advisory: a read racing a committing mutation may see the balance before
or after it, which is acceptable.

DESIGN DECISION: "No spending" is represented by Decimal('Infinity')
rather than a magic large number. Callers format it however they like.
"""

import math
import statistics
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional
from uuid import UUID

from personal_ledger.config import AnalyticsSettings, LedgerSettings
from personal_ledger.errors import require_owner
from personal_ledger.models.analytics import (
    FinancialHealth,
    FundHealthMetric,
    FundHealthSummary,
    FundStatus,
    IncomeStability,
    NetWorth,
)
from personal_ledger.models.ledger import (
    Account,
    AccountType,
    FundCalculationMode,
    TransactionKind,
)
from personal_ledger.services.storage import LedgerStorageInterface
from personal_ledger.utils.dates import (
    month_end,
    month_start,
    trailing_window,
    utcnow,
    year_start,
)


INFINITE = Decimal("Infinity")
CENT = Decimal("0.01")
ZERO = Decimal("0")

# (coefficient of variation below, suggested %, reason)
STABILITY_BANDS = [
    (15.0, Decimal("15"), "very consistent"),
    (30.0, Decimal("10"), "moderate variation"),
]
VARIABLE_SUGGESTION = (Decimal("5"), "variable")
INSUFFICIENT_HISTORY = (Decimal("10"), "insufficient history")

# TARGET_PROGRESS bands, percent of target
PROGRESS_BANDS = (25.0, 50.0, 100.0)


def percent(part: Decimal, whole: Decimal) -> float:
    """part / whole * 100, or 0 when whole is not positive."""
    if whole <= 0:
        return 0.0
    return float(part / whole * 100)


def split_balances(accounts: list[Account]) -> tuple[Decimal, Decimal]:
    """(assets, liabilities); liability balances are amounts owed."""
    assets = ZERO
    liabilities = ZERO
    for account in accounts:
        if account.is_liability:
            liabilities += account.balance
        else:
            assets += account.balance
    return assets, liabilities


def runway(liquid: Decimal, monthly_expense: Decimal) -> Decimal:
    if monthly_expense > 0:
        return (liquid / monthly_expense).quantize(CENT, rounding=ROUND_HALF_UP)
    if liquid > 0:
        return INFINITE
    return ZERO


def fund_status(value: float, low: float, mid: float, high: float) -> FundStatus:
    if value < low:
        return FundStatus.CRITICAL
    if value < mid:
        return FundStatus.UNDERFUNDED
    if value < high:
        return FundStatus.BUILDING
    return FundStatus.FUNDED


class AnalyticsEngine:
    """Net worth, financial health, income stability and fund health."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        settings: Optional[AnalyticsSettings] = None,
        ledger_settings: Optional[LedgerSettings] = None,
    ):
        self._storage = storage
        self._settings = settings or AnalyticsSettings()
        self.tz = (ledger_settings or LedgerSettings()).tzinfo

    # =========================================================================
    # BALANCES
    # =========================================================================

    def net_worth(self, owner_id: Optional[UUID]) -> NetWorth:
        """Assets minus liabilities over every account, archived included."""
        owner_id = require_owner(owner_id)
        assets, liabilities = split_balances(
            self._storage.list_accounts(owner_id, include_archived=True)
        )
        return NetWorth(
            total_assets=assets,
            total_liabilities=liabilities,
            net_worth=assets - liabilities,
        )

    def _total(
        self,
        owner_id: UUID,
        kind: TransactionKind,
        start: datetime,
        end: datetime,
    ) -> Decimal:
        return sum(self._storage.sum_by_category(owner_id, kind, start, end).values(), ZERO)

    def savings_rate(self, owner_id: Optional[UUID], start: datetime, end: datetime) -> float:
        """(income - expense) / income * 100 for the period; 0 without income."""
        owner_id = require_owner(owner_id)
        income = self._total(owner_id, TransactionKind.INCOME, start, end)
        expense = self._total(owner_id, TransactionKind.EXPENSE, start, end)
        return percent(income - expense, income)

    def debt_paydown(self, owner_id: Optional[UUID], start: datetime, end: datetime) -> Decimal:
        """Sum of transfers into liability accounts within the period."""
        owner_id = require_owner(owner_id)
        liabilities = {
            a.id for a in self._storage.list_accounts(owner_id, include_archived=True)
            if a.is_liability
        }
        return sum(
            (
                t.amount
                for t in self._storage.list_transfers(owner_id, start=start, end=end)
                if t.to_account_id in liabilities
            ),
            ZERO,
        )

    def average_monthly_expense(
        self,
        owner_id: Optional[UUID],
        as_of: Optional[datetime] = None,
        months: Optional[int] = None,
    ) -> Decimal:
        """Expenses over the trailing window divided by its length in months."""
        owner_id = require_owner(owner_id)
        months = months or self._settings.runway_expense_months
        start, end = trailing_window(as_of, months, self.tz)
        return self._total(owner_id, TransactionKind.EXPENSE, start, end) / months

    def financial_health(
        self,
        owner_id: Optional[UUID],
        as_of: Optional[datetime] = None,
    ) -> FinancialHealth:
        """
        Headline ratios as of a moment (default: now).

        Savings rate is year to date; income, expense and debt paydown are
        for the month of `as_of`; runway uses liquid asset balances only.
        """
        owner_id = require_owner(owner_id)
        now = as_of or utcnow()
        current_start = month_start(now, self.tz)
        current_end = month_end(now, self.tz)

        accounts = self._storage.list_accounts(owner_id, include_archived=True)
        assets, liabilities = split_balances(accounts)

        credit_used = ZERO
        credit_limit = ZERO
        for account in accounts:
            if account.type == AccountType.CREDIT and account.credit_limit is not None:
                credit_used += account.balance
                credit_limit += account.credit_limit

        liquid = sum(
            (a.balance for a in accounts if a.is_liquid and not a.is_archived),
            ZERO,
        )
        average_expense = self.average_monthly_expense(owner_id, now)

        paydown = self.debt_paydown(owner_id, current_start, current_end)
        if paydown > 0 and liabilities > 0:
            months_to_payoff = math.ceil(liabilities / paydown)
        elif liabilities > 0:
            months_to_payoff = -1
        else:
            months_to_payoff = 0

        return FinancialHealth(
            savings_rate=self.savings_rate(owner_id, year_start(now, self.tz), current_end),
            monthly_income=self._total(owner_id, TransactionKind.INCOME, current_start, current_end),
            monthly_expense=self._total(owner_id, TransactionKind.EXPENSE, current_start, current_end),
            debt_to_asset_ratio=percent(liabilities, assets),
            credit_utilization=percent(credit_used, credit_limit),
            total_credit_used=credit_used,
            total_credit_limit=credit_limit,
            available_credit=credit_limit - credit_used,
            runway_months=runway(liquid, average_expense),
            liquid_assets=liquid,
            average_monthly_expense=average_expense.quantize(CENT, rounding=ROUND_HALF_UP),
            debt_paydown_this_month=paydown,
            debt_paydown_percent=percent(paydown, liabilities),
            months_to_payoff=months_to_payoff,
        )

    # =========================================================================
    # INCOME STABILITY
    # =========================================================================

    def income_stability(
        self,
        owner_id: Optional[UUID],
        months: Optional[int] = None,
        as_of: Optional[datetime] = None,
    ) -> IncomeStability:
        """
        Grade how steady monthly income is.

        Only months in the window that have income count as history.
        CV = population stddev / mean * 100.
        """
        owner_id = require_owner(owner_id)
        months = months or self._settings.income_stability_months
        start, end = trailing_window(as_of, months, self.tz)
        by_month = self._storage.sum_by_month(owner_id, TransactionKind.INCOME, start, end, self.tz)
        totals = [by_month[key] for key in sorted(by_month) if by_month[key] > 0]

        if len(totals) < 2:
            suggested, reason = INSUFFICIENT_HISTORY
            return IncomeStability(
                months_of_history=len(totals),
                monthly_totals=totals,
                suggested_percentage=suggested,
                reason=reason,
            )

        mean = statistics.fmean(float(t) for t in totals)
        cv = statistics.pstdev(float(t) for t in totals) / mean * 100

        suggested, reason = VARIABLE_SUGGESTION
        for limit, band_suggestion, band_reason in STABILITY_BANDS:
            if cv < limit:
                suggested, reason = band_suggestion, band_reason
                break

        return IncomeStability(
            coefficient_of_variation=round(cv, 2),
            months_of_history=len(totals),
            monthly_totals=totals,
            suggested_percentage=suggested,
            reason=reason,
        )

    def suggested_emergency_fund_percentage(self, owner_id: Optional[UUID]) -> Decimal:
        """Default emergency-fund allocation percentage for new income."""
        return self.income_stability(owner_id).suggested_percentage

    # =========================================================================
    # FUND HEALTH
    # =========================================================================

    def _fund_metric(self, fund: Account, monthly_budget: Decimal) -> FundHealthMetric:
        mode = fund.fund_calculation_mode or (
            FundCalculationMode.MONTHS_COVERAGE
            if fund.type == AccountType.EMERGENCY_FUND
            else FundCalculationMode.TARGET_PROGRESS
        )
        low = fund.fund_threshold_low if fund.fund_threshold_low is not None else self._settings.fund_threshold_low
        mid = fund.fund_threshold_mid if fund.fund_threshold_mid is not None else self._settings.fund_threshold_mid
        high = fund.fund_threshold_high if fund.fund_threshold_high is not None else self._settings.fund_threshold_high

        coverage = None
        if mode == FundCalculationMode.MONTHS_COVERAGE:
            if monthly_budget > 0:
                coverage = (fund.balance / monthly_budget).quantize(CENT, rounding=ROUND_HALF_UP)
            elif fund.balance > 0:
                coverage = INFINITE
            else:
                coverage = ZERO
            progress = 100.0 if coverage.is_infinite() else percent(coverage, high)
            status = fund_status(float(coverage), float(low), float(mid), float(high))
        else:
            target = fund.target_amount or ZERO
            progress = percent(fund.balance, target)
            status = fund_status(progress, *PROGRESS_BANDS)

        return FundHealthMetric(
            account_id=fund.id,
            name=fund.name,
            type=fund.type,
            balance=fund.balance,
            calculation_mode=mode,
            months_coverage=coverage,
            target_amount=fund.target_amount,
            progress_percent=min(progress, 100.0),
            status=status,
            thresholds={"low": low, "mid": mid, "high": high},
        )

    def fund_health(
        self,
        owner_id: Optional[UUID],
        as_of: Optional[datetime] = None,
    ) -> FundHealthSummary:
        """
        Health of every active EMERGENCY_FUND and FUND account.

        Coverage is measured against the total budget for the month of
        `as_of`.
        """
        owner_id = require_owner(owner_id)
        funds = [
            a for a in self._storage.list_accounts(owner_id, include_archived=False)
            if a.type in (AccountType.EMERGENCY_FUND, AccountType.FUND)
        ]
        if not funds:
            return FundHealthSummary()

        now = as_of or utcnow()
        budgets = self._storage.list_budgets(
            owner_id, start=month_start(now, self.tz), end=month_end(now, self.tz)
        )
        monthly_budget = sum((b.amount for b in budgets), ZERO)

        metrics = [self._fund_metric(fund, monthly_budget) for fund in funds]
        return FundHealthSummary(
            funds=metrics,
            total_balance=sum((m.balance for m in metrics), ZERO),
            monthly_budget=monthly_budget,
            funded_count=sum(1 for m in metrics if m.status == FundStatus.FUNDED),
            needs_attention_count=sum(
                1 for m in metrics
                if m.status in (FundStatus.CRITICAL, FundStatus.UNDERFUNDED)
            ),
        )
