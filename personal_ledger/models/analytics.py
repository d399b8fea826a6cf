"""
Read-Side Result Models

Everything the reconstruction, analytics and report engines return.
Money stays Decimal; ratios and percentages are floats because they are
advisory and never written back to the ledger.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from personal_ledger.models.ledger import AccountType, FundCalculationMode, TransactionKind

# Runway and fund coverage are Decimal('Infinity') when nothing is spent
UnboundedDecimal = Annotated[Decimal, Field(allow_inf_nan=True)]


# =============================================================================
# LEDGER RECONSTRUCTION
# =============================================================================

class LedgerEntryKind(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"
    TRANSFER_IN = "TRANSFER_IN"
    TRANSFER_OUT = "TRANSFER_OUT"


class LedgerEntry(BaseModel):
    """One transaction touching an account, with the balance right after it."""

    id: UUID
    kind: LedgerEntryKind
    amount: Decimal = Field(..., description="Transfer fees appear as their own EXPENSE entry")
    description: Optional[str] = None
    occurred_at: datetime
    created_at: datetime
    category_name: Optional[str] = None
    related_account_id: Optional[UUID] = None
    related_account_name: Optional[str] = None
    running_balance: Decimal


class AccountLedger(BaseModel):
    account_id: UUID
    account_name: str
    is_liability: bool
    current_balance: Decimal
    entries: list[LedgerEntry] = Field(default_factory=list)


class BalanceDrift(BaseModel):
    """Stored balance compared with opening balance plus replayed effects."""

    account_id: UUID
    stored_balance: Decimal
    replayed_balance: Decimal
    drift: Decimal

    @property
    def has_drift(self) -> bool:
        return self.drift != 0


# =============================================================================
# ANALYTICS
# =============================================================================

class NetWorth(BaseModel):
    total_assets: Decimal
    total_liabilities: Decimal
    net_worth: Decimal


class FinancialHealth(BaseModel):
    """Headline ratios. Runway is Decimal('Infinity') when nothing is spent."""

    savings_rate: float = Field(..., description="Year-to-date, percent")
    monthly_income: Decimal
    monthly_expense: Decimal
    debt_to_asset_ratio: float
    credit_utilization: float
    total_credit_used: Decimal
    total_credit_limit: Decimal
    available_credit: Decimal
    runway_months: UnboundedDecimal
    liquid_assets: Decimal
    average_monthly_expense: Decimal
    debt_paydown_this_month: Decimal
    debt_paydown_percent: float
    months_to_payoff: int = Field(..., description="-1 when debt exists and nothing is paid")


class IncomeStability(BaseModel):
    coefficient_of_variation: Optional[float] = None
    months_of_history: int
    monthly_totals: list[Decimal] = Field(default_factory=list)
    suggested_percentage: Decimal
    reason: str


class FundStatus(str, Enum):
    CRITICAL = "critical"
    UNDERFUNDED = "underfunded"
    BUILDING = "building"
    FUNDED = "funded"


class FundHealthMetric(BaseModel):
    account_id: UUID
    name: str
    type: AccountType
    balance: Decimal
    calculation_mode: FundCalculationMode
    months_coverage: Optional[UnboundedDecimal] = None
    target_amount: Optional[Decimal] = None
    progress_percent: Optional[float] = None
    status: FundStatus
    thresholds: dict[str, Decimal] = Field(default_factory=dict)


class FundHealthSummary(BaseModel):
    funds: list[FundHealthMetric] = Field(default_factory=list)
    total_balance: Decimal = Decimal("0")
    monthly_budget: Decimal = Decimal("0")
    funded_count: int = 0
    needs_attention_count: int = 0


# =============================================================================
# BUDGETS
# =============================================================================

class BudgetStatus(str, Enum):
    ON_TRACK = "on-track"
    WARNING = "warning"
    OVER = "over"


class BurnStatus(str, Enum):
    OVERPACE = "overpace"
    ONTRACK = "ontrack"


class BudgetView(BaseModel):
    """A budget with its derived spending."""

    id: UUID
    name: Optional[str] = None
    category_id: UUID
    category_name: str
    month: datetime
    amount: Decimal
    spent: Decimal
    remaining: Decimal
    percentage: float
    status: BudgetStatus


class BudgetLedgerEntry(BaseModel):
    expense_id: UUID
    occurred_at: datetime
    description: Optional[str] = None
    amount: Decimal
    account_name: Optional[str] = None
    running_total: Decimal
    remaining: Decimal
    is_over_budget: bool


class BudgetLedger(BaseModel):
    """
    Every expense of the budget's category in its month, linked or not,
    with running totals and burn-rate metrics.
    """

    budget: BudgetView
    entries: list[BudgetLedgerEntry] = Field(default_factory=list)
    spent: Decimal
    remaining: Decimal
    percentage: float
    is_over_budget: bool
    days_in_month: int
    days_elapsed: int
    days_remaining: int
    daily_burn_rate: Decimal
    allowed_daily_rate: Decimal
    burn_status: BurnStatus


class ProblemCategory(BaseModel):
    category_id: UUID
    category_name: str
    months_over: int
    current_percentage: float
    status: BudgetStatus
    reason: str


class BudgetHealthSummary(BaseModel):
    month: datetime
    total_budgeted: Decimal
    total_spent: Decimal
    on_track_count: int
    warning_count: int
    over_count: int
    problem_categories: list[ProblemCategory] = Field(default_factory=list)


class MonthlyBudgetTrend(BaseModel):
    """Budget totals for one month; `savings` is budgeted minus spent."""

    month: datetime
    total_budgeted: Decimal
    total_spent: Decimal
    savings: Decimal
    adherence_percent: float = Field(..., description="Spent as a share of budgeted, capped at 100")
    categories_on_track: int
    categories_over: int
    total_categories: int


class Recommendation(str, Enum):
    INCREASE = "increase"
    DECREASE = "decrease"
    STABLE = "stable"


class CategoryRecommendation(BaseModel):
    category_id: UUID
    category_name: str
    average_budgeted: Decimal
    average_spent: Decimal
    variance_percent: float
    months_over: int
    months_under: int
    months_tracked: int
    recommendation: Recommendation
    suggested_amount: Optional[Decimal] = None
    trend: str


# =============================================================================
# REPORTS
# =============================================================================

class CategoryBreakdownItem(BaseModel):
    category_id: UUID
    category_name: str
    amount: Decimal
    percentage: float


class MonthlySummary(BaseModel):
    month: datetime
    income: Decimal
    expense: Decimal
    savings: Decimal


class FinancialStatement(BaseModel):
    start: datetime
    end: datetime
    income_by_category: list[CategoryBreakdownItem] = Field(default_factory=list)
    expense_by_category: list[CategoryBreakdownItem] = Field(default_factory=list)
    total_income: Decimal
    total_expense: Decimal
    net_income: Decimal
    savings_rate: float


class BudgetVsActualItem(BaseModel):
    category_id: UUID
    category_name: str
    budgeted: Decimal
    actual: Decimal
    variance: Decimal = Field(..., description="budgeted - actual")
    percent_used: float


class NetWorthPoint(BaseModel):
    month: datetime
    total_assets: Decimal
    total_liabilities: Decimal
    net_worth: Decimal


class StatementLine(BaseModel):
    id: UUID
    kind: TransactionKind
    occurred_at: datetime
    description: Optional[str] = None
    category_id: UUID
    category_name: str
    amount: Decimal
    budget_id: Optional[UUID] = None
    budget_name: Optional[str] = None
    running_balance: Decimal = Field(..., description="Net worth right after this line")


class TransactionStatement(BaseModel):
    """
    Incomes and expenses of a period, oldest first.

    The closing balance is net worth at the end of the period; the
    opening balance is that minus the period's net change.
    """

    start: datetime
    end: datetime
    lines: list[StatementLine] = Field(default_factory=list)
    opening_balance: Decimal
    closing_balance: Decimal
    total_income: Decimal
    total_expense: Decimal
    net_change: Decimal
