"""
Core Data Models for Personal Ledger

These models define the strict schemas for every record the ledger stores
and every input it accepts. They are designed to:
1. Reject malformed input at construction time
2. Keep money as Decimal with at most two places
3. Be serializable for storage and logging

DESIGN DECISION: An account's balance is NOT editable through any input
model. Balances change only through transaction effects or an explicit
balance adjustment, both of which leave a record in the history.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from personal_ledger.config import get_settings
from personal_ledger.utils.dates import localize, month_start, utcnow


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountType(str, Enum):
    """Supported account types."""
    BANK = "BANK"
    CASH = "CASH"
    SAVINGS = "SAVINGS"
    INVESTMENT = "INVESTMENT"
    CREDIT = "CREDIT"
    LOAN = "LOAN"
    EMERGENCY_FUND = "EMERGENCY_FUND"
    FUND = "FUND"
    TITHE = "TITHE"
    OTHER = "OTHER"


# Always liabilities, whatever the caller says
LIABILITY_TYPES = frozenset({AccountType.CREDIT, AccountType.LOAN})

# Funds never re-allocate an income they receive
FUND_TYPES = frozenset({
    AccountType.EMERGENCY_FUND,
    AccountType.FUND,
    AccountType.TITHE,
})

# Counted towards runway
LIQUID_TYPES = frozenset({AccountType.BANK, AccountType.CASH, AccountType.SAVINGS})


class Classification(str, Enum):
    """
    What an account's balance means.

    ASSET: the amount currently held.
    LIABILITY: the amount currently owed.
    """
    ASSET = "ASSET"
    LIABILITY = "LIABILITY"


class EffectKind(str, Enum):
    """The natural direction of a transaction, before classification."""
    CREDIT = "CREDIT"  # income received, transfer in, payment made
    DEBIT = "DEBIT"    # expense paid, transfer out, fee charged


class CategoryType(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class RecurringPeriod(str, Enum):
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class FundCalculationMode(str, Enum):
    MONTHS_COVERAGE = "MONTHS_COVERAGE"
    TARGET_PROGRESS = "TARGET_PROGRESS"


class TransactionKind(str, Enum):
    """Record kinds that carry a category and feed aggregations."""
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class AllocationKind(str, Enum):
    """Why an allocation transfer exists."""
    TITHE = "TITHE"
    EMERGENCY_FUND = "EMERGENCY_FUND"


def _reference_tz():
    return get_settings().ledger.tzinfo


# =============================================================================
# VALIDATION ISSUES
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation problem found in an input."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'archived')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )


# =============================================================================
# STORED RECORDS
# =============================================================================

class Account(BaseModel):
    """
    An owned financial container.

    `balance` is signed and its meaning depends on classification.
    `opening_balance` is the balance at creation and never changes, so
    opening_balance + every effect since creation == balance.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    owner_id: UUID
    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType
    is_liability: bool = False
    currency: str = Field(default="USD", min_length=3, max_length=3)

    balance: Decimal = Decimal("0")
    opening_balance: Decimal = Decimal("0")

    # Revolving credit only; read by analytics, never by the ledger
    credit_limit: Optional[Decimal] = Field(default=None, ge=0)

    icon: Optional[str] = None
    color: Optional[str] = None

    # Fund attributes; read by analytics only
    target_amount: Optional[Decimal] = Field(default=None, ge=0)
    fund_calculation_mode: Optional[FundCalculationMode] = None
    fund_threshold_low: Optional[Decimal] = Field(default=None, ge=0)
    fund_threshold_mid: Optional[Decimal] = Field(default=None, ge=0)
    fund_threshold_high: Optional[Decimal] = Field(default=None, gt=0)

    is_archived: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def enforce_liability_types(self) -> "Account":
        if self.type in LIABILITY_TYPES:
            self.is_liability = True
        return self

    @property
    def classification(self) -> Classification:
        return Classification.LIABILITY if self.is_liability else Classification.ASSET

    @property
    def is_fund(self) -> bool:
        return self.type in FUND_TYPES

    @property
    def is_liquid(self) -> bool:
        return self.type in LIQUID_TYPES and not self.is_liability


class Category(BaseModel):
    """Income or expense category, unique per (owner, name, type)."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    owner_id: UUID
    name: str = Field(..., min_length=1, max_length=100)
    type: CategoryType
    icon: Optional[str] = None
    color: Optional[str] = None


class TransactionRecord(BaseModel):
    """Fields shared by incomes, expenses and transfers."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    owner_id: UUID
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    description: Optional[str] = Field(default=None, max_length=500)
    occurred_at: datetime
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("occurred_at")
    @classmethod
    def normalize_timezone(cls, v: datetime) -> datetime:
        return localize(v, _reference_tz())


class Income(TransactionRecord):
    """Money received. Naturally a CREDIT to its account."""

    category_id: UUID
    account_id: Optional[UUID] = None
    is_recurring: bool = False
    recurring_period: Optional[RecurringPeriod] = None


class Expense(TransactionRecord):
    """Money spent. Naturally a DEBIT to its account."""

    category_id: UUID
    account_id: UUID
    budget_id: Optional[UUID] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    is_recurring: bool = False
    recurring_period: Optional[RecurringPeriod] = None

    # Set only on the synthetic expense that records a transfer fee
    transfer_id: Optional[UUID] = None

    @property
    def is_transfer_fee(self) -> bool:
        return self.transfer_id is not None


class Transfer(TransactionRecord):
    """Value moved between two of the owner's accounts."""

    fee: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    from_account_id: UUID
    to_account_id: UUID

    # Link to the synthetic fee expense, when a fee was charged
    fee_expense_id: Optional[UUID] = None

    # Set on transfers cascaded out of an income
    income_id: Optional[UUID] = None
    allocation: Optional[AllocationKind] = None

    @model_validator(mode="after")
    def validate_accounts_differ(self) -> "Transfer":
        if self.from_account_id == self.to_account_id:
            raise ValueError("Source and destination accounts must be different")
        return self


class Budget(BaseModel):
    """
    Envelope for one expense category in one month.

    `spent` is derived from linked expenses and never stored.
    """

    id: UUID = Field(default_factory=uuid4)
    owner_id: UUID
    name: Optional[str] = Field(default=None, max_length=100)
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    category_id: UUID
    month: datetime
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("month")
    @classmethod
    def normalize_month(cls, v: datetime) -> datetime:
        return month_start(v, _reference_tz())


# =============================================================================
# INPUTS
# =============================================================================

_FUND_FIELDS = (
    "target_amount",
    "fund_calculation_mode",
    "fund_threshold_low",
    "fund_threshold_mid",
    "fund_threshold_high",
)


class CreateAccountInput(BaseModel):
    """Input for creating an account. `balance` becomes the opening balance."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType
    balance: Decimal = Field(default=Decimal("0"), decimal_places=2)
    is_liability: bool = False
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    credit_limit: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    icon: Optional[str] = None
    color: Optional[str] = None
    target_amount: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    fund_calculation_mode: Optional[FundCalculationMode] = None
    fund_threshold_low: Optional[Decimal] = Field(default=None, ge=0)
    fund_threshold_mid: Optional[Decimal] = Field(default=None, ge=0)
    fund_threshold_high: Optional[Decimal] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def validate_type_specific_fields(self) -> "CreateAccountInput":
        if self.type in LIABILITY_TYPES:
            self.is_liability = True
        if self.credit_limit is not None and self.type != AccountType.CREDIT:
            raise ValueError("Credit limit only applies to CREDIT accounts")
        if self.type not in (AccountType.EMERGENCY_FUND, AccountType.FUND):
            for name in _FUND_FIELDS:
                if getattr(self, name) is not None:
                    raise ValueError(f"{name} only applies to fund accounts")
        return self


class UpdateAccountInput(BaseModel):
    """
    Partial account update. Only fields explicitly set are applied.

    There is deliberately no balance field: use a balance adjustment.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type: Optional[AccountType] = None
    is_liability: Optional[bool] = None
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    credit_limit: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    icon: Optional[str] = None
    color: Optional[str] = None
    target_amount: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    fund_calculation_mode: Optional[FundCalculationMode] = None
    fund_threshold_low: Optional[Decimal] = Field(default=None, ge=0)
    fund_threshold_mid: Optional[Decimal] = Field(default=None, ge=0)
    fund_threshold_high: Optional[Decimal] = Field(default=None, gt=0)

    def changes(self) -> dict:
        return {
            name: getattr(self, name)
            for name in self.model_fields_set
            if name != "id"
        }


class _CategorizedInput(BaseModel):
    """Category may be given by id or by (possibly new) name."""
    model_config = ConfigDict(str_strip_whitespace=True)

    category_id: Optional[UUID] = None
    category_name: Optional[str] = Field(default=None, min_length=1, max_length=100)


class _RecurringMixin(BaseModel):
    is_recurring: bool = False
    recurring_period: Optional[RecurringPeriod] = None

    @model_validator(mode="after")
    def validate_recurrence(self):
        if self.is_recurring and self.recurring_period is None:
            raise ValueError("Recurring transactions need a recurring period")
        return self


class CreateIncomeInput(_CategorizedInput, _RecurringMixin):
    """
    Input for recording an income.

    Allocation directives: `tithe_enabled=None` falls back to the configured
    default; `emergency_fund_percentage=None` falls back to the
    income-stability suggestion.
    """

    amount: Decimal = Field(..., gt=0, decimal_places=2)
    description: Optional[str] = Field(default=None, max_length=500)
    occurred_at: datetime
    account_id: Optional[UUID] = None

    tithe_enabled: Optional[bool] = None
    tithe_percentage: Optional[Decimal] = Field(default=None, ge=0, le=100)
    emergency_fund_enabled: bool = False
    emergency_fund_percentage: Optional[Decimal] = Field(default=None, ge=0, le=100)

    @model_validator(mode="after")
    def validate_category_given(self) -> "CreateIncomeInput":
        if self.category_id is None and not self.category_name:
            raise ValueError("Please select a category")
        return self

    @field_validator("emergency_fund_percentage")
    @classmethod
    def validate_emergency_fund_cap(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        cap = get_settings().ledger.max_emergency_fund_percentage
        if v is not None and v > cap:
            raise ValueError(f"EF percentage cannot exceed {cap}%")
        return v


class UpdateIncomeInput(_CategorizedInput):
    """Partial income update. Only fields explicitly set are applied."""

    id: UUID
    amount: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)
    description: Optional[str] = Field(default=None, max_length=500)
    occurred_at: Optional[datetime] = None
    account_id: Optional[UUID] = None
    is_recurring: Optional[bool] = None
    recurring_period: Optional[RecurringPeriod] = None


class CreateExpenseInput(_CategorizedInput, _RecurringMixin):
    """Input for recording an expense. The account is required."""

    amount: Decimal = Field(..., gt=0, decimal_places=2)
    description: Optional[str] = Field(default=None, max_length=500)
    notes: Optional[str] = Field(default=None, max_length=1000)
    occurred_at: datetime
    account_id: UUID
    budget_id: Optional[UUID] = None

    @model_validator(mode="after")
    def validate_category_given(self) -> "CreateExpenseInput":
        if self.category_id is None and not self.category_name:
            raise ValueError("Please select a category")
        return self


class UpdateExpenseInput(_CategorizedInput):
    """Partial expense update. Only fields explicitly set are applied."""

    id: UUID
    amount: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)
    description: Optional[str] = Field(default=None, max_length=500)
    notes: Optional[str] = Field(default=None, max_length=1000)
    occurred_at: Optional[datetime] = None
    account_id: Optional[UUID] = None
    budget_id: Optional[UUID] = None
    is_recurring: Optional[bool] = None
    recurring_period: Optional[RecurringPeriod] = None


class CreateTransferInput(BaseModel):
    """Input for moving value between two accounts."""
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Decimal = Field(..., gt=0, decimal_places=2)
    fee: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    occurred_at: datetime
    description: Optional[str] = Field(default=None, max_length=500)
    from_account_id: UUID
    to_account_id: UUID

    @model_validator(mode="after")
    def validate_accounts_differ(self) -> "CreateTransferInput":
        if self.from_account_id == self.to_account_id:
            raise ValueError("Source and destination accounts must be different")
        return self


class CreateBudgetInput(_CategorizedInput):
    """Input for creating a monthly budget envelope."""

    name: Optional[str] = Field(default=None, max_length=100)
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    month: datetime

    @model_validator(mode="after")
    def validate_category_given(self) -> "CreateBudgetInput":
        if self.category_id is None and not self.category_name:
            raise ValueError("Either category_id or category_name must be provided")
        return self


class UpdateBudgetInput(_CategorizedInput):
    """Partial budget update. Only fields explicitly set are applied."""

    id: UUID
    name: Optional[str] = Field(default=None, max_length=100)
    amount: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)
    month: Optional[datetime] = None


class AdjustBalanceInput(BaseModel):
    """The user's declaration of what an account's balance really is."""

    account_id: UUID
    new_balance: Decimal = Field(..., decimal_places=2)
    occurred_at: Optional[datetime] = None
