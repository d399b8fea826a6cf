"""
Data Models Package

This package contains all Pydantic models used in the Personal Ledger system.
All data flowing through the system must conform to these schemas.
"""

from personal_ledger.models.ledger import (
    FUND_TYPES,
    LIABILITY_TYPES,
    LIQUID_TYPES,
    Account,
    AccountType,
    AdjustBalanceInput,
    AllocationKind,
    Budget,
    Category,
    CategoryType,
    Classification,
    CreateAccountInput,
    CreateBudgetInput,
    CreateExpenseInput,
    CreateIncomeInput,
    CreateTransferInput,
    EffectKind,
    Expense,
    FundCalculationMode,
    Income,
    RecurringPeriod,
    TransactionKind,
    Transfer,
    UpdateAccountInput,
    UpdateBudgetInput,
    UpdateExpenseInput,
    UpdateIncomeInput,
    ValidationIssue,
)
from personal_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "FUND_TYPES",
    "LIABILITY_TYPES",
    "LIQUID_TYPES",
    "Account",
    "AccountType",
    "AdjustBalanceInput",
    "AllocationKind",
    "Budget",
    "Category",
    "CategoryType",
    "Classification",
    "CreateAccountInput",
    "CreateBudgetInput",
    "CreateExpenseInput",
    "CreateIncomeInput",
    "CreateTransferInput",
    "EffectKind",
    "Expense",
    "FundCalculationMode",
    "Income",
    "RecurringPeriod",
    "TransactionKind",
    "Transfer",
    "UpdateAccountInput",
    "UpdateBudgetInput",
    "UpdateExpenseInput",
    "UpdateIncomeInput",
    "ValidationIssue",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
