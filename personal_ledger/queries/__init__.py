"""
Read-side engines.

Reconstruction, analytics and reports consume persisted state only and
never write.
"""

from personal_ledger.queries.analytics import AnalyticsEngine
from personal_ledger.queries.budgets import BudgetAnalytics
from personal_ledger.queries.reconstruction import (
    AccountMovement,
    LedgerReconstructor,
    account_movements,
    balance_before,
)
from personal_ledger.queries.reports import ReportBuilder

__all__ = [
    "AccountMovement",
    "AnalyticsEngine",
    "BudgetAnalytics",
    "LedgerReconstructor",
    "ReportBuilder",
    "account_movements",
    "balance_before",
]
