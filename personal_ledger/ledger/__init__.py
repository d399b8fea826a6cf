"""
Ledger mutation services.

Everything that changes a balance lives here and goes through
`BalanceMutationEngine`, inside one unit of work per public call.
"""

from personal_ledger.ledger.accounts import AccountService
from personal_ledger.ledger.allocation import AllocationEngine, allocation_amount
from personal_ledger.ledger.base import LedgerService
from personal_ledger.ledger.budgets import BudgetService, budget_percentage, budget_status
from personal_ledger.ledger.categories import CategoryService
from personal_ledger.ledger.effects import BalanceMutationEngine, effect_delta, inverse
from personal_ledger.ledger.expense import ExpenseService
from personal_ledger.ledger.income import IncomeService
from personal_ledger.ledger.reconciliation import Reconciler
from personal_ledger.ledger.transfers import TransferEngine

__all__ = [
    "AccountService",
    "AllocationEngine",
    "BalanceMutationEngine",
    "BudgetService",
    "CategoryService",
    "ExpenseService",
    "IncomeService",
    "LedgerService",
    "Reconciler",
    "TransferEngine",
    "allocation_amount",
    "budget_percentage",
    "budget_status",
    "effect_delta",
    "inverse",
]
