"""
Main Orchestrator for Personal Ledger

Ties the store, the audit logger, the ledger services and the read-side
engines together behind one object.

DESIGN DECISION: Every component receives its collaborators explicitly.
There is no module-level service state; two PersonalLedger instances
over two stores never share anything.

The income-stability suggestion is wired into the allocation engine as
the default emergency-fund percentage, so analytics feed mutation only
through that one callable.
"""

from typing import Optional

from personal_ledger.audit import AuditLogger
from personal_ledger.config import Settings, get_settings
from personal_ledger.ledger import (
    AccountService,
    AllocationEngine,
    BalanceMutationEngine,
    BudgetService,
    CategoryService,
    ExpenseService,
    IncomeService,
    TransferEngine,
)
from personal_ledger.queries import (
    AnalyticsEngine,
    BudgetAnalytics,
    LedgerReconstructor,
    ReportBuilder,
)
from personal_ledger.services.storage import (
    AuditStorageInterface,
    LedgerStorageInterface,
    create_storage,
)


class PersonalLedger:
    """
    All ledger operations for one store.

    Mutations:
        accounts, categories, incomes, expenses, transfers, budgets
    Reads:
        reconstruction, analytics, budget_analytics, reports
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        ledger_settings = settings.ledger
        analytics_settings = settings.analytics

        self.storage = storage
        self.audit = audit_logger or AuditLogger()

        # Read side first: allocation defaults depend on analytics
        self.analytics = AnalyticsEngine(storage, analytics_settings, ledger_settings)
        self.budget_analytics = BudgetAnalytics(storage, analytics_settings, ledger_settings)
        self.reconstruction = LedgerReconstructor(storage, self.audit)
        self.reports = ReportBuilder(storage, ledger_settings)

        effects = BalanceMutationEngine(storage)
        self.categories = CategoryService(storage, self.audit, ledger_settings)
        self.transfers = TransferEngine(
            storage, self.audit, ledger_settings, self.categories, effects
        )
        self.allocations = AllocationEngine(
            storage,
            self.audit,
            ledger_settings,
            self.transfers,
            emergency_fund_default=self.analytics.suggested_emergency_fund_percentage,
        )
        self.incomes = IncomeService(
            storage,
            self.audit,
            ledger_settings,
            self.categories,
            self.transfers,
            self.allocations,
            effects,
        )
        self.expenses = ExpenseService(
            storage, self.audit, ledger_settings, self.categories, effects
        )
        self.accounts = AccountService(
            storage, self.audit, ledger_settings, self.incomes, self.expenses
        )
        self.budgets = BudgetService(
            storage, self.audit, ledger_settings, self.categories, analytics_settings
        )


def create_ledger(settings: Optional[Settings] = None) -> PersonalLedger:
    """
    Factory function to build a PersonalLedger from settings.

    Args:
        settings: Root settings. Defaults to the cached environment settings.

    Returns:
        A ledger over the configured backend. Audit events are persisted
        to the same store when `persist_audit_events` is on, otherwise
        only logged.
    """
    settings = settings or get_settings()
    storage_settings = settings.storage
    ledger_storage, audit_storage = create_storage(storage_settings)

    persisted: Optional[AuditStorageInterface] = (
        audit_storage if storage_settings.persist_audit_events else None
    )
    return PersonalLedger(ledger_storage, AuditLogger(persisted), settings)
