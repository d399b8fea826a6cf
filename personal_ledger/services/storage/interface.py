"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run the whole ledger against an in-memory store in tests
2. Swap SQLite for a server database later
3. Keep business logic decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Every read is scoped by owner: a record owned by someone else is
indistinguishable from a missing one.

The one non-trivial contract is `unit_of_work()`: every write issued
inside it commits together or not at all, and nested calls join the
outermost unit.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from contextlib import AbstractContextManager
from datetime import datetime, tzinfo
from decimal import Decimal
from typing import Iterable, Optional, Union
from uuid import UUID

from personal_ledger.models.audit import AuditEvent
from personal_ledger.models.ledger import (
    Account,
    Budget,
    Category,
    CategoryType,
    Expense,
    Income,
    TransactionKind,
    Transfer,
)
from personal_ledger.utils.dates import month_start


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger record storage.

    Any storage implementation must implement these methods.
    Records passed in and returned are copies; mutating them never
    changes stored state.
    """

    # =========================================================================
    # UNIT OF WORK
    # =========================================================================

    @abstractmethod
    def unit_of_work(self) -> AbstractContextManager:
        """
        All-or-nothing execution of the writes issued inside the block.

        Re-entrant: a nested call joins the outer unit, and only the
        outermost exit commits.

        Raises:
            StorageError: If the store rejects a write; the unit is rolled back
        """
        pass

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    @abstractmethod
    def get_account(self, owner_id: UUID, account_id: UUID) -> Optional[Account]:
        """
        Retrieve an account by its ID.

        Returns:
            The account if found and owned by owner_id, None otherwise
        """
        pass

    @abstractmethod
    def list_accounts(
        self,
        owner_id: UUID,
        include_archived: bool = True,
    ) -> list[Account]:
        """List the owner's accounts, ordered by creation time."""
        pass

    @abstractmethod
    def create_account(self, account: Account) -> Account:
        pass

    @abstractmethod
    def update_account(self, account: Account) -> Account:
        """
        Replace an account's stored fields.

        The stored balance is never taken from `account`; use
        increment_balance.

        Raises:
            StorageError: If the account doesn't exist
        """
        pass

    @abstractmethod
    def delete_account(self, owner_id: UUID, account_id: UUID) -> bool:
        """
        Delete an account.

        Returns:
            True if deleted, False if it didn't exist

        Raises:
            ConstraintError: If any transaction references the account
        """
        pass

    @abstractmethod
    def increment_balance(
        self,
        owner_id: UUID,
        account_id: UUID,
        delta: Decimal,
    ) -> Account:
        """
        Atomically add `delta` to an account's balance.

        Returns:
            The account after the increment

        Raises:
            StorageError: If the account doesn't exist
        """
        pass

    @abstractmethod
    def count_account_references(self, owner_id: UUID, account_id: UUID) -> int:
        """Number of incomes, expenses and transfers touching the account."""
        pass

    # =========================================================================
    # CATEGORIES
    # =========================================================================

    @abstractmethod
    def get_category(self, owner_id: UUID, category_id: UUID) -> Optional[Category]:
        pass

    @abstractmethod
    def find_category(
        self,
        owner_id: UUID,
        name: str,
        category_type: CategoryType,
    ) -> Optional[Category]:
        """Exact-name lookup on the (owner, name, type) unique key."""
        pass

    @abstractmethod
    def list_categories(
        self,
        owner_id: UUID,
        category_type: Optional[CategoryType] = None,
    ) -> list[Category]:
        """List categories ordered by name."""
        pass

    @abstractmethod
    def create_category(self, category: Category) -> Category:
        """
        Raises:
            DuplicateError: If (owner, name, type) already exists
        """
        pass

    @abstractmethod
    def update_category(self, category: Category) -> Category:
        """
        Raises:
            DuplicateError: If the new name collides with another category
        """
        pass

    @abstractmethod
    def delete_category(self, owner_id: UUID, category_id: UUID) -> bool:
        """
        Raises:
            ConstraintError: If any income, expense or budget references it
        """
        pass

    # =========================================================================
    # INCOMES
    # =========================================================================

    @abstractmethod
    def get_income(self, owner_id: UUID, income_id: UUID) -> Optional[Income]:
        pass

    @abstractmethod
    def list_incomes(
        self,
        owner_id: UUID,
        account_id: Optional[UUID] = None,
        category_id: Optional[UUID] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Income]:
        """
        List incomes with optional filters, newest first.

        Args:
            account_id: Only incomes funding this account
            category_id: Only incomes in this category
            start: Only incomes on or after this instant
            end: Only incomes on or before this instant
        """
        pass

    @abstractmethod
    def create_income(self, income: Income) -> Income:
        pass

    @abstractmethod
    def update_income(self, income: Income) -> Income:
        pass

    @abstractmethod
    def delete_income(self, owner_id: UUID, income_id: UUID) -> bool:
        pass

    # =========================================================================
    # EXPENSES
    # =========================================================================

    @abstractmethod
    def get_expense(self, owner_id: UUID, expense_id: UUID) -> Optional[Expense]:
        pass

    @abstractmethod
    def list_expenses(
        self,
        owner_id: UUID,
        account_id: Optional[UUID] = None,
        category_id: Optional[UUID] = None,
        budget_id: Optional[UUID] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Expense]:
        """List expenses with optional filters, newest first."""
        pass

    @abstractmethod
    def create_expense(self, expense: Expense) -> Expense:
        pass

    @abstractmethod
    def update_expense(self, expense: Expense) -> Expense:
        pass

    @abstractmethod
    def delete_expense(self, owner_id: UUID, expense_id: UUID) -> bool:
        pass

    # =========================================================================
    # TRANSFERS
    # =========================================================================

    @abstractmethod
    def get_transfer(self, owner_id: UUID, transfer_id: UUID) -> Optional[Transfer]:
        pass

    @abstractmethod
    def list_transfers(
        self,
        owner_id: UUID,
        account_id: Optional[UUID] = None,
        from_account_id: Optional[UUID] = None,
        to_account_id: Optional[UUID] = None,
        income_id: Optional[UUID] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Transfer]:
        """
        List transfers with optional filters, newest first.

        Args:
            account_id: Transfers with this account on either side
            from_account_id: Transfers out of this account
            to_account_id: Transfers into this account
            income_id: Allocation transfers cascaded from this income
        """
        pass

    @abstractmethod
    def create_transfer(self, transfer: Transfer) -> Transfer:
        pass

    @abstractmethod
    def delete_transfer(self, owner_id: UUID, transfer_id: UUID) -> bool:
        pass

    # =========================================================================
    # BUDGETS
    # =========================================================================

    @abstractmethod
    def get_budget(self, owner_id: UUID, budget_id: UUID) -> Optional[Budget]:
        pass

    @abstractmethod
    def find_budget(
        self,
        owner_id: UUID,
        category_id: UUID,
        month: datetime,
    ) -> Optional[Budget]:
        """Budget for a category in the month starting at `month`."""
        pass

    @abstractmethod
    def list_budgets(
        self,
        owner_id: UUID,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        category_id: Optional[UUID] = None,
    ) -> list[Budget]:
        """List budgets whose month falls in [start, end], oldest month first."""
        pass

    @abstractmethod
    def create_budget(self, budget: Budget) -> Budget:
        """
        Raises:
            DuplicateError: If the category already has a budget that month
        """
        pass

    @abstractmethod
    def update_budget(self, budget: Budget) -> Budget:
        pass

    @abstractmethod
    def delete_budget(self, owner_id: UUID, budget_id: UUID) -> bool:
        pass

    # =========================================================================
    # AGGREGATIONS
    # =========================================================================

    @abstractmethod
    def sum_by_category(
        self,
        owner_id: UUID,
        kind: TransactionKind,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> dict[UUID, Decimal]:
        """
        Total amount per category id for incomes or expenses in a range.

        Returns:
            {category_id: total}, categories with no records omitted
        """
        pass

    @abstractmethod
    def sum_by_month(
        self,
        owner_id: UUID,
        kind: TransactionKind,
        start: datetime,
        end: datetime,
        tz: tzinfo,
    ) -> dict[datetime, Decimal]:
        """
        Total amount per month for incomes or expenses in a range.

        Returns:
            {month_start_in_tz: total}, months with no records omitted
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """All events of one user action, in chronological order."""
        pass

    @abstractmethod
    def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """All events for one entity, in chronological order."""
        pass

    @abstractmethod
    def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Most recent events, newest first."""
        pass


# =============================================================================
# AGGREGATION HELPERS
# =============================================================================

def total_by_category(records: Iterable[Union[Income, Expense]]) -> dict[UUID, Decimal]:
    totals: dict[UUID, Decimal] = defaultdict(lambda: Decimal("0"))
    for record in records:
        totals[record.category_id] += record.amount
    return dict(totals)


def total_by_month(
    records: Iterable[Union[Income, Expense]],
    tz: tzinfo,
) -> dict[datetime, Decimal]:
    totals: dict[datetime, Decimal] = defaultdict(lambda: Decimal("0"))
    for record in records:
        totals[month_start(record.occurred_at, tz)] += record.amount
    return dict(totals)


def in_range(
    moment: datetime,
    start: Optional[datetime],
    end: Optional[datetime],
) -> bool:
    if start is not None and moment < start:
        return False
    if end is not None and moment > end:
        return False
    return True


def newest_first(records: list) -> list:
    """Order transaction records by date, then creation time, newest first."""
    return sorted(records, key=lambda r: (r.occurred_at, r.created_at), reverse=True)


# =============================================================================
# EXCEPTIONS
# =============================================================================

class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConstraintError(StorageError):
    """A write would leave a dangling reference."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
