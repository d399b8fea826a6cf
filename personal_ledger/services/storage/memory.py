"""
In-Memory Storage Implementation

Dict-backed store used by the test suite and for throwaway sessions.

Unit of work:
- A re-entrant lock serializes units of work, so two threads never
  interleave their balance increments.
- The outermost unit snapshots every table on entry and restores the
  snapshot if the block raises.

Stored records are never mutated in place; every write stores a fresh
copy, so a snapshot only needs to copy the table dicts.
"""

import threading
from contextlib import contextmanager
from datetime import datetime, tzinfo
from decimal import Decimal
from typing import Iterator, Optional
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
from personal_ledger.services.storage.interface import (
    AuditStorageInterface,
    ConstraintError,
    DuplicateError,
    LedgerStorageInterface,
    StorageError,
    in_range,
    newest_first,
    total_by_category,
    total_by_month,
)
from personal_ledger.utils.dates import utcnow


_TABLES = ("accounts", "categories", "incomes", "expenses", "transfers", "budgets")


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Ledger storage held in process memory."""

    def __init__(self):
        self._lock = threading.RLock()
        self._depth = 0
        self._tables: dict[str, dict[UUID, object]] = {name: {} for name in _TABLES}

    # =========================================================================
    # UNIT OF WORK
    # =========================================================================

    @contextmanager
    def unit_of_work(self) -> Iterator[None]:
        with self._lock:
            if self._depth > 0:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return

            snapshot = {name: dict(table) for name, table in self._tables.items()}
            self._depth = 1
            try:
                yield
            except BaseException:
                self._tables = snapshot
                raise
            finally:
                self._depth = 0

    # =========================================================================
    # INTERNAL HELPERS
    # =========================================================================

    def _get(self, table: str, owner_id: UUID, record_id: UUID):
        record = self._tables[table].get(record_id)
        if record is None or record.owner_id != owner_id:
            return None
        return record.model_copy(deep=True)

    def _owned(self, table: str, owner_id: UUID) -> list:
        return [
            record.model_copy(deep=True)
            for record in self._tables[table].values()
            if record.owner_id == owner_id
        ]

    def _insert(self, table: str, record):
        with self._lock:
            if record.id in self._tables[table]:
                raise DuplicateError(f"{table} record {record.id} already exists")
            self._tables[table][record.id] = record.model_copy(deep=True)
            return record.model_copy(deep=True)

    def _replace(self, table: str, record):
        with self._lock:
            existing = self._tables[table].get(record.id)
            if existing is None or existing.owner_id != record.owner_id:
                raise StorageError(f"{table} record {record.id} does not exist")
            self._tables[table][record.id] = record.model_copy(deep=True)
            return record.model_copy(deep=True)

    def _remove(self, table: str, owner_id: UUID, record_id: UUID) -> bool:
        with self._lock:
            existing = self._tables[table].get(record_id)
            if existing is None or existing.owner_id != owner_id:
                return False
            del self._tables[table][record_id]
            return True

    def _require(self, table: str, owner_id: UUID, record_id: Optional[UUID]) -> None:
        if record_id is None:
            return
        existing = self._tables[table].get(record_id)
        if existing is None or existing.owner_id != owner_id:
            raise ConstraintError(f"{table} record {record_id} does not exist")

    def _check_transaction_refs(self, record) -> None:
        self._require("categories", record.owner_id, record.category_id)
        self._require("accounts", record.owner_id, record.account_id)
        if isinstance(record, Expense):
            self._require("budgets", record.owner_id, record.budget_id)

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    def get_account(self, owner_id: UUID, account_id: UUID) -> Optional[Account]:
        return self._get("accounts", owner_id, account_id)

    def list_accounts(self, owner_id: UUID, include_archived: bool = True) -> list[Account]:
        accounts = [
            a for a in self._owned("accounts", owner_id)
            if include_archived or not a.is_archived
        ]
        return sorted(accounts, key=lambda a: a.created_at)

    def create_account(self, account: Account) -> Account:
        return self._insert("accounts", account)

    def update_account(self, account: Account) -> Account:
        with self._lock:
            existing = self._tables["accounts"].get(account.id)
            if existing is None or existing.owner_id != account.owner_id:
                raise StorageError(f"accounts record {account.id} does not exist")
            stored = account.model_copy(
                update={"balance": existing.balance, "updated_at": utcnow()},
                deep=True,
            )
            self._tables["accounts"][account.id] = stored
            return stored.model_copy(deep=True)

    def delete_account(self, owner_id: UUID, account_id: UUID) -> bool:
        with self._lock:
            if self.count_account_references(owner_id, account_id):
                raise ConstraintError(f"Account {account_id} is referenced by transactions")
            return self._remove("accounts", owner_id, account_id)

    def increment_balance(self, owner_id: UUID, account_id: UUID, delta: Decimal) -> Account:
        with self._lock:
            existing = self._tables["accounts"].get(account_id)
            if existing is None or existing.owner_id != owner_id:
                raise StorageError(f"accounts record {account_id} does not exist")
            stored = existing.model_copy(
                update={"balance": existing.balance + delta, "updated_at": utcnow()},
                deep=True,
            )
            self._tables["accounts"][account_id] = stored
            return stored.model_copy(deep=True)

    def count_account_references(self, owner_id: UUID, account_id: UUID) -> int:
        count = 0
        for income in self._tables["incomes"].values():
            if income.owner_id == owner_id and income.account_id == account_id:
                count += 1
        for expense in self._tables["expenses"].values():
            if expense.owner_id == owner_id and expense.account_id == account_id:
                count += 1
        for transfer in self._tables["transfers"].values():
            if transfer.owner_id == owner_id and account_id in (
                transfer.from_account_id, transfer.to_account_id
            ):
                count += 1
        return count

    # =========================================================================
    # CATEGORIES
    # =========================================================================

    def get_category(self, owner_id: UUID, category_id: UUID) -> Optional[Category]:
        return self._get("categories", owner_id, category_id)

    def find_category(
        self,
        owner_id: UUID,
        name: str,
        category_type: CategoryType,
    ) -> Optional[Category]:
        for category in self._tables["categories"].values():
            if (
                category.owner_id == owner_id
                and category.name == name
                and category.type == category_type
            ):
                return category.model_copy(deep=True)
        return None

    def list_categories(
        self,
        owner_id: UUID,
        category_type: Optional[CategoryType] = None,
    ) -> list[Category]:
        categories = [
            c for c in self._owned("categories", owner_id)
            if category_type is None or c.type == category_type
        ]
        return sorted(categories, key=lambda c: c.name)

    def _check_category_unique(self, category: Category) -> None:
        existing = self.find_category(category.owner_id, category.name, category.type)
        if existing is not None and existing.id != category.id:
            raise DuplicateError(f"Category '{category.name}' already exists")

    def create_category(self, category: Category) -> Category:
        with self._lock:
            self._check_category_unique(category)
            return self._insert("categories", category)

    def update_category(self, category: Category) -> Category:
        with self._lock:
            self._check_category_unique(category)
            return self._replace("categories", category)

    def delete_category(self, owner_id: UUID, category_id: UUID) -> bool:
        with self._lock:
            for table in ("incomes", "expenses", "budgets"):
                for record in self._tables[table].values():
                    if record.owner_id == owner_id and record.category_id == category_id:
                        raise ConstraintError(f"Category {category_id} is referenced by {table}")
            return self._remove("categories", owner_id, category_id)

    # =========================================================================
    # INCOMES
    # =========================================================================

    def get_income(self, owner_id: UUID, income_id: UUID) -> Optional[Income]:
        return self._get("incomes", owner_id, income_id)

    def list_incomes(
        self,
        owner_id: UUID,
        account_id: Optional[UUID] = None,
        category_id: Optional[UUID] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Income]:
        incomes = [
            i for i in self._owned("incomes", owner_id)
            if (account_id is None or i.account_id == account_id)
            and (category_id is None or i.category_id == category_id)
            and in_range(i.occurred_at, start, end)
        ]
        return newest_first(incomes)

    def create_income(self, income: Income) -> Income:
        with self._lock:
            self._check_transaction_refs(income)
            return self._insert("incomes", income)

    def update_income(self, income: Income) -> Income:
        with self._lock:
            self._check_transaction_refs(income)
            return self._replace("incomes", income)

    def delete_income(self, owner_id: UUID, income_id: UUID) -> bool:
        with self._lock:
            for transfer in self._tables["transfers"].values():
                if transfer.income_id == income_id:
                    raise ConstraintError(f"Income {income_id} still has allocation transfers")
            return self._remove("incomes", owner_id, income_id)

    # =========================================================================
    # EXPENSES
    # =========================================================================

    def get_expense(self, owner_id: UUID, expense_id: UUID) -> Optional[Expense]:
        return self._get("expenses", owner_id, expense_id)

    def list_expenses(
        self,
        owner_id: UUID,
        account_id: Optional[UUID] = None,
        category_id: Optional[UUID] = None,
        budget_id: Optional[UUID] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Expense]:
        expenses = [
            e for e in self._owned("expenses", owner_id)
            if (account_id is None or e.account_id == account_id)
            and (category_id is None or e.category_id == category_id)
            and (budget_id is None or e.budget_id == budget_id)
            and in_range(e.occurred_at, start, end)
        ]
        return newest_first(expenses)

    def create_expense(self, expense: Expense) -> Expense:
        with self._lock:
            self._check_transaction_refs(expense)
            return self._insert("expenses", expense)

    def update_expense(self, expense: Expense) -> Expense:
        with self._lock:
            self._check_transaction_refs(expense)
            return self._replace("expenses", expense)

    def delete_expense(self, owner_id: UUID, expense_id: UUID) -> bool:
        return self._remove("expenses", owner_id, expense_id)

    # =========================================================================
    # TRANSFERS
    # =========================================================================

    def get_transfer(self, owner_id: UUID, transfer_id: UUID) -> Optional[Transfer]:
        return self._get("transfers", owner_id, transfer_id)

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
        transfers = [
            t for t in self._owned("transfers", owner_id)
            if (account_id is None or account_id in (t.from_account_id, t.to_account_id))
            and (from_account_id is None or t.from_account_id == from_account_id)
            and (to_account_id is None or t.to_account_id == to_account_id)
            and (income_id is None or t.income_id == income_id)
            and in_range(t.occurred_at, start, end)
        ]
        return newest_first(transfers)

    def create_transfer(self, transfer: Transfer) -> Transfer:
        with self._lock:
            self._require("accounts", transfer.owner_id, transfer.from_account_id)
            self._require("accounts", transfer.owner_id, transfer.to_account_id)
            self._require("incomes", transfer.owner_id, transfer.income_id)
            return self._insert("transfers", transfer)

    def delete_transfer(self, owner_id: UUID, transfer_id: UUID) -> bool:
        return self._remove("transfers", owner_id, transfer_id)

    # =========================================================================
    # BUDGETS
    # =========================================================================

    def get_budget(self, owner_id: UUID, budget_id: UUID) -> Optional[Budget]:
        return self._get("budgets", owner_id, budget_id)

    def find_budget(
        self,
        owner_id: UUID,
        category_id: UUID,
        month: datetime,
    ) -> Optional[Budget]:
        for budget in self._tables["budgets"].values():
            if (
                budget.owner_id == owner_id
                and budget.category_id == category_id
                and budget.month == month
            ):
                return budget.model_copy(deep=True)
        return None

    def list_budgets(
        self,
        owner_id: UUID,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        category_id: Optional[UUID] = None,
    ) -> list[Budget]:
        budgets = [
            b for b in self._owned("budgets", owner_id)
            if (category_id is None or b.category_id == category_id)
            and in_range(b.month, start, end)
        ]
        return sorted(budgets, key=lambda b: (b.month, b.created_at))

    def _check_budget_unique(self, budget: Budget) -> None:
        existing = self.find_budget(budget.owner_id, budget.category_id, budget.month)
        if existing is not None and existing.id != budget.id:
            raise DuplicateError("A budget for this category and month already exists")

    def create_budget(self, budget: Budget) -> Budget:
        with self._lock:
            self._require("categories", budget.owner_id, budget.category_id)
            self._check_budget_unique(budget)
            return self._insert("budgets", budget)

    def update_budget(self, budget: Budget) -> Budget:
        with self._lock:
            self._require("categories", budget.owner_id, budget.category_id)
            self._check_budget_unique(budget)
            return self._replace("budgets", budget)

    def delete_budget(self, owner_id: UUID, budget_id: UUID) -> bool:
        with self._lock:
            for expense in self._tables["expenses"].values():
                if expense.budget_id == budget_id:
                    raise ConstraintError(f"Budget {budget_id} still has linked expenses")
            return self._remove("budgets", owner_id, budget_id)

    # =========================================================================
    # AGGREGATIONS
    # =========================================================================

    def _records(self, owner_id: UUID, kind: TransactionKind, start, end) -> list:
        if kind == TransactionKind.INCOME:
            return self.list_incomes(owner_id, start=start, end=end)
        return self.list_expenses(owner_id, start=start, end=end)

    def sum_by_category(
        self,
        owner_id: UUID,
        kind: TransactionKind,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> dict[UUID, Decimal]:
        return total_by_category(self._records(owner_id, kind, start, end))

    def sum_by_month(
        self,
        owner_id: UUID,
        kind: TransactionKind,
        start: datetime,
        end: datetime,
        tz: tzinfo,
    ) -> dict[datetime, Decimal]:
        return total_by_month(self._records(owner_id, kind, start, end), tz)


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log held in process memory."""

    def __init__(self):
        self._lock = threading.Lock()
        self._events: list[AuditEvent] = []

    def append_event(self, event: AuditEvent) -> bool:
        with self._lock:
            self._events.append(event.model_copy(deep=True))
        return True

    def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        return [e.model_copy(deep=True) for e in self._events if e.correlation_id == correlation_id]

    def get_events_by_entity(self, entity_type: str, entity_id: UUID) -> list[AuditEvent]:
        return [
            e.model_copy(deep=True) for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]

    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return [e.model_copy(deep=True) for e in reversed(self._events[-limit:])]
