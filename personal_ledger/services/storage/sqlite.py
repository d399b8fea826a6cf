"""
SQLite Storage Implementation

Persistent ledger and audit storage on a single SQLite file.

Conventions:
- Money is stored as decimal strings, never REAL, so balances survive
  a round trip exactly.
- Datetimes are stored as UTC ISO-8601 strings with microseconds, so
  string order is chronological order.
- Foreign keys are enforced; accounts referenced by a transaction
  cannot be deleted (ON DELETE RESTRICT).

Unit of work:
- The outermost unit issues BEGIN IMMEDIATE, taking the write lock up
  front so concurrent balance increments serialize instead of losing
  updates.
- Any exception inside the block rolls the whole unit back.
"""

import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone, tzinfo
from decimal import Decimal
from enum import Enum
from typing import Iterator, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from personal_ledger.config import StorageSettings, get_settings
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
    ConnectionError,
    ConstraintError,
    DuplicateError,
    LedgerStorageInterface,
    StorageError,
    total_by_category,
    total_by_month,
)
from personal_ledger.utils.dates import utcnow


logger = structlog.get_logger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS accounts (
    id                    TEXT PRIMARY KEY,
    owner_id              TEXT NOT NULL,
    name                  TEXT NOT NULL,
    type                  TEXT NOT NULL,
    is_liability          INTEGER NOT NULL DEFAULT 0,
    currency              TEXT NOT NULL,
    balance               TEXT NOT NULL,
    opening_balance       TEXT NOT NULL,
    credit_limit          TEXT,
    icon                  TEXT,
    color                 TEXT,
    target_amount         TEXT,
    fund_calculation_mode TEXT,
    fund_threshold_low    TEXT,
    fund_threshold_mid    TEXT,
    fund_threshold_high   TEXT,
    is_archived           INTEGER NOT NULL DEFAULT 0,
    created_at            TEXT NOT NULL,
    updated_at            TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS categories (
    id       TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    name     TEXT NOT NULL,
    type     TEXT NOT NULL CHECK(type IN ('INCOME', 'EXPENSE')),
    icon     TEXT,
    color    TEXT,
    UNIQUE (owner_id, name, type)
);

CREATE TABLE IF NOT EXISTS budgets (
    id          TEXT PRIMARY KEY,
    owner_id    TEXT NOT NULL,
    name        TEXT,
    amount      TEXT NOT NULL,
    category_id TEXT NOT NULL REFERENCES categories(id) ON DELETE RESTRICT,
    month       TEXT NOT NULL,
    created_at  TEXT NOT NULL,
    UNIQUE (owner_id, category_id, month)
);

CREATE TABLE IF NOT EXISTS incomes (
    id               TEXT PRIMARY KEY,
    owner_id         TEXT NOT NULL,
    amount           TEXT NOT NULL,
    description      TEXT,
    occurred_at      TEXT NOT NULL,
    created_at       TEXT NOT NULL,
    updated_at       TEXT NOT NULL,
    category_id      TEXT NOT NULL REFERENCES categories(id) ON DELETE RESTRICT,
    account_id       TEXT REFERENCES accounts(id) ON DELETE RESTRICT,
    is_recurring     INTEGER NOT NULL DEFAULT 0,
    recurring_period TEXT
);

CREATE TABLE IF NOT EXISTS transfers (
    id              TEXT PRIMARY KEY,
    owner_id        TEXT NOT NULL,
    amount          TEXT NOT NULL,
    description     TEXT,
    occurred_at     TEXT NOT NULL,
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL,
    fee             TEXT NOT NULL DEFAULT '0',
    from_account_id TEXT NOT NULL REFERENCES accounts(id) ON DELETE RESTRICT,
    to_account_id   TEXT NOT NULL REFERENCES accounts(id) ON DELETE RESTRICT,
    fee_expense_id  TEXT REFERENCES expenses(id) DEFERRABLE INITIALLY DEFERRED,
    income_id       TEXT REFERENCES incomes(id) ON DELETE RESTRICT,
    allocation      TEXT,
    CHECK (from_account_id <> to_account_id)
);

CREATE TABLE IF NOT EXISTS expenses (
    id               TEXT PRIMARY KEY,
    owner_id         TEXT NOT NULL,
    amount           TEXT NOT NULL,
    description      TEXT,
    occurred_at      TEXT NOT NULL,
    created_at       TEXT NOT NULL,
    updated_at       TEXT NOT NULL,
    category_id      TEXT NOT NULL REFERENCES categories(id) ON DELETE RESTRICT,
    account_id       TEXT NOT NULL REFERENCES accounts(id) ON DELETE RESTRICT,
    budget_id        TEXT REFERENCES budgets(id) ON DELETE RESTRICT,
    notes            TEXT,
    is_recurring     INTEGER NOT NULL DEFAULT 0,
    recurring_period TEXT,
    transfer_id      TEXT REFERENCES transfers(id) DEFERRABLE INITIALLY DEFERRED
);

CREATE INDEX IF NOT EXISTS idx_incomes_owner_date ON incomes(owner_id, occurred_at);
CREATE INDEX IF NOT EXISTS idx_expenses_owner_date ON expenses(owner_id, occurred_at);
CREATE INDEX IF NOT EXISTS idx_transfers_owner_date ON transfers(owner_id, occurred_at);

CREATE TABLE IF NOT EXISTS audit_events (
    event_id       TEXT PRIMARY KEY,
    timestamp      TEXT NOT NULL,
    event_type     TEXT NOT NULL,
    severity       TEXT NOT NULL,
    owner_id       TEXT,
    entity_type    TEXT,
    entity_id      TEXT,
    correlation_id TEXT,
    description    TEXT NOT NULL,
    details        TEXT NOT NULL,
    error_message  TEXT
);
"""


# =============================================================================
# VALUE CONVERSION
# =============================================================================

def to_db(value):
    """Python value -> SQLite parameter."""
    if value is None:
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, datetime):
        return value.astimezone(timezone.utc).isoformat(timespec="microseconds")
    return value


def model_to_row(model: BaseModel) -> dict:
    return {name: to_db(getattr(model, name)) for name in type(model).model_fields}


class SQLiteClient:
    """
    Low-level SQLite connection wrapper.

    Handles connection setup with retry and owns the lock that every
    statement and unit of work goes through.
    """

    def __init__(self, settings: Optional[StorageSettings] = None):
        self._settings = settings or get_settings().storage
        self._conn: Optional[sqlite3.Connection] = None
        self.lock = threading.RLock()
        self.depth = 0

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self._settings.sqlite_path,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.executescript(SCHEMA)
        return conn

    def connect(self) -> sqlite3.Connection:
        """Open the database and create the schema if needed."""
        if self._conn is None:
            retryer = Retrying(
                stop=stop_after_attempt(self._settings.connect_attempts),
                wait=wait_exponential(multiplier=1, min=2, max=10),
                retry=retry_if_exception_type(sqlite3.OperationalError),
                reraise=True,
            )
            try:
                self._conn = retryer(self._open)
            except sqlite3.Error as e:
                raise ConnectionError(f"Failed to open {self._settings.sqlite_path}: {e}")
            logger.info("sqlite_connected", path=self._settings.sqlite_path)
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def execute(self, sql: str, params=()) -> sqlite3.Cursor:
        with self.lock:
            try:
                return self.connect().execute(sql, params)
            except sqlite3.IntegrityError as e:
                message = str(e)
                if "UNIQUE" in message or "PRIMARY KEY" in message:
                    raise DuplicateError(message)
                raise ConstraintError(message)
            except sqlite3.Error as e:
                raise StorageError(f"SQLite error: {e}")

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self.lock:
            if self.depth > 0:
                self.depth += 1
                try:
                    yield
                finally:
                    self.depth -= 1
                return

            conn = self.connect()
            conn.execute("BEGIN IMMEDIATE")
            self.depth = 1
            try:
                yield
                try:
                    conn.execute("COMMIT")
                except sqlite3.IntegrityError as e:
                    raise ConstraintError(str(e))
                except sqlite3.Error as e:
                    raise StorageError(f"SQLite commit failed: {e}")
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
            finally:
                self.depth = 0


class SQLiteLedgerStorage(LedgerStorageInterface):
    """Ledger storage on SQLite."""

    def __init__(self, client: Optional[SQLiteClient] = None):
        self._client = client or SQLiteClient()
        self._client.connect()

    @contextmanager
    def unit_of_work(self) -> Iterator[None]:
        with self._client.transaction():
            yield

    # =========================================================================
    # INTERNAL HELPERS
    # =========================================================================

    def _insert(self, table: str, model: BaseModel):
        row = model_to_row(model)
        columns = ", ".join(row)
        placeholders = ", ".join(f":{name}" for name in row)
        self._client.execute(
            f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
            row,
        )
        return model.model_copy(deep=True)

    def _update(self, table: str, model: BaseModel, exclude: tuple = ()):
        row = model_to_row(model)
        assignments = ", ".join(
            f"{name} = :{name}" for name in row if name not in ("id", "owner_id") + exclude
        )
        cursor = self._client.execute(
            f"UPDATE {table} SET {assignments} WHERE id = :id AND owner_id = :owner_id",
            {k: v for k, v in row.items() if k not in exclude},
        )
        if cursor.rowcount == 0:
            raise StorageError(f"{table} record {model.id} does not exist")

    def _delete(self, table: str, owner_id: UUID, record_id: UUID) -> bool:
        cursor = self._client.execute(
            f"DELETE FROM {table} WHERE id = ? AND owner_id = ?",
            (str(record_id), str(owner_id)),
        )
        return cursor.rowcount > 0

    def _fetch_one(self, model_cls, table: str, owner_id: UUID, record_id: UUID):
        row = self._client.execute(
            f"SELECT * FROM {table} WHERE id = ? AND owner_id = ?",
            (str(record_id), str(owner_id)),
        ).fetchone()
        return model_cls.model_validate(dict(row)) if row else None

    def _select(
        self,
        model_cls,
        table: str,
        owner_id: UUID,
        filters: dict,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        date_column: str = "occurred_at",
        order: str = "occurred_at DESC, created_at DESC",
    ) -> list:
        clauses = ["owner_id = ?"]
        params: list = [str(owner_id)]
        for column, value in filters.items():
            if value is None:
                continue
            if column == "account_id" and table == "transfers":
                clauses.append("(from_account_id = ? OR to_account_id = ?)")
                params.extend([to_db(value), to_db(value)])
                continue
            clauses.append(f"{column} = ?")
            params.append(to_db(value))
        if start is not None:
            clauses.append(f"{date_column} >= ?")
            params.append(to_db(start))
        if end is not None:
            clauses.append(f"{date_column} <= ?")
            params.append(to_db(end))
        rows = self._client.execute(
            f"SELECT * FROM {table} WHERE {' AND '.join(clauses)} ORDER BY {order}",
            params,
        ).fetchall()
        return [model_cls.model_validate(dict(row)) for row in rows]

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    def get_account(self, owner_id: UUID, account_id: UUID) -> Optional[Account]:
        return self._fetch_one(Account, "accounts", owner_id, account_id)

    def list_accounts(self, owner_id: UUID, include_archived: bool = True) -> list[Account]:
        filters = {} if include_archived else {"is_archived": False}
        return self._select(
            Account, "accounts", owner_id, filters, order="created_at ASC"
        )

    def create_account(self, account: Account) -> Account:
        return self._insert("accounts", account)

    def update_account(self, account: Account) -> Account:
        updated = account.model_copy(update={"updated_at": utcnow()})
        self._update("accounts", updated, exclude=("balance",))
        return self.get_account(account.owner_id, account.id)

    def delete_account(self, owner_id: UUID, account_id: UUID) -> bool:
        return self._delete("accounts", owner_id, account_id)

    def increment_balance(self, owner_id: UUID, account_id: UUID, delta: Decimal) -> Account:
        with self._client.transaction():
            account = self.get_account(owner_id, account_id)
            if account is None:
                raise StorageError(f"accounts record {account_id} does not exist")
            self._client.execute(
                "UPDATE accounts SET balance = ?, updated_at = ? WHERE id = ? AND owner_id = ?",
                (
                    str(account.balance + delta),
                    to_db(utcnow()),
                    str(account_id),
                    str(owner_id),
                ),
            )
            return self.get_account(owner_id, account_id)

    def count_account_references(self, owner_id: UUID, account_id: UUID) -> int:
        params = {"owner": str(owner_id), "account": str(account_id)}
        row = self._client.execute(
            """
            SELECT
                (SELECT COUNT(*) FROM incomes
                 WHERE owner_id = :owner AND account_id = :account)
              + (SELECT COUNT(*) FROM expenses
                 WHERE owner_id = :owner AND account_id = :account)
              + (SELECT COUNT(*) FROM transfers
                 WHERE owner_id = :owner
                   AND (from_account_id = :account OR to_account_id = :account))
            """,
            params,
        ).fetchone()
        return row[0]

    # =========================================================================
    # CATEGORIES
    # =========================================================================

    def get_category(self, owner_id: UUID, category_id: UUID) -> Optional[Category]:
        return self._fetch_one(Category, "categories", owner_id, category_id)

    def find_category(
        self,
        owner_id: UUID,
        name: str,
        category_type: CategoryType,
    ) -> Optional[Category]:
        row = self._client.execute(
            "SELECT * FROM categories WHERE owner_id = ? AND name = ? AND type = ?",
            (str(owner_id), name, category_type.value),
        ).fetchone()
        return Category.model_validate(dict(row)) if row else None

    def list_categories(
        self,
        owner_id: UUID,
        category_type: Optional[CategoryType] = None,
    ) -> list[Category]:
        return self._select(
            Category, "categories", owner_id, {"type": category_type}, order="name ASC"
        )

    def create_category(self, category: Category) -> Category:
        return self._insert("categories", category)

    def update_category(self, category: Category) -> Category:
        self._update("categories", category)
        return category.model_copy(deep=True)

    def delete_category(self, owner_id: UUID, category_id: UUID) -> bool:
        return self._delete("categories", owner_id, category_id)

    # =========================================================================
    # INCOMES
    # =========================================================================

    def get_income(self, owner_id: UUID, income_id: UUID) -> Optional[Income]:
        return self._fetch_one(Income, "incomes", owner_id, income_id)

    def list_incomes(
        self,
        owner_id: UUID,
        account_id: Optional[UUID] = None,
        category_id: Optional[UUID] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Income]:
        return self._select(
            Income, "incomes", owner_id,
            {"account_id": account_id, "category_id": category_id},
            start, end,
        )

    def create_income(self, income: Income) -> Income:
        return self._insert("incomes", income)

    def update_income(self, income: Income) -> Income:
        self._update("incomes", income)
        return income.model_copy(deep=True)

    def delete_income(self, owner_id: UUID, income_id: UUID) -> bool:
        return self._delete("incomes", owner_id, income_id)

    # =========================================================================
    # EXPENSES
    # =========================================================================

    def get_expense(self, owner_id: UUID, expense_id: UUID) -> Optional[Expense]:
        return self._fetch_one(Expense, "expenses", owner_id, expense_id)

    def list_expenses(
        self,
        owner_id: UUID,
        account_id: Optional[UUID] = None,
        category_id: Optional[UUID] = None,
        budget_id: Optional[UUID] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Expense]:
        return self._select(
            Expense, "expenses", owner_id,
            {"account_id": account_id, "category_id": category_id, "budget_id": budget_id},
            start, end,
        )

    def create_expense(self, expense: Expense) -> Expense:
        return self._insert("expenses", expense)

    def update_expense(self, expense: Expense) -> Expense:
        self._update("expenses", expense)
        return expense.model_copy(deep=True)

    def delete_expense(self, owner_id: UUID, expense_id: UUID) -> bool:
        return self._delete("expenses", owner_id, expense_id)

    # =========================================================================
    # TRANSFERS
    # =========================================================================

    def get_transfer(self, owner_id: UUID, transfer_id: UUID) -> Optional[Transfer]:
        return self._fetch_one(Transfer, "transfers", owner_id, transfer_id)

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
        return self._select(
            Transfer, "transfers", owner_id,
            {
                "account_id": account_id,
                "from_account_id": from_account_id,
                "to_account_id": to_account_id,
                "income_id": income_id,
            },
            start, end,
        )

    def create_transfer(self, transfer: Transfer) -> Transfer:
        return self._insert("transfers", transfer)

    def delete_transfer(self, owner_id: UUID, transfer_id: UUID) -> bool:
        return self._delete("transfers", owner_id, transfer_id)

    # =========================================================================
    # BUDGETS
    # =========================================================================

    def get_budget(self, owner_id: UUID, budget_id: UUID) -> Optional[Budget]:
        return self._fetch_one(Budget, "budgets", owner_id, budget_id)

    def find_budget(
        self,
        owner_id: UUID,
        category_id: UUID,
        month: datetime,
    ) -> Optional[Budget]:
        row = self._client.execute(
            "SELECT * FROM budgets WHERE owner_id = ? AND category_id = ? AND month = ?",
            (str(owner_id), str(category_id), to_db(month)),
        ).fetchone()
        return Budget.model_validate(dict(row)) if row else None

    def list_budgets(
        self,
        owner_id: UUID,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        category_id: Optional[UUID] = None,
    ) -> list[Budget]:
        return self._select(
            Budget, "budgets", owner_id, {"category_id": category_id},
            start, end, date_column="month", order="month ASC, created_at ASC",
        )

    def create_budget(self, budget: Budget) -> Budget:
        return self._insert("budgets", budget)

    def update_budget(self, budget: Budget) -> Budget:
        self._update("budgets", budget)
        return budget.model_copy(deep=True)

    def delete_budget(self, owner_id: UUID, budget_id: UUID) -> bool:
        return self._delete("budgets", owner_id, budget_id)

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


class SQLiteAuditStorage(AuditStorageInterface):
    """Append-only audit log in the same SQLite file."""

    def __init__(self, client: Optional[SQLiteClient] = None):
        self._client = client or SQLiteClient()
        self._client.connect()

    def append_event(self, event: AuditEvent) -> bool:
        row = model_to_row(event)
        row["details"] = json.dumps(event.details, default=str)
        columns = ", ".join(row)
        placeholders = ", ".join(f":{name}" for name in row)
        self._client.execute(
            f"INSERT INTO audit_events ({columns}) VALUES ({placeholders})",
            row,
        )
        return True

    def _events(self, where: str, params, order: str, limit: Optional[int] = None) -> list[AuditEvent]:
        sql = f"SELECT * FROM audit_events WHERE {where} ORDER BY {order}"
        if limit is not None:
            sql += f" LIMIT {int(limit)}"
        rows = self._client.execute(sql, params).fetchall()
        events = []
        for row in rows:
            data = dict(row)
            data["details"] = json.loads(data["details"]) if data["details"] else {}
            events.append(AuditEvent.model_validate(data))
        return events

    def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        return self._events("correlation_id = ?", (str(correlation_id),), "timestamp ASC")

    def get_events_by_entity(self, entity_type: str, entity_id: UUID) -> list[AuditEvent]:
        return self._events(
            "entity_type = ? AND entity_id = ?",
            (entity_type, str(entity_id)),
            "timestamp ASC",
        )

    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return self._events("1 = 1", (), "timestamp DESC", limit=limit)
