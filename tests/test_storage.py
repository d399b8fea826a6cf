"""Tests for the storage backends and their unit-of-work contract."""

import pytest
from decimal import Decimal
from uuid import uuid4

from conftest import at
from personal_ledger.audit import AuditLogger
from personal_ledger.config import StorageSettings
from personal_ledger.errors import IntegrityError
from personal_ledger.models import (
    Account,
    AccountType,
    Budget,
    Category,
    CategoryType,
    CreateAccountInput,
    CreateExpenseInput,
    CreateIncomeInput,
    CreateTransferInput,
    TransactionKind,
)
from personal_ledger.orchestrator import PersonalLedger
from personal_ledger.services.storage import (
    DuplicateError,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    SQLiteLedgerStorage,
    StorageError,
    create_storage,
)


@pytest.fixture
def sqlite_pair(tmp_path):
    ledger_store, audit_store = create_storage(StorageSettings(
        backend="sqlite", sqlite_path=str(tmp_path / "ledger.db")
    ))
    yield ledger_store, audit_store
    ledger_store._client.close()


@pytest.fixture(params=["memory", "sqlite"])
def backend(request, tmp_path):
    """Each backend behind the same interface."""
    if request.param == "memory":
        return InMemoryLedgerStorage()
    store, _ = create_storage(StorageSettings(
        backend="sqlite", sqlite_path=str(tmp_path / "ledger.db")
    ))
    return store


class TestFactory:
    """create_storage picks the backend from settings."""

    def test_memory_default(self):
        """Test the in-memory pair."""
        store, audit = create_storage(StorageSettings(backend="memory"))
        assert isinstance(store, InMemoryLedgerStorage)
        assert isinstance(audit, InMemoryAuditStorage)

    def test_sqlite(self, sqlite_pair, tmp_path):
        """Test the SQLite pair shares one database file."""
        store, _ = sqlite_pair
        assert isinstance(store, SQLiteLedgerStorage)
        assert (tmp_path / "ledger.db").exists()


class TestStoreContract:
    """Behaviour both backends share."""

    def test_account_round_trip(self, backend):
        """Test that money and enums survive storage exactly."""
        owner_id = uuid4()
        account = Account(
            owner_id=owner_id,
            name="Visa",
            type=AccountType.CREDIT,
            currency="USD",
            balance=Decimal("123.45"),
            opening_balance=Decimal("123.45"),
            credit_limit=Decimal("2000"),
        )
        backend.create_account(account)
        stored = backend.get_account(owner_id, account.id)
        assert stored.balance == Decimal("123.45")
        assert stored.credit_limit == Decimal("2000")
        assert stored.is_liability
        assert stored.type == AccountType.CREDIT

    def test_other_owner_sees_nothing(self, backend):
        """Test owner scoping on reads."""
        owner_id = uuid4()
        account = Account(
            owner_id=owner_id, name="Cash", type=AccountType.CASH,
            currency="USD", balance=Decimal("0"), opening_balance=Decimal("0"),
        )
        backend.create_account(account)
        assert backend.get_account(uuid4(), account.id) is None
        assert backend.list_accounts(uuid4()) == []

    def test_increment_balance(self, backend):
        """Test atomic balance increments."""
        owner_id = uuid4()
        account = backend.create_account(Account(
            owner_id=owner_id, name="Cash", type=AccountType.CASH,
            currency="USD", balance=Decimal("10"), opening_balance=Decimal("10"),
        ))
        backend.increment_balance(owner_id, account.id, Decimal("-2.50"))
        assert backend.get_account(owner_id, account.id).balance == Decimal("7.50")

    def test_duplicate_category(self, backend):
        """Test uniqueness on (owner, name, type)."""
        owner_id = uuid4()
        backend.create_category(Category(owner_id=owner_id, name="Food", type=CategoryType.EXPENSE))
        backend.create_category(Category(owner_id=owner_id, name="Food", type=CategoryType.INCOME))
        with pytest.raises(DuplicateError):
            backend.create_category(Category(owner_id=owner_id, name="Food", type=CategoryType.EXPENSE))

    def test_duplicate_budget_month(self, backend):
        """Test uniqueness on (owner, category, month)."""
        owner_id = uuid4()
        category = backend.create_category(
            Category(owner_id=owner_id, name="Food", type=CategoryType.EXPENSE)
        )
        backend.create_budget(Budget(
            owner_id=owner_id, amount=Decimal("100"), category_id=category.id, month=at(2026, 3, 1)
        ))
        with pytest.raises(DuplicateError):
            backend.create_budget(Budget(
                owner_id=owner_id, amount=Decimal("50"), category_id=category.id, month=at(2026, 3, 9)
            ))

    def test_rollback_on_exception(self, backend):
        """Test that a failing unit of work leaves nothing behind."""
        owner_id = uuid4()
        account = backend.create_account(Account(
            owner_id=owner_id, name="Cash", type=AccountType.CASH,
            currency="USD", balance=Decimal("10"), opening_balance=Decimal("10"),
        ))
        with pytest.raises(RuntimeError):
            with backend.unit_of_work():
                backend.increment_balance(owner_id, account.id, Decimal("5"))
                backend.create_category(
                    Category(owner_id=owner_id, name="Food", type=CategoryType.EXPENSE)
                )
                raise RuntimeError("boom")
        assert backend.get_account(owner_id, account.id).balance == Decimal("10")
        assert backend.list_categories(owner_id) == []

    def test_missing_account_increment(self, backend):
        """Test that incrementing a missing account is a storage error."""
        with pytest.raises(StorageError):
            backend.increment_balance(uuid4(), uuid4(), Decimal("1"))


class TestSQLiteLedger:
    """The full ledger on a SQLite file."""

    @pytest.fixture
    def sqlite_ledger(self, sqlite_pair):
        store, audit_store = sqlite_pair
        return PersonalLedger(store, AuditLogger(audit_store)), audit_store

    def test_transfer_with_fee(self, sqlite_ledger):
        """Test the fee expense and transfer link each other on disk."""
        ledger, _ = sqlite_ledger
        owner_id = uuid4()
        a = ledger.accounts.create(owner_id, CreateAccountInput(
            name="A", type=AccountType.BANK, balance=Decimal("1000")
        ))
        b = ledger.accounts.create(owner_id, CreateAccountInput(
            name="B", type=AccountType.BANK, balance=Decimal("0")
        ))
        transfer = ledger.transfers.create(owner_id, CreateTransferInput(
            amount=Decimal("100"), fee=Decimal("10"), occurred_at=at(2026, 3),
            from_account_id=a.id, to_account_id=b.id,
        ))
        assert ledger.accounts.get(owner_id, a.id).balance == Decimal("890")
        assert ledger.expenses.get(owner_id, transfer.fee_expense_id).transfer_id == transfer.id

        ledger.transfers.delete(owner_id, transfer.id)
        assert ledger.accounts.get(owner_id, a.id).balance == Decimal("1000")
        assert ledger.accounts.get(owner_id, b.id).balance == Decimal("0")
        assert ledger.expenses.list(owner_id) == []

    def test_referenced_account_delete_rolls_back(self, sqlite_ledger):
        """Test that a foreign-key refusal surfaces as IntegrityError."""
        ledger, _ = sqlite_ledger
        owner_id = uuid4()
        account = ledger.accounts.create(owner_id, CreateAccountInput(
            name="Checking", type=AccountType.BANK, balance=Decimal("100")
        ))
        ledger.incomes.create(owner_id, CreateIncomeInput(
            amount=Decimal("5"), occurred_at=at(2026, 3), account_id=account.id,
            category_name="Gift",
        ))
        with pytest.raises(IntegrityError):
            ledger.accounts.delete(owner_id, account.id)
        assert ledger.accounts.get(owner_id, account.id).balance == Decimal("105")

    def test_audit_events_persisted(self, sqlite_ledger):
        """Test that committed mutations reach the audit table."""
        ledger, audit_store = sqlite_ledger
        owner_id = uuid4()
        account = ledger.accounts.create(owner_id, CreateAccountInput(
            name="Checking", type=AccountType.BANK, balance=Decimal("100")
        ))
        expense = ledger.expenses.create(owner_id, CreateExpenseInput(
            amount=Decimal("5"), occurred_at=at(2026, 3), account_id=account.id,
            category_name="Coffee",
        ))
        events = audit_store.get_events_by_entity("expense", expense.id)
        assert [e.event_type.value for e in events] == ["expense_created"]

    def test_monthly_sums(self, sqlite_ledger):
        """Test aggregation by month in the reference timezone."""
        ledger, _ = sqlite_ledger
        owner_id = uuid4()
        account = ledger.accounts.create(owner_id, CreateAccountInput(
            name="Checking", type=AccountType.BANK, balance=Decimal("0")
        ))
        for month in (1, 1, 2):
            ledger.incomes.create(owner_id, CreateIncomeInput(
                amount=Decimal("100"), occurred_at=at(2026, month), account_id=account.id,
                category_name="Salary",
            ))
        totals = ledger.storage.sum_by_month(
            owner_id, TransactionKind.INCOME, at(2026, 1, 1, 0), at(2026, 2, 28, 23), ledger.analytics.tz
        )
        assert sorted(totals.values()) == [Decimal("100"), Decimal("200")]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
