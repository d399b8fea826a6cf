"""Tests for account lifecycle and balance adjustment."""

import pytest
from decimal import Decimal

from conftest import at
from personal_ledger.errors import IntegrityError, NotFoundError, ValidationError
from personal_ledger.models import (
    AccountType,
    AdjustBalanceInput,
    CreateExpenseInput,
    CreateIncomeInput,
    Expense,
    FundCalculationMode,
    Income,
    UpdateAccountInput,
)


class TestAccountLifecycle:
    """Create, update, archive and delete."""

    def test_opening_balance_recorded(self, open_account):
        """Test that the initial balance is kept as the opening balance."""
        account = open_account("Checking", balance="250.50")
        assert account.balance == Decimal("250.50")
        assert account.opening_balance == Decimal("250.50")
        assert account.currency == "USD"

    def test_credit_forced_liability(self, open_account):
        """Test that CREDIT accounts are liabilities regardless of input."""
        card = open_account("Visa", AccountType.CREDIT, "0", credit_limit=Decimal("1000"))
        assert card.is_liability
        assert card.credit_limit == Decimal("1000")

    def test_type_change_clears_inapplicable_attributes(self, ledger, owner_id, open_account):
        """Test that fund attributes are dropped when leaving a fund type."""
        fund = open_account(
            "Rainy day",
            AccountType.EMERGENCY_FUND,
            "0",
            target_amount=Decimal("5000"),
            fund_calculation_mode=FundCalculationMode.TARGET_PROGRESS,
        )
        updated = ledger.accounts.update(owner_id, UpdateAccountInput(id=fund.id, type=AccountType.SAVINGS))
        assert updated.target_amount is None
        assert updated.fund_calculation_mode is None

    def test_update_rejects_misplaced_attribute(self, ledger, owner_id, open_account):
        """Test that a credit limit cannot be set on a bank account."""
        account = open_account("Checking", balance="0")
        with pytest.raises(ValidationError) as exc_info:
            ledger.accounts.update(owner_id, UpdateAccountInput(
                id=account.id, credit_limit=Decimal("100")
            ))
        assert exc_info.value.issues[0].field == "credit_limit"

    def test_update_never_touches_balance(self, ledger, owner_id, open_account, balance_of):
        """Test that metadata updates keep the balance."""
        account = open_account("Checking", balance="75")
        ledger.accounts.update(owner_id, UpdateAccountInput(id=account.id, name="Main"))
        assert balance_of(account) == Decimal("75")

    def test_archive_hides_from_listing(self, ledger, owner_id, open_account):
        """Test that archived accounts are listed only on request."""
        account = open_account("Old", balance="0")
        ledger.accounts.archive(owner_id, account.id)
        assert ledger.accounts.list(owner_id) == []
        assert [a.id for a in ledger.accounts.list(owner_id, include_archived=True)] == [account.id]

        ledger.accounts.unarchive(owner_id, account.id)
        assert len(ledger.accounts.list(owner_id)) == 1

    def test_delete_unused_account(self, ledger, owner_id, open_account):
        """Test that an account with no history can be deleted."""
        account = open_account("Temp", balance="0")
        ledger.accounts.delete(owner_id, account.id)
        with pytest.raises(NotFoundError):
            ledger.accounts.get(owner_id, account.id)

    def test_delete_referenced_account_refused(self, ledger, owner_id, open_account, audit_storage):
        """Test that an account with transactions cannot be deleted."""
        account = open_account("Checking", balance="100")
        ledger.expenses.create(owner_id, CreateExpenseInput(
            amount=Decimal("10"), occurred_at=at(2026, 3), account_id=account.id, category_name="Food"
        ))
        with pytest.raises(IntegrityError):
            ledger.accounts.delete(owner_id, account.id)
        assert ledger.accounts.get(owner_id, account.id).balance == Decimal("90")

        failures = [
            e for e in audit_storage.get_recent_events()
            if e.event_type.value == "unit_of_work_failed"
        ]
        assert len(failures) == 1
        assert failures[0].details["operation"] == "delete_account"


class TestBalanceAdjustment:
    """Adjustments record an ordinary transaction for the difference."""

    def test_asset_increase_is_income(self, ledger, owner_id, open_account, balance_of):
        """Test that raising an asset balance records an income."""
        account = open_account("Checking", balance="100")
        record = ledger.accounts.adjust_balance(owner_id, AdjustBalanceInput(
            account_id=account.id, new_balance=Decimal("130"), occurred_at=at(2026, 3)
        ))
        assert isinstance(record, Income)
        assert record.amount == Decimal("30")
        assert record.description == "Manual Balance Adjustment"
        assert ledger.categories.get(owner_id, record.category_id).name == "Initial Balance/Adjustment"
        assert balance_of(account) == Decimal("130")

    def test_asset_decrease_is_expense(self, ledger, owner_id, open_account, balance_of):
        """Test that lowering an asset balance records an expense."""
        account = open_account("Checking", balance="100")
        record = ledger.accounts.adjust_balance(owner_id, AdjustBalanceInput(
            account_id=account.id, new_balance=Decimal("60")
        ))
        assert isinstance(record, Expense)
        assert balance_of(account) == Decimal("60")

    def test_liability_more_owed_is_expense(self, ledger, owner_id, open_account, balance_of):
        """Test that a higher liability balance records an expense."""
        card = open_account("Visa", AccountType.CREDIT, "200")
        record = ledger.accounts.adjust_balance(owner_id, AdjustBalanceInput(
            account_id=card.id, new_balance=Decimal("260")
        ))
        assert isinstance(record, Expense)
        assert balance_of(card) == Decimal("260")

    def test_liability_less_owed_is_income(self, ledger, owner_id, open_account, balance_of):
        """Test that a lower liability balance records an income."""
        card = open_account("Visa", AccountType.CREDIT, "200")
        record = ledger.accounts.adjust_balance(owner_id, AdjustBalanceInput(
            account_id=card.id, new_balance=Decimal("50")
        ))
        assert isinstance(record, Income)
        assert balance_of(card) == Decimal("50")

    def test_same_balance_is_a_no_op(self, ledger, owner_id, open_account, balance_of):
        """Test that declaring the current balance records nothing."""
        account = open_account("Checking", balance="100")
        assert ledger.accounts.adjust_balance(owner_id, AdjustBalanceInput(
            account_id=account.id, new_balance=Decimal("100")
        )) is None
        assert ledger.incomes.list(owner_id) == []
        assert ledger.expenses.list(owner_id) == []
        assert balance_of(account) == Decimal("100")

    def test_adjustment_never_allocates(self, ledger, owner_id, open_account, balance_of):
        """Test that an adjustment income skips tithe and emergency fund."""
        account = open_account("Checking", balance="0")
        fund = open_account("Emergency", AccountType.EMERGENCY_FUND, "0")
        ledger.accounts.adjust_balance(owner_id, AdjustBalanceInput(
            account_id=account.id, new_balance=Decimal("1000")
        ))
        assert balance_of(account) == Decimal("1000")
        assert balance_of(fund) == Decimal("0")
        assert ledger.transfers.list(owner_id) == []

    def test_adjusted_income_is_deletable(self, ledger, owner_id, open_account, balance_of):
        """Test that an adjustment is an ordinary record."""
        account = open_account("Checking", balance="10")
        record = ledger.accounts.adjust_balance(owner_id, AdjustBalanceInput(
            account_id=account.id, new_balance=Decimal("25")
        ))
        ledger.incomes.delete(owner_id, record.id)
        assert balance_of(account) == Decimal("10")

    def test_income_category_not_shared_with_expense(self, ledger, owner_id, open_account):
        """Test that the reserved category exists once per type."""
        account = open_account("Checking", balance="100")
        up = ledger.accounts.adjust_balance(owner_id, AdjustBalanceInput(
            account_id=account.id, new_balance=Decimal("150")
        ))
        down = ledger.accounts.adjust_balance(owner_id, AdjustBalanceInput(
            account_id=account.id, new_balance=Decimal("120")
        ))
        assert up.category_id != down.category_id
        ledger.incomes.create(owner_id, CreateIncomeInput(
            amount=Decimal("1"), occurred_at=at(2026, 3), account_id=account.id,
            category_name="Initial Balance/Adjustment",
        ))
        assert len(ledger.incomes.list(owner_id, category_id=up.category_id)) == 2


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
