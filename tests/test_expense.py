"""Tests for expenses and edit/delete reconciliation."""

import pytest
from decimal import Decimal
from uuid import uuid4

from conftest import at
from personal_ledger.errors import NotFoundError, ValidationError
from personal_ledger.models import (
    AccountType,
    CategoryType,
    CreateExpenseInput,
    CreateIncomeInput,
    UpdateAccountInput,
    UpdateExpenseInput,
    UpdateIncomeInput,
)


def spend(ledger, owner_id, account, amount, **kwargs):
    return ledger.expenses.create(owner_id, CreateExpenseInput(
        amount=Decimal(amount),
        occurred_at=kwargs.pop("occurred_at", at(2026, 3)),
        account_id=account.id,
        category_name=kwargs.pop("category_name", "Groceries"),
        **kwargs,
    ))


class TestExpenseLifecycle:
    """Create, update and delete an expense on an asset account."""

    def test_create_update_delete(self, ledger, owner_id, open_account, balance_of):
        """Test 1000 -> expense 200 -> 800 -> amount 150 -> 850 -> delete -> 1000."""
        account = open_account("Checking", balance="1000")

        expense = spend(ledger, owner_id, account, "200")
        assert balance_of(account) == Decimal("800")

        ledger.expenses.update(owner_id, UpdateExpenseInput(id=expense.id, amount=Decimal("150")))
        assert balance_of(account) == Decimal("850")

        ledger.expenses.delete(owner_id, expense.id)
        assert balance_of(account) == Decimal("1000")
        assert ledger.expenses.list(owner_id) == []

    def test_category_created_by_name(self, ledger, owner_id, open_account):
        """Test that a new category name is created as an expense category."""
        account = open_account("Checking", balance="100")
        expense = spend(ledger, owner_id, account, "10", category_name="Coffee")
        category = ledger.categories.get(owner_id, expense.category_id)
        assert category.name == "Coffee"
        assert category.type == CategoryType.EXPENSE

        again = spend(ledger, owner_id, account, "5", category_name="Coffee")
        assert again.category_id == expense.category_id

    def test_income_category_rejected(self, ledger, owner_id, open_account):
        """Test that an income category id cannot be used for an expense."""
        account = open_account("Checking", balance="100")
        salary = ledger.categories.create(owner_id, "Salary", CategoryType.INCOME)
        with pytest.raises(ValidationError):
            ledger.expenses.create(owner_id, CreateExpenseInput(
                amount=Decimal("10"),
                occurred_at=at(2026, 3),
                account_id=account.id,
                category_id=salary.id,
            ))

    def test_archived_account_rejected(self, ledger, owner_id, open_account, balance_of):
        """Test that new expenses cannot post to archived accounts."""
        account = open_account("Old", balance="100")
        ledger.accounts.archive(owner_id, account.id)
        with pytest.raises(ValidationError):
            spend(ledger, owner_id, account, "10")
        assert balance_of(account) == Decimal("100")

    def test_unknown_budget_rejected(self, ledger, owner_id, open_account):
        """Test that a budget id must exist."""
        account = open_account("Checking", balance="100")
        with pytest.raises(NotFoundError):
            spend(ledger, owner_id, account, "10", budget_id=uuid4())

    def test_other_owner_cannot_delete(self, ledger, owner_id, open_account, balance_of):
        """Test that deleting someone else's expense is NotFound."""
        account = open_account("Checking", balance="100")
        expense = spend(ledger, owner_id, account, "10")
        with pytest.raises(NotFoundError):
            ledger.expenses.delete(uuid4(), expense.id)
        assert balance_of(account) == Decimal("90")


class TestReconciliation:
    """Updates apply only the difference; account moves reverse then apply."""

    def test_account_change_moves_the_effect(self, ledger, owner_id, open_account, balance_of):
        """Test moving an expense between accounts with a new amount."""
        checking = open_account("Checking", balance="500")
        card = open_account("Visa", AccountType.CREDIT, "0")
        expense = spend(ledger, owner_id, checking, "100")

        ledger.expenses.update(owner_id, UpdateExpenseInput(
            id=expense.id, account_id=card.id, amount=Decimal("120")
        ))
        assert balance_of(checking) == Decimal("500")
        assert balance_of(card) == Decimal("120")

    def test_account_change_keeps_old_amount(self, ledger, owner_id, open_account, balance_of):
        """Test that the old amount is used when only the account changes."""
        a = open_account("A", balance="100")
        b = open_account("B", balance="100")
        expense = spend(ledger, owner_id, a, "40")
        ledger.expenses.update(owner_id, UpdateExpenseInput(id=expense.id, account_id=b.id))
        assert balance_of(a) == Decimal("100")
        assert balance_of(b) == Decimal("60")

    def test_non_balance_fields_move_nothing(self, ledger, owner_id, open_account, balance_of):
        """Test that description and category edits leave balances alone."""
        account = open_account("Checking", balance="100")
        expense = spend(ledger, owner_id, account, "40")
        updated = ledger.expenses.update(owner_id, UpdateExpenseInput(
            id=expense.id, description="Weekly shop", category_name="Food"
        ))
        assert updated.description == "Weekly shop"
        assert balance_of(account) == Decimal("60")

    def test_amount_decrease_on_liability(self, ledger, owner_id, open_account, balance_of):
        """Test a smaller charge lowers what is owed."""
        card = open_account("Visa", AccountType.CREDIT, "0")
        expense = spend(ledger, owner_id, card, "80")
        ledger.expenses.update(owner_id, UpdateExpenseInput(id=expense.id, amount=Decimal("50")))
        assert balance_of(card) == Decimal("50")

    def test_income_amount_and_account_change(self, ledger, owner_id, open_account, balance_of):
        """Test income reconciliation across accounts."""
        a = open_account("A", balance="0")
        b = open_account("B", balance="0")
        income = ledger.incomes.create(owner_id, CreateIncomeInput(
            amount=Decimal("300"), occurred_at=at(2026, 3), account_id=a.id, category_name="Salary"
        ))
        ledger.incomes.update(owner_id, UpdateIncomeInput(id=income.id, amount=Decimal("350")))
        assert balance_of(a) == Decimal("350")

        ledger.incomes.update(owner_id, UpdateIncomeInput(id=income.id, account_id=b.id))
        assert balance_of(a) == Decimal("0")
        assert balance_of(b) == Decimal("350")

    def test_reversal_follows_current_classification(self, ledger, owner_id, open_account, balance_of):
        """Test that deleting after a type change uses the new classification."""
        account = open_account("Flexible", AccountType.OTHER, "100")
        expense = spend(ledger, owner_id, account, "40")
        assert balance_of(account) == Decimal("60")

        ledger.accounts.update(owner_id, UpdateAccountInput(id=account.id, type=AccountType.CREDIT))
        ledger.expenses.delete(owner_id, expense.id)
        assert balance_of(account) == Decimal("20")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
