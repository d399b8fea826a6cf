"""Tests for period reports."""

import pytest
from decimal import Decimal

from conftest import at
from personal_ledger.models import (
    Account,
    AccountType,
    CreateBudgetInput,
    CreateExpenseInput,
    CreateIncomeInput,
    CreateTransferInput,
    TransactionKind,
)


@pytest.fixture
def spring(ledger, owner_id, open_account):
    """Income and expenses across January and March, nothing in February."""
    checking = open_account("Checking", balance="1000")
    for month, amount in ((1, "2000"), (3, "2500")):
        ledger.incomes.create(owner_id, CreateIncomeInput(
            amount=Decimal(amount), occurred_at=at(2026, month), account_id=checking.id,
            category_name="Salary",
        ))
    for month, category, amount in (
        (1, "Rent", "900"),
        (1, "Dining", "100"),
        (3, "Rent", "900"),
        (3, "Dining", "300"),
    ):
        ledger.expenses.create(owner_id, CreateExpenseInput(
            amount=Decimal(amount), occurred_at=at(2026, month, 20), account_id=checking.id,
            category_name=category,
        ))
    return checking


class TestBreakdowns:
    """Category breakdowns and statements."""

    def test_category_breakdown(self, ledger, owner_id, spring):
        """Test March expense shares, largest first."""
        items = ledger.reports.category_breakdown(owner_id, at(2026, 3, 1, 0), at(2026, 3, 31, 23))
        assert [i.category_name for i in items] == ["Rent", "Dining"]
        assert items[0].amount == Decimal("900")
        assert items[0].percentage == pytest.approx(75.0)
        assert items[1].percentage == pytest.approx(25.0)

    def test_empty_period(self, ledger, owner_id, spring):
        """Test a period without expenses."""
        assert ledger.reports.category_breakdown(owner_id, at(2026, 2, 1, 0), at(2026, 2, 28, 23)) == []

    def test_financial_statement(self, ledger, owner_id, spring):
        """Test the quarter's totals and savings rate."""
        statement = ledger.reports.financial_statement(owner_id, at(2026, 1, 1, 0), at(2026, 3, 31, 23))
        assert statement.total_income == Decimal("4500")
        assert statement.total_expense == Decimal("2200")
        assert statement.net_income == Decimal("2300")
        assert statement.savings_rate == pytest.approx(2300 / 4500 * 100)
        assert [i.category_name for i in statement.income_by_category] == ["Salary"]


class TestMonthlyComparison:
    """Month rows over a range."""

    def test_empty_months_included(self, ledger, owner_id, spring):
        """Test that February appears with zeros."""
        rows = ledger.reports.monthly_comparison(owner_id, at(2026, 1), at(2026, 3))
        assert [r.month.month for r in rows] == [1, 2, 3]
        assert rows[0].savings == Decimal("1000")
        assert (rows[1].income, rows[1].expense) == (Decimal("0"), Decimal("0"))
        assert rows[2].savings == Decimal("1300")


class TestBudgetVsActual:
    """Budgets against every expense of the category."""

    def test_unlinked_expenses_count(self, ledger, owner_id, spring):
        """Test that actuals include expenses not linked to the budget."""
        for category, amount in (("Dining", "200"), ("Rent", "1000")):
            ledger.budgets.create(owner_id, CreateBudgetInput(
                category_name=category, amount=Decimal(amount), month=at(2026, 3, 1)
            ))
        items = ledger.reports.budget_vs_actual(owner_id, at(2026, 3), at(2026, 3))
        assert [i.category_name for i in items] == ["Dining", "Rent"]
        dining = items[0]
        assert dining.actual == Decimal("300")
        assert dining.variance == Decimal("-100")
        assert dining.percent_used == pytest.approx(150.0)
        assert items[1].variance == Decimal("100")


class TestNetWorthHistory:
    """Month-end net worth from the stored balance walked back."""

    def test_month_end_points(self, ledger, owner_id, spring, open_account):
        """Test points for January through March."""
        card = open_account("Visa", AccountType.CREDIT, "0")
        ledger.expenses.create(owner_id, CreateExpenseInput(
            amount=Decimal("400"), occurred_at=at(2026, 2), account_id=card.id,
            category_name="Travel",
        ))
        ledger.transfers.create(owner_id, CreateTransferInput(
            amount=Decimal("400"), occurred_at=at(2026, 3, 25),
            from_account_id=spring.id, to_account_id=card.id,
        ))

        points = ledger.reports.net_worth_history(owner_id, at(2026, 1), at(2026, 3))
        assert [p.net_worth for p in points] == [Decimal("2000"), Decimal("1600"), Decimal("2900")]
        assert points[1].total_liabilities == Decimal("400")
        assert points[2].total_liabilities == Decimal("0")
        assert points[2].total_assets == Decimal("2900")

    def test_account_counts_from_when_it_was_opened(self, ledger, owner_id, storage):
        """Test that an account opened in February is absent from January."""
        storage.create_account(Account(
            owner_id=owner_id, name="Savings", type=AccountType.SAVINGS, currency="USD",
            balance=Decimal("500"), opening_balance=Decimal("500"),
            created_at=at(2026, 2, 10),
        ))
        points = ledger.reports.net_worth_history(owner_id, at(2026, 1), at(2026, 3))
        assert [p.net_worth for p in points] == [Decimal("0"), Decimal("500"), Decimal("500")]



class TestTransactionStatement:
    """Incomes and expenses with a running net worth."""

    def test_march_statement(self, ledger, owner_id, spring):
        """Test oldest-first lines walking from opening to closing net worth."""
        statement = ledger.reports.transaction_statement(
            owner_id, at(2026, 3, 1, 0), at(2026, 3, 31, 23)
        )
        assert [line.amount for line in statement.lines] == [
            Decimal("2500"), Decimal("900"), Decimal("300"),
        ]
        assert [line.category_name for line in statement.lines] == ["Salary", "Rent", "Dining"]
        assert statement.total_income == Decimal("2500")
        assert statement.total_expense == Decimal("1200")
        assert statement.closing_balance == Decimal("3300")
        assert statement.opening_balance == Decimal("2000")
        assert [line.running_balance for line in statement.lines] == [
            Decimal("4500"), Decimal("3600"), Decimal("3300"),
        ]

    def test_expense_filter(self, ledger, owner_id, spring):
        """Test that a kind filter narrows lines and the derived opening balance."""
        statement = ledger.reports.transaction_statement(
            owner_id, at(2026, 3, 1, 0), at(2026, 3, 31, 23), kind=TransactionKind.EXPENSE
        )
        assert [line.kind for line in statement.lines] == [TransactionKind.EXPENSE] * 2
        assert statement.net_change == Decimal("-1200")
        assert statement.opening_balance == Decimal("4500")

    def test_budget_name_on_linked_expense(self, ledger, owner_id, spring):
        """Test that budgeted expenses carry their budget."""
        budget = ledger.budgets.create(owner_id, CreateBudgetInput(
            name="Eating out", category_name="Dining", amount=Decimal("250"), month=at(2026, 4, 1)
        ))
        ledger.expenses.create(owner_id, CreateExpenseInput(
            amount=Decimal("40"), occurred_at=at(2026, 4), account_id=spring.id,
            category_name="Dining", budget_id=budget.id,
        ))
        statement = ledger.reports.transaction_statement(
            owner_id, at(2026, 4, 1, 0), at(2026, 4, 30, 23)
        )
        assert statement.lines[0].budget_id == budget.id
        assert statement.lines[0].budget_name == "Eating out"

if __name__ == "__main__":
    pytest.main([__file__, "-v"])
