"""
Reports

Period reports over incomes, expenses and budgets. Amounts are raw
Decimals; formatting belongs to whoever displays them.
"""

from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from personal_ledger.config import LedgerSettings
from personal_ledger.errors import require_owner
from personal_ledger.models.analytics import (
    BudgetVsActualItem,
    CategoryBreakdownItem,
    FinancialStatement,
    MonthlySummary,
    NetWorthPoint,
    StatementLine,
    TransactionStatement,
)
from personal_ledger.models.ledger import TransactionKind
from personal_ledger.queries.analytics import percent
from personal_ledger.queries.reconstruction import account_movements, balance_before
from personal_ledger.services.storage import LedgerStorageInterface
from personal_ledger.utils.dates import each_month, month_end, month_start


ZERO = Decimal("0")


class ReportBuilder:
    """Category, monthly, budget and net worth reports."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        settings: Optional[LedgerSettings] = None,
    ):
        self._storage = storage
        self.tz = (settings or LedgerSettings()).tzinfo

    def _breakdown(
        self,
        owner_id: UUID,
        kind: TransactionKind,
        start: datetime,
        end: datetime,
    ) -> list[CategoryBreakdownItem]:
        totals = self._storage.sum_by_category(owner_id, kind, start, end)
        grand_total = sum(totals.values(), ZERO)
        names = {c.id: c.name for c in self._storage.list_categories(owner_id)}
        items = [
            CategoryBreakdownItem(
                category_id=category_id,
                category_name=names.get(category_id, "Unknown"),
                amount=amount,
                percentage=percent(amount, grand_total),
            )
            for category_id, amount in totals.items()
        ]
        return sorted(items, key=lambda i: i.amount, reverse=True)

    def category_breakdown(
        self,
        owner_id: Optional[UUID],
        start: datetime,
        end: datetime,
    ) -> list[CategoryBreakdownItem]:
        """Expense share per category, largest first."""
        owner_id = require_owner(owner_id)
        return self._breakdown(owner_id, TransactionKind.EXPENSE, start, end)

    def monthly_comparison(
        self,
        owner_id: Optional[UUID],
        start: datetime,
        end: datetime,
    ) -> list[MonthlySummary]:
        """Income, expense and savings for every month in the range, empty months included."""
        owner_id = require_owner(owner_id)
        first = month_start(start, self.tz)
        last = month_end(end, self.tz)
        incomes = self._storage.sum_by_month(owner_id, TransactionKind.INCOME, first, last, self.tz)
        expenses = self._storage.sum_by_month(owner_id, TransactionKind.EXPENSE, first, last, self.tz)

        summary = []
        for month in each_month(first, last, self.tz):
            income = incomes.get(month, ZERO)
            expense = expenses.get(month, ZERO)
            summary.append(MonthlySummary(
                month=month,
                income=income,
                expense=expense,
                savings=income - expense,
            ))
        return summary

    def financial_statement(
        self,
        owner_id: Optional[UUID],
        start: datetime,
        end: datetime,
    ) -> FinancialStatement:
        owner_id = require_owner(owner_id)
        income_items = self._breakdown(owner_id, TransactionKind.INCOME, start, end)
        expense_items = self._breakdown(owner_id, TransactionKind.EXPENSE, start, end)
        total_income = sum((i.amount for i in income_items), ZERO)
        total_expense = sum((i.amount for i in expense_items), ZERO)
        return FinancialStatement(
            start=start,
            end=end,
            income_by_category=income_items,
            expense_by_category=expense_items,
            total_income=total_income,
            total_expense=total_expense,
            net_income=total_income - total_expense,
            savings_rate=percent(total_income - total_expense, total_income),
        )

    def budget_vs_actual(
        self,
        owner_id: Optional[UUID],
        start: datetime,
        end: datetime,
    ) -> list[BudgetVsActualItem]:
        """
        Budgets summed per category across the months in range, against
        every expense of that category in the same months.

        Positive variance means under budget. Sorted by percent used,
        highest first.
        """
        owner_id = require_owner(owner_id)
        first = month_start(start, self.tz)
        last = month_end(end, self.tz)

        budgeted: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        for budget in self._storage.list_budgets(owner_id, start=first, end=last):
            budgeted[budget.category_id] += budget.amount
        actuals = self._storage.sum_by_category(owner_id, TransactionKind.EXPENSE, first, last)
        names = {c.id: c.name for c in self._storage.list_categories(owner_id)}

        items = []
        for category_id, amount in budgeted.items():
            actual = actuals.get(category_id, ZERO)
            items.append(BudgetVsActualItem(
                category_id=category_id,
                category_name=names.get(category_id, "Unknown"),
                budgeted=amount,
                actual=actual,
                variance=amount - actual,
                percent_used=percent(actual, amount),
            ))
        return sorted(items, key=lambda i: i.percent_used, reverse=True)

    def _account_history(self, owner_id: UUID):
        """Accounts with their movements and the moment each was opened."""
        accounts = self._storage.list_accounts(owner_id, include_archived=True)
        movements = {
            account.id: account_movements(self._storage, owner_id, account.id)
            for account in accounts
        }
        # Records may be backdated before the account row was created
        opened = {
            account.id: min(
                [account.created_at] + [m.record.occurred_at for m in movements[account.id]]
            )
            for account in accounts
        }
        return accounts, movements, opened

    @staticmethod
    def _balances_at(accounts, movements, opened, cutoff: datetime) -> tuple[Decimal, Decimal]:
        """(assets, liabilities) with every record after `cutoff` undone."""
        assets = ZERO
        liabilities = ZERO
        for account in accounts:
            if opened[account.id] > cutoff:
                continue
            later = [m for m in movements[account.id] if m.record.occurred_at > cutoff]
            balance = balance_before(account, later)
            if account.is_liability:
                liabilities += balance
            else:
                assets += balance
        return assets, liabilities

    def net_worth_history(
        self,
        owner_id: Optional[UUID],
        start: datetime,
        end: datetime,
    ) -> list[NetWorthPoint]:
        """
        Net worth at the end of each month in range.

        Each point is the current balance with every later record undone,
        so it inherits any drift in the stored balance. An account counts
        from its creation or its earliest record, whichever comes first.
        """
        owner_id = require_owner(owner_id)
        history = self._account_history(owner_id)

        points = []
        for month in each_month(start, end, self.tz):
            assets, liabilities = self._balances_at(*history, month_end(month, self.tz))
            points.append(NetWorthPoint(
                month=month,
                total_assets=assets,
                total_liabilities=liabilities,
                net_worth=assets - liabilities,
            ))
        return points

    def transaction_statement(
        self,
        owner_id: Optional[UUID],
        start: datetime,
        end: datetime,
        kind: Optional[TransactionKind] = None,
        category_id: Optional[UUID] = None,
    ) -> TransactionStatement:
        """
        Incomes and expenses in [start, end] with a running net worth.

        Args:
            kind: Only incomes or only expenses; both when None
            category_id: Only records of this category

        The closing balance is net worth at `end`. The opening balance and
        running balances are derived from it through the listed records
        only, so filters change them.
        """
        owner_id = require_owner(owner_id)
        categories = {c.id: c.name for c in self._storage.list_categories(owner_id)}
        budgets = {b.id: b.name for b in self._storage.list_budgets(owner_id)}

        records = []
        if kind in (None, TransactionKind.INCOME):
            records += [
                (TransactionKind.INCOME, income)
                for income in self._storage.list_incomes(
                    owner_id, category_id=category_id, start=start, end=end
                )
            ]
        if kind in (None, TransactionKind.EXPENSE):
            records += [
                (TransactionKind.EXPENSE, expense)
                for expense in self._storage.list_expenses(
                    owner_id, category_id=category_id, start=start, end=end
                )
            ]
        records.sort(key=lambda r: (r[1].occurred_at, r[1].created_at))

        total_income = sum((r.amount for k, r in records if k == TransactionKind.INCOME), ZERO)
        total_expense = sum((r.amount for k, r in records if k == TransactionKind.EXPENSE), ZERO)
        net_change = total_income - total_expense
        assets, liabilities = self._balances_at(*self._account_history(owner_id), end)
        closing = assets - liabilities
        opening = closing - net_change

        lines = []
        running = opening
        for record_kind, record in records:
            budget_id = getattr(record, "budget_id", None)
            running += record.amount if record_kind == TransactionKind.INCOME else -record.amount
            lines.append(StatementLine(
                id=record.id,
                kind=record_kind,
                occurred_at=record.occurred_at,
                description=record.description,
                category_id=record.category_id,
                category_name=categories.get(record.category_id, "Unknown"),
                amount=record.amount,
                budget_id=budget_id,
                budget_name=budgets.get(budget_id) if budget_id else None,
                running_balance=running,
            ))

        return TransactionStatement(
            start=start,
            end=end,
            lines=lines,
            opening_balance=opening,
            closing_balance=closing,
            total_income=total_income,
            total_expense=total_expense,
            net_change=net_change,
        )
