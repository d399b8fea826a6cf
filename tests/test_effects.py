"""Tests for the rule table and the balance mutation engine."""

import pytest
from decimal import Decimal
from uuid import uuid4

from conftest import at
from personal_ledger.errors import NotFoundError, UnauthorizedError
from personal_ledger.ledger import BalanceMutationEngine, effect_delta, inverse
from personal_ledger.models import (
    AccountType,
    Classification,
    CreateExpenseInput,
    CreateIncomeInput,
    EffectKind,
)


class TestRuleTable:
    """Tests for effect_delta."""

    @pytest.mark.parametrize(
        "classification,kind,expected",
        [
            (Classification.ASSET, EffectKind.CREDIT, Decimal("25")),
            (Classification.ASSET, EffectKind.DEBIT, Decimal("-25")),
            (Classification.LIABILITY, EffectKind.CREDIT, Decimal("-25")),
            (Classification.LIABILITY, EffectKind.DEBIT, Decimal("25")),
        ],
    )
    def test_table(self, classification, kind, expected):
        """Test every cell of the rule table."""
        assert effect_delta(classification, kind, Decimal("25")) == expected

    def test_inverse_cancels(self):
        """Test that an effect and its inverse sum to zero."""
        for classification in Classification:
            for kind in EffectKind:
                total = effect_delta(classification, kind, Decimal("7.5")) + effect_delta(
                    classification, inverse(kind), Decimal("7.5")
                )
                assert total == 0


class TestBalanceMutationEngine:
    """Tests for applying and reversing effects against the store."""

    def test_apply_and_reverse(self, storage, owner_id, open_account, balance_of):
        """Test a credit followed by its reversal."""
        account = open_account("Checking", balance="100")
        engine = BalanceMutationEngine(storage)

        with storage.unit_of_work():
            engine.apply_effect(owner_id, account.id, Decimal("40"), EffectKind.CREDIT)
        assert balance_of(account) == Decimal("140")

        with storage.unit_of_work():
            engine.reverse_effect(owner_id, account.id, Decimal("40"), EffectKind.CREDIT)
        assert balance_of(account) == Decimal("100")

    def test_unknown_account(self, storage, owner_id):
        """Test that a missing account is NotFound."""
        engine = BalanceMutationEngine(storage)
        with pytest.raises(NotFoundError):
            engine.apply_effect(owner_id, uuid4(), Decimal("1"), EffectKind.DEBIT)

    def test_other_owner_account_is_not_found(self, storage, open_account):
        """Test that another owner's account cannot be mutated."""
        account = open_account("Checking", balance="100")
        engine = BalanceMutationEngine(storage)
        with pytest.raises(NotFoundError):
            engine.apply_effect(uuid4(), account.id, Decimal("1"), EffectKind.DEBIT)


class TestClassificationSign:
    """An income raises an asset and lowers a liability; expenses the reverse."""

    def test_income(self, ledger, owner_id, open_account, balance_of):
        """Test income of x on both classifications."""
        asset = open_account("Checking", balance="100")
        card = open_account("Visa", AccountType.CREDIT, "100")
        for account in (asset, card):
            ledger.incomes.create(owner_id, CreateIncomeInput(
                amount=Decimal("30"),
                occurred_at=at(2026, 3),
                account_id=account.id,
                category_name="Salary",
            ))
        assert balance_of(asset) == Decimal("130")
        assert balance_of(card) == Decimal("70")

    def test_expense(self, ledger, owner_id, open_account, balance_of):
        """Test expense of x on both classifications."""
        asset = open_account("Checking", balance="100")
        card = open_account("Visa", AccountType.CREDIT, "100")
        for account in (asset, card):
            ledger.expenses.create(owner_id, CreateExpenseInput(
                amount=Decimal("30"),
                occurred_at=at(2026, 3),
                account_id=account.id,
                category_name="Groceries",
            ))
        assert balance_of(asset) == Decimal("70")
        assert balance_of(card) == Decimal("130")

    def test_missing_owner_is_unauthorized(self, ledger, open_account):
        """Test that no owner fails closed before any write."""
        account = open_account("Checking", balance="100")
        with pytest.raises(UnauthorizedError):
            ledger.expenses.create(None, CreateExpenseInput(
                amount=Decimal("30"),
                occurred_at=at(2026, 3),
                account_id=account.id,
                category_name="Groceries",
            ))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
