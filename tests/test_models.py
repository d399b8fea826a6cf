"""
Tests for Personal Ledger models

Test strategy:
1. Input models reject malformed values at construction
2. Stored records normalize what they keep (timezones, months)
3. Audit events serialize for structured logging
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from personal_ledger.models import (
    Account,
    AccountType,
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
    Budget,
    Classification,
    CreateAccountInput,
    CreateExpenseInput,
    CreateIncomeInput,
    CreateTransferInput,
    Income,
    Transfer,
    UpdateAccountInput,
)
from personal_ledger.models.analytics import FinancialHealth, FundHealthMetric, FundStatus
from personal_ledger.models.ledger import FundCalculationMode


class TestAccountModels:
    """Tests for account records and inputs."""

    def test_credit_and_loan_are_always_liabilities(self):
        """Test that CREDIT and LOAN force the liability flag."""
        owner = uuid4()
        credit = Account(owner_id=owner, name="Visa", type=AccountType.CREDIT)
        loan = Account(owner_id=owner, name="Car", type=AccountType.LOAN, is_liability=False)
        assert credit.classification == Classification.LIABILITY
        assert loan.is_liability

    def test_other_types_default_to_asset(self):
        """Test that ordinary accounts are assets unless flagged."""
        account = Account(owner_id=uuid4(), name="Checking", type=AccountType.BANK)
        assert account.classification == Classification.ASSET
        assert account.is_liquid

        flagged = Account(owner_id=uuid4(), name="IOU", type=AccountType.OTHER, is_liability=True)
        assert flagged.classification == Classification.LIABILITY

    def test_fund_types(self):
        """Test fund detection for allocation targets."""
        for account_type in (AccountType.EMERGENCY_FUND, AccountType.FUND, AccountType.TITHE):
            assert Account(owner_id=uuid4(), name="F", type=account_type).is_fund
        assert not Account(owner_id=uuid4(), name="B", type=AccountType.BANK).is_fund

    def test_credit_limit_only_on_credit_accounts(self):
        """Test that a credit limit on a BANK account is rejected."""
        with pytest.raises(PydanticValidationError):
            CreateAccountInput(name="Checking", type=AccountType.BANK, credit_limit=Decimal("100"))

    def test_fund_attributes_only_on_fund_accounts(self):
        """Test that a target amount on a BANK account is rejected."""
        with pytest.raises(PydanticValidationError):
            CreateAccountInput(name="Checking", type=AccountType.BANK, target_amount=Decimal("100"))

    def test_update_input_reports_only_set_fields(self):
        """Test that unset fields are not part of the changes."""
        data = UpdateAccountInput(id=uuid4(), name="Renamed", icon=None)
        assert data.changes() == {"name": "Renamed", "icon": None}


class TestTransactionModels:
    """Tests for incomes, expenses and transfers."""

    def test_amount_must_be_positive(self):
        """Test that zero and negative amounts are rejected."""
        for amount in ("0", "-5"):
            with pytest.raises(PydanticValidationError):
                Income(
                    owner_id=uuid4(),
                    amount=Decimal(amount),
                    occurred_at=datetime.now(timezone.utc),
                    category_id=uuid4(),
                )

    def test_amount_limited_to_cents(self):
        """Test that sub-cent amounts are rejected."""
        with pytest.raises(PydanticValidationError):
            CreateExpenseInput(
                amount=Decimal("1.005"),
                occurred_at=datetime.now(timezone.utc),
                account_id=uuid4(),
                category_name="Food",
            )

    def test_naive_dates_are_localized(self):
        """Test that naive datetimes get the reference timezone."""
        income = Income(
            owner_id=uuid4(),
            amount=Decimal("10"),
            occurred_at=datetime(2026, 1, 1, 9, 30),
            category_id=uuid4(),
        )
        assert income.occurred_at.tzinfo is not None

    def test_transfer_accounts_must_differ(self):
        """Test that a transfer to the same account is rejected."""
        same = uuid4()
        with pytest.raises(PydanticValidationError):
            CreateTransferInput(
                amount=Decimal("10"),
                occurred_at=datetime.now(timezone.utc),
                from_account_id=same,
                to_account_id=same,
            )
        with pytest.raises(PydanticValidationError):
            Transfer(
                owner_id=uuid4(),
                amount=Decimal("10"),
                occurred_at=datetime.now(timezone.utc),
                from_account_id=same,
                to_account_id=same,
            )

    def test_negative_fee_rejected(self):
        """Test that a negative fee is rejected."""
        with pytest.raises(PydanticValidationError):
            CreateTransferInput(
                amount=Decimal("10"),
                fee=Decimal("-1"),
                occurred_at=datetime.now(timezone.utc),
                from_account_id=uuid4(),
                to_account_id=uuid4(),
            )

    def test_income_needs_a_category(self):
        """Test that neither category id nor name is rejected."""
        with pytest.raises(PydanticValidationError):
            CreateIncomeInput(amount=Decimal("10"), occurred_at=datetime.now(timezone.utc))

    def test_emergency_fund_percentage_capped(self):
        """Test that the emergency fund percentage cannot exceed the cap."""
        with pytest.raises(PydanticValidationError):
            CreateIncomeInput(
                amount=Decimal("10"),
                occurred_at=datetime.now(timezone.utc),
                category_name="Salary",
                emergency_fund_enabled=True,
                emergency_fund_percentage=Decimal("60"),
            )

    def test_recurring_needs_a_period(self):
        """Test that a recurring expense without a period is rejected."""
        with pytest.raises(PydanticValidationError):
            CreateExpenseInput(
                amount=Decimal("10"),
                occurred_at=datetime.now(timezone.utc),
                account_id=uuid4(),
                category_name="Rent",
                is_recurring=True,
            )


class TestBudgetModel:
    """Tests for the budget record."""

    def test_month_normalized_to_first_instant(self):
        """Test that any date in a month becomes the month start."""
        budget = Budget(
            owner_id=uuid4(),
            amount=Decimal("300"),
            category_id=uuid4(),
            month=datetime(2026, 3, 17, 18, 45, tzinfo=timezone.utc),
        )
        assert budget.month == datetime(2026, 3, 1, tzinfo=timezone.utc)


class TestAuditModels:
    """Tests for audit event models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.INCOME_CREATED,
            description="Income of 10 recorded",
        )
        assert event.severity == AuditSeverity.INFO
        assert event.event_id is not None

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        owner = uuid4()
        event = AuditEventBuilder.record_event(
            event_type=AuditEventType.EXPENSE_DELETED,
            owner_id=owner,
            entity_type="expense",
            entity_id=uuid4(),
            description="Expense deleted",
        )
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "expense_deleted"
        assert log_dict["owner_id"] == str(owner)
        assert isinstance(log_dict["timestamp"], str)

    def test_unit_of_work_failed_is_an_error(self):
        """Test the failed unit of work builder."""
        event = AuditEventBuilder.unit_of_work_failed("create_income", RuntimeError("boom"))
        assert event.severity == AuditSeverity.ERROR
        assert event.error_message == "boom"
        assert event.details["operation"] == "create_income"


class TestAnalyticsModels:
    """Test read-side result models."""

    def test_runway_accepts_infinity(self):
        """Test that an unbounded runway is a valid value."""
        health = FinancialHealth(
            savings_rate=100.0,
            monthly_income=Decimal("0"),
            monthly_expense=Decimal("0"),
            debt_to_asset_ratio=0.0,
            credit_utilization=0.0,
            total_credit_used=Decimal("0"),
            total_credit_limit=Decimal("0"),
            available_credit=Decimal("0"),
            runway_months=Decimal("Infinity"),
            liquid_assets=Decimal("500"),
            average_monthly_expense=Decimal("0"),
            debt_paydown_this_month=Decimal("0"),
            debt_paydown_percent=0.0,
            months_to_payoff=0,
        )
        assert health.runway_months.is_infinite()

    def test_fund_coverage_accepts_infinity(self):
        """Test that a funded account with no budget has unbounded coverage."""
        metric = FundHealthMetric(
            account_id=uuid4(),
            name="Emergency",
            type=AccountType.EMERGENCY_FUND,
            balance=Decimal("100"),
            calculation_mode=FundCalculationMode.MONTHS_COVERAGE,
            months_coverage=Decimal("Infinity"),
            status=FundStatus.FUNDED,
        )
        assert metric.months_coverage.is_infinite()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
