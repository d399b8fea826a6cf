"""
Account service.

Accounts are created with an opening balance and from then on their
balance moves only through transaction effects. A user who knows the
real balance declares it through `adjust_balance`, which records an
ordinary income or expense for the difference so the correction shows
up in the account's history.
"""

from typing import Optional, Union
from uuid import UUID

from personal_ledger.audit import AuditLogger
from personal_ledger.config import LedgerSettings
from personal_ledger.errors import NotFoundError, require_owner
from personal_ledger.ledger.base import LedgerService
from personal_ledger.ledger.expense import ExpenseService
from personal_ledger.ledger.income import IncomeService
from personal_ledger.models.audit import AuditEventType
from personal_ledger.models.ledger import (
    LIABILITY_TYPES,
    Account,
    AccountType,
    AdjustBalanceInput,
    CreateAccountInput,
    CreateExpenseInput,
    CreateIncomeInput,
    Expense,
    Income,
    UpdateAccountInput,
)
from personal_ledger.services.storage import LedgerStorageInterface
from personal_ledger.utils.dates import utcnow


_FUND_ACCOUNT_TYPES = (AccountType.EMERGENCY_FUND, AccountType.FUND)


class AccountService(LedgerService):
    """Account lifecycle and balance adjustment."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
        incomes: Optional[IncomeService] = None,
        expenses: Optional[ExpenseService] = None,
    ):
        super().__init__(storage, audit, settings)
        self._incomes = incomes or IncomeService(storage, self._audit, self._settings)
        self._expenses = expenses or ExpenseService(storage, self._audit, self._settings)

    def create(self, owner_id: Optional[UUID], data: CreateAccountInput) -> Account:
        """Create an account; its initial balance becomes the opening balance."""
        owner_id = require_owner(owner_id)
        account = Account(
            owner_id=owner_id,
            name=data.name,
            type=data.type,
            is_liability=data.is_liability,
            currency=data.currency or self._settings.default_currency,
            balance=data.balance,
            opening_balance=data.balance,
            credit_limit=data.credit_limit,
            icon=data.icon,
            color=data.color,
            target_amount=data.target_amount,
            fund_calculation_mode=data.fund_calculation_mode,
            fund_threshold_low=data.fund_threshold_low,
            fund_threshold_mid=data.fund_threshold_mid,
            fund_threshold_high=data.fund_threshold_high,
        )
        with self.atomic("create_account", owner_id):
            account = self._storage.create_account(account)
            self._audit.log_record(
                AuditEventType.ACCOUNT_CREATED,
                owner_id,
                "account",
                account.id,
                f"Account created: {account.name}",
                details={
                    "type": account.type.value,
                    "is_liability": account.is_liability,
                    "opening_balance": str(account.opening_balance),
                },
            )
        return account

    def update(self, owner_id: Optional[UUID], data: UpdateAccountInput) -> Account:
        """
        Update account metadata or type.

        Changing the type to one the type-specific attributes don't
        apply to clears them. Changing classification does not touch the
        balance; later effects and reversals follow the new classification.
        """
        owner_id = require_owner(owner_id)
        account = self._refs.account(owner_id, data.id, field="id", allow_archived=True)
        changes = data.changes()
        new_type = changes.get("type", account.type)
        self._refs.account_attributes(new_type, changes)

        merged = {**account.model_dump(), **changes}
        if new_type != AccountType.CREDIT:
            merged["credit_limit"] = None
        if new_type not in _FUND_ACCOUNT_TYPES:
            for name in (
                "target_amount",
                "fund_calculation_mode",
                "fund_threshold_low",
                "fund_threshold_mid",
                "fund_threshold_high",
            ):
                merged[name] = None
        if new_type in LIABILITY_TYPES:
            merged["is_liability"] = True
        updated = Account.model_validate(merged)

        with self.atomic("update_account", owner_id):
            updated = self._storage.update_account(updated)
            self._audit.log_record(
                AuditEventType.ACCOUNT_UPDATED,
                owner_id,
                "account",
                account.id,
                f"Account updated: {updated.name}",
                details={"fields": sorted(changes)},
            )
        return updated

    def _set_archived(self, owner_id: Optional[UUID], account_id: UUID, archived: bool) -> Account:
        owner_id = require_owner(owner_id)
        account = self._refs.account(owner_id, account_id, allow_archived=True)
        if account.is_archived == archived:
            return account
        with self.atomic("archive_account", owner_id):
            updated = self._storage.update_account(
                account.model_copy(update={"is_archived": archived})
            )
            self._audit.log_record(
                AuditEventType.ACCOUNT_ARCHIVED if archived else AuditEventType.ACCOUNT_UPDATED,
                owner_id,
                "account",
                account.id,
                f"Account {'archived' if archived else 'unarchived'}: {account.name}",
            )
        return updated

    def archive(self, owner_id: Optional[UUID], account_id: UUID) -> Account:
        """Hide an account from active listings, keeping its history."""
        return self._set_archived(owner_id, account_id, True)

    def unarchive(self, owner_id: Optional[UUID], account_id: UUID) -> Account:
        return self._set_archived(owner_id, account_id, False)

    def delete(self, owner_id: Optional[UUID], account_id: UUID) -> None:
        """
        Delete an account with no transactions.

        Raises:
            NotFoundError: Missing or not owned
            IntegrityError: Transactions still reference the account;
                            archive it instead
        """
        owner_id = require_owner(owner_id)
        account = self._refs.account(owner_id, account_id, allow_archived=True)
        with self.atomic("delete_account", owner_id):
            self._storage.delete_account(owner_id, account.id)
            self._audit.log_record(
                AuditEventType.ACCOUNT_DELETED,
                owner_id,
                "account",
                account.id,
                f"Account deleted: {account.name}",
            )

    def adjust_balance(
        self,
        owner_id: Optional[UUID],
        data: AdjustBalanceInput,
    ) -> Optional[Union[Income, Expense]]:
        """
        Bring an account to a declared balance through an ordinary record.

        The record kind is chosen so its natural effect moves the balance
        to the declared value: for an asset, more money is an income; for
        a liability, more owed is an expense. Allocations never run.

        Returns:
            The synthetic income or expense, or None when the difference
            is below one cent
        """
        owner_id = require_owner(owner_id)
        account = self._refs.account(owner_id, data.account_id)
        difference = data.new_balance - account.balance
        if abs(difference) < self._settings.balance_tolerance:
            return None

        if account.is_liability:
            needs_income = difference < 0
        else:
            needs_income = difference > 0
        amount = abs(difference)
        occurred_at = data.occurred_at or utcnow()

        with self.atomic("adjust_balance", owner_id):
            if needs_income:
                record = self._incomes.create(owner_id, CreateIncomeInput(
                    amount=amount,
                    description=self._settings.adjustment_description,
                    occurred_at=occurred_at,
                    account_id=account.id,
                    category_name=self._settings.adjustment_category_name,
                    tithe_enabled=False,
                    emergency_fund_enabled=False,
                ))
            else:
                record = self._expenses.create(owner_id, CreateExpenseInput(
                    amount=amount,
                    description=self._settings.adjustment_description,
                    occurred_at=occurred_at,
                    account_id=account.id,
                    category_name=self._settings.adjustment_category_name,
                ))
            self._audit.log_balance_adjusted(
                owner_id,
                account.id,
                old_balance=account.balance,
                new_balance=data.new_balance,
                record_type="income" if needs_income else "expense",
                record_id=record.id,
            )
        return record

    def get(self, owner_id: Optional[UUID], account_id: UUID) -> Account:
        owner_id = require_owner(owner_id)
        account = self._storage.get_account(owner_id, account_id)
        if account is None:
            raise NotFoundError("Account", account_id)
        return account

    def list(self, owner_id: Optional[UUID], include_archived: bool = False) -> list[Account]:
        """Active accounts; archived ones only when asked for."""
        owner_id = require_owner(owner_id)
        return self._storage.list_accounts(owner_id, include_archived=include_archived)
