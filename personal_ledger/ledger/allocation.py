"""
Cascading Allocation Engine

When an income lands in an asset account, part of it may be moved on
straight away, inside the same unit of work as the income itself:

1. Tithe: a percentage to the owner's tithe account, created on first use.
2. Emergency fund: a percentage to the owner's emergency-fund account,
   if one exists and is not archived.

Both are ordinary transfers (no fee) tagged with the income id, so the
running balance of the funding account shows the income and then each
allocation leaving it.

Allocation never runs for liability funding accounts (a payment onto a
card is not spendable income) or for fund accounts (money arriving in a
fund is not re-allocated). A percentage of 0, or no emergency-fund
account, makes that step a silent no-op.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Optional
from uuid import UUID

from personal_ledger.audit import AuditLogger
from personal_ledger.config import LedgerSettings
from personal_ledger.ledger.base import LedgerService
from personal_ledger.ledger.transfers import TransferEngine
from personal_ledger.models.audit import AuditEventType
from personal_ledger.models.ledger import (
    Account,
    AccountType,
    AllocationKind,
    CreateIncomeInput,
    Income,
    Transfer,
)
from personal_ledger.services.storage import LedgerStorageInterface


CENT = Decimal("0.01")

DEFAULT_EMERGENCY_FUND_PERCENTAGE = Decimal("10")


def allocation_amount(amount: Decimal, percentage: Decimal) -> Decimal:
    """`percentage` percent of `amount`, rounded to the cent."""
    return (amount * percentage / Decimal("100")).quantize(CENT, rounding=ROUND_HALF_UP)


class AllocationEngine(LedgerService):
    """Derives and records the secondary transfers of an income."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
        transfers: Optional[TransferEngine] = None,
        emergency_fund_default: Optional[Callable[[UUID], Decimal]] = None,
    ):
        """
        Args:
            emergency_fund_default: Percentage to use when an income enables
                the emergency fund without giving one. Usually the
                income-stability suggestion.
        """
        super().__init__(storage, audit, settings)
        self._transfers = transfers or TransferEngine(storage, self._audit, self._settings)
        self._emergency_fund_default = emergency_fund_default or (
            lambda owner_id: DEFAULT_EMERGENCY_FUND_PERCENTAGE
        )

    def apply(
        self,
        owner_id: UUID,
        income: Income,
        account: Account,
        directives: CreateIncomeInput,
    ) -> list[Transfer]:
        """
        Record the tithe and emergency-fund transfers for a new income.

        Must run inside the income's unit of work.

        Returns:
            The allocation transfers created, tithe first
        """
        if account.is_liability or account.is_fund:
            return []

        allocations = []

        tithe_enabled = directives.tithe_enabled
        if tithe_enabled is None:
            tithe_enabled = self._settings.tithe_enabled_by_default
        if tithe_enabled:
            percentage = directives.tithe_percentage
            if percentage is None:
                percentage = self._settings.default_tithe_percentage
            amount = allocation_amount(income.amount, percentage)
            if amount > 0:
                tithe_account = self._tithe_account(owner_id)
                if tithe_account.id != account.id:
                    allocations.append(self._allocate(
                        owner_id, income, account, tithe_account, amount,
                        AllocationKind.TITHE,
                        f"Tithe for {income.description or 'Income'}",
                    ))

        if directives.emergency_fund_enabled:
            fund = self._emergency_fund_account(owner_id)
            if fund is not None and fund.id != account.id:
                percentage = directives.emergency_fund_percentage
                if percentage is None:
                    percentage = self._emergency_fund_default(owner_id)
                percentage = min(percentage, self._settings.max_emergency_fund_percentage)
                amount = allocation_amount(income.amount, percentage)
                if amount > 0:
                    allocations.append(self._allocate(
                        owner_id, income, account, fund, amount,
                        AllocationKind.EMERGENCY_FUND,
                        f"Emergency fund from {income.description or 'Income'}",
                    ))

        return allocations

    def _allocate(
        self,
        owner_id: UUID,
        income: Income,
        source: Account,
        destination: Account,
        amount: Decimal,
        kind: AllocationKind,
        description: str,
    ) -> Transfer:
        transfer = self._transfers.record(
            owner_id,
            from_account_id=source.id,
            to_account_id=destination.id,
            amount=amount,
            occurred_at=income.occurred_at,
            description=description,
            income_id=income.id,
            allocation=kind,
        )
        self._audit.log_allocation(owner_id, transfer.id, income.id, kind.value, amount)
        return transfer

    def _tithe_account(self, owner_id: UUID) -> Account:
        """Find the tithe account by type, then by reserved name, else create it."""
        accounts = self._storage.list_accounts(owner_id, include_archived=False)
        for account in accounts:
            if account.type == AccountType.TITHE:
                return account
        for account in accounts:
            if account.name == self._settings.tithe_account_name and not account.is_liability:
                return account

        account = self._storage.create_account(Account(
            owner_id=owner_id,
            name=self._settings.tithe_account_name,
            type=AccountType.TITHE,
            currency=self._settings.default_currency,
        ))
        self._audit.log_record(
            AuditEventType.ACCOUNT_CREATED,
            owner_id,
            "account",
            account.id,
            f"Account created: {account.name} (auto-provisioned)",
        )
        return account

    def _emergency_fund_account(self, owner_id: UUID) -> Optional[Account]:
        for account in self._storage.list_accounts(owner_id, include_archived=False):
            if account.type == AccountType.EMERGENCY_FUND:
                return account
        return None
