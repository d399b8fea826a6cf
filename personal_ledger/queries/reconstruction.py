"""
Ledger Reconstruction

DESIGN DECISION: Reconstruction is READ-ONLY and deterministic.
It derives history from the stored records and the stored balance and
never writes either.

Running balances are produced by walking backwards from the stored
balance: newest record first, record the accumulator as that record's
running balance, then undo the record's effect to get the balance just
before it. This costs one pass and no sum from inception, but any
error in the stored balance shows up in every historical balance.

To catch that, `check_drift` replays forward from the opening balance
and compares. Drift is reported and audited, never repaired here.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Union
from uuid import UUID

from personal_ledger.audit import AuditLogger
from personal_ledger.errors import NotFoundError, require_owner
from personal_ledger.ledger.effects import effect_delta
from personal_ledger.models.analytics import (
    AccountLedger,
    BalanceDrift,
    LedgerEntry,
    LedgerEntryKind,
)
from personal_ledger.models.ledger import (
    Account,
    EffectKind,
    Expense,
    Income,
    Transfer,
)
from personal_ledger.services.storage import LedgerStorageInterface


@dataclass
class AccountMovement:
    """One record's effect on one account."""

    record: Union[Income, Expense, Transfer]
    entry_kind: LedgerEntryKind
    effect_kind: EffectKind
    amount: Decimal

    @property
    def sort_key(self) -> tuple[datetime, datetime]:
        return (self.record.occurred_at, self.record.created_at)


def account_movements(
    storage: LedgerStorageInterface,
    owner_id: UUID,
    account_id: UUID,
) -> list[AccountMovement]:
    """Every income, expense and transfer leg touching an account, newest first."""
    movements = []
    for income in storage.list_incomes(owner_id, account_id=account_id):
        movements.append(AccountMovement(
            income, LedgerEntryKind.INCOME, EffectKind.CREDIT, income.amount
        ))
    for expense in storage.list_expenses(owner_id, account_id=account_id):
        movements.append(AccountMovement(
            expense, LedgerEntryKind.EXPENSE, EffectKind.DEBIT, expense.amount
        ))
    for transfer in storage.list_transfers(owner_id, account_id=account_id):
        # Fees are replayed through their own expense record
        if transfer.from_account_id == account_id:
            movements.append(AccountMovement(
                transfer, LedgerEntryKind.TRANSFER_OUT, EffectKind.DEBIT, transfer.amount
            ))
        if transfer.to_account_id == account_id:
            movements.append(AccountMovement(
                transfer, LedgerEntryKind.TRANSFER_IN, EffectKind.CREDIT, transfer.amount
            ))

    movements.sort(key=lambda m: m.sort_key, reverse=True)
    return movements


def balance_before(account: Account, movements: list[AccountMovement]) -> Decimal:
    """Undo `movements` from the stored balance."""
    balance = account.balance
    for movement in movements:
        balance -= effect_delta(account.classification, movement.effect_kind, movement.amount)
    return balance


class LedgerReconstructor:
    """Per-account history with running balances."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit = audit or AuditLogger()

    def _account(self, owner_id: UUID, account_id: UUID) -> Account:
        account = self._storage.get_account(owner_id, account_id)
        if account is None:
            raise NotFoundError("Account", account_id)
        return account

    def account_ledger(self, owner_id: Optional[UUID], account_id: UUID) -> AccountLedger:
        """
        The account's transactions, newest first, each with the balance
        right after it.
        """
        owner_id = require_owner(owner_id)
        account = self._account(owner_id, account_id)
        movements = account_movements(self._storage, owner_id, account_id)

        accounts = {a.id: a.name for a in self._storage.list_accounts(owner_id)}
        categories = {c.id: c.name for c in self._storage.list_categories(owner_id)}

        entries = []
        running = account.balance
        for movement in movements:
            record = movement.record
            related_id = None
            category_name = None
            if isinstance(record, Transfer):
                related_id = (
                    record.to_account_id
                    if movement.entry_kind == LedgerEntryKind.TRANSFER_OUT
                    else record.from_account_id
                )
            else:
                category_name = categories.get(record.category_id)

            entries.append(LedgerEntry(
                id=record.id,
                kind=movement.entry_kind,
                amount=movement.amount,
                description=record.description,
                occurred_at=record.occurred_at,
                created_at=record.created_at,
                category_name=category_name,
                related_account_id=related_id,
                related_account_name=accounts.get(related_id) if related_id else None,
                running_balance=running,
            ))
            running -= effect_delta(account.classification, movement.effect_kind, movement.amount)

        return AccountLedger(
            account_id=account.id,
            account_name=account.name,
            is_liability=account.is_liability,
            current_balance=account.balance,
            entries=entries,
        )

    def forward_balance(self, owner_id: Optional[UUID], account_id: UUID) -> Decimal:
        """Opening balance plus every effect, replayed oldest first."""
        owner_id = require_owner(owner_id)
        account = self._account(owner_id, account_id)
        balance = account.opening_balance
        for movement in reversed(account_movements(self._storage, owner_id, account_id)):
            balance += effect_delta(account.classification, movement.effect_kind, movement.amount)
        return balance

    def check_drift(self, owner_id: Optional[UUID], account_id: UUID) -> BalanceDrift:
        """Compare the stored balance with a forward replay; audit any difference."""
        owner_id = require_owner(owner_id)
        account = self._account(owner_id, account_id)
        replayed = self.forward_balance(owner_id, account_id)
        drift = BalanceDrift(
            account_id=account.id,
            stored_balance=account.balance,
            replayed_balance=replayed,
            drift=account.balance - replayed,
        )
        if drift.has_drift:
            self._audit.log_balance_drift(owner_id, account.id, account.balance, replayed)
        return drift
