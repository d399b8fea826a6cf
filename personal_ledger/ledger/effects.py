"""
Balance Mutation Engine

The rule table every balance change goes through:

    | Transaction naturally... | ASSET account     | LIABILITY account |
    |--------------------------|-------------------|-------------------|
    | CREDIT (income, in)      | balance += amount | balance -= amount |
    | DEBIT (expense, out)     | balance -= amount | balance += amount |

For a liability the balance is what is owed, so money coming in reduces
it and money going out increases it.

DESIGN DECISION: `effect_delta` is the only place the sign is decided,
and `BalanceMutationEngine` is the only writer of `Account.balance`.
The classification is re-read at the moment of every effect, including
reversals, so a reversal follows the account's current type.
"""

from decimal import Decimal
from uuid import UUID

from personal_ledger.errors import NotFoundError
from personal_ledger.models.ledger import Account, Classification, EffectKind
from personal_ledger.services.storage import LedgerStorageInterface


def effect_delta(
    classification: Classification,
    kind: EffectKind,
    amount: Decimal,
) -> Decimal:
    """Signed balance change of an effect of `kind` on an account."""
    if classification == Classification.ASSET:
        return amount if kind == EffectKind.CREDIT else -amount
    return -amount if kind == EffectKind.CREDIT else amount


def inverse(kind: EffectKind) -> EffectKind:
    return EffectKind.DEBIT if kind == EffectKind.CREDIT else EffectKind.CREDIT


class BalanceMutationEngine:
    """Applies and reverses effects against stored balances."""

    def __init__(self, storage: LedgerStorageInterface):
        self._storage = storage

    def apply_effect(
        self,
        owner_id: UUID,
        account_id: UUID,
        amount: Decimal,
        kind: EffectKind,
    ) -> Account:
        """
        Apply one effect to an account.

        Must be called inside the unit of work of the record write it
        accompanies.

        Raises:
            NotFoundError: If the account is missing or not owned
        """
        account = self._storage.get_account(owner_id, account_id)
        if account is None:
            raise NotFoundError("Account", account_id)
        if amount == 0:
            return account
        delta = effect_delta(account.classification, kind, amount)
        return self._storage.increment_balance(owner_id, account_id, delta)

    def reverse_effect(
        self,
        owner_id: UUID,
        account_id: UUID,
        amount: Decimal,
        kind: EffectKind,
    ) -> Account:
        """Undo an effect previously applied with the same amount and kind."""
        return self.apply_effect(owner_id, account_id, amount, inverse(kind))
