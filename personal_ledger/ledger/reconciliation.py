"""
Edit/Delete Reconciliation

Updates never re-run create logic. They apply only the difference
between the effect the record had and the effect it should now have:

- Same account: one effect of (new amount - old amount) in the record's
  natural direction. A negative difference is an effect in the opposite
  direction.
- Account changed: fully reverse the old amount on the old account,
  then fully apply the new amount on the new account.

Delete applies the exact inverse of the creation effect.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from personal_ledger.ledger.effects import BalanceMutationEngine
from personal_ledger.models.ledger import EffectKind


class Reconciler:
    """Computes and applies compensating effects for edits and deletes."""

    def __init__(self, effects: BalanceMutationEngine):
        self._effects = effects

    def reconcile(
        self,
        owner_id: UUID,
        kind: EffectKind,
        old_account_id: Optional[UUID],
        old_amount: Decimal,
        new_account_id: Optional[UUID],
        new_amount: Decimal,
    ) -> None:
        if old_account_id == new_account_id:
            delta = new_amount - old_amount
            if old_account_id is not None and delta != 0:
                self._effects.apply_effect(owner_id, old_account_id, delta, kind)
            return

        if old_account_id is not None:
            self._effects.reverse_effect(owner_id, old_account_id, old_amount, kind)
        if new_account_id is not None:
            self._effects.apply_effect(owner_id, new_account_id, new_amount, kind)

    def reverse(
        self,
        owner_id: UUID,
        kind: EffectKind,
        account_id: Optional[UUID],
        amount: Decimal,
    ) -> None:
        if account_id is not None:
            self._effects.reverse_effect(owner_id, account_id, amount, kind)
