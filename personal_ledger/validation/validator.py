"""
Reference Validation

Input models already reject malformed values at construction. What they
cannot check is whether the records an input points at exist, belong to
the caller, and are usable. That is this module's job.

Two classes of failure come out of here:
- NotFoundError: the referenced record is missing or owned by someone
  else. The two cases are deliberately indistinguishable.
- ValidationError: the record exists but cannot be used this way
  (archived account, category of the wrong type, attribute that does
  not apply to the account type).

IMPORTANT: Validation NEVER silently fixes issues. It reports them.
"""

from typing import Optional
from uuid import UUID

from personal_ledger.errors import NotFoundError, ValidationError
from personal_ledger.models.ledger import (
    Account,
    AccountType,
    Budget,
    Category,
    CategoryType,
    ValidationIssue,
)
from personal_ledger.services.storage import LedgerStorageInterface


_FUND_ATTRIBUTES = (
    "target_amount",
    "fund_calculation_mode",
    "fund_threshold_low",
    "fund_threshold_mid",
    "fund_threshold_high",
)


class ReferenceValidator:
    """Resolves and checks references against the store."""

    def __init__(self, storage: LedgerStorageInterface):
        self._storage = storage

    def account(
        self,
        owner_id: UUID,
        account_id: UUID,
        field: str = "account_id",
        allow_archived: bool = False,
    ) -> Account:
        """
        Load an account the caller may post to.

        Args:
            allow_archived: Reversals and edits of existing records may
                            touch archived accounts; new records may not.

        Raises:
            NotFoundError: Missing or not owned
            ValidationError: Archived and not allowed
        """
        account = self._storage.get_account(owner_id, account_id)
        if account is None:
            raise NotFoundError("Account", account_id)
        if account.is_archived and not allow_archived:
            raise ValidationError.single(
                field, "archived", f"Account '{account.name}' is archived"
            )
        return account

    def transfer_accounts(
        self,
        owner_id: UUID,
        from_account_id: UUID,
        to_account_id: UUID,
    ) -> tuple[Account, Account]:
        """Both sides of a new transfer, checked before any mutation."""
        if from_account_id == to_account_id:
            raise ValidationError.single(
                "to_account_id",
                "invalid_value",
                "Source and destination accounts must be different",
            )
        source = self.account(owner_id, from_account_id, field="from_account_id")
        destination = self.account(owner_id, to_account_id, field="to_account_id")
        return source, destination

    def category(
        self,
        owner_id: UUID,
        category_id: UUID,
        expected_type: CategoryType,
        field: str = "category_id",
    ) -> Category:
        category = self._storage.get_category(owner_id, category_id)
        if category is None:
            raise NotFoundError("Category", category_id)
        if category.type != expected_type:
            raise ValidationError.single(
                field,
                "wrong_type",
                f"Category '{category.name}' is not an {expected_type.value.lower()} category",
            )
        return category

    def budget(
        self,
        owner_id: UUID,
        budget_id: Optional[UUID],
    ) -> Optional[Budget]:
        if budget_id is None:
            return None
        budget = self._storage.get_budget(owner_id, budget_id)
        if budget is None:
            raise NotFoundError("Budget", budget_id)
        return budget

    def account_attributes(self, account_type: AccountType, values: dict) -> None:
        """
        Check type-specific attributes against the account type.

        Raises:
            ValidationError: With one issue per misplaced attribute
        """
        issues = []
        if values.get("credit_limit") is not None and account_type != AccountType.CREDIT:
            issues.append(ValidationIssue(
                field="credit_limit",
                issue_type="not_applicable",
                message="Credit limit only applies to CREDIT accounts",
            ))
        if account_type not in (AccountType.EMERGENCY_FUND, AccountType.FUND):
            for name in _FUND_ATTRIBUTES:
                if values.get(name) is not None:
                    issues.append(ValidationIssue(
                        field=name,
                        issue_type="not_applicable",
                        message=f"{name} only applies to fund accounts",
                    ))
        if issues:
            raise ValidationError(issues)
