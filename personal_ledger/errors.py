"""
Ledger Error Taxonomy

Four kinds of failure reach callers:

- ValidationError: malformed or out-of-range input. Never retried.
- NotFoundError: a referenced record does not exist or belongs to
  another owner. Never retried.
- UnauthorizedError: no authenticated owner. Raised before anything
  is read or written.
- IntegrityError: the store rejected a write inside a unit of work.
  The store has already rolled back; persisted state is exactly as
  before the call.

DESIGN DECISION: There is no automatic retry anywhere in the ledger.
Retrying a failed create could duplicate an allocation cascade, so that
decision belongs to the caller.
"""

from typing import Optional
from uuid import UUID

from personal_ledger.models.ledger import ValidationIssue


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class ValidationError(LedgerError):
    """Input was malformed or out of range."""

    def __init__(self, issues: list[ValidationIssue]):
        self.issues = issues
        super().__init__("; ".join(issue.message for issue in issues))

    @classmethod
    def single(cls, field: str, issue_type: str, message: str) -> "ValidationError":
        return cls([ValidationIssue(field=field, issue_type=issue_type, message=message)])


class NotFoundError(LedgerError):
    """Referenced record is missing or not owned by the caller."""

    def __init__(self, entity_type: str, entity_id: Optional[UUID] = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        if entity_id is None:
            message = f"{entity_type} not found"
        else:
            message = f"{entity_type} {entity_id} not found"
        super().__init__(message)


class UnauthorizedError(LedgerError):
    """No authenticated owner was supplied."""
    pass


class IntegrityError(LedgerError):
    """A unit of work failed and was rolled back."""
    pass


def require_owner(owner_id: Optional[UUID]) -> UUID:
    """Fail closed when the caller is not authenticated."""
    if owner_id is None:
        raise UnauthorizedError("Unauthorized")
    return owner_id
