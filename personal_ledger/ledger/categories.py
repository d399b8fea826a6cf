"""
Category resolution.

Incomes, expenses and budgets accept a category either by id or by a
free-text name. `resolve_or_create` is the single get-or-create path for
that: idempotent and unique on (owner, name, type).
"""

from typing import Optional, Union
from uuid import UUID

from personal_ledger.errors import NotFoundError, ValidationError, require_owner
from personal_ledger.ledger.base import LedgerService
from personal_ledger.models.audit import AuditEventType
from personal_ledger.models.ledger import Category, CategoryType
from personal_ledger.services.storage import DuplicateError


def _as_uuid(value: str) -> Optional[UUID]:
    try:
        return UUID(value)
    except ValueError:
        return None


class CategoryService(LedgerService):
    """Owner-scoped category management."""

    def resolve_or_create(
        self,
        owner_id: Optional[UUID],
        name_or_id: Union[UUID, str, None],
        category_type: CategoryType,
    ) -> Category:
        """
        Return the category named or identified by `name_or_id`, creating it by name if needed.

        Raises:
            ValidationError: Empty reference, or an id of the wrong type
            NotFoundError: An id that is missing or not owned
        """
        owner_id = require_owner(owner_id)
        if isinstance(name_or_id, UUID):
            return self._refs.category(owner_id, name_or_id, category_type)

        name = (name_or_id or "").strip()
        if not name:
            raise ValidationError.single("category", "missing", "Please select a category")

        category_id = _as_uuid(name)
        if category_id is not None:
            return self._refs.category(owner_id, category_id, category_type)

        existing = self._storage.find_category(owner_id, name, category_type)
        if existing is not None:
            return existing

        with self.atomic("create_category", owner_id):
            try:
                category = self._storage.create_category(
                    Category(owner_id=owner_id, name=name, type=category_type)
                )
            except DuplicateError:
                # Created concurrently; the unique key makes this the same category
                return self._storage.find_category(owner_id, name, category_type)
            self._audit.log_record(
                AuditEventType.CATEGORY_CREATED,
                owner_id,
                "category",
                category.id,
                f"Category created: {category.name} ({category_type.value})",
            )
        return category

    def create(
        self,
        owner_id: Optional[UUID],
        name: str,
        category_type: CategoryType,
        icon: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Category:
        """
        Create a category explicitly.

        Raises:
            ValidationError: If the owner already has this category
        """
        owner_id = require_owner(owner_id)
        category = Category(
            owner_id=owner_id, name=name, type=category_type, icon=icon, color=color
        )
        if self._storage.find_category(owner_id, category.name, category_type):
            raise ValidationError.single(
                "name", "duplicate", f"Category '{category.name}' already exists"
            )
        with self.atomic("create_category", owner_id):
            category = self._storage.create_category(category)
            self._audit.log_record(
                AuditEventType.CATEGORY_CREATED,
                owner_id,
                "category",
                category.id,
                f"Category created: {category.name} ({category_type.value})",
            )
        return category

    def rename(self, owner_id: Optional[UUID], category_id: UUID, name: str) -> Category:
        owner_id = require_owner(owner_id)
        category = self._storage.get_category(owner_id, category_id)
        if category is None:
            raise NotFoundError("Category", category_id)
        renamed = Category.model_validate({**category.model_dump(), "name": name})
        clash = self._storage.find_category(owner_id, renamed.name, renamed.type)
        if clash is not None and clash.id != category_id:
            raise ValidationError.single(
                "name", "duplicate", f"Category '{renamed.name}' already exists"
            )
        with self.atomic("rename_category", owner_id):
            return self._storage.update_category(renamed)

    def delete(self, owner_id: Optional[UUID], category_id: UUID) -> None:
        """
        Delete a category.

        Raises:
            NotFoundError: Missing or not owned
            IntegrityError: Still referenced by an income, expense or budget
        """
        owner_id = require_owner(owner_id)
        if self._storage.get_category(owner_id, category_id) is None:
            raise NotFoundError("Category", category_id)
        with self.atomic("delete_category", owner_id):
            self._storage.delete_category(owner_id, category_id)

    def get(self, owner_id: Optional[UUID], category_id: UUID) -> Category:
        owner_id = require_owner(owner_id)
        category = self._storage.get_category(owner_id, category_id)
        if category is None:
            raise NotFoundError("Category", category_id)
        return category

    def list(
        self,
        owner_id: Optional[UUID],
        category_type: Optional[CategoryType] = None,
    ) -> list[Category]:
        owner_id = require_owner(owner_id)
        return self._storage.list_categories(owner_id, category_type)
