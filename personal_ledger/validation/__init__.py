"""Reference validation package."""

from personal_ledger.validation.validator import ReferenceValidator

__all__ = ["ReferenceValidator"]
