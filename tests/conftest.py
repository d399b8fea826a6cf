"""Shared fixtures: an owner, in-memory stores and a ready ledger."""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from personal_ledger.audit import AuditLogger
from personal_ledger.models import AccountType, CreateAccountInput
from personal_ledger.orchestrator import PersonalLedger
from personal_ledger.services.storage import InMemoryAuditStorage, InMemoryLedgerStorage


def at(year: int, month: int, day: int = 15, hour: int = 12) -> datetime:
    return datetime(year, month, day, hour, 0, tzinfo=timezone.utc)


@pytest.fixture
def owner_id():
    return uuid4()


@pytest.fixture
def storage():
    return InMemoryLedgerStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def ledger(storage, audit_storage):
    return PersonalLedger(storage, AuditLogger(audit_storage))


@pytest.fixture
def open_account(ledger, owner_id):
    """Factory: open_account("Checking", AccountType.BANK, "1000")."""

    def _open(name, account_type=AccountType.BANK, balance="0", **kwargs):
        return ledger.accounts.create(owner_id, CreateAccountInput(
            name=name,
            type=account_type,
            balance=Decimal(balance),
            **kwargs,
        ))

    return _open


@pytest.fixture
def balance_of(ledger, owner_id):
    """Current stored balance of an account."""

    def _balance(account):
        return ledger.accounts.get(owner_id, account.id).balance

    return _balance
