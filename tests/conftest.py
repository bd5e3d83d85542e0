"""Shared fixtures: a fixed clock, a seeded ledger and a service factory."""

from datetime import date, datetime, timezone
from decimal import Decimal
import itertools

import pytest

from checkpoint_recon.clock import FixedClock
from checkpoint_recon.config import ReconConfig
from checkpoint_recon.models.ledger import Account, Transaction, TransactionType
from checkpoint_recon.persistence.ledger import InMemoryLedger
from checkpoint_recon.services.reconciliation_service import ReconciliationService

WORKSPACE = "household"


def make_transaction(txn_id, account_id, amount, txn_type, txn_date, workspace_id=WORKSPACE):
    return Transaction(
        id=txn_id,
        account_id=account_id,
        amount=Decimal(str(amount)),
        type=TransactionType(txn_type),
        date=txn_date,
        workspace_id=workspace_id,
    )


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 1, 31, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def accounts():
    return [
        Account(id="checking", name="Checking", currency="UAH", workspace_id=WORKSPACE),
        Account(id="savings", name="Savings", currency="UAH", workspace_id=WORKSPACE),
    ]


@pytest.fixture
def ledger():
    """January activity: checking nets +250, savings nets +1000."""
    return InMemoryLedger(
        [
            make_transaction("t1", "checking", "500", "income", date(2024, 1, 5)),
            make_transaction("t2", "checking", "200", "expense", date(2024, 1, 10)),
            make_transaction("t3", "checking", "50", "expense", date(2024, 1, 20)),
            make_transaction("t4", "savings", "1000", "income", date(2024, 1, 15)),
        ]
    )


@pytest.fixture
def id_factory():
    counter = itertools.count(1)
    return lambda: f"id-{next(counter)}"


@pytest.fixture
def make_service(ledger, clock, accounts, id_factory):
    """Build a service over the shared ledger; keyword overrides replace defaults."""

    def factory(**overrides):
        options = {
            "ledger": ledger,
            "clock": clock,
            "config": ReconConfig(),
            "accounts": accounts,
            "id_factory": id_factory,
        }
        options.update(overrides)
        return ReconciliationService(**options)

    return factory


@pytest.fixture
def service(make_service):
    return make_service()
