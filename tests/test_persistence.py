"""Tests for the in-memory ledger and repositories."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from checkpoint_recon.models.checkpoint import Checkpoint, CheckpointStatus
from checkpoint_recon.models.period import ReconciliationPeriod
from checkpoint_recon.persistence.ledger import InMemoryLedger, LedgerChange
from checkpoint_recon.persistence.repositories import CheckpointRepository, PeriodRepository
from checkpoint_recon.utils.exceptions import ConcurrencyConflict, DataIntegrityError, ValidationError

from conftest import make_transaction

NOW = datetime(2024, 1, 31, 12, tzinfo=timezone.utc)


class TestInMemoryLedger:
    """Tests for InMemoryLedger."""

    def test_window_is_exclusive_start_inclusive_end(self, ledger):
        ids = [t.id for t in ledger.list_transactions("checking", date(2024, 1, 5), date(2024, 1, 20))]
        assert ids == ["t2", "t3"]

    def test_soft_delete_hidden_unless_requested(self, ledger):
        ledger.delete("t2", NOW)
        assert "t2" not in [t.id for t in ledger.list_transactions("checking", None, date(2024, 1, 31))]
        assert "t2" in [
            t.id for t in ledger.list_transactions("checking", None, date(2024, 1, 31), include_deleted=True)
        ]

    def test_listeners_receive_changes(self, ledger):
        events = []
        ledger.on_change(lambda txn, change: events.append((txn.id, change)))

        ledger.add(make_transaction("t9", "checking", "1", "income", date(2024, 1, 30)))
        ledger.update("t9", description="edited")
        ledger.delete("t9", NOW)

        assert events == [
            ("t9", LedgerChange.ADDED),
            ("t9", LedgerChange.UPDATED),
            ("t9", LedgerChange.DELETED),
        ]

    def test_duplicate_and_unknown_ids(self, ledger):
        with pytest.raises(ValidationError):
            ledger.add(make_transaction("t1", "checking", "1", "income", date(2024, 1, 30)))
        with pytest.raises(ValidationError):
            ledger.update("missing", description="x")

    def test_non_positive_amount_is_rejected(self):
        with pytest.raises(ValidationError):
            make_transaction("neg", "checking", "-5", "expense", date(2024, 1, 1))


class TestCheckpointRepository:
    """Tests for CheckpointRepository."""

    def make_checkpoint(self, checkpoint_id="cp-1"):
        return Checkpoint(
            id=checkpoint_id,
            workspace_id="household",
            created_at=NOW,
            created_by="alice",
            as_of_date=date(2024, 1, 31),
        )

    def test_duplicate_id_conflicts(self):
        repo = CheckpointRepository()
        repo.add(self.make_checkpoint())
        with pytest.raises(ConcurrencyConflict):
            repo.add(self.make_checkpoint())

    def test_missing_checkpoint_is_integrity_error(self):
        with pytest.raises(DataIntegrityError):
            CheckpointRepository().get("nope")

    def test_returned_copies_are_detached(self):
        repo = CheckpointRepository()
        repo.add(self.make_checkpoint())
        copy = repo.get("cp-1")
        copy.status = CheckpointStatus.CLOSED
        assert repo.get("cp-1").status == CheckpointStatus.OPEN

    def test_closed_checkpoint_never_reopens(self):
        repo = CheckpointRepository()
        repo.add(self.make_checkpoint())
        repo.set_status("cp-1", CheckpointStatus.CLOSED)
        with pytest.raises(DataIntegrityError):
            repo.set_status("cp-1", CheckpointStatus.OPEN)


class TestPeriodRepository:
    """Tests for PeriodRepository version checks."""

    def make_period(self):
        return ReconciliationPeriod(
            id="p-1", workspace_id="household", start_checkpoint_id="cp-1", start_date=NOW
        )

    def test_compare_and_set_bumps_version(self):
        repo = PeriodRepository()
        repo.add(self.make_period())
        period = repo.get("p-1")
        period.total_amount = Decimal("10")

        saved = repo.compare_and_set(period, expected_version=0)
        assert saved.version == 1
        assert repo.get("p-1").total_amount == Decimal("10")

    def test_stale_writer_conflicts(self):
        repo = PeriodRepository()
        repo.add(self.make_period())
        first = repo.get("p-1")
        second = repo.get("p-1")

        repo.compare_and_set(first, first.version)
        with pytest.raises(ConcurrencyConflict):
            repo.compare_and_set(second, second.version)

    def test_active_for_workspace_filters(self):
        repo = PeriodRepository()
        repo.add(self.make_period())
        assert [p.id for p in repo.active_for_workspace("household")] == ["p-1"]
        assert repo.active_for_workspace("other") == []
        assert [p.id for p in repo.active_for_workspace(None)] == ["p-1"]
