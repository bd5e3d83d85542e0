"""
In-memory repositories for checkpoints, periods and sessions.

Every write is atomic per entity and readers always get their own copy, so a
caller mutating a returned object cannot bypass the version checks.
"""

from copy import deepcopy
from datetime import date
from typing import Optional
import logging
import threading

from ..models.checkpoint import Checkpoint, CheckpointStatus
from ..models.period import PeriodStatus, ReconciliationPeriod
from ..models.session import ReconciliationSession
from ..utils.exceptions import ConcurrencyConflict, DataIntegrityError

logger = logging.getLogger(__name__)


class CheckpointRepository:
    """Append-only checkpoint store."""

    def __init__(self):
        self._lock = threading.RLock()
        self._checkpoints: dict[str, Checkpoint] = {}

    def add(self, checkpoint: Checkpoint) -> Checkpoint:
        with self._lock:
            if checkpoint.id in self._checkpoints:
                raise ConcurrencyConflict(f"Checkpoint {checkpoint.id} already exists")
            self._checkpoints[checkpoint.id] = deepcopy(checkpoint)
        logger.debug(f"Stored checkpoint {checkpoint.id}")
        return deepcopy(checkpoint)

    def get(self, checkpoint_id: str) -> Checkpoint:
        with self._lock:
            checkpoint = self._checkpoints.get(checkpoint_id)
            if checkpoint is None:
                raise DataIntegrityError(f"Checkpoint {checkpoint_id} not found")
            return deepcopy(checkpoint)

    def exists(self, checkpoint_id: str) -> bool:
        with self._lock:
            return checkpoint_id in self._checkpoints

    def list_for_workspace(self, workspace_id: str) -> list[Checkpoint]:
        with self._lock:
            found = [
                deepcopy(c) for c in self._checkpoints.values() if c.workspace_id == workspace_id
            ]
        return sorted(found, key=lambda c: (c.created_at, c.id))

    def latest_closed_before(
        self,
        workspace_id: str,
        account_id: str,
        as_of: date,
        exclude_id: Optional[str] = None,
    ) -> Optional[Checkpoint]:
        """
        Most recent closed checkpoint covering ``account_id`` at or before ``as_of``.

        Only closed checkpoints count, so a checkpoint still being reconciled
        can never be mistaken for prior state.
        """
        with self._lock:
            candidates = [
                c
                for c in self._checkpoints.values()
                if c.workspace_id == workspace_id
                and c.id != exclude_id
                and c.status == CheckpointStatus.CLOSED
                and c.as_of_date <= as_of
                and c.balance_for(account_id) is not None
            ]
            if not candidates:
                return None
            latest = max(candidates, key=lambda c: (c.as_of_date, c.created_at, c.id))
            return deepcopy(latest)

    def set_status(self, checkpoint_id: str, status: CheckpointStatus) -> Checkpoint:
        """The only mutation a checkpoint allows."""
        with self._lock:
            checkpoint = self._checkpoints.get(checkpoint_id)
            if checkpoint is None:
                raise DataIntegrityError(f"Checkpoint {checkpoint_id} not found")
            if checkpoint.status == CheckpointStatus.CLOSED and status != CheckpointStatus.CLOSED:
                raise DataIntegrityError(f"Checkpoint {checkpoint_id} is closed")
            checkpoint.status = status
            return deepcopy(checkpoint)


class PeriodRepository:
    """Reconciliation periods with compare-and-set writes."""

    def __init__(self):
        self._lock = threading.RLock()
        self._periods: dict[str, ReconciliationPeriod] = {}

    @property
    def lock(self) -> threading.RLock:
        """Held by callers that need a check-then-write to be atomic."""
        return self._lock

    def add(self, period: ReconciliationPeriod) -> ReconciliationPeriod:
        with self._lock:
            if period.id in self._periods:
                raise ConcurrencyConflict(f"Period {period.id} already exists")
            self._periods[period.id] = deepcopy(period)
        return deepcopy(period)

    def get(self, period_id: str) -> ReconciliationPeriod:
        with self._lock:
            period = self._periods.get(period_id)
            if period is None:
                raise DataIntegrityError(f"Reconciliation period {period_id} not found")
            return deepcopy(period)

    def for_checkpoint(self, checkpoint_id: str) -> Optional[ReconciliationPeriod]:
        with self._lock:
            for period in self._periods.values():
                if period.start_checkpoint_id == checkpoint_id:
                    return deepcopy(period)
        return None

    def active_for_workspace(self, workspace_id: Optional[str] = None) -> list[ReconciliationPeriod]:
        """Active periods of one workspace, or of every workspace when None."""
        with self._lock:
            found = [
                deepcopy(p)
                for p in self._periods.values()
                if p.status == PeriodStatus.ACTIVE
                and (workspace_id is None or p.workspace_id == workspace_id)
            ]
        return sorted(found, key=lambda p: (p.start_date, p.id))

    def compare_and_set(
        self, period: ReconciliationPeriod, expected_version: int
    ) -> ReconciliationPeriod:
        """
        Store ``period`` only if the stored version still equals ``expected_version``.

        Raises:
            ConcurrencyConflict: If another writer got there first
        """
        with self._lock:
            stored = self._periods.get(period.id)
            if stored is None:
                raise DataIntegrityError(f"Reconciliation period {period.id} not found")
            if stored.version != expected_version:
                raise ConcurrencyConflict(
                    f"Period {period.id} changed concurrently "
                    f"(expected version {expected_version}, found {stored.version})"
                )
            saved = deepcopy(period)
            saved.version = expected_version + 1
            self._periods[period.id] = saved
            return deepcopy(saved)


class SessionRepository:
    """Session store; sessions only need to outlive one reconciliation."""

    def __init__(self):
        self._lock = threading.RLock()
        self._sessions: dict[str, ReconciliationSession] = {}

    def add(self, session: ReconciliationSession) -> ReconciliationSession:
        with self._lock:
            if session.id in self._sessions:
                raise ConcurrencyConflict(f"Session {session.id} already exists")
            self._sessions[session.id] = deepcopy(session)
        return deepcopy(session)

    def get(self, session_id: str) -> ReconciliationSession:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise DataIntegrityError(f"Reconciliation session {session_id} not found")
            return deepcopy(session)

    def save(self, session: ReconciliationSession) -> ReconciliationSession:
        with self._lock:
            if session.id not in self._sessions:
                raise DataIntegrityError(f"Reconciliation session {session.id} not found")
            self._sessions[session.id] = deepcopy(session)
        return deepcopy(session)

    def open_for_checkpoint(self, checkpoint_id: str) -> list[ReconciliationSession]:
        with self._lock:
            return [
                deepcopy(s)
                for s in self._sessions.values()
                if s.checkpoint_id == checkpoint_id and s.is_open
            ]
