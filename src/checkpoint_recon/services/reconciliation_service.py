"""
Checkpoint reconciliation service.

Orchestrates the full workflow: open a checkpoint, analyze and resolve gaps,
track session progress, and seal the reconciliation period once every gap is
extinguished.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Callable, Iterable, Optional, Union
import logging
import uuid

from ..calculations.expected_balance import ExpectedBalanceCalculator, ExpectedBalanceResult
from ..calculations.gap_calculator import (
    GapAggregation,
    aggregate_multi_account_gaps,
    analyze_gap_severity,
    calculate_gap_percentage,
    create_reconciliation_gap,
)
from ..clock import Clock, SystemClock
from ..config import ReconConfig
from ..constants import ZERO, MoneyLike, is_gap_resolved, to_decimal
from ..models.checkpoint import (
    AccountBalance,
    Checkpoint,
    CheckpointStatus,
    ReconciliationGap,
    ResolutionMethod,
    Severity,
)
from ..models.ledger import Account, Transaction
from ..models.period import (
    PeriodStatus,
    ReconciliationPeriod,
    can_transition_status,
    validate_closure_constraints,
)
from ..models.session import (
    ReconciliationSession,
    ReconciliationStep,
    SessionMetadata,
    SessionStatus,
)
from ..persistence.ledger import LedgerAccessor, LedgerChange
from ..persistence.repositories import CheckpointRepository, PeriodRepository, SessionRepository
from ..utils.exceptions import ConcurrencyConflict, DataIntegrityError, ValidationError
from .adjustment import AdjustmentPayload, AdjustmentTransactionCreator
from .progress import ReconciliationProgressService, SessionProgress, StepValidation

logger = logging.getLogger(__name__)


@dataclass
class AccountBalanceInput:
    """A declared actual balance for one account."""

    account_id: str
    actual_balance: Decimal
    account_name: Optional[str] = None
    currency: Optional[str] = None

    def __post_init__(self) -> None:
        self.actual_balance = to_decimal(self.actual_balance)


@dataclass
class GapSummary:
    """Per-account gaps plus their aggregate for one checkpoint."""

    checkpoint_id: str
    gaps: list[ReconciliationGap]
    aggregate: GapAggregation
    closure_enabled: bool


@dataclass
class PeriodClosureResult:
    closed: bool
    reason: Optional[str] = None
    period: Optional[ReconciliationPeriod] = None
    already_closed: bool = False


@dataclass
class SessionAdvance:
    session: ReconciliationSession
    validation: StepValidation
    advanced: bool = False
    closure: Optional[PeriodClosureResult] = None


@dataclass
class _AccountComputation:
    balance: AccountBalance
    gap: ReconciliationGap
    expected: ExpectedBalanceResult = field(repr=False)


class ReconciliationService:
    """Entry point for the checkpoint reconciliation workflow."""

    def __init__(
        self,
        ledger: LedgerAccessor,
        checkpoints: Optional[CheckpointRepository] = None,
        periods: Optional[PeriodRepository] = None,
        sessions: Optional[SessionRepository] = None,
        clock: Optional[Clock] = None,
        config: Optional[ReconConfig] = None,
        accounts: Optional[Iterable[Account]] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        """
        Initialize the service.

        Args:
            ledger: Transaction store; change notifications are subscribed when supported
            checkpoints: Checkpoint repository
            periods: Reconciliation period repository
            sessions: Session repository
            clock: Source of server time
            config: Application configuration
            accounts: Known accounts; when given, unknown account ids are rejected
            id_factory: Generates entity ids, uuid4 by default
        """
        self.ledger = ledger
        self.checkpoints = checkpoints or CheckpointRepository()
        self.periods = periods or PeriodRepository()
        self.sessions = sessions or SessionRepository()
        self.clock = clock or SystemClock()
        self.config = config or ReconConfig()
        self.accounts = {a.id: a for a in accounts} if accounts is not None else None
        self.id_factory = id_factory or (lambda: str(uuid.uuid4()))

        self.calculator = ExpectedBalanceCalculator(ledger, self.checkpoints)
        self.adjustments = AdjustmentTransactionCreator(
            ledger, self.config.policy, id_factory=self.id_factory
        )
        self.progress = ReconciliationProgressService(self.config.progress)

        # Adjustments being posted, by transaction id, mapped to the period posting them
        self._posting: dict[str, str] = {}

        if hasattr(ledger, "on_change"):
            ledger.on_change(self.record_ledger_change)

    # ------------------------------------------------------------------
    # Checkpoints and gaps
    # ------------------------------------------------------------------

    def open_checkpoint(
        self,
        workspace_id: str,
        account_balances: Iterable[AccountBalanceInput],
        created_by: str,
        as_of_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> Checkpoint:
        """
        Snapshot declared balances against the ledger and open a period for them.

        Args:
            workspace_id: Workspace being reconciled
            account_balances: Declared actual balances, one per account
            created_by: User creating the checkpoint
            as_of_date: Date the balances refer to, today by default
            notes: Optional free text

        Returns:
            The persisted checkpoint

        Raises:
            ValidationError: On empty input, duplicate or unknown accounts
        """
        inputs = list(account_balances)
        self._validate_balance_inputs(workspace_id, inputs)

        created_at = self.clock.now()
        as_of = as_of_date or created_at.date()
        checkpoint_id = self.id_factory()

        computations = [
            self._compute_account(workspace_id, checkpoint_id, as_of, item) for item in inputs
        ]
        gaps = [c.gap for c in computations]
        all_zero = AdjustmentTransactionCreator.is_period_closure_enabled(gaps)

        checkpoint = self.checkpoints.add(
            Checkpoint(
                id=checkpoint_id,
                workspace_id=workspace_id,
                created_at=created_at,
                created_by=created_by,
                as_of_date=as_of,
                account_balances=[c.balance for c in computations],
                gaps=gaps,
                status=CheckpointStatus.RESOLVED if all_zero else CheckpointStatus.OPEN,
                notes=notes,
            )
        )

        period = ReconciliationPeriod(
            id=self.id_factory(),
            workspace_id=workspace_id,
            start_checkpoint_id=checkpoint.id,
            start_date=checkpoint.created_at,
            gaps=list(checkpoint.gaps),
        )
        self._attribute_activity(period, [c.expected for c in computations])
        self.periods.add(period)

        logger.info(
            f"Opened checkpoint {checkpoint.id} for workspace {workspace_id}: "
            f"{len(inputs)} accounts, "
            f"{sum(1 for g in gaps if not g.is_resolved)} with gaps, period {period.id}"
        )
        return checkpoint

    def get_checkpoint(self, checkpoint_id: str) -> Checkpoint:
        return self.checkpoints.get(checkpoint_id)

    def period_for_checkpoint(self, checkpoint_id: str) -> ReconciliationPeriod:
        period = self.periods.for_checkpoint(checkpoint_id)
        if period is None:
            raise DataIntegrityError(f"No reconciliation period references checkpoint {checkpoint_id}")
        return period

    def get_gap_summary(self, checkpoint_id: str) -> GapSummary:
        """
        Current gaps for a checkpoint and their aggregate.

        Raises:
            ConcurrencyConflict: If a locked transaction changed since the last computation
        """
        checkpoint = self.checkpoints.get(checkpoint_id)
        period = self.period_for_checkpoint(checkpoint_id)
        self._ensure_fresh(period)

        balances = [self._current_balance(period, b) for b in checkpoint.account_balances]
        return GapSummary(
            checkpoint_id=checkpoint_id,
            gaps=list(period.gaps),
            aggregate=aggregate_multi_account_gaps(balances),
            closure_enabled=AdjustmentTransactionCreator.is_period_closure_enabled(period.gaps),
        )

    def resolve_gap(
        self,
        checkpoint_id: str,
        gap: Union[ReconciliationGap, str],
        resolution_method: Union[ResolutionMethod, str],
        payload: Optional[AdjustmentPayload] = None,
    ) -> ReconciliationGap:
        """
        Resolve one account's gap.

        A manual transaction posts an adjustment entry and recomputes the gap
        from the ledger. A quick close accepts the discrepancy without a
        ledger entry: the gap is recorded as zero and the accepted amount is
        kept in ``written_off_amount``. Quick close is subject to policy.

        Args:
            checkpoint_id: Checkpoint whose gap is resolved
            gap: The gap, or its account id
            resolution_method: quick_close or manual_transaction
            payload: Overrides for the adjustment transaction

        Returns:
            The updated gap

        Raises:
            ValidationError: Unknown account, gap already resolved, or policy refusal
            ConcurrencyConflict: If the period changed underneath or needs recomputing
        """
        method = ResolutionMethod(resolution_method)
        account_id = gap.account_id if isinstance(gap, ReconciliationGap) else gap

        with self.periods.lock:
            checkpoint = self.checkpoints.get(checkpoint_id)
            period = self.period_for_checkpoint(checkpoint_id)
            if not period.is_active:
                raise ValidationError(f"Period {period.id} is closed; gaps can no longer change")
            self._ensure_fresh(period)

            current = period.gap_for(account_id)
            if current is None:
                raise ValidationError(f"Account {account_id} is not part of checkpoint {checkpoint_id}")
            if current.is_resolved:
                raise ValidationError(f"Gap for account {account_id} is already resolved")

            if method == ResolutionMethod.QUICK_CLOSE:
                resolved = self._quick_close(current)
            else:
                resolved = self._post_adjustment(checkpoint, period, current, payload)

            expected_version = period.version
            period.replace_gap(resolved)
            saved = self.periods.compare_and_set(period, expected_version)

            self._sync_checkpoint_status(checkpoint, saved)
            self._sync_sessions(checkpoint_id, saved, method)

        logger.info(
            f"Resolved gap on {account_id} ({method.value}): "
            f"{current.gap_amount} -> {resolved.gap_amount}"
        )
        return resolved

    def recompute_gaps(self, checkpoint_id: str) -> list[ReconciliationGap]:
        """
        Rebuild every gap of a checkpoint from the ledger and clear stale flags.

        Resolution details survive: adjustment ids stay attached and quick-closed
        amounts stay written off.
        """
        with self.periods.lock:
            checkpoint = self.checkpoints.get(checkpoint_id)
            period = self.period_for_checkpoint(checkpoint_id)
            if not period.is_active:
                return list(period.gaps)

            expected_results: list[ExpectedBalanceResult] = []
            new_gaps: list[ReconciliationGap] = []
            for balance in checkpoint.account_balances:
                previous = period.gap_for(balance.account_id)
                gap, expected = self._recomputed_gap(checkpoint, balance, previous)
                new_gaps.append(gap)
                expected_results.append(expected)

            expected_version = period.version
            period.gaps = new_gaps
            period.locked_transactions = []
            period.stale_transactions = []
            self._attribute_activity(period, expected_results)
            saved = self.periods.compare_and_set(period, expected_version)

            self._sync_checkpoint_status(checkpoint, saved)
            self._sync_sessions(checkpoint_id, saved)

        logger.info(f"Recomputed {len(new_gaps)} gaps for checkpoint {checkpoint_id}")
        return new_gaps

    # ------------------------------------------------------------------
    # Period closure
    # ------------------------------------------------------------------

    def attempt_close_period(self, period_id: str) -> PeriodClosureResult:
        """
        Close a period if, and only if, every gap is extinguished.

        Validation and the status change happen under the period lock with a
        version check, so a concurrent edit that reopens a gap cannot slip in
        between. A refusal is returned, not raised. Closing an already closed
        period is a no-op that reports success.

        Raises:
            ConcurrencyConflict: If a locked transaction changed and gaps must be recomputed
            DataIntegrityError: If the period's checkpoint cannot be resolved
        """
        with self.periods.lock:
            period = self.periods.get(period_id)

            if period.status == PeriodStatus.CLOSED:
                logger.debug(f"Period {period_id} already closed")
                return PeriodClosureResult(closed=True, period=period, already_closed=True)

            self._ensure_fresh(period)
            if not self.checkpoints.exists(period.start_checkpoint_id):
                raise DataIntegrityError(
                    f"Period {period_id} references missing checkpoint {period.start_checkpoint_id}"
                )

            all_zero = AdjustmentTransactionCreator.is_period_closure_enabled(period.gaps)
            decision = validate_closure_constraints(period, all_zero)
            if not decision.can_close or not can_transition_status(
                period.status, PeriodStatus.CLOSED, all_zero
            ):
                logger.warning(f"Closure refused for period {period_id}: {decision.reason}")
                return PeriodClosureResult(closed=False, reason=decision.reason, period=period)

            now = self.clock.now()
            if now < period.start_date:
                raise DataIntegrityError(
                    f"Clock reads {now.isoformat()}, before period start {period.start_date.isoformat()}"
                )

            expected_version = period.version
            period.status = PeriodStatus.CLOSED
            period.end_checkpoint_id = period.start_checkpoint_id
            period.end_date = now
            saved = self.periods.compare_and_set(period, expected_version)

            self.checkpoints.set_status(period.start_checkpoint_id, CheckpointStatus.CLOSED)

        logger.info(f"Closed period {period_id} (checkpoint {saved.start_checkpoint_id})")
        return PeriodClosureResult(closed=True, period=saved)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def start_session(
        self,
        checkpoint_id: str,
        device_type: str = "desktop",
        user_agent: str = "",
    ) -> ReconciliationSession:
        """Begin (or rejoin) the guided workflow for a checkpoint."""
        checkpoint = self.checkpoints.get(checkpoint_id)
        existing = self.sessions.open_for_checkpoint(checkpoint_id)
        if existing:
            return existing[0]

        period = self.period_for_checkpoint(checkpoint_id)
        now = self.clock.now()
        initial = sum(1 for g in checkpoint.gaps if not g.is_resolved)
        remaining = _unresolved_count(period.gaps)

        session = ReconciliationSession(
            id=self.id_factory(),
            workspace_id=checkpoint.workspace_id,
            checkpoint_id=checkpoint_id,
            current_step=ReconciliationStep.GAP_ANALYSIS,
            started_at=now,
            last_activity_at=now,
            step_started_at=now,
            gaps_remaining=remaining,
            completed_steps=[ReconciliationStep.CHECKPOINT_CREATION],
            metadata=SessionMetadata(
                device_type=device_type,
                user_agent=user_agent,
                initial_gap_count=max(initial, remaining),
            ),
        )
        session.progress_percentage = self.progress.get_session_progress(session).percentage
        saved = self.sessions.add(session)
        logger.info(f"Started session {saved.id} for checkpoint {checkpoint_id}")
        return saved

    def advance_session(self, session_id: str) -> SessionAdvance:
        """
        Move a session to its next step if the current one is complete.

        Completing the period-closure step attempts to close the period; the
        session only advances when that succeeds.
        """
        session = self.sessions.get(session_id)
        if session.status != SessionStatus.ACTIVE:
            raise ValidationError(f"Session {session_id} is {session.status.value}")

        period = self.period_for_checkpoint(session.checkpoint_id)
        session.gaps_remaining = _unresolved_count(period.gaps)

        validation = self.progress.validate_step_completion(session.current_step, session)
        if not validation.is_complete:
            return SessionAdvance(session=self.sessions.save(session), validation=validation)

        closure = None
        if session.current_step == ReconciliationStep.PERIOD_CLOSURE:
            closure = self.attempt_close_period(period.id)
            if not closure.closed:
                return SessionAdvance(
                    session=self.sessions.save(session),
                    validation=StepValidation(False, closure.reason),
                    closure=closure,
                )

        now = self.clock.now()
        step = session.current_step
        started = session.step_started_at or session.last_activity_at
        spent = session.metadata.time_spent_per_step
        spent[step.value] = spent.get(step.value, 0.0) + max(0.0, (now - started).total_seconds())

        if step not in session.completed_steps:
            session.completed_steps.append(step)
        next_step = step.next_step or ReconciliationStep.COMPLETION
        session.current_step = next_step
        session.step_started_at = now
        session.last_activity_at = now
        if next_step == ReconciliationStep.COMPLETION:
            session.status = SessionStatus.COMPLETED
        session.progress_percentage = self.progress.get_session_progress(session).percentage

        saved = self.sessions.save(session)
        logger.info(f"Session {session_id}: {step.value} -> {next_step.value}")
        return SessionAdvance(session=saved, validation=validation, advanced=True, closure=closure)

    def pause_session(self, session_id: str) -> ReconciliationSession:
        return self._set_session_status(session_id, SessionStatus.PAUSED)

    def resume_session(self, session_id: str) -> ReconciliationSession:
        return self._set_session_status(session_id, SessionStatus.ACTIVE)

    def abandon_session(self, session_id: str) -> ReconciliationSession:
        return self._set_session_status(session_id, SessionStatus.ABANDONED)

    def get_session_progress(self, session_id: str) -> SessionProgress:
        return self.progress.get_session_progress(self.sessions.get(session_id))

    # ------------------------------------------------------------------
    # Ledger change tracking
    # ------------------------------------------------------------------

    def record_ledger_change(self, transaction: Transaction, change: LedgerChange) -> None:
        """
        React to a ledger edit made while reconciliations are open.

        Editing or deleting a locked transaction flags the period as stale so
        the next read raises ConcurrencyConflict until gaps are recomputed. A
        transaction that enters a checkpoint's window, whether newly added or
        edited into it, is picked up immediately by recomputing that account's
        gap. An adjustment is skipped only by the period that posted it.
        """
        posting_period_id = self._posting.get(transaction.id)

        with self.periods.lock:
            for period in self.periods.active_for_workspace(transaction.workspace_id):
                if period.id == posting_period_id:
                    continue
                if period.is_locked(transaction.id):
                    expected_version = period.version
                    if transaction.id not in period.stale_transactions:
                        period.stale_transactions.append(transaction.id)
                    self.periods.compare_and_set(period, expected_version)
                    logger.warning(
                        f"Locked transaction {transaction.id} {change.value} during "
                        f"reconciliation of period {period.id}; gaps must be recomputed"
                    )
                elif change in (LedgerChange.ADDED, LedgerChange.UPDATED):
                    self._apply_window_transaction(period, transaction)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _validate_balance_inputs(self, workspace_id: str, inputs: list[AccountBalanceInput]) -> None:
        if not inputs:
            raise ValidationError("At least one account balance is required")

        seen: set[str] = set()
        for item in inputs:
            if not item.account_id:
                raise ValidationError("Account id is required")
            if item.account_id in seen:
                raise ValidationError(f"Duplicate account in checkpoint: {item.account_id}")
            seen.add(item.account_id)

            if self.accounts is not None:
                account = self.accounts.get(item.account_id)
                if account is None:
                    raise ValidationError(f"Unknown account: {item.account_id}")
                if account.workspace_id and account.workspace_id != workspace_id:
                    raise ValidationError(
                        f"Account {item.account_id} does not belong to workspace {workspace_id}"
                    )

    def _compute_account(
        self,
        workspace_id: str,
        checkpoint_id: str,
        as_of: date,
        item: AccountBalanceInput,
    ) -> _AccountComputation:
        expected = self.calculator.compute(
            item.account_id, workspace_id, as_of, exclude_checkpoint_id=checkpoint_id
        )
        volume = expected.transaction_volume
        gap_amount = item.actual_balance - expected.expected_balance

        account = self.accounts.get(item.account_id) if self.accounts else None
        balance = AccountBalance(
            account_id=item.account_id,
            account_name=item.account_name or (account.name if account else item.account_id),
            currency=item.currency
            or (account.currency if account else self.config.policy.default_currency),
            actual_balance=item.actual_balance,
            expected_balance=expected.expected_balance,
            gap_amount=gap_amount,
            gap_percentage=calculate_gap_percentage(gap_amount, volume),
        )
        return _AccountComputation(
            balance=balance,
            gap=create_reconciliation_gap(balance, volume),
            expected=expected,
        )

    def _recomputed_gap(
        self,
        checkpoint: Checkpoint,
        balance: AccountBalance,
        previous: Optional[ReconciliationGap],
    ) -> tuple[ReconciliationGap, ExpectedBalanceResult]:
        expected = self.calculator.compute(
            balance.account_id,
            checkpoint.workspace_id,
            checkpoint.as_of_date,
            exclude_checkpoint_id=checkpoint.id,
        )
        written_off = previous.written_off_amount if previous else None
        amount = balance.actual_balance - expected.expected_balance - (written_off or ZERO)
        volume = expected.transaction_volume

        gap = ReconciliationGap(
            account_id=balance.account_id,
            gap_amount=amount,
            gap_percentage=calculate_gap_percentage(amount, volume),
            severity=analyze_gap_severity(amount, volume),
            resolution_method=previous.resolution_method if previous else None,
            adjustment_transaction_id=previous.adjustment_transaction_id if previous else None,
            written_off_amount=written_off,
        )
        return gap, expected

    def _quick_close(self, gap: ReconciliationGap) -> ReconciliationGap:
        policy = self.config.policy
        if not policy.allow_quick_close:
            raise ValidationError("Quick close is disabled by policy")
        if abs(gap.gap_amount) > policy.quick_close_limit:
            raise ValidationError(
                f"Gap {gap.gap_amount} exceeds the quick close limit of {policy.quick_close_limit}"
            )
        return gap.with_changes(
            gap_amount=ZERO,
            gap_percentage=ZERO,
            severity=Severity.LOW,
            resolution_method=ResolutionMethod.QUICK_CLOSE,
            written_off_amount=(gap.written_off_amount or ZERO) + gap.gap_amount,
        )

    def _post_adjustment(
        self,
        checkpoint: Checkpoint,
        period: ReconciliationPeriod,
        gap: ReconciliationGap,
        payload: Optional[AdjustmentPayload],
    ) -> ReconciliationGap:
        balance = checkpoint.balance_for(gap.account_id)
        if balance is None:
            raise DataIntegrityError(
                f"Checkpoint {checkpoint.id} has a gap but no balance for {gap.account_id}"
            )

        window = self.calculator.compute(
            gap.account_id,
            checkpoint.workspace_id,
            checkpoint.as_of_date,
            exclude_checkpoint_id=checkpoint.id,
        )
        transaction = self.adjustments.build_adjustment_transaction(
            gap,
            checkpoint.as_of_date,
            checkpoint.workspace_id,
            payload,
            window_start=window.window_start,
        )
        self._posting[transaction.id] = period.id
        try:
            posted = self.ledger.add(transaction)
        finally:
            self._posting.pop(transaction.id, None)

        recomputed, expected = self._recomputed_gap(checkpoint, balance, gap)
        period.lock_transactions([posted.id])
        period.total_transactions += 1
        period.total_amount += posted.amount

        logger.debug(
            f"Adjustment {posted.id} moved expected balance of {gap.account_id} "
            f"to {expected.expected_balance}"
        )
        return recomputed.with_changes(
            resolution_method=ResolutionMethod.MANUAL_TRANSACTION,
            adjustment_transaction_id=posted.id,
        )

    def _apply_window_transaction(self, period: ReconciliationPeriod, transaction: Transaction) -> None:
        checkpoint = self.checkpoints.get(period.start_checkpoint_id)
        balance = checkpoint.balance_for(transaction.account_id)
        if balance is None or transaction.date > checkpoint.as_of_date or transaction.is_deleted:
            return

        previous = period.gap_for(transaction.account_id)
        gap, expected = self._recomputed_gap(checkpoint, balance, previous)
        if transaction.id not in expected.transaction_ids:
            # Dated before the window
            return

        expected_version = period.version
        period.replace_gap(gap)
        period.lock_transactions([transaction.id])
        period.total_transactions += 1
        period.total_amount += transaction.amount
        saved = self.periods.compare_and_set(period, expected_version)

        self._sync_checkpoint_status(checkpoint, saved)
        self._sync_sessions(checkpoint.id, saved)
        logger.info(
            f"Transaction {transaction.id} entered the window of {transaction.account_id}; "
            f"gap now {gap.gap_amount}"
        )

    def _attribute_activity(
        self, period: ReconciliationPeriod, results: Iterable[ExpectedBalanceResult]
    ) -> None:
        """Record the transactions behind the current gaps and lock them."""
        results = list(results)
        period.total_transactions = sum(len(r.transactions) for r in results)
        period.total_amount = sum((r.transaction_volume for r in results), ZERO)
        period.lock_transactions([txn_id for r in results for txn_id in r.transaction_ids])

    def _current_balance(
        self, period: ReconciliationPeriod, balance: AccountBalance
    ) -> AccountBalance:
        """The snapshot balance with its gap replaced by the working gap."""
        gap = period.gap_for(balance.account_id)
        if gap is None:
            return balance
        # Written-off amounts count as reconciled
        return AccountBalance(
            account_id=balance.account_id,
            account_name=balance.account_name,
            currency=balance.currency,
            actual_balance=balance.actual_balance,
            expected_balance=balance.actual_balance - gap.gap_amount,
            gap_percentage=gap.gap_percentage,
        )

    def _ensure_fresh(self, period: ReconciliationPeriod) -> None:
        if period.needs_recompute:
            raise ConcurrencyConflict(
                f"Locked transactions changed during reconciliation of period {period.id}; "
                f"recompute gaps before continuing",
                transaction_ids=tuple(period.stale_transactions),
            )

    def _sync_checkpoint_status(self, checkpoint: Checkpoint, period: ReconciliationPeriod) -> None:
        if checkpoint.status == CheckpointStatus.CLOSED:
            return
        target = CheckpointStatus.RESOLVED if period.all_gaps_zero else CheckpointStatus.OPEN
        if checkpoint.status != target:
            self.checkpoints.set_status(checkpoint.id, target)

    def _sync_sessions(
        self,
        checkpoint_id: str,
        period: ReconciliationPeriod,
        method: Optional[ResolutionMethod] = None,
    ) -> None:
        now = self.clock.now()
        for session in self.sessions.open_for_checkpoint(checkpoint_id):
            session.gaps_remaining = _unresolved_count(period.gaps)
            if session.gaps_remaining > session.metadata.initial_gap_count:
                session.metadata.initial_gap_count = session.gaps_remaining
            if method is not None:
                session.metadata.resolution_methods_used.append(method.value)
            session.last_activity_at = now
            session.progress_percentage = self.progress.get_session_progress(session).percentage
            self.sessions.save(session)

    def _set_session_status(self, session_id: str, status: SessionStatus) -> ReconciliationSession:
        session = self.sessions.get(session_id)
        if not session.is_open:
            raise ValidationError(f"Session {session_id} is already {session.status.value}")
        session.status = status
        session.last_activity_at = self.clock.now()
        return self.sessions.save(session)


def _unresolved_count(gaps: Iterable[ReconciliationGap]) -> int:
    return sum(1 for g in gaps if not is_gap_resolved(g.gap_amount))


def balance_inputs(values: dict[str, MoneyLike]) -> list[AccountBalanceInput]:
    """Build inputs from an ``{account_id: actual_balance}`` mapping."""
    return [AccountBalanceInput(account_id=k, actual_balance=v) for k, v in values.items()]
