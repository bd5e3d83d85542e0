"""
Reconciliation progress tracking.

Everything here is a pure function of its arguments, so polling clients and
retries always see the same answer for the same session state.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from ..config import ProgressConfig
from ..models.session import STEP_ORDER, ReconciliationSession, ReconciliationStep, SessionStatus
from ..utils.exceptions import ValidationError

# Share of the percentage earned by finishing workflow steps; the rest comes
# from resolving gaps.
STEP_WEIGHT = 80
GAP_WEIGHT = 100 - STEP_WEIGHT


@dataclass(frozen=True)
class StepDisplayInfo:
    label: str
    description: str
    short_description: str


@dataclass(frozen=True)
class StepValidation:
    is_complete: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class GapsSummary:
    total_gaps: int
    remaining_gaps: int
    resolved_gaps: int


@dataclass(frozen=True)
class SessionProgress:
    percentage: int
    estimated_time_remaining: int
    gaps_summary: GapsSummary


STEP_DISPLAY: dict[ReconciliationStep, StepDisplayInfo] = {
    ReconciliationStep.CHECKPOINT_CREATION: StepDisplayInfo(
        label="Create Checkpoint",
        description="Enter the actual balance of every account as shown by your bank.",
        short_description="Enter balances",
    ),
    ReconciliationStep.GAP_ANALYSIS: StepDisplayInfo(
        label="Analyze Gaps",
        description="Compare declared balances with the balances expected from your transactions.",
        short_description="Review differences",
    ),
    ReconciliationStep.GAP_RESOLUTION: StepDisplayInfo(
        label="Resolve Gaps",
        description="Add missing transactions or post adjustments until every gap is zero.",
        short_description="Fix differences",
    ),
    ReconciliationStep.TRANSACTION_REVIEW: StepDisplayInfo(
        label="Review Transactions",
        description="Check the transactions recorded during the period for mistakes.",
        short_description="Check transactions",
    ),
    ReconciliationStep.FINAL_VALIDATION: StepDisplayInfo(
        label="Final Validation",
        description="Confirm that all accounts agree with the ledger before closing.",
        short_description="Confirm totals",
    ),
    ReconciliationStep.PERIOD_CLOSURE: StepDisplayInfo(
        label="Close Period",
        description="Seal the reconciliation period so its balances become the new baseline.",
        short_description="Close period",
    ),
    ReconciliationStep.COMPLETION: StepDisplayInfo(
        label="Complete",
        description="Reconciliation is finished and the books agree with your accounts.",
        short_description="Done",
    ),
}


class ReconciliationProgressService:
    """Computes progress, time estimates and step validation for sessions."""

    def __init__(self, config: Optional[ProgressConfig] = None):
        self.config = config or ProgressConfig()

    def calculate_progress_percentage(
        self,
        current_step: ReconciliationStep,
        completed_steps: Iterable[ReconciliationStep],
        gaps_remaining: int,
        total_gaps: int,
    ) -> int:
        """
        Percentage complete in [0, 100].

        Completed steps earn up to 80 points and resolved gaps the remaining
        20. With no gaps at all the gap share counts as fully earned.
        """
        _require_non_negative(gaps_remaining=gaps_remaining, total_gaps=total_gaps)

        current_step = ReconciliationStep(current_step)
        if current_step == ReconciliationStep.COMPLETION:
            return 100

        done = {ReconciliationStep(s) for s in completed_steps}
        step_count = len(STEP_ORDER)

        total = max(total_gaps, gaps_remaining)
        resolved = total - gaps_remaining

        # Integer arithmetic keeps the result exact and monotonic
        if total == 0:
            points_numerator = len(done) * STEP_WEIGHT + GAP_WEIGHT * step_count
            denominator = step_count
        else:
            points_numerator = (
                len(done) * STEP_WEIGHT * total + resolved * GAP_WEIGHT * step_count
            )
            denominator = step_count * total

        percentage = points_numerator // denominator
        return max(0, min(100, percentage))

    def estimate_completion_time(
        self,
        current_step: ReconciliationStep,
        remaining_steps: Iterable[ReconciliationStep],
        gaps_remaining: int,
    ) -> int:
        """Estimated seconds to finish; never shorter for more gaps."""
        _require_non_negative(gaps_remaining=gaps_remaining)

        current_step = ReconciliationStep(current_step)
        steps = {ReconciliationStep(s) for s in remaining_steps}
        if current_step != ReconciliationStep.COMPLETION:
            steps.add(current_step)

        step_seconds = sum(
            max(0, self.config.seconds_per_step.get(step.value, 0)) for step in steps
        )
        gap_seconds = gaps_remaining * max(0, self.config.seconds_per_gap)
        return int(step_seconds + gap_seconds)

    def validate_step_completion(
        self, step: ReconciliationStep, session: ReconciliationSession
    ) -> StepValidation:
        step = ReconciliationStep(step)
        gaps = session.gaps_remaining

        if step == ReconciliationStep.CHECKPOINT_CREATION:
            if not session.checkpoint_id:
                return StepValidation(False, "No checkpoint is attached to this session")
            return StepValidation(True)

        if step == ReconciliationStep.GAP_ANALYSIS:
            if gaps > session.metadata.initial_gap_count:
                return StepValidation(
                    False,
                    f"Gap analysis is stale: {gaps} gaps remaining but only "
                    f"{session.metadata.initial_gap_count} were found",
                )
            return StepValidation(True)

        if step == ReconciliationStep.COMPLETION and session.status == SessionStatus.COMPLETED:
            return StepValidation(True)

        # Every later step requires a fully reconciled checkpoint
        if gaps > 0:
            label = STEP_DISPLAY[step].label
            return StepValidation(False, f"{label} blocked: gaps remaining ({gaps})")
        return StepValidation(True)

    def generate_gaps_summary(self, session: ReconciliationSession) -> GapsSummary:
        total = session.metadata.initial_gap_count
        remaining = session.gaps_remaining
        return GapsSummary(
            total_gaps=total,
            remaining_gaps=remaining,
            resolved_gaps=total - remaining,
        )

    def get_step_display_info(self, step: ReconciliationStep) -> StepDisplayInfo:
        return STEP_DISPLAY[ReconciliationStep(step)]

    def get_session_progress(self, session: ReconciliationSession) -> SessionProgress:
        percentage = self.calculate_progress_percentage(
            session.current_step,
            session.completed_steps,
            session.gaps_remaining,
            session.metadata.initial_gap_count,
        )
        return SessionProgress(
            percentage=percentage,
            estimated_time_remaining=self.estimate_completion_time(
                session.current_step, session.remaining_steps, session.gaps_remaining
            ),
            gaps_summary=self.generate_gaps_summary(session),
        )


def _require_non_negative(**counts: int) -> None:
    for name, value in counts.items():
        if value < 0:
            raise ValidationError(f"{name} cannot be negative: {value}")
