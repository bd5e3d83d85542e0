"""Tests for the reconciliation progress service."""

from datetime import datetime, timezone
import random

import pytest

from checkpoint_recon.config import ProgressConfig
from checkpoint_recon.models.session import (
    STEP_ORDER,
    ReconciliationSession,
    ReconciliationStep,
    SessionMetadata,
    SessionStatus,
)
from checkpoint_recon.services.progress import ReconciliationProgressService
from checkpoint_recon.utils.exceptions import ValidationError

NOW = datetime(2024, 1, 31, 12, tzinfo=timezone.utc)


def make_session(step=ReconciliationStep.GAP_RESOLUTION, gaps_remaining=0, initial=0, completed=None):
    if completed is None:
        completed = STEP_ORDER[: step.index]
    return ReconciliationSession(
        id="s-1",
        workspace_id="household",
        checkpoint_id="cp-1",
        current_step=step,
        started_at=NOW,
        last_activity_at=NOW,
        gaps_remaining=gaps_remaining,
        completed_steps=list(completed),
        metadata=SessionMetadata(initial_gap_count=initial),
    )


@pytest.fixture
def progress():
    return ReconciliationProgressService()


class TestProgressPercentage:
    """Bounds and monotonicity of calculate_progress_percentage."""

    def test_bounds_for_generated_inputs(self, progress):
        rng = random.Random(5)
        for _ in range(300):
            step = rng.choice(STEP_ORDER)
            completed = rng.sample(STEP_ORDER, rng.randint(0, len(STEP_ORDER)))
            total = rng.randint(0, 20)
            remaining = rng.randint(0, 25)
            value = progress.calculate_progress_percentage(step, completed, remaining, total)
            assert isinstance(value, int)
            assert 0 <= value <= 100

    def test_fewer_gaps_never_lowers_percentage(self, progress):
        rng = random.Random(11)
        for _ in range(100):
            step = rng.choice(STEP_ORDER[:-1])
            completed = STEP_ORDER[: step.index]
            total = rng.randint(1, 15)
            values = [
                progress.calculate_progress_percentage(step, completed, remaining, total)
                for remaining in range(total, -1, -1)
            ]
            assert values == sorted(values)

    def test_no_gaps_is_finite(self, progress):
        value = progress.calculate_progress_percentage(ReconciliationStep.GAP_ANALYSIS, [], 0, 0)
        assert 0 <= value <= 100

    def test_completion_is_one_hundred(self, progress):
        assert progress.calculate_progress_percentage(ReconciliationStep.COMPLETION, [], 3, 3) == 100

    def test_all_steps_done_and_gaps_resolved(self, progress):
        value = progress.calculate_progress_percentage(
            ReconciliationStep.PERIOD_CLOSURE, STEP_ORDER, 0, 4
        )
        assert value == 100

    def test_negative_counts_are_rejected(self, progress):
        with pytest.raises(ValidationError):
            progress.calculate_progress_percentage(ReconciliationStep.GAP_ANALYSIS, [], -1, 2)


class TestCompletionEstimate:
    """Tests for estimate_completion_time."""

    def test_more_gaps_never_shortens_estimate(self, progress):
        remaining_steps = STEP_ORDER[3:]
        estimates = [
            progress.estimate_completion_time(ReconciliationStep.GAP_RESOLUTION, remaining_steps, gaps)
            for gaps in range(0, 30)
        ]
        assert estimates == sorted(estimates)
        assert all(isinstance(e, int) and e >= 0 for e in estimates)

    def test_uses_configured_seconds(self):
        service = ReconciliationProgressService(
            ProgressConfig(seconds_per_step={"gap_resolution": 10, "final_validation": 5}, seconds_per_gap=3)
        )
        estimate = service.estimate_completion_time(
            ReconciliationStep.GAP_RESOLUTION, [ReconciliationStep.FINAL_VALIDATION], 4
        )
        assert estimate == 10 + 5 + 4 * 3

    def test_completion_with_nothing_left_is_zero(self, progress):
        assert progress.estimate_completion_time(ReconciliationStep.COMPLETION, [], 0) == 0


class TestStepValidation:
    """Tests for validate_step_completion."""

    def test_gap_resolution_complete_iff_no_gaps(self, progress):
        done = progress.validate_step_completion(
            ReconciliationStep.GAP_RESOLUTION, make_session(gaps_remaining=0, initial=2)
        )
        assert done.is_complete is True

        blocked = progress.validate_step_completion(
            ReconciliationStep.GAP_RESOLUTION, make_session(gaps_remaining=2, initial=2)
        )
        assert blocked.is_complete is False
        assert "gaps remaining" in blocked.reason

    def test_is_deterministic(self, progress):
        session = make_session(gaps_remaining=3, initial=3)
        results = {
            progress.validate_step_completion(ReconciliationStep.GAP_RESOLUTION, session)
            for _ in range(10)
        }
        assert len(results) == 1

    def test_checkpoint_creation_needs_checkpoint(self, progress):
        session = make_session(ReconciliationStep.CHECKPOINT_CREATION)
        assert progress.validate_step_completion(ReconciliationStep.CHECKPOINT_CREATION, session).is_complete
        session.checkpoint_id = ""
        assert not progress.validate_step_completion(
            ReconciliationStep.CHECKPOINT_CREATION, session
        ).is_complete

    def test_gap_analysis_allows_open_gaps(self, progress):
        session = make_session(ReconciliationStep.GAP_ANALYSIS, gaps_remaining=2, initial=2)
        assert progress.validate_step_completion(ReconciliationStep.GAP_ANALYSIS, session).is_complete

    def test_completed_session_completion_step(self, progress):
        session = make_session(ReconciliationStep.COMPLETION, completed=STEP_ORDER[:-1])
        session.status = SessionStatus.COMPLETED
        assert progress.validate_step_completion(ReconciliationStep.COMPLETION, session).is_complete


class TestGapsSummaryAndDisplay:
    """Tests for generate_gaps_summary and get_step_display_info."""

    def test_summary_invariant(self, progress):
        rng = random.Random(3)
        for _ in range(100):
            initial = rng.randint(0, 10)
            session = make_session(gaps_remaining=rng.randint(0, initial), initial=initial)
            summary = progress.generate_gaps_summary(session)
            assert summary.total_gaps == initial
            assert summary.remaining_gaps == session.gaps_remaining
            assert summary.total_gaps == summary.resolved_gaps + summary.remaining_gaps

    @pytest.mark.parametrize("step", STEP_ORDER)
    def test_display_info_fields_non_empty(self, progress, step):
        info = progress.get_step_display_info(step)
        assert info.label
        assert info.description
        assert info.short_description

    def test_session_progress_bundle(self, progress):
        session = make_session(gaps_remaining=1, initial=3)
        result = progress.get_session_progress(session)
        assert 0 <= result.percentage <= 100
        assert result.estimated_time_remaining > 0
        assert result.gaps_summary.resolved_gaps == 2
