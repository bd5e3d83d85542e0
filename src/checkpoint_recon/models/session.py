"""Reconciliation session: ephemeral workflow state for one in-progress reconciliation."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class ReconciliationStep(Enum):
    """Ordered workflow steps. COMPLETION is terminal."""

    CHECKPOINT_CREATION = "checkpoint_creation"
    GAP_ANALYSIS = "gap_analysis"
    GAP_RESOLUTION = "gap_resolution"
    TRANSACTION_REVIEW = "transaction_review"
    FINAL_VALIDATION = "final_validation"
    PERIOD_CLOSURE = "period_closure"
    COMPLETION = "completion"

    @property
    def index(self) -> int:
        return STEP_ORDER.index(self)

    @property
    def next_step(self) -> Optional["ReconciliationStep"]:
        position = self.index
        if position + 1 >= len(STEP_ORDER):
            return None
        return STEP_ORDER[position + 1]


STEP_ORDER: list[ReconciliationStep] = list(ReconciliationStep)


class SessionStatus(Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


@dataclass
class SessionMetadata:
    """Client and telemetry details attached to a session."""

    device_type: str = "desktop"
    user_agent: str = ""
    initial_gap_count: int = 0
    resolution_methods_used: list[str] = field(default_factory=list)

    # Seconds spent per step value
    time_spent_per_step: dict[str, float] = field(default_factory=dict)


@dataclass
class ReconciliationSession:
    """Progress through the reconciliation workflow for one checkpoint."""

    id: str
    workspace_id: str
    checkpoint_id: str
    current_step: ReconciliationStep
    started_at: datetime
    last_activity_at: datetime

    progress_percentage: int = 0
    step_started_at: Optional[datetime] = None
    gaps_remaining: int = 0
    status: SessionStatus = SessionStatus.ACTIVE
    completed_steps: list[ReconciliationStep] = field(default_factory=list)
    metadata: SessionMetadata = field(default_factory=SessionMetadata)

    def __post_init__(self) -> None:
        if isinstance(self.current_step, str):
            self.current_step = ReconciliationStep(self.current_step)
        if isinstance(self.status, str):
            self.status = SessionStatus(self.status)
        self.completed_steps = [ReconciliationStep(s) for s in self.completed_steps]

    @property
    def is_open(self) -> bool:
        return self.status in (SessionStatus.ACTIVE, SessionStatus.PAUSED)

    @property
    def remaining_steps(self) -> list[ReconciliationStep]:
        """Steps after the current one that have not been completed."""
        done = set(self.completed_steps)
        return [
            step
            for step in STEP_ORDER[self.current_step.index + 1:]
            if step not in done
        ]
