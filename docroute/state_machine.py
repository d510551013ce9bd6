"""Step status state machine and parallel aggregation rules."""

from __future__ import annotations

from typing import Optional

from .errors import IllegalTransitionError
from .models import ParallelMode, StepStatus, WorkflowStep

ALLOWED_TRANSITIONS: dict[StepStatus, set[StepStatus]] = {
    StepStatus.PENDING: {
        StepStatus.SENT,
        StepStatus.COMPLETED,
        StepStatus.REJECTED,
        StepStatus.CORRECTION_REQUESTED,
        StepStatus.SKIPPED,
    },
    # back to pending only when the step is reassigned
    StepStatus.SENT: {
        StepStatus.PENDING,
        StepStatus.COMPLETED,
        StepStatus.REJECTED,
        StepStatus.CORRECTION_REQUESTED,
        StepStatus.SKIPPED,
    },
    # rejected here only through cancellation
    StepStatus.CORRECTION_REQUESTED: {StepStatus.PENDING, StepStatus.REJECTED},
    StepStatus.COMPLETED: set(),
    StepStatus.REJECTED: set(),
    StepStatus.SKIPPED: set(),
}

ACTIVE_STEP_STATUSES = frozenset({StepStatus.PENDING, StepStatus.SENT})


def can_transition(current: StepStatus, to: StepStatus) -> bool:
    return to in ALLOWED_TRANSITIONS.get(current, set())


def transition(step: WorkflowStep, to: StepStatus) -> WorkflowStep:
    """Move ``step`` to ``to`` in place, enforcing the transition table."""
    if not can_transition(step.status, to):
        raise IllegalTransitionError(
            f"Illegal step transition: {step.status.value} -> {to.value}"
        )
    step.status = to
    return step


def aggregate_parallel(step: WorkflowStep) -> Optional[StepStatus]:
    """Return the closing status of a parallel step, or ``None`` while open.

    ``all``: completes when every participant approved, rejects on the first
    rejection. ``any``: completes on the first approval, rejects only once
    everyone has answered and nobody approved.
    """
    entries = step.parallel_participants
    if not entries:
        return None
    mode = step.parallel_mode or ParallelMode.ALL
    completed = [p for p in entries if p.status == StepStatus.COMPLETED]
    rejected = [p for p in entries if p.status == StepStatus.REJECTED]

    if mode == ParallelMode.ANY:
        if completed:
            return StepStatus.COMPLETED
        if len(rejected) == len(entries):
            return StepStatus.REJECTED
        return None

    if rejected:
        return StepStatus.REJECTED
    if len(completed) == len(entries):
        return StepStatus.COMPLETED
    return None
