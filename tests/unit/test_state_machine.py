"""Tests for step transitions and parallel aggregation."""

import pytest

from docroute.errors import IllegalTransitionError
from docroute.models import ParallelMode, ParallelParticipant, StepStatus, WorkflowStep
from docroute.state_machine import aggregate_parallel, can_transition, transition

from conftest import person


def _parallel_step(mode, statuses):
    return WorkflowStep(
        order=1,
        participant=person("lead"),
        role="validator",
        is_parallel=True,
        parallel_mode=mode,
        parallel_participants=[
            ParallelParticipant(participant=person(f"p{i}"), status=s)
            for i, s in enumerate(statuses)
        ],
    )


def test_terminal_statuses_have_no_exit():
    for status in (StepStatus.COMPLETED, StepStatus.REJECTED, StepStatus.SKIPPED):
        for target in StepStatus:
            assert not can_transition(status, target)


def test_correction_requested_only_returns_to_pending_or_cancellation():
    assert can_transition(StepStatus.CORRECTION_REQUESTED, StepStatus.PENDING)
    assert can_transition(StepStatus.CORRECTION_REQUESTED, StepStatus.REJECTED)
    assert not can_transition(StepStatus.CORRECTION_REQUESTED, StepStatus.COMPLETED)


def test_transition_raises_on_illegal_move():
    step = WorkflowStep(order=1, participant=person("a"), role="reviewer")
    transition(step, StepStatus.SENT)
    assert step.status == StepStatus.SENT
    transition(step, StepStatus.COMPLETED)
    with pytest.raises(IllegalTransitionError):
        transition(step, StepStatus.PENDING)


@pytest.mark.parametrize(
    "mode,statuses,expected",
    [
        (ParallelMode.ALL, [StepStatus.COMPLETED, StepStatus.PENDING], None),
        (ParallelMode.ALL, [StepStatus.COMPLETED, StepStatus.COMPLETED], StepStatus.COMPLETED),
        (ParallelMode.ALL, [StepStatus.REJECTED, StepStatus.PENDING], StepStatus.REJECTED),
        (ParallelMode.ANY, [StepStatus.PENDING, StepStatus.COMPLETED], StepStatus.COMPLETED),
        (ParallelMode.ANY, [StepStatus.REJECTED, StepStatus.PENDING], None),
        (ParallelMode.ANY, [StepStatus.REJECTED, StepStatus.REJECTED], StepStatus.REJECTED),
    ],
)
def test_aggregate_parallel(mode, statuses, expected):
    assert aggregate_parallel(_parallel_step(mode, statuses)) == expected


def test_aggregate_parallel_defaults_to_all():
    step = _parallel_step(None, [StepStatus.COMPLETED, StepStatus.PENDING])
    assert aggregate_parallel(step) is None
