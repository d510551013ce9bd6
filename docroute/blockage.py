"""Detection of workflows that cannot progress on their own."""

from __future__ import annotations

import math
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from .models import Participant, Workflow, as_utc, utcnow
from .participants import ParticipantDirectory
from .persistence import WorkflowRepository


class BlockageReason(str, Enum):
    PARTICIPANT_ABSENT = "participant_absent"
    DEADLINE_PASSED = "deadline_passed"


class BlockedWorkflow(BaseModel):
    workflow: Workflow
    reason: BlockageReason
    step_index: int
    participant: Optional[Participant] = None
    substitute_email: Optional[str] = None
    days_overdue: int = 0


async def detect_blocked_workflows(
    repository: WorkflowRepository,
    directory: Optional[ParticipantDirectory] = None,
    now: Optional[datetime] = None,
) -> list[BlockedWorkflow]:
    """List active workflows held up by an absent participant or a passed deadline.

    Workflows paused for a correction are waiting on the owner, not on a
    participant, and are left out.
    """
    directory = directory or ParticipantDirectory(repository)
    now = as_utc(now) if now else utcnow()
    blocked: list[BlockedWorkflow] = []

    for workflow in await repository.list_workflows():
        if workflow.is_terminal or workflow.awaiting_correction:
            continue
        step = workflow.current_step
        if step is None:
            continue
        index = workflow.current_step_index

        people = [p.participant for p in step.parallel_participants if not p.has_responded]
        if not step.is_parallel:
            people = [step.participant]
        for person in people:
            record = await directory.get(person.email)
            if record is not None and record.is_absent:
                blocked.append(
                    BlockedWorkflow(
                        workflow=workflow,
                        reason=BlockageReason.PARTICIPANT_ABSENT,
                        step_index=index,
                        participant=person,
                        substitute_email=record.substitute_email,
                    )
                )
                break

        if workflow.deadline is not None and workflow.deadline < now:
            blocked.append(
                BlockedWorkflow(
                    workflow=workflow,
                    reason=BlockageReason.DEADLINE_PASSED,
                    step_index=index,
                    participant=step.participant,
                    days_overdue=math.floor((now - workflow.deadline).total_seconds() / 86400),
                )
            )
    return blocked
