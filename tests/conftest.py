"""Shared fixtures for docroute tests."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

import pytest

from docroute.contracts import StepConfig
from docroute.engine import WorkflowEngine
from docroute.models import Document, ParallelMode, Participant, ParticipantRole, Workflow
from docroute.persistence import InMemoryWorkflowRepository

OWNER = Participant(name="Olivia Owner", email="olivia@example.com", organization="Acme")


def person(name: str) -> Participant:
    return Participant(name=name.title(), email=f"{name.lower()}@example.com")


def serial(name: str, role: ParticipantRole = ParticipantRole.REVIEWER) -> StepConfig:
    return StepConfig(participant=person(name), role=role)


def parallel(names: list[str], mode: ParallelMode = ParallelMode.ALL) -> StepConfig:
    people = [person(n) for n in names]
    return StepConfig(
        participant=people[0],
        role=ParticipantRole.VALIDATOR,
        is_parallel=True,
        parallel_mode=mode,
        parallel_participants=people,
    )


def return_payload(
    workflow: Workflow,
    step_index: int,
    decision: str = "approved",
    participant: Optional[Participant] = None,
    **extra: Any,
) -> dict[str, Any]:
    step = workflow.steps[step_index]
    who = participant or step.participant
    payload: dict[str, Any] = {
        "workflowId": workflow.id,
        "stepId": step.id,
        "documentId": workflow.document_id,
        "decision": decision,
        "participant": who.model_dump(),
        "annotations": [],
        "completedAt": "2026-01-15T10:00:00+00:00",
    }
    payload.update(extra)
    return payload


@pytest.fixture
def repo() -> InMemoryWorkflowRepository:
    return InMemoryWorkflowRepository()


@pytest.fixture
def engine(repo) -> WorkflowEngine:
    return WorkflowEngine(repo)


@pytest.fixture
def make_workflow(repo, engine):
    """Async factory creating a document and a workflow over it."""

    async def _make(
        step_configs: list[StepConfig],
        name: str = "Contract review",
        deadline: Optional[datetime] = None,
        content: str = "v1",
    ) -> Workflow:
        document = Document(name="contract.pdf", content=content)
        await repo.add_document(document)
        return await engine.create_workflow(document.id, name, step_configs, OWNER, deadline)

    return _make
