"""Participant package generation."""

from __future__ import annotations

import json
from datetime import datetime
from typing import TYPE_CHECKING, Protocol

from pydantic import BaseModel, Field

from ..models import Document, Participant, Workflow, new_id, utcnow

if TYPE_CHECKING:
    from ..engine import WorkflowEngine


class OutboundPackage(BaseModel):
    """Everything a participant needs to act on their step."""

    id: str = Field(default_factory=new_id)
    workflow_id: str
    step_id: str
    step_index: int
    participant: Participant
    filename: str
    content: str
    generated_at: datetime = Field(default_factory=utcnow)


class PackageGenerator(Protocol):
    async def generate(
        self, document: Document, workflow: Workflow, step_index: int
    ) -> OutboundPackage:
        """Build the package for ``step_index`` and mark the step as sent."""


class JsonPackageGenerator:
    """Serializes the document, the step and earlier annotations as JSON."""

    def __init__(self, engine: WorkflowEngine) -> None:
        self._engine = engine

    async def generate(
        self, document: Document, workflow: Workflow, step_index: int
    ) -> OutboundPackage:
        step = workflow.steps[step_index]
        body = {
            "workflowId": workflow.id,
            "workflowName": workflow.name,
            "stepId": step.id,
            "stepOrder": step.order,
            "role": step.role.value,
            "instructions": step.instructions,
            "participant": step.participant.model_dump(),
            "owner": workflow.owner.model_dump(),
            "deadline": workflow.deadline.isoformat() if workflow.deadline else None,
            "document": {
                "id": document.id,
                "name": document.name,
                "mimeType": document.mime_type,
                "version": document.version,
                "content": document.content,
            },
            "previousAnnotations": [
                a.model_dump(mode="json", by_alias=True)
                for a in workflow.annotations_up_to_step(step_index)
            ],
        }
        package = OutboundPackage(
            workflow_id=workflow.id,
            step_id=step.id,
            step_index=step_index,
            participant=step.participant,
            filename=f"{document.name}-step{step.order}.json",
            content=json.dumps(body, ensure_ascii=False),
        )
        result = await self._engine.mark_step_as_sent(workflow.id, step_index, package.id)
        if not result.success:
            raise result.error or RuntimeError(result.message)
        return package
