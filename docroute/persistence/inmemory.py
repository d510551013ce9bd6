"""In-memory implementation of the workflow repository."""

from __future__ import annotations

from typing import Dict, Optional

from ..errors import RevisionConflict
from ..models import Document, Workflow
from .models import ActivityEntry, DocumentRetention, ParticipantRecord, Reminder
from .repository import WorkflowRepository


class InMemoryWorkflowRepository(WorkflowRepository):
    """Store records in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Records are copied on the way in and
    out so callers never share state with the store.
    """

    def __init__(self) -> None:
        self._documents: Dict[str, Document] = {}
        self._workflows: Dict[str, Workflow] = {}
        self._participants: Dict[str, ParticipantRecord] = {}
        self._activity: list[ActivityEntry] = []
        self._reminders: Dict[str, Reminder] = {}
        self._retentions: Dict[str, DocumentRetention] = {}

    # ------------------------------------------------------------------
    async def add_document(self, document: Document) -> None:
        self._documents[document.id] = document.model_copy(deep=True)

    async def get_document(self, document_id: str) -> Optional[Document]:
        doc = self._documents.get(document_id)
        return doc.model_copy(deep=True) if doc else None

    async def save_document(self, document: Document) -> None:
        self._documents[document.id] = document.model_copy(deep=True)

    async def delete_document(self, document_id: str) -> None:
        self._documents.pop(document_id, None)

    # ------------------------------------------------------------------
    async def add_workflow(
        self, workflow: Workflow, document: Optional[Document] = None
    ) -> None:
        self._workflows[workflow.id] = workflow.model_copy(deep=True)
        if document is not None:
            self._documents[document.id] = document.model_copy(deep=True)

    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        wf = self._workflows.get(workflow_id)
        return wf.model_copy(deep=True) if wf else None

    async def get_workflow_by_document(self, document_id: str) -> Optional[Workflow]:
        matches = [wf for wf in self._workflows.values() if wf.document_id == document_id]
        if not matches:
            return None
        latest = max(matches, key=lambda wf: wf.created_at)
        return latest.model_copy(deep=True)

    async def list_workflows(self) -> list[Workflow]:
        ordered = sorted(self._workflows.values(), key=lambda wf: wf.created_at, reverse=True)
        return [wf.model_copy(deep=True) for wf in ordered]

    async def save_workflow(
        self,
        workflow: Workflow,
        expected_revision: int,
        document: Optional[Document] = None,
    ) -> Workflow:
        stored = self._workflows.get(workflow.id)
        actual = stored.revision if stored else None
        if actual != expected_revision:
            raise RevisionConflict(workflow.id, expected_revision, actual)
        workflow.revision = expected_revision + 1
        self._workflows[workflow.id] = workflow.model_copy(deep=True)
        if document is not None:
            self._documents[document.id] = document.model_copy(deep=True)
        return workflow

    async def delete_workflow(self, workflow_id: str) -> None:
        self._workflows.pop(workflow_id, None)

    # ------------------------------------------------------------------
    async def get_participant(self, email: str) -> Optional[ParticipantRecord]:
        record = self._participants.get(email)
        return record.model_copy(deep=True) if record else None

    async def save_participant(self, record: ParticipantRecord) -> None:
        self._participants[record.email] = record.model_copy(deep=True)

    async def list_participants(self) -> list[ParticipantRecord]:
        ordered = sorted(self._participants.values(), key=lambda p: p.name.lower())
        return [p.model_copy(deep=True) for p in ordered]

    # ------------------------------------------------------------------
    async def add_activity(self, entry: ActivityEntry) -> None:
        self._activity.append(entry.model_copy(deep=True))

    async def list_activity(self) -> list[ActivityEntry]:
        ordered = sorted(self._activity, key=lambda a: a.timestamp, reverse=True)
        return [a.model_copy(deep=True) for a in ordered]

    # ------------------------------------------------------------------
    async def add_reminder(self, reminder: Reminder) -> None:
        self._reminders[reminder.id] = reminder.model_copy(deep=True)

    async def save_reminder(self, reminder: Reminder) -> None:
        self._reminders[reminder.id] = reminder.model_copy(deep=True)

    async def list_reminders(self, workflow_id: Optional[str] = None) -> list[Reminder]:
        reminders = [
            r
            for r in self._reminders.values()
            if workflow_id is None or r.workflow_id == workflow_id
        ]
        reminders.sort(key=lambda r: r.scheduled_at)
        return [r.model_copy(deep=True) for r in reminders]

    # ------------------------------------------------------------------
    async def get_retention(self, document_id: str) -> Optional[DocumentRetention]:
        retention = self._retentions.get(document_id)
        return retention.model_copy(deep=True) if retention else None

    async def save_retention(self, retention: DocumentRetention) -> None:
        self._retentions[retention.document_id] = retention.model_copy(deep=True)

    async def list_retentions(self) -> list[DocumentRetention]:
        ordered = sorted(self._retentions.values(), key=lambda r: r.scheduled_deletion_at)
        return [r.model_copy(deep=True) for r in ordered]
