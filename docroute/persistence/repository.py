"""Repository abstraction for workflow state persistence."""

from __future__ import annotations

from typing import Optional, Protocol

from ..models import Document, Workflow
from .models import ActivityEntry, DocumentRetention, ParticipantRecord, Reminder


class WorkflowRepository(Protocol):
    """Protocol for persistence backends.

    Records are read and written whole. Workflow writes are compare-and-swap
    on ``Workflow.revision``.
    """

    # documents --------------------------------------------------------
    async def add_document(self, document: Document) -> None:
        """Persist a new document."""

    async def get_document(self, document_id: str) -> Optional[Document]:
        """Retrieve a document by id."""

    async def save_document(self, document: Document) -> None:
        """Replace a stored document."""

    async def delete_document(self, document_id: str) -> None:
        """Remove a document."""

    # workflows --------------------------------------------------------
    async def add_workflow(
        self, workflow: Workflow, document: Optional[Document] = None
    ) -> None:
        """Persist a new workflow, optionally with its updated document."""

    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        """Retrieve the workflow by id."""

    async def get_workflow_by_document(self, document_id: str) -> Optional[Workflow]:
        """Retrieve the most recent workflow of a document."""

    async def list_workflows(self) -> list[Workflow]:
        """Return all workflows, newest first."""

    async def save_workflow(
        self,
        workflow: Workflow,
        expected_revision: int,
        document: Optional[Document] = None,
    ) -> Workflow:
        """Replace the stored workflow if its revision still matches.

        When ``document`` is given it is written in the same transaction.
        Bumps ``workflow.revision`` and returns the workflow.

        Raises:
            RevisionConflict: If the stored revision differs.
        """

    async def delete_workflow(self, workflow_id: str) -> None:
        """Remove a workflow."""

    # participants -----------------------------------------------------
    async def get_participant(self, email: str) -> Optional[ParticipantRecord]:
        """Retrieve a participant record by email."""

    async def save_participant(self, record: ParticipantRecord) -> None:
        """Insert or replace a participant record."""

    async def list_participants(self) -> list[ParticipantRecord]:
        """Return all participants ordered by name."""

    # activity ---------------------------------------------------------
    async def add_activity(self, entry: ActivityEntry) -> None:
        """Append an activity entry."""

    async def list_activity(self) -> list[ActivityEntry]:
        """Return all activity entries, newest first."""

    # reminders --------------------------------------------------------
    async def add_reminder(self, reminder: Reminder) -> None:
        """Persist a reminder."""

    async def save_reminder(self, reminder: Reminder) -> None:
        """Replace a stored reminder."""

    async def list_reminders(self, workflow_id: Optional[str] = None) -> list[Reminder]:
        """Return reminders, optionally for one workflow."""

    # retention --------------------------------------------------------
    async def get_retention(self, document_id: str) -> Optional[DocumentRetention]:
        """Retrieve the retention record of a document."""

    async def save_retention(self, retention: DocumentRetention) -> None:
        """Insert or replace a retention record."""

    async def list_retentions(self) -> list[DocumentRetention]:
        """Return retention records ordered by scheduled deletion."""
