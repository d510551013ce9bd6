"""SQLite implementation of the workflow repository."""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

from ..errors import PersistenceError, RevisionConflict
from ..models import Document, Workflow
from .models import ActivityEntry, DocumentRetention, ParticipantRecord, Reminder
from .repository import WorkflowRepository

T = TypeVar("T")


class SQLiteWorkflowRepository(WorkflowRepository):
    """Persist records using SQLite.

    Each record is stored whole as JSON, with the fields used for lookups
    copied into indexed columns.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        with self._conn:
            self._conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    id TEXT PRIMARY KEY,
                    status TEXT NOT NULL,
                    data TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS workflows (
                    id TEXT PRIMARY KEY,
                    document_id TEXT NOT NULL,
                    revision INTEGER NOT NULL,
                    created_at TEXT NOT NULL,
                    data TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_workflows_document ON workflows (document_id);
                CREATE TABLE IF NOT EXISTS participants (
                    email TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    data TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS activity_log (
                    id TEXT PRIMARY KEY,
                    timestamp TEXT NOT NULL,
                    document_id TEXT,
                    workflow_id TEXT,
                    data TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS reminders (
                    id TEXT PRIMARY KEY,
                    workflow_id TEXT NOT NULL,
                    scheduled_at TEXT NOT NULL,
                    data TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS document_retention (
                    document_id TEXT PRIMARY KEY,
                    scheduled_deletion_at TEXT NOT NULL,
                    data TEXT NOT NULL
                );
                """
            )

    # ------------------------------------------------------------------
    # Helper methods
    def _locked(self, fn: Callable[[], T]) -> T:
        with self._lock:
            try:
                return fn()
            except sqlite3.Error as exc:
                raise PersistenceError(str(exc)) from exc

    async def _run(self, fn: Callable[[], T]) -> T:
        return await asyncio.to_thread(self._locked, fn)

    async def _execute(self, query: str, *params: Any) -> None:
        def op() -> None:
            with self._conn:
                self._conn.execute(query, params)

        await self._run(op)

    async def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        return await self._run(lambda: self._conn.execute(query, params).fetchone())

    async def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        return await self._run(lambda: self._conn.execute(query, params).fetchall())

    @staticmethod
    def _document_params(document: Document) -> tuple[str, str, str]:
        return document.id, document.status.value, document.model_dump_json()

    # ------------------------------------------------------------------
    # Documents
    async def add_document(self, document: Document) -> None:
        await self._execute(
            "INSERT INTO documents (id, status, data) VALUES (?, ?, ?)",
            *self._document_params(document),
        )

    async def get_document(self, document_id: str) -> Optional[Document]:
        row = await self._fetchone("SELECT data FROM documents WHERE id = ?", document_id)
        return Document.model_validate_json(row["data"]) if row else None

    async def save_document(self, document: Document) -> None:
        await self._execute(
            "INSERT OR REPLACE INTO documents (id, status, data) VALUES (?, ?, ?)",
            *self._document_params(document),
        )

    async def delete_document(self, document_id: str) -> None:
        await self._execute("DELETE FROM documents WHERE id = ?", document_id)

    # ------------------------------------------------------------------
    # Workflows
    async def add_workflow(
        self, workflow: Workflow, document: Optional[Document] = None
    ) -> None:
        def op() -> None:
            with self._conn:
                self._conn.execute(
                    "INSERT INTO workflows (id, document_id, revision, created_at, data) VALUES (?, ?, ?, ?, ?)",
                    (
                        workflow.id,
                        workflow.document_id,
                        workflow.revision,
                        workflow.created_at.isoformat(),
                        workflow.model_dump_json(),
                    ),
                )
                if document is not None:
                    self._conn.execute(
                        "INSERT OR REPLACE INTO documents (id, status, data) VALUES (?, ?, ?)",
                        self._document_params(document),
                    )

        await self._run(op)

    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        row = await self._fetchone("SELECT data FROM workflows WHERE id = ?", workflow_id)
        return Workflow.model_validate_json(row["data"]) if row else None

    async def get_workflow_by_document(self, document_id: str) -> Optional[Workflow]:
        row = await self._fetchone(
            "SELECT data FROM workflows WHERE document_id = ? ORDER BY created_at DESC LIMIT 1",
            document_id,
        )
        return Workflow.model_validate_json(row["data"]) if row else None

    async def list_workflows(self) -> list[Workflow]:
        rows = await self._fetchall("SELECT data FROM workflows ORDER BY created_at DESC")
        return [Workflow.model_validate_json(r["data"]) for r in rows]

    async def save_workflow(
        self,
        workflow: Workflow,
        expected_revision: int,
        document: Optional[Document] = None,
    ) -> Workflow:
        candidate = workflow.model_copy(update={"revision": expected_revision + 1})

        def op() -> None:
            with self._conn:
                cur = self._conn.execute(
                    "UPDATE workflows SET data = ?, revision = ? WHERE id = ? AND revision = ?",
                    (
                        candidate.model_dump_json(),
                        candidate.revision,
                        workflow.id,
                        expected_revision,
                    ),
                )
                if cur.rowcount != 1:
                    row = self._conn.execute(
                        "SELECT revision FROM workflows WHERE id = ?", (workflow.id,)
                    ).fetchone()
                    raise RevisionConflict(
                        workflow.id, expected_revision, row["revision"] if row else None
                    )
                if document is not None:
                    self._conn.execute(
                        "INSERT OR REPLACE INTO documents (id, status, data) VALUES (?, ?, ?)",
                        self._document_params(document),
                    )

        await self._run(op)
        workflow.revision = candidate.revision
        return workflow

    async def delete_workflow(self, workflow_id: str) -> None:
        await self._execute("DELETE FROM workflows WHERE id = ?", workflow_id)

    # ------------------------------------------------------------------
    # Participants
    async def get_participant(self, email: str) -> Optional[ParticipantRecord]:
        row = await self._fetchone("SELECT data FROM participants WHERE email = ?", email)
        return ParticipantRecord.model_validate_json(row["data"]) if row else None

    async def save_participant(self, record: ParticipantRecord) -> None:
        await self._execute(
            "INSERT OR REPLACE INTO participants (email, name, data) VALUES (?, ?, ?)",
            record.email,
            record.name,
            record.model_dump_json(),
        )

    async def list_participants(self) -> list[ParticipantRecord]:
        rows = await self._fetchall("SELECT data FROM participants ORDER BY name COLLATE NOCASE")
        return [ParticipantRecord.model_validate_json(r["data"]) for r in rows]

    # ------------------------------------------------------------------
    # Activity
    async def add_activity(self, entry: ActivityEntry) -> None:
        await self._execute(
            "INSERT INTO activity_log (id, timestamp, document_id, workflow_id, data) VALUES (?, ?, ?, ?, ?)",
            entry.id,
            entry.timestamp.isoformat(),
            entry.document_id,
            entry.workflow_id,
            entry.model_dump_json(),
        )

    async def list_activity(self) -> list[ActivityEntry]:
        rows = await self._fetchall("SELECT data FROM activity_log ORDER BY timestamp DESC")
        return [ActivityEntry.model_validate_json(r["data"]) for r in rows]

    # ------------------------------------------------------------------
    # Reminders
    async def add_reminder(self, reminder: Reminder) -> None:
        await self.save_reminder(reminder)

    async def save_reminder(self, reminder: Reminder) -> None:
        await self._execute(
            "INSERT OR REPLACE INTO reminders (id, workflow_id, scheduled_at, data) VALUES (?, ?, ?, ?)",
            reminder.id,
            reminder.workflow_id,
            reminder.scheduled_at.isoformat(),
            reminder.model_dump_json(),
        )

    async def list_reminders(self, workflow_id: Optional[str] = None) -> list[Reminder]:
        if workflow_id is None:
            rows = await self._fetchall("SELECT data FROM reminders ORDER BY scheduled_at")
        else:
            rows = await self._fetchall(
                "SELECT data FROM reminders WHERE workflow_id = ? ORDER BY scheduled_at",
                workflow_id,
            )
        return [Reminder.model_validate_json(r["data"]) for r in rows]

    # ------------------------------------------------------------------
    # Retention
    async def get_retention(self, document_id: str) -> Optional[DocumentRetention]:
        row = await self._fetchone(
            "SELECT data FROM document_retention WHERE document_id = ?", document_id
        )
        return DocumentRetention.model_validate_json(row["data"]) if row else None

    async def save_retention(self, retention: DocumentRetention) -> None:
        await self._execute(
            "INSERT OR REPLACE INTO document_retention (document_id, scheduled_deletion_at, data) VALUES (?, ?, ?)",
            retention.document_id,
            retention.scheduled_deletion_at.isoformat(),
            retention.model_dump_json(),
        )

    async def list_retentions(self) -> list[DocumentRetention]:
        rows = await self._fetchall(
            "SELECT data FROM document_retention ORDER BY scheduled_deletion_at"
        )
        return [DocumentRetention.model_validate_json(r["data"]) for r in rows]
