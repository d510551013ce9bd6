"""PostgreSQL implementation of the workflow repository."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import asyncpg

from ..errors import PersistenceError, RevisionConflict
from ..models import Document, Workflow
from .models import ActivityEntry, DocumentRetention, ParticipantRecord, Reminder
from .repository import WorkflowRepository

_UPSERT_DOCUMENT = """
    INSERT INTO documents (id, status, data) VALUES ($1, $2, $3::jsonb)
    ON CONFLICT (id) DO UPDATE SET status = EXCLUDED.status, data = EXCLUDED.data
"""


class PostgresWorkflowRepository(WorkflowRepository):
    """Persist records using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[asyncpg.Connection]:
        try:
            conn = await self._connect()
        except (asyncpg.PostgresError, OSError) as exc:
            raise PersistenceError(str(exc)) from exc
        try:
            yield conn
        except asyncpg.PostgresError as exc:
            raise PersistenceError(str(exc)) from exc
        finally:
            await conn.close()

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS documents (
                id TEXT PRIMARY KEY,
                status TEXT NOT NULL,
                data JSONB NOT NULL
            );
            CREATE TABLE IF NOT EXISTS workflows (
                id TEXT PRIMARY KEY,
                document_id TEXT NOT NULL,
                revision INTEGER NOT NULL,
                created_at TIMESTAMPTZ NOT NULL,
                data JSONB NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_workflows_document ON workflows (document_id);
            CREATE TABLE IF NOT EXISTS participants (
                email TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                data JSONB NOT NULL
            );
            CREATE TABLE IF NOT EXISTS activity_log (
                id TEXT PRIMARY KEY,
                timestamp TIMESTAMPTZ NOT NULL,
                document_id TEXT,
                workflow_id TEXT,
                data JSONB NOT NULL
            );
            CREATE TABLE IF NOT EXISTS reminders (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                scheduled_at TIMESTAMPTZ NOT NULL,
                data JSONB NOT NULL
            );
            CREATE TABLE IF NOT EXISTS document_retention (
                document_id TEXT PRIMARY KEY,
                scheduled_deletion_at TIMESTAMPTZ NOT NULL,
                data JSONB NOT NULL
            );
            """
        )

    # ------------------------------------------------------------------
    async def add_document(self, document: Document) -> None:
        async with self._connection() as conn:
            await conn.execute(
                "INSERT INTO documents (id, status, data) VALUES ($1, $2, $3::jsonb)",
                document.id,
                document.status.value,
                document.model_dump_json(),
            )

    async def get_document(self, document_id: str) -> Optional[Document]:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                "SELECT data::text AS data FROM documents WHERE id = $1", document_id
            )
        return Document.model_validate_json(row["data"]) if row else None

    async def save_document(self, document: Document) -> None:
        async with self._connection() as conn:
            await conn.execute(
                _UPSERT_DOCUMENT,
                document.id,
                document.status.value,
                document.model_dump_json(),
            )

    async def delete_document(self, document_id: str) -> None:
        async with self._connection() as conn:
            await conn.execute("DELETE FROM documents WHERE id = $1", document_id)

    # ------------------------------------------------------------------
    async def add_workflow(
        self, workflow: Workflow, document: Optional[Document] = None
    ) -> None:
        async with self._connection() as conn:
            async with conn.transaction():
                await conn.execute(
                    "INSERT INTO workflows (id, document_id, revision, created_at, data) VALUES ($1, $2, $3, $4, $5::jsonb)",
                    workflow.id,
                    workflow.document_id,
                    workflow.revision,
                    workflow.created_at,
                    workflow.model_dump_json(),
                )
                if document is not None:
                    await conn.execute(
                        _UPSERT_DOCUMENT,
                        document.id,
                        document.status.value,
                        document.model_dump_json(),
                    )

    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                "SELECT data::text AS data FROM workflows WHERE id = $1", workflow_id
            )
        return Workflow.model_validate_json(row["data"]) if row else None

    async def get_workflow_by_document(self, document_id: str) -> Optional[Workflow]:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                "SELECT data::text AS data FROM workflows WHERE document_id = $1 ORDER BY created_at DESC LIMIT 1",
                document_id,
            )
        return Workflow.model_validate_json(row["data"]) if row else None

    async def list_workflows(self) -> list[Workflow]:
        async with self._connection() as conn:
            rows = await conn.fetch(
                "SELECT data::text AS data FROM workflows ORDER BY created_at DESC"
            )
        return [Workflow.model_validate_json(r["data"]) for r in rows]

    async def save_workflow(
        self,
        workflow: Workflow,
        expected_revision: int,
        document: Optional[Document] = None,
    ) -> Workflow:
        candidate = workflow.model_copy(update={"revision": expected_revision + 1})
        async with self._connection() as conn:
            async with conn.transaction():
                status = await conn.execute(
                    "UPDATE workflows SET data = $1::jsonb, revision = $2 WHERE id = $3 AND revision = $4",
                    candidate.model_dump_json(),
                    candidate.revision,
                    workflow.id,
                    expected_revision,
                )
                if status != "UPDATE 1":
                    actual = await conn.fetchval(
                        "SELECT revision FROM workflows WHERE id = $1", workflow.id
                    )
                    raise RevisionConflict(workflow.id, expected_revision, actual)
                if document is not None:
                    await conn.execute(
                        _UPSERT_DOCUMENT,
                        document.id,
                        document.status.value,
                        document.model_dump_json(),
                    )
        workflow.revision = candidate.revision
        return workflow

    async def delete_workflow(self, workflow_id: str) -> None:
        async with self._connection() as conn:
            await conn.execute("DELETE FROM workflows WHERE id = $1", workflow_id)

    # ------------------------------------------------------------------
    async def get_participant(self, email: str) -> Optional[ParticipantRecord]:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                "SELECT data::text AS data FROM participants WHERE email = $1", email
            )
        return ParticipantRecord.model_validate_json(row["data"]) if row else None

    async def save_participant(self, record: ParticipantRecord) -> None:
        async with self._connection() as conn:
            await conn.execute(
                """
                INSERT INTO participants (email, name, data) VALUES ($1, $2, $3::jsonb)
                ON CONFLICT (email) DO UPDATE SET name = EXCLUDED.name, data = EXCLUDED.data
                """,
                record.email,
                record.name,
                record.model_dump_json(),
            )

    async def list_participants(self) -> list[ParticipantRecord]:
        async with self._connection() as conn:
            rows = await conn.fetch(
                "SELECT data::text AS data FROM participants ORDER BY lower(name)"
            )
        return [ParticipantRecord.model_validate_json(r["data"]) for r in rows]

    # ------------------------------------------------------------------
    async def add_activity(self, entry: ActivityEntry) -> None:
        async with self._connection() as conn:
            await conn.execute(
                "INSERT INTO activity_log (id, timestamp, document_id, workflow_id, data) VALUES ($1, $2, $3, $4, $5::jsonb)",
                entry.id,
                entry.timestamp,
                entry.document_id,
                entry.workflow_id,
                entry.model_dump_json(),
            )

    async def list_activity(self) -> list[ActivityEntry]:
        async with self._connection() as conn:
            rows = await conn.fetch(
                "SELECT data::text AS data FROM activity_log ORDER BY timestamp DESC"
            )
        return [ActivityEntry.model_validate_json(r["data"]) for r in rows]

    # ------------------------------------------------------------------
    async def add_reminder(self, reminder: Reminder) -> None:
        await self.save_reminder(reminder)

    async def save_reminder(self, reminder: Reminder) -> None:
        async with self._connection() as conn:
            await conn.execute(
                """
                INSERT INTO reminders (id, workflow_id, scheduled_at, data) VALUES ($1, $2, $3, $4::jsonb)
                ON CONFLICT (id) DO UPDATE SET scheduled_at = EXCLUDED.scheduled_at, data = EXCLUDED.data
                """,
                reminder.id,
                reminder.workflow_id,
                reminder.scheduled_at,
                reminder.model_dump_json(),
            )

    async def list_reminders(self, workflow_id: Optional[str] = None) -> list[Reminder]:
        async with self._connection() as conn:
            if workflow_id is None:
                rows = await conn.fetch(
                    "SELECT data::text AS data FROM reminders ORDER BY scheduled_at"
                )
            else:
                rows = await conn.fetch(
                    "SELECT data::text AS data FROM reminders WHERE workflow_id = $1 ORDER BY scheduled_at",
                    workflow_id,
                )
        return [Reminder.model_validate_json(r["data"]) for r in rows]

    # ------------------------------------------------------------------
    async def get_retention(self, document_id: str) -> Optional[DocumentRetention]:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                "SELECT data::text AS data FROM document_retention WHERE document_id = $1",
                document_id,
            )
        return DocumentRetention.model_validate_json(row["data"]) if row else None

    async def save_retention(self, retention: DocumentRetention) -> None:
        async with self._connection() as conn:
            await conn.execute(
                """
                INSERT INTO document_retention (document_id, scheduled_deletion_at, data)
                VALUES ($1, $2, $3::jsonb)
                ON CONFLICT (document_id) DO UPDATE
                SET scheduled_deletion_at = EXCLUDED.scheduled_deletion_at, data = EXCLUDED.data
                """,
                retention.document_id,
                retention.scheduled_deletion_at,
                retention.model_dump_json(),
            )

    async def list_retentions(self) -> list[DocumentRetention]:
        async with self._connection() as conn:
            rows = await conn.fetch(
                "SELECT data::text AS data FROM document_retention ORDER BY scheduled_deletion_at"
            )
        return [DocumentRetention.model_validate_json(r["data"]) for r in rows]
