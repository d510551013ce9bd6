"""Scheduled deletion of document content after a circuit ends."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel

from .activity import ActivityLogger
from .config import RetentionConfig
from .models import as_utc, utcnow
from .persistence import (
    ActivityType,
    DocumentRetention,
    WorkflowRepository,
)

logger = logging.getLogger(__name__)


class RetentionStats(BaseModel):
    total: int
    warned: int
    protected: int
    deleted: int


class RetentionScheduler:
    """Creates and processes :class:`DocumentRetention` records."""

    def __init__(
        self,
        repository: WorkflowRepository,
        activity: ActivityLogger,
        config: Optional[RetentionConfig] = None,
    ) -> None:
        self._repository = repository
        self._activity = activity
        self._config = config or RetentionConfig()

    async def schedule_retention(
        self, document_id: str, document_name: str, now: Optional[datetime] = None
    ) -> Optional[DocumentRetention]:
        """Schedule deletion of a document's content.

        No-op when retention is disabled, the document is missing or has an
        excluded status, or a retention record already exists.
        """
        if not self._config.enabled:
            return None
        doc = await self._repository.get_document(document_id)
        if doc is None:
            return None
        if doc.status.value in self._config.exclude_statuses:
            return None
        existing = await self._repository.get_retention(document_id)
        if existing is not None:
            return existing

        now = as_utc(now) if now else utcnow()
        retention = DocumentRetention(
            document_id=document_id,
            document_name=document_name,
            workflow_completed_at=now,
            scheduled_deletion_at=now + timedelta(days=self._config.days),
            retention_days=self._config.days,
        )
        await self._repository.save_retention(retention)
        await self._activity.log_activity(
            ActivityType.RETENTION_SCHEDULED,
            f'Retention scheduled for "{document_name}" ({self._config.days}d)',
            document_id,
        )
        logger.info(f"Retention scheduled for document={document_id}")
        return retention

    async def process_retentions(self, now: Optional[datetime] = None) -> list[DocumentRetention]:
        """Warn about imminent deletions, then delete expired content.

        Returns the retention records whose content was deleted.
        """
        if not self._config.enabled:
            return []
        now = as_utc(now) if now else utcnow()
        retentions = await self._repository.list_retentions()

        if self._config.notify_before_deletion:
            threshold = now + timedelta(days=self._config.notify_days_before)
            for retention in retentions:
                if (
                    not retention.is_protected
                    and retention.deleted_at is None
                    and not retention.notification_sent
                    and retention.scheduled_deletion_at <= threshold
                ):
                    retention.notification_sent = True
                    retention.notification_sent_at = now
                    await self._repository.save_retention(retention)
                    await self._activity.log_activity(
                        ActivityType.RETENTION_WARNING,
                        f'Deletion of "{retention.document_name}" is imminent',
                        retention.document_id,
                    )

        deleted: list[DocumentRetention] = []
        for retention in retentions:
            if retention.is_protected or retention.deleted_at is not None:
                continue
            if retention.scheduled_deletion_at > now:
                continue
            await self._delete_content(retention.document_id)
            retention.deleted_at = now
            retention.deletion_mode = self._config.mode
            await self._repository.save_retention(retention)
            await self._activity.log_activity(
                ActivityType.RETENTION_DELETED,
                f'Content deleted for "{retention.document_name}"',
                retention.document_id,
            )
            deleted.append(retention)
        return deleted

    async def _delete_content(self, document_id: str) -> None:
        doc = await self._repository.get_document(document_id)
        if doc is None:
            return
        if self._config.mode == "content_only":
            doc.content = ""
            doc.updated_at = utcnow()
            await self._repository.save_document(doc)
            return
        if doc.workflow_id:
            await self._repository.delete_workflow(doc.workflow_id)
        await self._repository.delete_document(document_id)

    async def protect(self, document_id: str) -> Optional[DocumentRetention]:
        retention = await self._repository.get_retention(document_id)
        if retention is None:
            return None
        retention.is_protected = True
        await self._repository.save_retention(retention)
        await self._activity.log_activity(
            ActivityType.RETENTION_PROTECTED,
            f'Document "{retention.document_name}" protected',
            document_id,
        )
        return retention

    async def unprotect(
        self, document_id: str, now: Optional[datetime] = None
    ) -> Optional[DocumentRetention]:
        """Lift protection and restart the retention period from ``now``."""
        retention = await self._repository.get_retention(document_id)
        if retention is None:
            return None
        now = as_utc(now) if now else utcnow()
        retention.is_protected = False
        retention.scheduled_deletion_at = now + timedelta(days=self._config.days)
        retention.notification_sent = False
        retention.notification_sent_at = None
        await self._repository.save_retention(retention)
        return retention

    async def extend(self, document_id: str, additional_days: int) -> Optional[DocumentRetention]:
        retention = await self._repository.get_retention(document_id)
        if retention is None:
            return None
        retention.scheduled_deletion_at += timedelta(days=additional_days)
        retention.notification_sent = False
        retention.notification_sent_at = None
        retention.extension_count += 1
        await self._repository.save_retention(retention)
        await self._activity.log_activity(
            ActivityType.RETENTION_EXTENDED,
            f'Retention extended by {additional_days}d for "{retention.document_name}"',
            document_id,
        )
        return retention

    async def stats(self) -> RetentionStats:
        records = await self._repository.list_retentions()
        return RetentionStats(
            total=len(records),
            warned=sum(1 for r in records if r.notification_sent and r.deleted_at is None),
            protected=sum(1 for r in records if r.is_protected),
            deleted=sum(1 for r in records if r.deleted_at is not None),
        )
