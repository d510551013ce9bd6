"""Append-only activity trail used for dashboards and debugging."""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel

from .persistence import ActivityEntry, ActivityType, WorkflowRepository

logger = logging.getLogger(__name__)


class ActivityCategory(str, Enum):
    DOCUMENT = "document"
    WORKFLOW = "workflow"
    NOTIFICATION = "notification"


_CATEGORY_MAP: dict[ActivityType, ActivityCategory] = {
    ActivityType.DOCUMENT_IMPORTED: ActivityCategory.DOCUMENT,
    ActivityType.RETURN_IMPORTED: ActivityCategory.WORKFLOW,
    ActivityType.PACKAGE_EMAILED: ActivityCategory.NOTIFICATION,
    ActivityType.REMINDER_SENT: ActivityCategory.NOTIFICATION,
    ActivityType.RETENTION_WARNING: ActivityCategory.NOTIFICATION,
    ActivityType.RETENTION_SCHEDULED: ActivityCategory.DOCUMENT,
    ActivityType.RETENTION_DELETED: ActivityCategory.DOCUMENT,
    ActivityType.RETENTION_PROTECTED: ActivityCategory.DOCUMENT,
    ActivityType.RETENTION_EXTENDED: ActivityCategory.DOCUMENT,
}


def get_activity_category(activity_type: ActivityType) -> ActivityCategory:
    return _CATEGORY_MAP.get(activity_type, ActivityCategory.WORKFLOW)


class ActivityFilters(BaseModel):
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    category: Optional[ActivityCategory] = None
    search: Optional[str] = None
    document_id: Optional[str] = None
    limit: Optional[int] = None
    offset: int = 0


class ActivityLogger:
    """Writes activity entries without ever failing the caller."""

    def __init__(self, repository: WorkflowRepository) -> None:
        self._repository = repository

    async def log_activity(
        self,
        activity_type: ActivityType,
        description: str,
        document_id: Optional[str] = None,
        workflow_id: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Optional[ActivityEntry]:
        entry = ActivityEntry(
            type=activity_type,
            description=description,
            document_id=document_id,
            workflow_id=workflow_id,
            metadata=metadata,
        )
        try:
            await self._repository.add_activity(entry)
        except Exception as e:
            logger.warning(f"Failed to record activity {activity_type.value}: {e}")
            return None
        logger.debug(f"Activity {activity_type.value}: {description}")
        return entry

    async def recent(self, limit: int = 20) -> list[ActivityEntry]:
        entries = await self._repository.list_activity()
        return entries[:limit]

    async def for_document(self, document_id: str) -> list[ActivityEntry]:
        entries = await self._repository.list_activity()
        return [e for e in entries if e.document_id == document_id]

    async def filtered(self, filters: ActivityFilters) -> list[ActivityEntry]:
        results = await self._repository.list_activity()

        if filters.period_start:
            results = [a for a in results if a.timestamp >= filters.period_start]
        if filters.period_end:
            results = [a for a in results if a.timestamp <= filters.period_end]
        if filters.category:
            results = [a for a in results if get_activity_category(a.type) == filters.category]
        if filters.document_id:
            results = [a for a in results if a.document_id == filters.document_id]
        if filters.search:
            needle = filters.search.lower()
            results = [a for a in results if needle in a.description.lower()]

        end = filters.offset + filters.limit if filters.limit is not None else None
        return results[filters.offset:end]
