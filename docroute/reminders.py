"""Deadline reminders for workflows."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel

from .activity import ActivityLogger
from .config import ReminderConfig
from .models import Workflow, as_utc, utcnow
from .persistence import (
    ActivityType,
    Reminder,
    ReminderStatus,
    ReminderType,
    WorkflowRepository,
)

logger = logging.getLogger(__name__)

_DEADLINE_TYPES = (ReminderType.DEADLINE_APPROACHING, ReminderType.DEADLINE_PASSED)


class UpcomingDeadline(BaseModel):
    workflow: Workflow
    days_remaining: int
    document_name: str


class ReminderService:
    def __init__(
        self,
        repository: WorkflowRepository,
        activity: ActivityLogger,
        config: Optional[ReminderConfig] = None,
    ) -> None:
        self._repository = repository
        self._activity = activity
        self._config = config or ReminderConfig()

    async def create_reminder(
        self,
        workflow: Workflow,
        reminder_type: ReminderType,
        scheduled_at: datetime,
        message: str,
        step_id: Optional[str] = None,
    ) -> Reminder:
        reminder = Reminder(
            document_id=workflow.document_id,
            workflow_id=workflow.id,
            step_id=step_id,
            type=reminder_type,
            scheduled_at=scheduled_at,
            message=message,
        )
        await self._repository.add_reminder(reminder)
        return reminder

    async def generate_workflow_reminders(
        self,
        workflow: Workflow,
        advance_days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> list[Reminder]:
        """Schedule a reminder ahead of the deadline and one on the day.

        The early reminder is skipped when it would already be in the past.
        Pending deadline reminders from an earlier deadline are dismissed.
        """
        if workflow.deadline is None or not self._config.enabled:
            return []
        now = as_utc(now) if now else utcnow()
        days = self._config.advance_days if advance_days is None else advance_days

        for existing in await self._repository.list_reminders(workflow.id):
            if existing.status == ReminderStatus.PENDING and existing.type in _DEADLINE_TYPES:
                existing.status = ReminderStatus.DISMISSED
                await self._repository.save_reminder(existing)

        created: list[Reminder] = []
        early = workflow.deadline - timedelta(days=days)
        if early > now:
            created.append(
                await self.create_reminder(
                    workflow,
                    ReminderType.DEADLINE_APPROACHING,
                    early,
                    f'Workflow "{workflow.name}" is due in {days} days',
                )
            )
        created.append(
            await self.create_reminder(
                workflow,
                ReminderType.DEADLINE_PASSED,
                workflow.deadline,
                f'Workflow "{workflow.name}" is due today',
            )
        )

        await self._activity.log_activity(
            ActivityType.REMINDER_SENT,
            f'Reminders scheduled for "{workflow.name}"',
            workflow.document_id,
            workflow.id,
            {"count": len(created)},
        )
        logger.info(f"Scheduled {len(created)} reminders for workflow={workflow.id}")
        return created

    async def due_reminders(self, now: Optional[datetime] = None) -> list[Reminder]:
        now = as_utc(now) if now else utcnow()
        return [
            r
            for r in await self._repository.list_reminders()
            if r.status == ReminderStatus.PENDING and r.scheduled_at <= now
        ]

    async def mark_sent(self, reminder: Reminder) -> Reminder:
        reminder.status = ReminderStatus.SENT
        reminder.sent_at = utcnow()
        await self._repository.save_reminder(reminder)
        return reminder

    async def dismiss(self, reminder: Reminder) -> Reminder:
        reminder.status = ReminderStatus.DISMISSED
        await self._repository.save_reminder(reminder)
        return reminder

    async def upcoming_deadlines(
        self, days: int = 7, now: Optional[datetime] = None
    ) -> list[UpcomingDeadline]:
        now = as_utc(now) if now else utcnow()
        limit = now + timedelta(days=days)
        results: list[UpcomingDeadline] = []
        for wf in await self._repository.list_workflows():
            if wf.is_terminal or wf.deadline is None or wf.deadline > limit:
                continue
            doc = await self._repository.get_document(wf.document_id)
            remaining = math.ceil((wf.deadline - now).total_seconds() / 86400)
            results.append(
                UpcomingDeadline(
                    workflow=wf,
                    days_remaining=remaining,
                    document_name=doc.name if doc else "Unknown document",
                )
            )
        return sorted(results, key=lambda r: r.days_remaining)
