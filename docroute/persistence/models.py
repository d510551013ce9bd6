"""Data models for records kept alongside workflows."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from ..models import ParticipantRole, new_id, utcnow


class ActivityType(str, Enum):
    DOCUMENT_IMPORTED = "document_imported"
    WORKFLOW_CREATED = "workflow_created"
    WORKFLOW_STARTED = "workflow_started"
    WORKFLOW_RESUMED = "workflow_resumed"
    PACKAGE_GENERATED = "package_generated"
    PACKAGE_UPLOADED = "package_uploaded"
    PACKAGE_EMAILED = "package_emailed"
    AUTO_ADVANCE_FAILED = "auto_advance_failed"
    RETURN_IMPORTED = "return_imported"
    STEP_COMPLETED = "step_completed"
    STEP_SKIPPED = "step_skipped"
    STEP_REASSIGNED = "step_reassigned"
    STEP_RETURNED_FOR_CORRECTION = "step_returned_for_correction"
    PARALLEL_RESPONSE = "parallel_response"
    WORKFLOW_COMPLETED = "workflow_completed"
    WORKFLOW_REJECTED = "workflow_rejected"
    WORKFLOW_CANCELLED = "workflow_cancelled"
    DEADLINE_EXTENDED = "deadline_extended"
    REMINDER_SENT = "reminder_sent"
    RETENTION_SCHEDULED = "retention_scheduled"
    RETENTION_WARNING = "retention_warning"
    RETENTION_DELETED = "retention_deleted"
    RETENTION_PROTECTED = "retention_protected"
    RETENTION_EXTENDED = "retention_extended"


class ActivityEntry(BaseModel):
    """One append-only audit trail entry."""

    id: str = Field(default_factory=new_id)
    timestamp: datetime = Field(default_factory=utcnow)
    type: ActivityType
    description: str
    document_id: Optional[str] = None
    workflow_id: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


class ParticipantRecord(BaseModel):
    """Directory entry for a participant, keyed by email."""

    id: str = Field(default_factory=new_id)
    name: str
    email: str
    organization: Optional[str] = None
    color: str
    first_used: datetime = Field(default_factory=utcnow)
    last_used: datetime = Field(default_factory=utcnow)
    total_workflows: int = 0
    roles: list[ParticipantRole] = Field(default_factory=list)
    is_absent: bool = False
    absence_start: Optional[datetime] = None
    absence_end: Optional[datetime] = None
    substitute_email: Optional[str] = None
    is_favorite: bool = False


class ReminderType(str, Enum):
    DEADLINE_APPROACHING = "deadline_approaching"
    DEADLINE_PASSED = "deadline_passed"
    STEP_WAITING = "step_waiting"


class ReminderStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    DISMISSED = "dismissed"


class Reminder(BaseModel):
    id: str = Field(default_factory=new_id)
    document_id: str
    workflow_id: str
    step_id: Optional[str] = None
    type: ReminderType
    scheduled_at: datetime
    status: ReminderStatus = ReminderStatus.PENDING
    message: str
    sent_at: Optional[datetime] = None


class DocumentRetention(BaseModel):
    """Scheduled deletion of a document's content after its circuit ended."""

    id: str = Field(default_factory=new_id)
    document_id: str
    document_name: str
    workflow_completed_at: datetime
    scheduled_deletion_at: datetime
    retention_days: int
    is_protected: bool = False
    notification_sent: bool = False
    notification_sent_at: Optional[datetime] = None
    extension_count: int = 0
    deleted_at: Optional[datetime] = None
    deletion_mode: Optional[str] = None
