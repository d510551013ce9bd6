"""Domain models for documents and their validation circuits."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Read a naive datetime as UTC; aware values are converted to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


class ParticipantRole(str, Enum):
    REVIEWER = "reviewer"
    VALIDATOR = "validator"
    APPROVER = "approver"
    SIGNER = "signer"


class StepStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CORRECTION_REQUESTED = "correction_requested"
    SKIPPED = "skipped"


TERMINAL_STEP_STATUSES = frozenset(
    {StepStatus.COMPLETED, StepStatus.REJECTED, StepStatus.SKIPPED}
)


class StepDecision(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    VALIDATED = "validated"
    REVIEWED = "reviewed"
    MODIFICATION_REQUESTED = "modification_requested"

    @property
    def is_positive(self) -> bool:
        return self in (
            StepDecision.APPROVED,
            StepDecision.VALIDATED,
            StepDecision.REVIEWED,
        )


class ParallelMode(str, Enum):
    ALL = "all"
    ANY = "any"


class DocumentStatus(str, Enum):
    DRAFT = "draft"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"
    ARCHIVED = "archived"


class Participant(BaseModel):
    """A person taking part in a circuit. ``email`` is the identity key."""

    name: str
    email: str
    organization: Optional[str] = None

    def same_person(self, email: str) -> bool:
        return self.email.strip().lower() == email.strip().lower()


class AnnotationPosition(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    page: int = 1
    x: float = 0
    y: float = 0
    width: Optional[float] = None
    height: Optional[float] = None


class Annotation(BaseModel):
    """A comment, highlight or pin placed on the document by a participant."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    id: str = Field(default_factory=new_id)
    step_id: Optional[str] = None
    participant_name: Optional[str] = None
    participant_role: Optional[ParticipantRole] = None
    type: str = "comment"
    content: str = ""
    position: AnnotationPosition = Field(default_factory=AnnotationPosition)
    color: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    reply_to: Optional[str] = None


class RejectionDetails(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    category: str = "other"
    reason: str = ""


class StepResponse(BaseModel):
    """Decision payload recorded once a participant has acted."""

    decision: StepDecision
    annotations: list[Annotation] = Field(default_factory=list)
    general_comment: Optional[str] = None
    signature: Optional[dict[str, Any]] = None
    initials: Optional[dict[str, Any]] = None
    rejection_details: Optional[RejectionDetails] = None
    completed_at: datetime
    return_file: str = Field(..., description="Raw serialized return kept for audit")


class CorrectionEntry(BaseModel):
    requested_at: datetime
    requested_by: Participant
    reason: Optional[str] = None
    corrected_at: Optional[datetime] = None


class ParallelParticipant(BaseModel):
    participant: Participant
    status: StepStatus = StepStatus.PENDING
    completed_at: Optional[datetime] = None
    response: Optional[StepResponse] = None

    @property
    def has_responded(self) -> bool:
        return self.status in (StepStatus.COMPLETED, StepStatus.REJECTED)


class WorkflowStep(BaseModel):
    """One stage of the circuit."""

    id: str = Field(default_factory=new_id)
    order: int
    participant: Participant
    role: ParticipantRole
    status: StepStatus = StepStatus.PENDING
    instructions: Optional[str] = None
    sent_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    response: Optional[StepResponse] = None
    correction_count: int = 0
    correction_history: list[CorrectionEntry] = Field(default_factory=list)
    skipped_at: Optional[datetime] = None
    skipped_reason: Optional[str] = None
    reassigned_from: Optional[Participant] = None
    is_parallel: bool = False
    parallel_mode: Optional[ParallelMode] = None
    parallel_participants: list[ParallelParticipant] = Field(default_factory=list)

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STEP_STATUSES

    def find_parallel_participant(self, email: str) -> Optional[ParallelParticipant]:
        for entry in self.parallel_participants:
            if entry.participant.same_person(email):
                return entry
        return None

    def parallel_progress(self) -> tuple[int, int]:
        responded = sum(1 for p in self.parallel_participants if p.has_responded)
        return responded, len(self.parallel_participants)


class Workflow(BaseModel):
    """Aggregate root of a document's validation circuit."""

    id: str = Field(default_factory=new_id)
    document_id: str
    name: str
    steps: list[WorkflowStep]
    current_step_index: int = 0
    owner: Participant
    deadline: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    cancellation_reason: Optional[str] = None
    awaiting_correction: bool = False
    correction_requested_at: Optional[datetime] = None
    correction_step_index: Optional[int] = None
    storage_package_ids: list[str] = Field(default_factory=list)
    revision: int = 0

    @field_validator("deadline")
    @classmethod
    def _deadline_as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value) if value is not None else None

    @property
    def is_terminal(self) -> bool:
        return self.completed_at is not None

    @property
    def is_cancelled(self) -> bool:
        return self.cancelled_at is not None

    @property
    def current_step(self) -> Optional[WorkflowStep]:
        if 0 <= self.current_step_index < len(self.steps):
            return self.steps[self.current_step_index]
        return None

    def find_step_index(self, step_id: str) -> int:
        for index, step in enumerate(self.steps):
            if step.id == step_id:
                return index
        return -1

    def next_active_index(self, after: int) -> Optional[int]:
        """Index of the first non-skipped step after ``after``, if any."""
        index = after + 1
        while index < len(self.steps) and self.steps[index].status == StepStatus.SKIPPED:
            index += 1
        return index if index < len(self.steps) else None

    def annotations_up_to_step(self, step_index: int) -> list[Annotation]:
        annotations: list[Annotation] = []
        for step in self.steps[:step_index]:
            if step.response is not None:
                annotations.extend(step.response.annotations)
        return annotations


class Document(BaseModel):
    """The document a circuit validates. Owned by the host application."""

    id: str = Field(default_factory=new_id)
    name: str
    mime_type: str = "application/pdf"
    content: str = ""
    status: DocumentStatus = DocumentStatus.DRAFT
    workflow_id: Optional[str] = None
    version: int = 1
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
