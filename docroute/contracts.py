"""Boundary contracts: return payloads, step configuration and results."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from .errors import DocrouteError, InvalidReturnPayload
from .models import (
    Annotation,
    ParallelMode,
    Participant,
    ParticipantRole,
    RejectionDetails,
    StepDecision,
    utcnow,
)

logger = logging.getLogger(__name__)


class _ReturnBase(BaseModel):
    """Fields shared by every return payload.

    Payloads produced by participant packages use camelCase keys; snake_case
    is accepted as well.
    """

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    workflow_id: str
    step_id: str
    document_id: Optional[str] = None
    participant: Optional[Participant] = None
    annotations: list[Annotation] = Field(default_factory=list)
    general_comment: Optional[str] = None
    signature: Optional[dict[str, Any]] = None
    initials: Optional[dict[str, Any]] = None
    completed_at: datetime = Field(default_factory=utcnow)

    @property
    def step_decision(self) -> StepDecision:
        return StepDecision(self.decision)  # type: ignore[attr-defined]

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class ApprovalReturn(_ReturnBase):
    decision: Literal["approved", "validated", "reviewed"]


class RejectionReturn(_ReturnBase):
    decision: Literal["rejected"]
    rejection_details: Optional[RejectionDetails] = None


class ModificationReturn(_ReturnBase):
    decision: Literal["modification_requested"]
    rejection_details: Optional[RejectionDetails] = None

    @property
    def reason(self) -> Optional[str]:
        if self.rejection_details and self.rejection_details.reason:
            return self.rejection_details.reason
        return self.general_comment


ReturnFileData = Annotated[
    Union[ApprovalReturn, RejectionReturn, ModificationReturn],
    Field(discriminator="decision"),
]

_RETURN_ADAPTER: TypeAdapter[ReturnFileData] = TypeAdapter(ReturnFileData)


def parse_return(payload: ReturnFileData | dict | str | bytes) -> ReturnFileData:
    """Validate a raw return payload into its typed variant.

    Raises:
        InvalidReturnPayload: If the payload is not valid JSON or does not
            match any return variant.
    """
    if isinstance(payload, (ApprovalReturn, RejectionReturn, ModificationReturn)):
        return payload
    try:
        if isinstance(payload, (str, bytes)):
            return _RETURN_ADAPTER.validate_json(payload)
        return _RETURN_ADAPTER.validate_python(payload)
    except (ValidationError, json.JSONDecodeError) as exc:
        logger.debug(f"Rejected return payload: {exc}")
        raise InvalidReturnPayload(str(exc)) from exc


class StepConfig(BaseModel):
    """Caller-provided definition of one circuit step."""

    participant: Participant
    role: ParticipantRole
    instructions: Optional[str] = None
    is_parallel: bool = False
    parallel_mode: Optional[ParallelMode] = None
    parallel_participants: list[Participant] = Field(default_factory=list)


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of an engine operation.

    Business-rule rejections come back with ``success=False`` and the matching
    error instance; callers show ``message`` to the user.
    """

    success: bool
    message: str
    error: Optional[DocrouteError] = None

    @classmethod
    def ok(cls, message: str) -> "TransitionResult":
        return cls(success=True, message=message)

    @classmethod
    def fail(cls, error: DocrouteError) -> "TransitionResult":
        return cls(success=False, message=str(error), error=error)
