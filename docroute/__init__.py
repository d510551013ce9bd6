"""Docroute: sequential and parallel document validation circuits."""

from .contracts import ReturnFileData, StepConfig, TransitionResult, parse_return
from .engine import WorkflowEngine
from .listener import ReturnListener
from .models import (
    Document,
    DocumentStatus,
    ParallelMode,
    Participant,
    ParticipantRole,
    StepDecision,
    StepStatus,
    Workflow,
    WorkflowStep,
)
from .persistence import get_repository
from .runtime import build_engine
from .transports import get_transport

__version__ = "0.1.0"
__all__ = [
    "Document",
    "DocumentStatus",
    "ParallelMode",
    "Participant",
    "ParticipantRole",
    "ReturnFileData",
    "ReturnListener",
    "StepConfig",
    "StepDecision",
    "StepStatus",
    "TransitionResult",
    "Workflow",
    "WorkflowEngine",
    "WorkflowStep",
    "build_engine",
    "get_repository",
    "get_transport",
    "parse_return",
]
