"""Wiring of the engine and its collaborators from configuration."""

from __future__ import annotations

from typing import Optional

from .activity import ActivityLogger
from .config import DocrouteConfig, load_config
from .delivery import EmailJSSender, HttpPackageUploader, JsonPackageGenerator
from .dispatch import AutoAdvanceDispatcher
from .engine import WorkflowEngine
from .participants import ParticipantDirectory
from .persistence import WorkflowRepository, get_repository
from .reminders import ReminderService
from .retention import RetentionScheduler


def build_engine(
    config: Optional[DocrouteConfig] = None,
    repository: Optional[WorkflowRepository] = None,
) -> WorkflowEngine:
    """Build a fully wired :class:`WorkflowEngine`."""
    config = config or load_config()
    repository = repository or get_repository(config=config)

    activity = ActivityLogger(repository)
    engine = WorkflowEngine(
        repository,
        activity=activity,
        retention=RetentionScheduler(repository, activity, config.retention),
        reminders=ReminderService(repository, activity, config.reminders),
        participants=ParticipantDirectory(repository),
        config=config.engine,
    )

    dispatch = config.dispatch
    uploader = None
    if dispatch.upload_url:
        uploader = HttpPackageUploader(
            dispatch.upload_url, dispatch.upload_token, dispatch.timeout_seconds
        )
    email_sender = None
    if dispatch.emailjs.is_configured:
        email_sender = EmailJSSender(dispatch.emailjs, dispatch.timeout_seconds)

    engine.dispatcher = AutoAdvanceDispatcher(
        repository,
        activity,
        JsonPackageGenerator(engine),
        uploader=uploader,
        email_sender=email_sender,
        timeout_seconds=dispatch.timeout_seconds,
    )
    return engine
