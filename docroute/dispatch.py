"""Auto-advance dispatcher for docroute."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from pydantic import BaseModel, Field

from .activity import ActivityLogger
from .delivery import EmailSender, PackageGenerator, PackageUploader
from .models import StepStatus
from .persistence import ActivityType, WorkflowRepository

logger = logging.getLogger(__name__)


class DispatchReport(BaseModel):
    """What happened while advancing a workflow to its next participant."""

    workflow_id: str
    step_index: int
    package_id: Optional[str] = None
    hosted_url: Optional[str] = None
    emailed: bool = False
    errors: list[str] = Field(default_factory=list)


class AutoAdvanceDispatcher:
    """Packages and notifies the participant of a workflow's current step.

    Runs after the state transition has been committed, so nothing raised
    here may escape: every failure is logged and recorded as activity.
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        activity: ActivityLogger,
        generator: PackageGenerator,
        uploader: Optional[PackageUploader] = None,
        email_sender: Optional[EmailSender] = None,
        timeout_seconds: float = 15.0,
    ) -> None:
        self._repository = repository
        self._activity = activity
        self._generator = generator
        self._uploader = uploader
        self._email_sender = email_sender
        self._timeout = timeout_seconds

    async def advance(self, workflow_id: str) -> Optional[DispatchReport]:
        """Send the package for the workflow's current step.

        Returns ``None`` when there is nothing to send (finished or paused
        workflow, or the current step is no longer pending).
        """
        try:
            return await self._advance(workflow_id)
        except Exception as e:
            logger.error(f"Auto-advance failed for workflow={workflow_id}: {e}")
            await self._record_failure(workflow_id, None, "advance", e)
            return None

    async def _advance(self, workflow_id: str) -> Optional[DispatchReport]:
        workflow = await self._repository.get_workflow(workflow_id)
        if workflow is None or workflow.is_terminal or workflow.awaiting_correction:
            return None
        index = workflow.current_step_index
        step = workflow.current_step
        if step is None or step.status != StepStatus.PENDING:
            logger.debug(f"Nothing to advance for workflow={workflow_id}")
            return None
        document = await self._repository.get_document(workflow.document_id)
        if document is None:
            return None

        report = DispatchReport(workflow_id=workflow_id, step_index=index)
        package = await asyncio.wait_for(
            self._generator.generate(document, workflow, index), self._timeout
        )
        report.package_id = package.id

        if self._uploader is not None:
            try:
                report.hosted_url = await asyncio.wait_for(
                    self._uploader.upload(package), self._timeout
                )
                await self._activity.log_activity(
                    ActivityType.PACKAGE_UPLOADED,
                    f"Package uploaded for {step.participant.name}",
                    workflow.document_id,
                    workflow_id,
                    {"url": report.hosted_url},
                )
            except Exception as e:
                logger.warning(f"Auto-advance: failed to upload package: {e}")
                report.errors.append(f"upload: {e}")
                await self._record_failure(workflow_id, workflow.document_id, "upload", e)

        if self._email_sender is None:
            logger.info(
                f"Email not configured; package for {step.participant.name} must be sent manually"
            )
        else:
            try:
                await asyncio.wait_for(
                    self._email_sender.send(document, workflow, package, report.hosted_url),
                    self._timeout,
                )
                report.emailed = True
                await self._activity.log_activity(
                    ActivityType.PACKAGE_EMAILED,
                    f"Package emailed to {step.participant.email}",
                    workflow.document_id,
                    workflow_id,
                )
            except Exception as e:
                logger.warning(f"Auto-advance: failed to send email: {e}")
                report.errors.append(f"email: {e}")
                await self._record_failure(workflow_id, workflow.document_id, "email", e)

        logger.info(
            f"Auto-advance: package sent to {step.participant.name} for workflow={workflow_id}"
        )
        return report

    async def _record_failure(
        self,
        workflow_id: str,
        document_id: Optional[str],
        stage: str,
        error: Exception,
    ) -> None:
        await self._activity.log_activity(
            ActivityType.AUTO_ADVANCE_FAILED,
            f"Auto-advance {stage} failed: {error}",
            document_id,
            workflow_id,
            {"stage": stage},
        )
