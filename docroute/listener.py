"""Consumes pushed return payloads and applies them to workflows."""

from __future__ import annotations

import logging
from typing import Optional

from .contracts import ReturnFileData, TransitionResult, parse_return
from .engine import WorkflowEngine
from .errors import BUSINESS_ERRORS, InvalidReturnPayload, StepNotFound, WorkflowNotFound
from .persistence import ActivityType
from .transports import BaseTransport

logger = logging.getLogger(__name__)


class ReturnListener:
    """Routes return payloads received on a transport to the engine."""

    def __init__(
        self,
        engine: WorkflowEngine,
        transport: Optional[BaseTransport] = None,
        topic: str = "returns",
    ) -> None:
        self._transport = transport
        self._engine = engine
        self._topic = topic
        self.results: list[TransitionResult] = []

    async def start(self, lifespan: Optional[float] = None) -> None:
        """Listen for return payloads until ``lifespan`` expires."""
        if self._transport is None:
            raise ValueError("ReturnListener has no transport to listen on")
        async for raw_message, payload in self._transport.subscribe(
            self._topic, lifespan=lifespan
        ):
            result = await self.handle(payload)
            self.results.append(result)
            await self._transport.ack(raw_message)

    async def handle(self, payload: ReturnFileData | dict | str | bytes) -> TransitionResult:
        """Apply one return payload, picking the serial or parallel path."""
        try:
            data = parse_return(payload)
        except BUSINESS_ERRORS as e:
            logger.warning(f"Discarding return payload: {e}")
            return TransitionResult.fail(e)

        workflow = await self._engine.get_workflow(data.workflow_id)
        if workflow is None:
            return TransitionResult.fail(WorkflowNotFound(data.workflow_id))
        index = workflow.find_step_index(data.step_id)
        if index == -1:
            return TransitionResult.fail(StepNotFound(data.step_id))

        if workflow.steps[index].is_parallel:
            if data.participant is None:
                return TransitionResult.fail(
                    InvalidReturnPayload("Parallel returns must name the responding participant")
                )
            result = await self._engine.process_parallel_return(
                workflow.id, data, data.participant.email
            )
        else:
            result = await self._engine.process_return(workflow.id, data)

        if result.success:
            await self._engine.activity.log_activity(
                ActivityType.RETURN_IMPORTED,
                f"Return imported for step {index + 1} ({data.decision})",
                workflow.document_id,
                workflow.id,
                {"step_id": data.step_id},
            )
        logger.info(f"Return for workflow={workflow.id}: {result.message or result.error}")
        return result
