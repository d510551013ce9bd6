"""Workflow lifecycle engine.

Every mutating operation follows the same shape: take the per-workflow lock,
load the aggregate, apply the transition in memory, write it back with a
compare-and-swap on ``revision`` (together with the linked document when its
status changes) and only then run side effects: activity entries, retention
scheduling, reminders and the auto-advance dispatcher.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable, Optional, Sequence

from .activity import ActivityLogger
from .config import EngineConfig
from .contracts import (
    ModificationReturn,
    RejectionReturn,
    ReturnFileData,
    StepConfig,
    TransitionResult,
    parse_return,
)
from .errors import (
    BUSINESS_ERRORS,
    AlreadyProcessed,
    AlreadyResponded,
    AlreadyTerminal,
    DocumentNotFound,
    InvalidState,
    NotAwaitingCorrection,
    NotParallel,
    ParticipantNotInStep,
    RevisionConflict,
    StepNotFound,
    WorkflowNotFound,
)
from .models import (
    CorrectionEntry,
    DocumentStatus,
    ParallelMode,
    ParallelParticipant,
    Participant,
    ParticipantRole,
    StepResponse,
    StepStatus,
    Workflow,
    WorkflowStep,
    as_utc,
    utcnow,
)
from .participants import ParticipantDirectory
from .persistence import ActivityType, WorkflowRepository
from .reminders import ReminderService
from .retention import RetentionScheduler
from .state_machine import aggregate_parallel, transition

if TYPE_CHECKING:
    from .dispatch import AutoAdvanceDispatcher

logger = logging.getLogger(__name__)


@dataclass
class _Outcome:
    """In-memory result of a transition, applied after the write succeeds."""

    message: str
    persist: bool = True
    document_status: Optional[DocumentStatus] = None
    new_content: Optional[str] = None
    activities: list[tuple[ActivityType, str, Optional[dict[str, Any]]]] = field(
        default_factory=list
    )
    schedule_retention: bool = False
    dispatch: bool = False
    refresh_reminders: bool = False
    register: list[tuple[Participant, ParticipantRole]] = field(default_factory=list)

    def log(
        self,
        activity_type: ActivityType,
        description: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        self.activities.append((activity_type, description, metadata))


Mutation = Callable[[Workflow], _Outcome]


class WorkflowEngine:
    """Drives document validation circuits through their lifecycle."""

    def __init__(
        self,
        repository: WorkflowRepository,
        activity: Optional[ActivityLogger] = None,
        retention: Optional[RetentionScheduler] = None,
        reminders: Optional[ReminderService] = None,
        participants: Optional[ParticipantDirectory] = None,
        dispatcher: Optional[AutoAdvanceDispatcher] = None,
        config: Optional[EngineConfig] = None,
    ) -> None:
        self._repository = repository
        self.activity = activity or ActivityLogger(repository)
        self.retention = retention or RetentionScheduler(repository, self.activity)
        self.reminders = reminders or ReminderService(repository, self.activity)
        self.participants = participants or ParticipantDirectory(repository)
        self.dispatcher = dispatcher
        self._config = config or EngineConfig()
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._background: set[asyncio.Task[None]] = set()

    @property
    def repository(self) -> WorkflowRepository:
        return self._repository

    # ------------------------------------------------------------------
    # Creation
    async def create_workflow(
        self,
        document_id: str,
        name: str,
        step_configs: Sequence[StepConfig],
        owner: Participant,
        deadline: Optional[datetime] = None,
    ) -> Workflow:
        """Create a circuit for a document and mark the document in progress.

        Raises:
            ValueError: If no step is given.
            DocumentNotFound: If the document does not exist.
            InvalidState: If the document already has an active workflow.
        """
        if not step_configs:
            raise ValueError("A workflow needs at least one step")
        if deadline is not None:
            deadline = as_utc(deadline)

        document = await self._repository.get_document(document_id)
        if document is None:
            raise DocumentNotFound(document_id)
        if document.workflow_id:
            active = await self._repository.get_workflow(document.workflow_id)
            if active is not None and not active.is_terminal:
                raise InvalidState(
                    f"Document {document_id} already has an active workflow {active.id}"
                )

        steps = [self._build_step(index, cfg) for index, cfg in enumerate(step_configs)]
        workflow = Workflow(
            document_id=document_id,
            name=name,
            steps=steps,
            owner=owner,
            deadline=deadline,
        )

        document.workflow_id = workflow.id
        document.status = DocumentStatus.IN_PROGRESS
        document.updated_at = utcnow()
        await self._repository.add_workflow(workflow, document)

        position = 0
        for cfg, step in zip(step_configs, steps):
            people = [p.participant for p in step.parallel_participants] or [cfg.participant]
            for person in people:
                await self.participants.register(person, cfg.role, position)
                position += 1

        await self.activity.log_activity(
            ActivityType.WORKFLOW_CREATED,
            f"Workflow created: {name}",
            document_id,
            workflow.id,
            {"steps": len(steps)},
        )
        if deadline is not None:
            await self.reminders.generate_workflow_reminders(workflow)

        logger.info(f"Created workflow={workflow.id} for document={document_id}")
        return workflow

    @staticmethod
    def _build_step(index: int, cfg: StepConfig) -> WorkflowStep:
        step = WorkflowStep(
            order=index + 1,
            participant=cfg.participant,
            role=cfg.role,
            instructions=cfg.instructions,
        )
        if cfg.is_parallel and cfg.parallel_participants:
            step.is_parallel = True
            step.parallel_mode = cfg.parallel_mode or ParallelMode.ALL
            step.parallel_participants = [
                ParallelParticipant(participant=p) for p in cfg.parallel_participants
            ]
        return step

    # ------------------------------------------------------------------
    # Queries
    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        return await self._repository.get_workflow(workflow_id)

    async def get_workflow_by_document(self, document_id: str) -> Optional[Workflow]:
        return await self._repository.get_workflow_by_document(document_id)

    async def list_workflows(self) -> list[Workflow]:
        return await self._repository.list_workflows()

    # ------------------------------------------------------------------
    # Step transitions
    async def mark_step_as_sent(
        self, workflow_id: str, step_index: int, package_id: Optional[str] = None
    ) -> TransitionResult:
        """Record that the package for a step went out. Repeated calls are no-ops."""

        def mutate(workflow: Workflow) -> _Outcome:
            self._ensure_active(workflow)
            step = self._step_at(workflow, step_index)
            if step.status == StepStatus.SENT:
                return _Outcome(message="Step already marked as sent", persist=False)
            transition(step, StepStatus.SENT)
            step.sent_at = utcnow()
            if package_id is not None:
                workflow.storage_package_ids.append(package_id)
            outcome = _Outcome(message=f"Step {step_index + 1} marked as sent")
            outcome.log(
                ActivityType.PACKAGE_GENERATED,
                f"Package generated for {step.participant.name}",
                {"step_id": step.id, "package_id": package_id},
            )
            return outcome

        return await self._mutate(workflow_id, mutate)

    async def process_return(
        self, workflow_id: str, return_data: ReturnFileData | dict | str | bytes
    ) -> TransitionResult:
        """Apply a participant's decision to a serial step."""
        try:
            data = parse_return(return_data)
        except BUSINESS_ERRORS as e:
            return TransitionResult.fail(e)

        def mutate(workflow: Workflow) -> _Outcome:
            index, step = self._returnable_step(workflow, data.step_id)
            if step.is_parallel:
                raise InvalidState(
                    f"Step {index + 1} is parallel; returns must name the responding participant"
                )
            now = utcnow()
            step.response = self._build_response(data)
            step.completed_at = now

            if isinstance(data, RejectionReturn):
                transition(step, StepStatus.REJECTED)
                outcome = _Outcome(message="Return processed: document rejected")
                self._terminate_rejected(workflow, step, outcome, now)
                return outcome

            if isinstance(data, ModificationReturn):
                transition(step, StepStatus.CORRECTION_REQUESTED)
                step.correction_count += 1
                step.correction_history.append(
                    CorrectionEntry(
                        requested_at=now,
                        requested_by=step.participant,
                        reason=data.reason,
                    )
                )
                workflow.awaiting_correction = True
                workflow.correction_requested_at = now
                workflow.correction_step_index = index
                outcome = _Outcome(message="Return processed: modification requested")
                outcome.log(
                    ActivityType.STEP_RETURNED_FOR_CORRECTION,
                    f"Modification requested by {step.participant.name}",
                    {"step_id": step.id, "reason": data.reason},
                )
                return outcome

            transition(step, StepStatus.COMPLETED)
            outcome = _Outcome(message="Return processed successfully")
            outcome.log(
                ActivityType.STEP_COMPLETED,
                f"Step {index + 1} completed by {step.participant.name}",
                {"step_id": step.id, "decision": data.decision},
            )
            self._advance(workflow, index, outcome, now)
            return outcome

        return await self._mutate(workflow_id, mutate)

    async def process_parallel_return(
        self,
        workflow_id: str,
        return_data: ReturnFileData | dict | str | bytes,
        participant_email: str,
    ) -> TransitionResult:
        """Record one participant's answer on a parallel step.

        The step closes once its ``all``/``any`` rule is met; until then the
        message reports how many participants have answered.
        """
        try:
            data = parse_return(return_data)
        except BUSINESS_ERRORS as e:
            return TransitionResult.fail(e)

        def mutate(workflow: Workflow) -> _Outcome:
            index, step = self._returnable_step(workflow, data.step_id)
            if not step.is_parallel:
                raise NotParallel(f"Step {index + 1} is not a parallel step")
            if isinstance(data, ModificationReturn):
                raise InvalidState("Corrections cannot be requested on a parallel step")
            entry = step.find_parallel_participant(participant_email)
            if entry is None:
                raise ParticipantNotInStep(participant_email)
            if entry.has_responded:
                raise AlreadyResponded(
                    f"{entry.participant.name} has already responded to this step"
                )

            now = utcnow()
            response = self._build_response(data)
            entry.status = (
                StepStatus.REJECTED if isinstance(data, RejectionReturn) else StepStatus.COMPLETED
            )
            entry.completed_at = now
            entry.response = response

            outcome = _Outcome(message="")
            outcome.log(
                ActivityType.PARALLEL_RESPONSE,
                f"{entry.participant.name} answered step {index + 1} ({data.decision})",
                {"step_id": step.id, "email": entry.participant.email},
            )

            closing = aggregate_parallel(step)
            if closing is None:
                responded, total = step.parallel_progress()
                outcome.message = f"Response recorded ({responded}/{total})"
                return outcome

            step.response = response
            step.completed_at = now
            transition(step, closing)
            if closing == StepStatus.REJECTED:
                outcome.message = "Parallel step rejected"
                self._terminate_rejected(workflow, entry, outcome, now)
                return outcome

            outcome.message = "Parallel step completed"
            outcome.log(
                ActivityType.STEP_COMPLETED,
                f"Parallel step {index + 1} completed ({(step.parallel_mode or ParallelMode.ALL).value})",
                {"step_id": step.id},
            )
            self._advance(workflow, index, outcome, now)
            return outcome

        return await self._mutate(workflow_id, mutate)

    async def resubmit_step_after_correction(
        self, workflow_id: str, step_index: int, new_content: Optional[str] = None
    ) -> TransitionResult:
        """Send a corrected document back to the step that asked for changes."""

        def mutate(workflow: Workflow) -> _Outcome:
            self._ensure_active(workflow)
            step = self._step_at(workflow, step_index)
            if step.status != StepStatus.CORRECTION_REQUESTED:
                raise NotAwaitingCorrection(
                    f"Step {step_index + 1} is not awaiting correction ({step.status.value})"
                )
            now = utcnow()
            transition(step, StepStatus.PENDING)
            step.sent_at = None
            step.completed_at = None
            step.response = None
            if step.correction_history:
                step.correction_history[-1].corrected_at = now

            workflow.awaiting_correction = False
            workflow.correction_requested_at = None
            workflow.correction_step_index = None
            workflow.current_step_index = step_index

            outcome = _Outcome(
                message=f"Step {step_index + 1} resubmitted after correction",
                new_content=new_content,
                dispatch=True,
            )
            outcome.log(
                ActivityType.WORKFLOW_RESUMED,
                f"Corrected document resubmitted to {step.participant.name}",
                {"step_id": step.id, "correction_count": step.correction_count},
            )
            return outcome

        return await self._mutate(workflow_id, mutate)

    async def cancel_workflow(
        self,
        workflow_id: str,
        cancelled_by: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> TransitionResult:
        """Stop a circuit. Open steps are rejected; finished ones are kept."""

        def mutate(workflow: Workflow) -> _Outcome:
            self._ensure_active(workflow)
            now = utcnow()
            workflow.completed_at = now
            workflow.cancelled_at = now
            workflow.cancelled_by = cancelled_by
            workflow.cancellation_reason = reason
            workflow.awaiting_correction = False
            workflow.correction_requested_at = None
            workflow.correction_step_index = None
            for step in workflow.steps:
                if step.status in (
                    StepStatus.PENDING,
                    StepStatus.SENT,
                    StepStatus.CORRECTION_REQUESTED,
                ):
                    transition(step, StepStatus.REJECTED)
            outcome = _Outcome(
                message="Workflow cancelled", document_status=DocumentStatus.REJECTED
            )
            outcome.log(
                ActivityType.WORKFLOW_CANCELLED,
                f"Workflow cancelled{f': {reason}' if reason else ''}",
                {"cancelled_by": cancelled_by},
            )
            return outcome

        return await self._mutate(workflow_id, mutate)

    async def skip_step(self, workflow_id: str, step_index: int, reason: str) -> TransitionResult:
        """Bypass a step administratively, advancing if it was the current one."""

        def mutate(workflow: Workflow) -> _Outcome:
            self._ensure_active(workflow)
            if workflow.awaiting_correction:
                raise InvalidState("Workflow is awaiting a correction")
            step = self._step_at(workflow, step_index)
            if step.is_terminal():
                raise AlreadyProcessed(f"Step {step_index + 1} has already been processed")
            now = utcnow()
            transition(step, StepStatus.SKIPPED)
            step.skipped_at = now
            step.skipped_reason = reason
            outcome = _Outcome(message=f"Step {step_index + 1} skipped")
            outcome.log(
                ActivityType.STEP_SKIPPED,
                f"Step {step_index + 1} skipped ({step.participant.name}): {reason}",
                {"step_id": step.id},
            )
            if step_index == workflow.current_step_index:
                self._advance(workflow, step_index, outcome, now)
            return outcome

        return await self._mutate(workflow_id, mutate)

    async def reassign_step(
        self, workflow_id: str, step_index: int, participant: Participant
    ) -> TransitionResult:
        """Hand an open step over to another participant."""

        def mutate(workflow: Workflow) -> _Outcome:
            self._ensure_active(workflow)
            step = self._step_at(workflow, step_index)
            if step.is_terminal():
                raise AlreadyProcessed(f"Step {step_index + 1} has already been processed")
            previous = step.participant
            step.reassigned_from = previous
            step.participant = participant
            if step.status == StepStatus.SENT:
                transition(step, StepStatus.PENDING)
                step.sent_at = None
            outcome = _Outcome(
                message=f"Step {step_index + 1} reassigned to {participant.name}",
                dispatch=step_index == workflow.current_step_index,
            )
            outcome.register.append((participant, step.role))
            outcome.log(
                ActivityType.STEP_REASSIGNED,
                f"Step {step_index + 1} reassigned from {previous.name} to {participant.name}",
                {"step_id": step.id},
            )
            return outcome

        return await self._mutate(workflow_id, mutate)

    async def extend_deadline(self, workflow_id: str, new_deadline: datetime) -> TransitionResult:
        new_deadline = as_utc(new_deadline)

        def mutate(workflow: Workflow) -> _Outcome:
            self._ensure_active(workflow)
            workflow.deadline = new_deadline
            outcome = _Outcome(message="Deadline extended", refresh_reminders=True)
            outcome.log(
                ActivityType.DEADLINE_EXTENDED,
                f"Deadline extended to {new_deadline.date().isoformat()}",
            )
            return outcome

        return await self._mutate(workflow_id, mutate)

    # ------------------------------------------------------------------
    # Background dispatch
    async def drain(self) -> None:
        """Wait for every scheduled auto-advance to finish."""
        while self._background:
            await asyncio.gather(*list(self._background))

    def _schedule_dispatch(self, workflow_id: str) -> None:
        if self.dispatcher is None or not self._config.auto_advance:
            return
        task = asyncio.create_task(self.dispatcher.advance(workflow_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # ------------------------------------------------------------------
    # Internals
    @asynccontextmanager
    async def _workflow_lock(self, workflow_id: str) -> AsyncIterator[None]:
        """Hold the workflow's lock; it is dropped once nobody holds or awaits it."""
        lock = self._locks.setdefault(workflow_id, asyncio.Lock())
        self._lock_users[workflow_id] = self._lock_users.get(workflow_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[workflow_id] -= 1
            if not self._lock_users[workflow_id]:
                del self._lock_users[workflow_id]
                del self._locks[workflow_id]

    async def _mutate(self, workflow_id: str, mutate: Mutation) -> TransitionResult:
        async with self._workflow_lock(workflow_id):
            attempts = self._config.max_conflict_retries + 1
            for attempt in range(1, attempts + 1):
                workflow = await self._repository.get_workflow(workflow_id)
                if workflow is None:
                    return TransitionResult.fail(WorkflowNotFound(workflow_id))
                try:
                    outcome = mutate(workflow)
                except BUSINESS_ERRORS as e:
                    logger.info(f"Rejected operation on workflow={workflow_id}: {e}")
                    return TransitionResult.fail(e)

                if not outcome.persist:
                    return TransitionResult.ok(outcome.message)
                try:
                    await self._commit(workflow, outcome)
                except RevisionConflict as e:
                    if attempt == attempts:
                        raise
                    logger.warning(f"{e}; retrying ({attempt}/{attempts - 1})")
                    continue
                break

        await self._after_commit(workflow, outcome)
        return TransitionResult.ok(outcome.message)

    async def _commit(self, workflow: Workflow, outcome: _Outcome) -> None:
        document = None
        if outcome.document_status is not None or outcome.new_content is not None:
            document = await self._repository.get_document(workflow.document_id)
            if document is None:
                logger.warning(
                    f"Document {workflow.document_id} missing for workflow={workflow.id}"
                )
            else:
                if outcome.document_status is not None:
                    document.status = outcome.document_status
                if outcome.new_content is not None:
                    document.content = outcome.new_content
                    document.version += 1
                document.updated_at = utcnow()
        await self._repository.save_workflow(workflow, workflow.revision, document)

    async def _after_commit(self, workflow: Workflow, outcome: _Outcome) -> None:
        for activity_type, description, metadata in outcome.activities:
            await self.activity.log_activity(
                activity_type, description, workflow.document_id, workflow.id, metadata
            )
        for participant, role in outcome.register:
            await self.participants.register(participant, role)
        if outcome.schedule_retention:
            document = await self._repository.get_document(workflow.document_id)
            if document is not None:
                await self.retention.schedule_retention(document.id, document.name)
        if outcome.refresh_reminders:
            await self.reminders.generate_workflow_reminders(workflow)
        if outcome.dispatch and not workflow.is_terminal and not workflow.awaiting_correction:
            self._schedule_dispatch(workflow.id)

    def _advance(
        self, workflow: Workflow, index: int, outcome: _Outcome, now: datetime
    ) -> None:
        next_index = workflow.next_active_index(index)
        if next_index is not None:
            workflow.current_step_index = next_index
            outcome.dispatch = True
            return
        workflow.completed_at = now
        outcome.message += " (workflow completed)"
        outcome.document_status = DocumentStatus.COMPLETED
        outcome.schedule_retention = True
        outcome.log(ActivityType.WORKFLOW_COMPLETED, "Validation circuit completed")

    @staticmethod
    def _terminate_rejected(
        workflow: Workflow,
        actor: WorkflowStep | ParallelParticipant,
        outcome: _Outcome,
        now: datetime,
    ) -> None:
        workflow.completed_at = now
        outcome.document_status = DocumentStatus.REJECTED
        outcome.schedule_retention = True
        outcome.log(
            ActivityType.WORKFLOW_REJECTED,
            f"Document rejected by {actor.participant.name}",
        )

    @staticmethod
    def _ensure_active(workflow: Workflow) -> None:
        if workflow.is_terminal:
            raise AlreadyTerminal(f"Workflow {workflow.id} is already finished")

    @staticmethod
    def _step_at(workflow: Workflow, step_index: int) -> WorkflowStep:
        if not 0 <= step_index < len(workflow.steps):
            raise StepNotFound(step_index)
        return workflow.steps[step_index]

    @staticmethod
    def _returnable_step(workflow: Workflow, step_id: str) -> tuple[int, WorkflowStep]:
        index = workflow.find_step_index(step_id)
        if index == -1:
            raise StepNotFound(step_id)
        step = workflow.steps[index]
        if step.is_terminal():
            raise AlreadyProcessed(f"Step {index + 1} has already been processed")
        if workflow.is_terminal:
            raise AlreadyTerminal(f"Workflow {workflow.id} is already finished")
        if step.status == StepStatus.CORRECTION_REQUESTED:
            raise InvalidState(f"Step {index + 1} is awaiting a corrected document")
        if index != workflow.current_step_index:
            raise InvalidState(f"Step {index + 1} is not the current step")
        return index, step

    @staticmethod
    def _build_response(data: ReturnFileData) -> StepResponse:
        return StepResponse(
            decision=data.step_decision,
            annotations=data.annotations,
            general_comment=data.general_comment,
            signature=data.signature,
            initials=data.initials,
            rejection_details=getattr(data, "rejection_details", None),
            completed_at=data.completed_at,
            return_file=data.to_json(),
        )
