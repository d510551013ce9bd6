"""Exception taxonomy for workflow transitions."""

from __future__ import annotations


class DocrouteError(Exception):
    """Base class for all docroute errors."""


class NotFound(DocrouteError):
    pass


class WorkflowNotFound(NotFound):
    def __init__(self, workflow_id: str) -> None:
        super().__init__(f"Workflow not found: {workflow_id}")
        self.workflow_id = workflow_id


class StepNotFound(NotFound):
    def __init__(self, step_ref: str | int) -> None:
        super().__init__(f"Step not found: {step_ref}")
        self.step_ref = step_ref


class DocumentNotFound(NotFound):
    def __init__(self, document_id: str) -> None:
        super().__init__(f"Document not found: {document_id}")
        self.document_id = document_id


class AlreadyProcessed(DocrouteError):
    """A return arrived for a step that is already terminal."""


class AlreadyResponded(DocrouteError):
    """A parallel participant tried to respond twice."""


class InvalidState(DocrouteError):
    """The operation does not apply to the current step or workflow state."""


class NotAwaitingCorrection(InvalidState):
    pass


class NotParallel(InvalidState):
    pass


class AlreadyTerminal(InvalidState):
    """The workflow already has ``completed_at`` set."""


class IllegalTransitionError(InvalidState):
    pass


class InvalidReturnPayload(DocrouteError):
    """A return payload failed boundary validation."""


class PersistenceError(DocrouteError):
    """Storage backend failure. Always propagated to the caller."""


class RevisionConflict(PersistenceError):
    """A compare-and-swap write lost against a concurrent writer."""

    def __init__(self, workflow_id: str, expected: int, actual: int | None) -> None:
        super().__init__(
            f"Revision conflict on workflow {workflow_id}: expected {expected}, found {actual}"
        )
        self.workflow_id = workflow_id
        self.expected = expected
        self.actual = actual


class ParticipantNotInStep(NotFound):
    def __init__(self, email: str) -> None:
        super().__init__(f"Participant {email} is not part of this step")
        self.email = email


# Rule violations reported through TransitionResult rather than raised.
BUSINESS_ERRORS = (NotFound, AlreadyProcessed, AlreadyResponded, InvalidState, InvalidReturnPayload)
