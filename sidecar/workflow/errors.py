"""Workflow-level errors surfaced to callers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from api.document_models import SectionType
    from api.workflow_models import WorkflowAction, WorkflowState


class WorkflowError(Exception):
    """Base class for errors raised by the workflow controller."""


class ValidationInputError(WorkflowError):
    """Intake or personalization input is missing or invalid.

    The run is left where it was; the caller corrects the input and retries.
    """

    def __init__(self, message: str, errors: Optional[list[dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []


class GenerationFailed(WorkflowError):
    """The external generation call failed or timed out. Always retryable."""

    retryable = True

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class IllegalTransition(WorkflowError):
    def __init__(self, state: WorkflowState, action: WorkflowAction):
        super().__init__(
            f"Action '{action.value}' is not allowed in state '{state.value}'"
        )
        self.state = state
        self.action = action


class ApprovalIncomplete(WorkflowError):
    """Delivery was requested while sections were still unapproved."""

    def __init__(self, pending: list[SectionType]):
        names = ", ".join(s.value for s in pending)
        super().__init__(f"{len(pending)} section(s) still awaiting approval: {names}")
        self.pending = pending


class RunNotFound(WorkflowError):
    def __init__(self, run_id: str):
        super().__init__(f"Workflow run '{run_id}' not found")
        self.run_id = run_id
