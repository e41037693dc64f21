"""Workflow state machine and controller for note-to-document runs."""

from api.workflow_models import WorkflowAction, WorkflowState
from workflow.controller import DocumentGenerator, RunStore, WorkflowController
from workflow.errors import (
    ApprovalIncomplete,
    GenerationFailed,
    IllegalTransition,
    RunNotFound,
    ValidationInputError,
    WorkflowError,
)
from workflow.run import WorkflowRun

__all__ = [
    "ApprovalIncomplete",
    "DocumentGenerator",
    "GenerationFailed",
    "IllegalTransition",
    "RunNotFound",
    "RunStore",
    "ValidationInputError",
    "WorkflowAction",
    "WorkflowController",
    "WorkflowError",
    "WorkflowRun",
    "WorkflowState",
]
