"""
Transition table for the document workflow.

    INTAKE -> PERSONALIZE -> GENERATE -> APPROVE -> DELIVER

Every state change goes through ``next_state``. A (state, action) pair that
is not in ``TRANSITIONS`` raises IllegalTransition. CONFIRM_APPROVAL from
APPROVE is the only row that reaches DELIVER, and DELIVER has no row that
leaves it.
"""

from __future__ import annotations

from api.workflow_models import WorkflowAction, WorkflowState
from workflow.errors import IllegalTransition


TRANSITIONS: dict[tuple[WorkflowState, WorkflowAction], WorkflowState] = {
    (WorkflowState.INTAKE, WorkflowAction.SUBMIT_NOTE): WorkflowState.PERSONALIZE,
    (WorkflowState.PERSONALIZE, WorkflowAction.SUBMIT_PROFILE): WorkflowState.GENERATE,
    (WorkflowState.GENERATE, WorkflowAction.RECEIVE_DOCUMENT): WorkflowState.APPROVE,
    (WorkflowState.APPROVE, WorkflowAction.EDIT_SECTION): WorkflowState.APPROVE,
    (WorkflowState.APPROVE, WorkflowAction.APPROVE_SECTION): WorkflowState.APPROVE,
    (WorkflowState.APPROVE, WorkflowAction.REVOKE_APPROVAL): WorkflowState.APPROVE,
    (WorkflowState.APPROVE, WorkflowAction.REGENERATE): WorkflowState.GENERATE,
    (WorkflowState.APPROVE, WorkflowAction.CONFIRM_APPROVAL): WorkflowState.DELIVER,
    (WorkflowState.INTAKE, WorkflowAction.RESTART): WorkflowState.INTAKE,
    (WorkflowState.PERSONALIZE, WorkflowAction.RESTART): WorkflowState.INTAKE,
    (WorkflowState.GENERATE, WorkflowAction.RESTART): WorkflowState.INTAKE,
    (WorkflowState.APPROVE, WorkflowAction.RESTART): WorkflowState.INTAKE,
    # The delivered run stays as it is; the new round is a separate run
    (WorkflowState.DELIVER, WorkflowAction.START_NEW_ROUND): WorkflowState.DELIVER,
}


def next_state(state: WorkflowState, action: WorkflowAction) -> WorkflowState:
    try:
        return TRANSITIONS[(state, action)]
    except KeyError:
        raise IllegalTransition(state, action) from None


def allowed_actions(state: WorkflowState) -> list[WorkflowAction]:
    return [action for (source, action) in TRANSITIONS if source == state]
