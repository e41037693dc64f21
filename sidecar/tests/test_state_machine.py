"""Tests for the workflow transition table."""

import itertools

import pytest

from api.workflow_models import WorkflowAction, WorkflowState
from workflow.errors import IllegalTransition
from workflow.state_machine import TRANSITIONS, allowed_actions, next_state


class TestForwardPath:
    def test_happy_path(self):
        state = WorkflowState.INTAKE
        for action in (
            WorkflowAction.SUBMIT_NOTE,
            WorkflowAction.SUBMIT_PROFILE,
            WorkflowAction.RECEIVE_DOCUMENT,
            WorkflowAction.APPROVE_SECTION,
            WorkflowAction.CONFIRM_APPROVAL,
        ):
            state = next_state(state, action)
        assert state == WorkflowState.DELIVER

    def test_approve_actions_stay_in_approve(self):
        for action in (
            WorkflowAction.EDIT_SECTION,
            WorkflowAction.APPROVE_SECTION,
            WorkflowAction.REVOKE_APPROVAL,
        ):
            assert next_state(WorkflowState.APPROVE, action) == WorkflowState.APPROVE

    def test_regenerate_returns_to_generate(self):
        assert next_state(WorkflowState.APPROVE, WorkflowAction.REGENERATE) == WorkflowState.GENERATE

    @pytest.mark.parametrize(
        "state",
        [WorkflowState.INTAKE, WorkflowState.PERSONALIZE, WorkflowState.GENERATE, WorkflowState.APPROVE],
    )
    def test_restart_from_any_open_state(self, state):
        assert next_state(state, WorkflowAction.RESTART) == WorkflowState.INTAKE


class TestApprovalGate:
    def test_only_confirm_from_approve_reaches_deliver(self):
        into_deliver = [
            (source, action)
            for (source, action), target in TRANSITIONS.items()
            if target == WorkflowState.DELIVER and source != WorkflowState.DELIVER
        ]
        assert into_deliver == [(WorkflowState.APPROVE, WorkflowAction.CONFIRM_APPROVAL)]

    def test_deliver_cannot_be_left(self):
        for action in WorkflowAction:
            if action == WorkflowAction.START_NEW_ROUND:
                assert next_state(WorkflowState.DELIVER, action) == WorkflowState.DELIVER
                continue
            with pytest.raises(IllegalTransition):
                next_state(WorkflowState.DELIVER, action)

    def test_every_other_pair_is_rejected(self):
        for state, action in itertools.product(WorkflowState, WorkflowAction):
            if (state, action) in TRANSITIONS:
                continue
            with pytest.raises(IllegalTransition) as exc_info:
                next_state(state, action)
            assert exc_info.value.state == state
            assert exc_info.value.action == action

    def test_cannot_skip_generation(self):
        with pytest.raises(IllegalTransition):
            next_state(WorkflowState.PERSONALIZE, WorkflowAction.CONFIRM_APPROVAL)
        with pytest.raises(IllegalTransition):
            next_state(WorkflowState.GENERATE, WorkflowAction.CONFIRM_APPROVAL)


class TestAllowedActions:
    def test_intake(self):
        assert set(allowed_actions(WorkflowState.INTAKE)) == {
            WorkflowAction.SUBMIT_NOTE,
            WorkflowAction.RESTART,
        }

    def test_deliver(self):
        assert allowed_actions(WorkflowState.DELIVER) == [WorkflowAction.START_NEW_ROUND]
