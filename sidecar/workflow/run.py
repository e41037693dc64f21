"""
A single end-to-end workflow run.

The run owns its state and only changes it through the transition table.
Each mutating method checks its action against the table before touching
any data, so a rejected action leaves the run exactly as it was.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from api.document_models import Provenance, Section, SectionType
from api.workflow_models import (
    ApprovedDocument,
    ClinicalNote,
    PersonalizationProfile,
    TransitionRecord,
    WorkflowAction,
    WorkflowRunSnapshot,
    WorkflowState,
)
from document.schema import CANONICAL_ORDER
from workflow.errors import ApprovalIncomplete, ValidationInputError
from workflow.state_machine import allowed_actions, next_state


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowRun:
    def __init__(
        self,
        run_id: Optional[str] = None,
        round_number: int = 1,
        parent_run_id: Optional[str] = None,
    ) -> None:
        self._id = run_id or uuid.uuid4().hex
        self._round_number = round_number
        self._parent_run_id = parent_run_id
        self._state = WorkflowState.INTAKE
        self._note: Optional[ClinicalNote] = None
        self._profile: Optional[PersonalizationProfile] = None
        self._sections: tuple[Section, ...] = ()
        self._provenance: Optional[Provenance] = None
        self._approved: set[SectionType] = set()
        self._approved_document: Optional[ApprovedDocument] = None
        self._history: list[TransitionRecord] = []
        self._created_at = _utcnow()
        self._updated_at = self._created_at

    # --- Read-only view ---

    @property
    def id(self) -> str:
        return self._id

    @property
    def round_number(self) -> int:
        return self._round_number

    @property
    def parent_run_id(self) -> Optional[str]:
        return self._parent_run_id

    @property
    def state(self) -> WorkflowState:
        return self._state

    @property
    def note(self) -> Optional[ClinicalNote]:
        return self._note

    @property
    def profile(self) -> Optional[PersonalizationProfile]:
        return self._profile

    @property
    def sections(self) -> tuple[Section, ...]:
        return self._sections

    @property
    def provenance(self) -> Optional[Provenance]:
        return self._provenance

    @property
    def approved_document(self) -> Optional[ApprovedDocument]:
        return self._approved_document

    @property
    def history(self) -> tuple[TransitionRecord, ...]:
        return tuple(self._history)

    def section(self, section_type: SectionType) -> Section:
        for s in self._sections:
            if s.type == section_type:
                return s
        raise KeyError(section_type)

    def is_approved(self, section_type: SectionType) -> bool:
        return section_type in self._approved

    @property
    def pending_approvals(self) -> list[SectionType]:
        return [s.type for s in self._sections if s.type not in self._approved]

    def allowed_actions(self) -> list[WorkflowAction]:
        return allowed_actions(self._state)

    # --- Transitions ---

    def _advance(
        self,
        action: WorkflowAction,
        section_type: Optional[SectionType] = None,
    ) -> None:
        target = next_state(self._state, action)
        self._history.append(
            TransitionRecord(
                action=action,
                from_state=self._state,
                to_state=target,
                section_type=section_type,
            )
        )
        self._state = target
        self._updated_at = _utcnow()

    def submit_note(self, note: ClinicalNote) -> None:
        next_state(self._state, WorkflowAction.SUBMIT_NOTE)
        if not note.effective_text.strip():
            raise ValidationInputError(
                "Clinical note text is required.",
                errors=[{"field": "source_text", "message": "must not be empty"}],
            )
        self._note = note
        self._advance(WorkflowAction.SUBMIT_NOTE)

    def submit_profile(self, profile: PersonalizationProfile) -> None:
        next_state(self._state, WorkflowAction.SUBMIT_PROFILE)
        self._profile = profile
        self._advance(WorkflowAction.SUBMIT_PROFILE)

    def receive_document(self, sections: list[Section], provenance: Provenance) -> None:
        next_state(self._state, WorkflowAction.RECEIVE_DOCUMENT)
        if tuple(s.type for s in sections) != CANONICAL_ORDER:
            raise ValueError("Document must contain the seven sections in canonical order")
        self._sections = tuple(sections)
        self._provenance = provenance
        self._approved = set()
        self._advance(WorkflowAction.RECEIVE_DOCUMENT)

    def edit_section(self, section_type: SectionType, content: str) -> Section:
        """Overlay clinician text on a section. Any earlier approval is withdrawn."""
        next_state(self._state, WorkflowAction.EDIT_SECTION)
        edited = self.section(section_type).model_copy(update={"editable_content": content})
        self._sections = tuple(
            edited if s.type == section_type else s for s in self._sections
        )
        self._approved.discard(section_type)
        self._advance(WorkflowAction.EDIT_SECTION, section_type)
        return edited

    def approve_section(self, section_type: SectionType) -> None:
        next_state(self._state, WorkflowAction.APPROVE_SECTION)
        self.section(section_type)
        self._approved.add(section_type)
        self._advance(WorkflowAction.APPROVE_SECTION, section_type)

    def revoke_approval(self, section_type: SectionType) -> None:
        next_state(self._state, WorkflowAction.REVOKE_APPROVAL)
        self.section(section_type)
        self._approved.discard(section_type)
        self._advance(WorkflowAction.REVOKE_APPROVAL, section_type)

    def confirm_approval(self, approved_by: Optional[str] = None) -> ApprovedDocument:
        next_state(self._state, WorkflowAction.CONFIRM_APPROVAL)
        pending = self.pending_approvals
        if pending or not self._sections:
            raise ApprovalIncomplete(pending or list(CANONICAL_ORDER))
        self._approved_document = ApprovedDocument(
            sections=self._sections,
            provenance=self._provenance,
            approved_by=approved_by,
        )
        self._advance(WorkflowAction.CONFIRM_APPROVAL)
        return self._approved_document

    def regenerate(self) -> None:
        next_state(self._state, WorkflowAction.REGENERATE)
        self._sections = ()
        self._provenance = None
        self._approved = set()
        self._advance(WorkflowAction.REGENERATE)

    def restart(self) -> None:
        next_state(self._state, WorkflowAction.RESTART)
        self._note = None
        self._profile = None
        self._sections = ()
        self._provenance = None
        self._approved = set()
        self._advance(WorkflowAction.RESTART)

    def new_round(self) -> WorkflowRun:
        """Start a fresh run from a delivered one, ready to generate again."""
        next_state(self._state, WorkflowAction.START_NEW_ROUND)
        successor = WorkflowRun(
            round_number=self._round_number + 1,
            parent_run_id=self._id,
        )
        successor.submit_note(self._note)
        successor.submit_profile(self._profile)
        return successor

    # --- Persistence ---

    def to_snapshot(self) -> WorkflowRunSnapshot:
        return WorkflowRunSnapshot(
            id=self._id,
            round_number=self._round_number,
            parent_run_id=self._parent_run_id,
            state=self._state,
            note=self._note,
            profile=self._profile,
            sections=list(self._sections),
            provenance=self._provenance,
            approved_sections=[t for t in CANONICAL_ORDER if t in self._approved],
            approved_document=self._approved_document,
            history=list(self._history),
            allowed_actions=self.allowed_actions(),
            created_at=self._created_at,
            updated_at=self._updated_at,
        )

    @classmethod
    def from_snapshot(cls, snapshot: WorkflowRunSnapshot) -> WorkflowRun:
        """Rebuild a run, refusing snapshots that break the workflow invariants."""
        state = snapshot.state
        past_intake = state != WorkflowState.INTAKE
        past_personalize = state in (
            WorkflowState.GENERATE, WorkflowState.APPROVE, WorkflowState.DELIVER,
        )
        has_document = state in (WorkflowState.APPROVE, WorkflowState.DELIVER)

        if past_intake and snapshot.note is None:
            raise ValueError(f"Run {snapshot.id} in '{state.value}' has no clinical note")
        if past_personalize and snapshot.profile is None:
            raise ValueError(f"Run {snapshot.id} in '{state.value}' has no profile")
        if has_document and tuple(s.type for s in snapshot.sections) != CANONICAL_ORDER:
            raise ValueError(f"Run {snapshot.id} does not hold a complete document")
        if state == WorkflowState.DELIVER:
            if snapshot.approved_document is None or set(snapshot.approved_sections) != set(CANONICAL_ORDER):
                raise ValueError(f"Delivered run {snapshot.id} lacks a full approval")
            if tuple(snapshot.approved_document.sections) != tuple(snapshot.sections):
                raise ValueError(f"Delivered run {snapshot.id} approved a different document")

        run = cls(
            run_id=snapshot.id,
            round_number=snapshot.round_number,
            parent_run_id=snapshot.parent_run_id,
        )
        run._state = state
        run._note = snapshot.note
        run._profile = snapshot.profile
        run._sections = tuple(snapshot.sections) if has_document else ()
        run._provenance = snapshot.provenance if has_document else None
        run._approved = set(snapshot.approved_sections) if has_document else set()
        run._approved_document = snapshot.approved_document if state == WorkflowState.DELIVER else None
        run._history = list(snapshot.history)
        run._created_at = snapshot.created_at
        run._updated_at = snapshot.updated_at
        return run
