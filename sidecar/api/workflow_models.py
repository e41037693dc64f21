"""Pydantic models for workflow runs and the /runs endpoints."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from api.document_models import Provenance, Section, SectionType, SupportedLanguage


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowState(str, Enum):
    INTAKE = "intake"
    PERSONALIZE = "personalize"
    GENERATE = "generate"
    APPROVE = "approve"
    DELIVER = "deliver"


class WorkflowAction(str, Enum):
    SUBMIT_NOTE = "submit_note"
    SUBMIT_PROFILE = "submit_profile"
    RECEIVE_DOCUMENT = "receive_document"
    EDIT_SECTION = "edit_section"
    APPROVE_SECTION = "approve_section"
    REVOKE_APPROVAL = "revoke_approval"
    REGENERATE = "regenerate"
    CONFIRM_APPROVAL = "confirm_approval"
    RESTART = "restart"
    START_NEW_ROUND = "start_new_round"


class LiteracyLevel(str, Enum):
    BASIC = "basic"
    STANDARD = "standard"
    ADVANCED = "advanced"


class AgeBand(str, Enum):
    CHILD = "child"
    ADULT = "adult"
    OLDER_ADULT = "older_adult"


# --- Run inputs ---


class ClinicalNote(BaseModel):
    model_config = ConfigDict(frozen=True)

    source_text: str = ""
    extracted_text: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def effective_text(self) -> str:
        """Typed note text, or the OCR text when nothing was typed."""
        if self.source_text.strip():
            return self.source_text
        return self.extracted_text or ""


class PersonalizationProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    age: int = Field(ge=0, le=120)
    language: SupportedLanguage
    literacy: LiteracyLevel
    comorbidities: tuple[str, ...] = ()

    @field_validator("comorbidities", mode="before")
    @classmethod
    def _clean_comorbidities(cls, value):
        if value is None:
            return ()
        if isinstance(value, str):
            value = value.split(",")
        return tuple(str(item).strip() for item in value if str(item).strip())

    @property
    def age_band(self) -> AgeBand:
        if self.age < 18:
            return AgeBand.CHILD
        if self.age < 65:
            return AgeBand.ADULT
        return AgeBand.OLDER_ADULT


# --- Run outputs ---


class ApprovedDocument(BaseModel):
    """Terminal artifact. Every section's effective content was approved."""

    model_config = ConfigDict(frozen=True)

    sections: tuple[Section, ...]
    provenance: Provenance
    approved_at: datetime = Field(default_factory=_utcnow)
    approved_by: Optional[str] = None

    def as_text(self) -> str:
        return "\n\n".join(
            f"{s.title}\n{s.effective_content.strip()}" for s in self.sections
        )


class TransitionRecord(BaseModel):
    action: WorkflowAction
    from_state: WorkflowState
    to_state: WorkflowState
    at: datetime = Field(default_factory=_utcnow)
    section_type: Optional[SectionType] = None


class WorkflowRunSnapshot(BaseModel):
    """Serializable view of a run, offered to the persistence collaborator."""

    id: str
    round_number: int = 1
    parent_run_id: Optional[str] = None
    state: WorkflowState
    note: Optional[ClinicalNote] = None
    profile: Optional[PersonalizationProfile] = None
    sections: list[Section] = Field(default_factory=list)
    provenance: Optional[Provenance] = None
    approved_sections: list[SectionType] = Field(default_factory=list)
    approved_document: Optional[ApprovedDocument] = None
    history: list[TransitionRecord] = Field(default_factory=list)
    allowed_actions: list[WorkflowAction] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


# --- Requests ---


class NoteRequest(BaseModel):
    source_text: str = ""
    extracted_text: Optional[str] = None


class SectionEditRequest(BaseModel):
    content: str


class DeliverRequest(BaseModel):
    approved_by: Optional[str] = None


# --- Responses ---


class RunListItem(BaseModel):
    id: str
    state: WorkflowState
    round_number: int
    parent_run_id: Optional[str] = None
    created_at: str
    updated_at: str


class RunListResponse(BaseModel):
    items: list[RunListItem]
    total: int
    offset: int
    limit: int


class DeliverResponse(BaseModel):
    run: WorkflowRunSnapshot
    document: ApprovedDocument
    text: str


class NoteExtractionResponse(BaseModel):
    filename: str
    text: str
    method: str
    warnings: list[str] = Field(default_factory=list)
    manual_entry_required: bool = False
