"""Pydantic models for the patient document: sections and raw generation output."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class SupportedLanguage(str, Enum):
    ENGLISH = "en"
    SPANISH = "es"
    FRENCH = "fr"


class SectionType(str, Enum):
    INTRODUCTION = "introduction"
    EXPLANATION = "explanation"
    TREATMENT = "treatment"
    LIFESTYLE = "lifestyle"
    MONITORING = "monitoring"
    RISKS = "risks"
    SUMMARY = "summary"


class Provenance(str, Enum):
    STRUCTURED = "structured"
    FALLBACK = "fallback"


class Section(BaseModel):
    """One unit of the patient document.

    ``content`` is what the model generated and is never rewritten.
    ``editable_content`` is the clinician's overlay; ``None`` means the
    section is unmodified.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    title: str
    type: SectionType
    content: str
    editable_content: Optional[str] = Field(default=None, alias="editableContent")

    @property
    def effective_content(self) -> str:
        if self.editable_content is not None:
            return self.editable_content
        return self.content


# --- Raw generation output ---


class StructuredGeneration(BaseModel):
    """Tool-call output: a payload already split into named parts."""

    kind: Literal["structured"] = "structured"
    payload: Any = None


class TextGeneration(BaseModel):
    """Legacy output: one opaque text blob."""

    kind: Literal["text"] = "text"
    text: str = ""


RawGenerationResult = Annotated[
    Union[StructuredGeneration, TextGeneration],
    Field(discriminator="kind"),
]
