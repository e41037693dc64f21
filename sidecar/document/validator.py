"""
Validate a structured (tool-call) generation result against the section schema.

Rules are applied in order and every violation is collected, so a caller
gets the complete diagnostic rather than the first failure:
1. Exactly the seven section types (nothing missing, nothing unknown)
2. Non-blank content
3. Non-blank title
4. No duplicate types
5. On success, sections are returned in canonical order
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from api.document_models import Section, SectionType, StructuredGeneration
from document.schema import CANONICAL_ORDER, canonical_position, describe


class ViolationKind(str, Enum):
    SHAPE_MISMATCH = "shape_mismatch"
    MISSING_SECTION = "missing_section"
    UNEXPECTED_SECTION = "unexpected_section"
    EMPTY_CONTENT = "empty_content"
    EMPTY_TITLE = "empty_title"
    DUPLICATE_SECTION = "duplicate_section"
    MALFORMED_SECTION = "malformed_section"


@dataclass
class Violation:
    kind: ViolationKind
    message: str
    section_type: Optional[SectionType] = None
    field: Optional[str] = None


@dataclass
class ValidationResult:
    sections: list[Section] = field(default_factory=list)
    violations: list[Violation] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.violations

    @property
    def is_shape_mismatch(self) -> bool:
        return any(v.kind == ViolationKind.SHAPE_MISMATCH for v in self.violations)


def _shape_mismatch(message: str) -> ValidationResult:
    return ValidationResult(
        violations=[Violation(kind=ViolationKind.SHAPE_MISMATCH, message=message)]
    )


def _extract_entries(payload: Any) -> Optional[list]:
    """Return the list of section entries, or None if the payload has the wrong shape."""
    if isinstance(payload, Mapping):
        entries = payload.get("sections")
        return entries if isinstance(entries, list) else None
    if isinstance(payload, list):
        return payload
    return None


def _is_blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


def validate(raw: Any) -> ValidationResult:
    """Validate a raw generation result. Never raises on malformed input."""
    if not isinstance(raw, StructuredGeneration):
        return _shape_mismatch("Generation result is not structured output")

    entries = _extract_entries(raw.payload)
    if entries is None:
        return _shape_mismatch(
            f"Structured payload of type {type(raw.payload).__name__} "
            f"has no list of sections"
        )

    malformed: list[Violation] = []
    unexpected: list[Violation] = []
    duplicates: list[Violation] = []
    # First occurrence of each type wins; later ones are duplicates
    first_seen: dict[SectionType, Mapping] = {}

    for index, entry in enumerate(entries):
        if not isinstance(entry, Mapping):
            malformed.append(
                Violation(
                    kind=ViolationKind.MALFORMED_SECTION,
                    message=f"Section at index {index} is not an object",
                    field=f"sections[{index}]",
                )
            )
            continue

        raw_type = entry.get("type")
        try:
            section_type = SectionType(str(raw_type).strip().lower())
        except ValueError:
            unexpected.append(
                Violation(
                    kind=ViolationKind.UNEXPECTED_SECTION,
                    message=f"Unknown section type {raw_type!r} at index {index}",
                    field="type",
                )
            )
            continue

        if section_type in first_seen:
            duplicates.append(
                Violation(
                    kind=ViolationKind.DUPLICATE_SECTION,
                    message=f"Section type '{section_type.value}' appears more than once",
                    section_type=section_type,
                    field="type",
                )
            )
            continue
        first_seen[section_type] = entry

    violations: list[Violation] = list(malformed)

    # 1. Type set
    for section_type in CANONICAL_ORDER:
        if section_type not in first_seen:
            violations.append(
                Violation(
                    kind=ViolationKind.MISSING_SECTION,
                    message=f"Missing required section '{section_type.value}'",
                    section_type=section_type,
                )
            )
    violations.extend(unexpected)

    # 2. Content
    for section_type, entry in first_seen.items():
        content = entry.get("content")
        min_length = describe(section_type).min_content_length
        if _is_blank(content) or len(content.strip()) < min_length:
            violations.append(
                Violation(
                    kind=ViolationKind.EMPTY_CONTENT,
                    message=f"Section '{section_type.value}' has empty content",
                    section_type=section_type,
                    field="content",
                )
            )

    # 3. Title
    for section_type, entry in first_seen.items():
        if describe(section_type).title_required and _is_blank(entry.get("title")):
            violations.append(
                Violation(
                    kind=ViolationKind.EMPTY_TITLE,
                    message=f"Section '{section_type.value}' has an empty title",
                    section_type=section_type,
                    field="title",
                )
            )

    # 4. Duplicates
    violations.extend(duplicates)

    if violations:
        return ValidationResult(violations=violations)

    # 5. Canonical order
    sections = [
        Section(title=entry["title"], type=section_type, content=entry["content"])
        for section_type, entry in first_seen.items()
    ]
    sections.sort(key=lambda s: canonical_position(s.type))
    return ValidationResult(sections=sections)
