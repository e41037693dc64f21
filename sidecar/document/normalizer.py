"""
Single entry point from raw generation output to canonical sections.

Structured output is validated first. When it fails, entries that still
name a known type keep their content as-is and only the rest goes through
the fallback parser. Output that was never structured is flattened to the
best text available and parsed. The result always has the seven canonical
sections; parsing problems are logged here and never raised.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Optional

from api.document_models import (
    Provenance,
    Section,
    SectionType,
    StructuredGeneration,
    SupportedLanguage,
    TextGeneration,
)
from document import fallback_parser, validator
from document.schema import describe

logger = logging.getLogger(__name__)


def _render_entries(entries: list, language: Optional[SupportedLanguage]) -> str:
    """Render section-like entries as markdown the fallback parser can re-split.

    Known types are headed with their canonical title so the parser finds
    them even when the model's own title is unrecognizable.
    """
    blocks: list[str] = []
    for entry in entries:
        if isinstance(entry, Mapping):
            raw_type = str(entry.get("type") or "").strip().lower()
            title = entry.get("title") if isinstance(entry.get("title"), str) else ""
            content = entry.get("content") if isinstance(entry.get("content"), str) else ""
            try:
                heading = describe(raw_type).title_for(language)
            except ValueError:
                heading = title.strip()
            if not content.strip():
                continue
            blocks.append(f"## {heading}\n{content.strip()}" if heading else content.strip())
        elif isinstance(entry, str) and entry.strip():
            blocks.append(entry.strip())
    return "\n\n".join(blocks)


def _payload_to_text(payload: Any, language: Optional[SupportedLanguage]) -> str:
    if payload is None:
        return ""
    if isinstance(payload, str):
        return payload
    if isinstance(payload, list):
        return _render_entries(payload, language)
    if isinstance(payload, Mapping):
        sections = payload.get("sections")
        if isinstance(sections, list):
            return _render_entries(sections, language)
        # Mapping keyed by heading, e.g. {"summary": "...", "risks": "..."}
        blocks = [
            f"## {key}\n{value.strip()}"
            for key, value in payload.items()
            if isinstance(value, str) and value.strip()
        ]
        if blocks:
            return "\n\n".join(blocks)
    return json.dumps(payload, default=str, ensure_ascii=False)


def _text_to_text(text: str, language: Optional[SupportedLanguage]) -> str:
    """Legacy text sometimes carries a JSON document; flatten it if so."""
    stripped = text.strip()
    if stripped[:1] in ("{", "["):
        try:
            decoded = json.loads(stripped)
        except ValueError:
            return text
        return _payload_to_text(decoded, language)
    return text


def best_available_text(raw: Any, language: Optional[SupportedLanguage] = None) -> str:
    """Extract the most useful text representation of any generation result."""
    if isinstance(raw, TextGeneration):
        return _text_to_text(raw.text, language)
    if isinstance(raw, StructuredGeneration):
        return _payload_to_text(raw.payload, language)
    if isinstance(raw, str):
        return _text_to_text(raw, language)
    return _payload_to_text(raw, language)


def _entry_list(payload: Any) -> Optional[list]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, Mapping) and isinstance(payload.get("sections"), list):
        return payload["sections"]
    return None


def _entries_of(raw: Any) -> Optional[list]:
    """Section entries carried by the result, structured or JSON-in-text."""
    if isinstance(raw, StructuredGeneration):
        return _entry_list(raw.payload)
    text = raw.text if isinstance(raw, TextGeneration) else raw
    if not isinstance(text, str) or text.strip()[:1] not in ("{", "["):
        return None
    try:
        return _entry_list(json.loads(text.strip()))
    except ValueError:
        return None


def _recover_entries(
    entries: list,
) -> tuple[dict[SectionType, str], dict[SectionType, str], str]:
    """Place typed entries directly; return untyped ones as markdown.

    An entry's content is never re-split, so a line such as
    "Risk factors: smoking." stays in the section the model put it in.
    """
    content: dict[SectionType, str] = {}
    titles: dict[SectionType, str] = {}
    leftover: list[str] = []
    for entry in entries:
        if isinstance(entry, str):
            if entry.strip():
                leftover.append(entry.strip())
            continue
        if not isinstance(entry, Mapping):
            continue
        title = entry.get("title") if isinstance(entry.get("title"), str) else ""
        body = entry.get("content") if isinstance(entry.get("content"), str) else ""
        title, body = title.strip(), body.strip()
        if not body:
            continue
        try:
            section_type = SectionType(str(entry.get("type") or "").strip().lower())
        except ValueError:
            leftover.append(f"## {title}\n{body}" if title else body)
            continue
        if section_type in content:
            content[section_type] = f"{content[section_type]}\n\n{body}"
        else:
            content[section_type] = body
            if title:
                titles[section_type] = title
    return content, titles, "\n\n".join(leftover)


def _recover_sections(entries: list, language: Optional[SupportedLanguage]) -> list[Section]:
    content, titles, leftover = _recover_entries(entries)
    if leftover:
        located, located_titles = fallback_parser.locate(leftover)
        for section_type, body in located.items():
            if section_type in content:
                content[section_type] = f"{content[section_type]}\n\n{body}"
            else:
                content[section_type] = body
                titles.setdefault(section_type, located_titles[section_type])
    return fallback_parser.assemble(content, titles, language)


def normalize(
    raw: Any,
    language: Optional[SupportedLanguage] = None,
) -> tuple[list[Section], Provenance]:
    """Return (sections, provenance) for any generation result.

    Provenance is "structured" only when the payload passed every validation
    rule; otherwise the fallback parser produced the sections.
    """
    try:
        result = validator.validate(raw)
    except Exception:
        logger.exception("Structured validation raised; using fallback parser")
        result = validator.ValidationResult(
            violations=[
                validator.Violation(
                    kind=validator.ViolationKind.MALFORMED_SECTION,
                    message="Validator could not read the payload",
                )
            ]
        )

    if result.ok:
        logger.info("Structured document validated (%d sections)", len(result.sections))
        return result.sections, Provenance.STRUCTURED

    if result.is_shape_mismatch:
        logger.info("Generation result is not structured; using fallback parser")
    else:
        logger.warning(
            "Structured document failed validation with %d violation(s); "
            "using fallback parser: %s",
            len(result.violations),
            "; ".join(v.message for v in result.violations),
        )

    try:
        entries = _entries_of(raw)
        if entries is not None:
            return _recover_sections(entries, language), Provenance.FALLBACK
        text = best_available_text(raw, language)
    except Exception:
        logger.exception("Could not extract text from generation result")
        text = ""

    return fallback_parser.parse(text, language=language), Provenance.FALLBACK
