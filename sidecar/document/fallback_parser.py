"""
Heuristic section splitter for legacy free-text generation output.

Recognizes markdown headings, bold lines, numbered headings, ``Label:``
lines and short bare heading lines, and maps them onto section types using
the English/Spanish/French markers from the schema. Whatever it cannot
locate is filled with a localized placeholder so the result always has the
seven canonical sections.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from typing import Optional

from api.document_models import Section, SectionType, SupportedLanguage
from document.schema import CANONICAL_ORDER, describe, placeholder_for

logger = logging.getLogger(__name__)

_MAX_HEADING_WORDS = 8

_MARKDOWN_HEADING = re.compile(r"^#{1,6}\s+(.+?)\s*#*$")
_BOLD_HEADING = re.compile(r"^(?:\*\*|__)(.+?)(?:\*\*|__)\s*:?\s*(.*)$")
_NUMBERED_HEADING = re.compile(r"^(?:\d{1,2}|[IVX]{1,4})[.)]\s+(.+)$")
_LABEL_LINE = re.compile(r"^([^:]{2,60}):\s*(.*)$")
_CODE_FENCE = re.compile(r"^\s*```[\w-]*\s*$")
# Words allowed around markers in a bare or numbered heading
_HEADING_FILLER = frozenset({
    "and", "&", "of", "to", "the", "your", "my", "plan",
    "y", "de", "del", "el", "la", "los", "las", "su", "sus",
    "et", "du", "des", "le", "les", "votre", "vos",
})


def _fold(text: str) -> str:
    """Lowercase and strip accents so 'Résumé' matches 'resume'."""
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return stripped.lower().replace("’", "'").strip()


def _clean_heading(text: str) -> str:
    text = re.sub(r"[*_`#]+", "", text)
    return text.strip().rstrip(":").strip()


def _marker_pattern(marker: str) -> re.Pattern:
    return re.compile(r"(?<![\w])" + re.escape(marker) + r"(?![\w])")


def _classify(heading: str, strict: bool = False) -> Optional[SectionType]:
    """Map heading text to a section type using the earliest marker hit.

    With ``strict`` the heading may contain nothing but markers and filler
    words, so list items like "Resume normal activities" stay content.
    """
    folded = _fold(heading)
    if not folded or len(folded.split()) > _MAX_HEADING_WORDS:
        return None

    best: Optional[tuple[int, int, SectionType]] = None
    leftover = folded
    for section_type in CANONICAL_ORDER:
        for marker in describe(section_type).markers:
            pattern = _marker_pattern(marker)
            match = pattern.search(folded)
            if not match:
                continue
            leftover = pattern.sub(" ", leftover)
            # Earliest position wins; longer marker breaks ties
            candidate = (match.start(), -len(marker), section_type)
            if best is None or candidate[:2] < best[:2]:
                best = candidate

    if best is None:
        return None
    if strict and any(word not in _HEADING_FILLER for word in leftover.split()):
        return None
    return best[2]


def _match_heading(line: str) -> Optional[tuple[SectionType, str, str]]:
    """Return (type, title, inline_content) if the line is a section heading.

    A labelled line with text after the label (``Diet: less salt``) starts
    the section and is kept whole as its first content line.
    """
    stripped = line.strip()
    if not stripped:
        return None

    m = _MARKDOWN_HEADING.match(stripped)
    if m:
        title = _clean_heading(m.group(1))
        section_type = _classify(title)
        if section_type:
            return section_type, title, ""
        return None

    m = _NUMBERED_HEADING.match(stripped)
    if m:
        title = _clean_heading(m.group(1))
        if title.endswith((".", "!", "?")) or len(title.split()) > 5:
            return None
        section_type = _classify(title, strict=True)
        if section_type:
            return section_type, title, ""
        return None

    m = _BOLD_HEADING.match(stripped)
    if m:
        title = _clean_heading(m.group(1))
        section_type = _classify(title)
        if section_type:
            return section_type, title, stripped if m.group(2).strip() else ""
        return None

    m = _LABEL_LINE.match(stripped)
    if m and len(m.group(1).split()) <= 6:
        title = _clean_heading(m.group(1))
        section_type = _classify(title)
        if section_type:
            return section_type, title, stripped if m.group(2).strip() else ""
        return None

    # Bare short line such as "Summary"; sentences are never headings
    if stripped[-1] not in ".!?," and len(stripped.split()) <= 6:
        title = _clean_heading(stripped)
        section_type = _classify(title, strict=True)
        if section_type:
            return section_type, title, ""

    return None


def _join(lines: list[str]) -> str:
    text = "\n".join(lines).strip()
    return re.sub(r"\n{3,}", "\n\n", text)


def locate(text: Optional[str]) -> tuple[dict[SectionType, str], dict[SectionType, str]]:
    """Return (content, titles) for the sections found in ``text``.

    Only sections with text are returned; no placeholders are added.
    """
    lines = [
        line for line in (text or "").splitlines()
        if not _CODE_FENCE.match(line)
    ]

    buckets: dict[SectionType, list[str]] = {}
    titles: dict[SectionType, str] = {}
    preamble: list[str] = []
    current: Optional[SectionType] = None
    markdown_layout = False

    for line in lines:
        heading = _match_heading(line)
        # Under markdown headings a labelled line is content, not a new section
        if heading and heading[2] and markdown_layout:
            heading = None
        if heading:
            section_type, title, inline = heading
            current = section_type
            markdown_layout = markdown_layout or bool(_MARKDOWN_HEADING.match(line.strip()))
            titles.setdefault(section_type, title)
            bucket = buckets.setdefault(section_type, [])
            if bucket:
                bucket.append("")
            if inline:
                bucket.append(inline)
            continue
        if current is None:
            preamble.append(line.rstrip())
        else:
            buckets[current].append(line.rstrip())

    joined = {t: _join(b) for t, b in buckets.items()}
    content = {t: body for t, body in joined.items() if body}
    leading = _join(preamble)

    if not buckets:
        if leading:
            content[SectionType.EXPLANATION] = leading
        logger.info("No section headings recognized; placing text under explanation")
    elif leading:
        existing = content.get(SectionType.INTRODUCTION, "")
        content[SectionType.INTRODUCTION] = f"{leading}\n\n{existing}".strip()

    return content, titles


def assemble(
    content: dict[SectionType, str],
    titles: dict[SectionType, str],
    language: Optional[SupportedLanguage] = None,
) -> list[Section]:
    """Build the seven canonical sections, filling gaps with placeholders."""
    sections: list[Section] = []
    missing: list[str] = []
    for section_type in CANONICAL_ORDER:
        body = content.get(section_type, "").strip()
        if not body:
            missing.append(section_type.value)
            body = placeholder_for(language)
        sections.append(
            Section(
                title=titles.get(section_type) or describe(section_type).title_for(language),
                type=section_type,
                content=body,
            )
        )

    if missing:
        logger.info("Fallback parser used placeholders for: %s", ", ".join(missing))
    return sections


def parse(text: Optional[str], language: Optional[SupportedLanguage] = None) -> list[Section]:
    """Split free text into the seven canonical sections.

    Never raises: sections that cannot be located get a placeholder.
    """
    content, titles = locate(text)
    return assemble(content, titles, language)
