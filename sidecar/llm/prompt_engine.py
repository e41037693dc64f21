"""
Prompt construction for patient-facing cardiac documents.

The system prompt carries the fixed document contract (seven sections in a
fixed order), the personalization profile (reading level, age band,
language, comorbidities) and the safety rules. The user prompt carries the
clinical note itself plus any cardiac medications detected in it.
"""

from __future__ import annotations

import re

from api.document_models import SupportedLanguage
from api.workflow_models import AgeBand, ClinicalNote, LiteracyLevel, PersonalizationProfile
from document.schema import CANONICAL_ORDER, describe
from llm.schemas import DOCUMENT_TOOL_NAME


_LITERACY_DESCRIPTIONS: dict[LiteracyLevel, str] = {
    LiteracyLevel.BASIC: (
        "Write at about a 5th-grade reading level. Very simple words, short "
        "sentences. No medical jargon; use everyday comparisons instead."
    ),
    LiteracyLevel.STANDARD: (
        "Write at about an 8th-grade reading level. Clear language with a "
        "brief plain-words definition for any medical term you must use."
    ),
    LiteracyLevel.ADVANCED: (
        "Write for an adult comfortable with health information. Medical "
        "terms are fine when introduced in context and briefly explained."
    ),
}

_AGE_BAND_GUIDANCE: dict[AgeBand, str] = {
    AgeBand.CHILD: (
        "The reader is a child or teenager, and a parent or guardian will "
        "usually read along. Address both, keep the tone calm and concrete, "
        "and explain what the family can do together."
    ),
    AgeBand.ADULT: (
        "The reader is an adult managing their own care. Be direct and "
        "practical about work, driving and daily routines where relevant."
    ),
    AgeBand.OLDER_ADULT: (
        "The reader is an older adult. Use short paragraphs, mention when a "
        "family member or caregiver can help, and be explicit about "
        "medication timing and fall or dizziness precautions when relevant."
    ),
}

_LANGUAGE_NAMES: dict[SupportedLanguage, str] = {
    SupportedLanguage.ENGLISH: "English",
    SupportedLanguage.SPANISH: "Spanish",
    SupportedLanguage.FRENCH: "French",
}

_SECTION_PURPOSES = {
    "introduction": "Who this document is for and what it covers, in 2-3 sentences.",
    "explanation": "What happened to the patient's heart and why, in plain terms.",
    "treatment": "Procedures done and medicines prescribed, and what each one is for.",
    "lifestyle": "Diet, activity, smoking and alcohol guidance tied to the note.",
    "monitoring": "Follow-up visits, tests and home checks (weight, blood pressure, pulse).",
    "risks": "Warning signs that need a call to the care team or emergency services.",
    "summary": "Three to five key points the patient should remember.",
}

# Cardiac medication classes worth explaining when they appear in a note.
_MEDICATION_PATTERNS: dict[str, str] = {
    "antiplatelets": (
        r"\b(?:aspirin|asa|clopidogrel|plavix|ticagrelor|brilinta|"
        r"prasugrel|effient|dapt)\b"
    ),
    "anticoagulants": (
        r"\b(?:apixaban|eliquis|rivaroxaban|xarelto|edoxaban|dabigatran|"
        r"pradaxa|warfarin|coumadin|heparin|enoxaparin|lovenox)\b"
    ),
    "beta_blockers": (
        r"\b(?:metoprolol|carvedilol|bisoprolol|atenolol|nebivolol|"
        r"propranolol|beta[- ]?blocker)\b"
    ),
    "statins": (
        r"\b(?:atorvastatin|lipitor|rosuvastatin|crestor|simvastatin|"
        r"pravastatin|statin)\b"
    ),
    "ace_arb_arni": (
        r"\b(?:lisinopril|enalapril|ramipril|losartan|valsartan|candesartan|"
        r"sacubitril|entresto|ace[- ]?inhibitor|arb)\b"
    ),
    "diuretics": (
        r"\b(?:furosemide|lasix|torsemide|bumetanide|spironolactone|"
        r"eplerenone|hydrochlorothiazide|hctz|chlorthalidone|diuretic)\b"
    ),
    "nitrates": r"\b(?:nitroglycerin|ntg|isosorbide|imdur|nitrate)\b",
    "sglt2_inhibitors": (
        r"\b(?:empagliflozin|jardiance|dapagliflozin|farxiga|sglt[- ]?2)\b"
    ),
}

_MEDICATION_GUIDANCE: dict[str, str] = {
    "antiplatelets": (
        "Antiplatelet medicines: explain they keep stents and arteries open, "
        "stress not stopping them without talking to the cardiologist, and "
        "mention bleeding or bruising as something to report."
    ),
    "anticoagulants": (
        "Blood thinners: explain stroke or clot prevention, list bleeding "
        "warning signs, and remind the reader to tell every clinician and "
        "dentist they take one."
    ),
    "beta_blockers": (
        "Beta blockers: explain they slow the heart and lower its workload; "
        "mention tiredness or dizziness when starting."
    ),
    "statins": (
        "Statins: explain they lower cholesterol and stabilize plaque; "
        "mention reporting unexplained muscle pain."
    ),
    "ace_arb_arni": (
        "ACE inhibitors / ARBs / ARNI: explain they relax blood vessels and "
        "protect the heart muscle; mention dizziness on standing and cough."
    ),
    "diuretics": (
        "Water pills: explain they remove extra fluid; connect them to daily "
        "weights and to reporting rapid weight gain."
    ),
    "nitrates": (
        "Nitroglycerin: explain how and when to use it for chest pain, and "
        "when chest pain means calling emergency services."
    ),
    "sglt2_inhibitors": (
        "SGLT2 inhibitors: explain they help the heart and kidneys, and "
        "mention staying hydrated."
    ),
}


def _extract_medications(note_text: str) -> list[str]:
    """Return the cardiac medication classes mentioned in the note."""
    if not note_text:
        return []
    text_lower = note_text.lower()
    return [
        med_class
        for med_class, pattern in _MEDICATION_PATTERNS.items()
        if re.search(pattern, text_lower)
    ]


def _build_medication_guidance(detected_classes: list[str]) -> str:
    if not detected_classes:
        return ""
    parts = [
        "## Medication Considerations",
        "These medication classes appear in the note. Cover them in the "
        "treatment section:\n",
    ]
    for med_class in detected_classes:
        parts.append(f"- {_MEDICATION_GUIDANCE[med_class]}")
    return "\n".join(parts)


def _build_comorbidity_guidance(comorbidities: tuple[str, ...]) -> str:
    if not comorbidities:
        return ""
    listed = ", ".join(comorbidities)
    return (
        "## Other Conditions\n"
        f"The patient also lives with: {listed}.\n"
        "Where it matters, connect the advice to these conditions (for "
        "example, diet advice that also suits diabetes). Do not explain "
        "these conditions at length; the document is about the heart."
    )


_SAFETY_RULES = """\
## Safety & Scope Rules
1. ONLY use facts stated in the clinical note. NEVER invent test results,
   doses, dates or diagnoses.
2. Do NOT change, add or stop medications. Describe what the note says.
3. Do NOT include the patient's name, date of birth, record numbers or
   any clinician names.
4. If the note does not cover a section, say briefly that the care team
   will discuss it, rather than guessing.
5. Every warning-signs section must tell the reader to call emergency
   services for chest pain that does not go away, fainting, or sudden
   shortness of breath.
"""


class PromptEngine:
    """Builds system and user prompts for patient document generation."""

    @staticmethod
    def _section_outline(language: SupportedLanguage, structured: bool) -> str:
        lines = []
        for n, section_type in enumerate(CANONICAL_ORDER, start=1):
            title = describe(section_type).title_for(language)
            purpose = _SECTION_PURPOSES[section_type.value]
            if structured:
                lines.append(f'{n}. type "{section_type.value}", title "{title}": {purpose}')
            else:
                lines.append(f"{n}. ## {title}: {purpose}")
        return "\n".join(lines)

    def build_system_prompt(
        self,
        profile: PersonalizationProfile,
        structured: bool = True,
    ) -> str:
        language_name = _LANGUAGE_NAMES[profile.language]
        parts = [
            "## YOUR ROLE\n",
            "You turn a cardiologist's clinical note into a patient education "
            "document. The clinician reviews and approves every section before "
            "the patient sees it, so write a draft they can sign off on with "
            "few edits.\n",
            "## Reading Level\n",
            _LITERACY_DESCRIPTIONS[profile.literacy] + "\n",
            "## Reader\n",
            f"Patient age: {profile.age}. " + _AGE_BAND_GUIDANCE[profile.age_band] + "\n",
            "## Language\n",
            f"Write the whole document in {language_name}, including section "
            "titles. Keep drug names as written in the note.\n",
        ]

        comorbidity_block = _build_comorbidity_guidance(profile.comorbidities)
        if comorbidity_block:
            parts.append(comorbidity_block + "\n")

        parts.append("## Document Structure\n")
        parts.append(
            "The document has exactly seven sections, always in this order:\n"
            + self._section_outline(profile.language, structured)
            + "\n"
        )
        parts.append(_SAFETY_RULES)

        if structured:
            parts.append(
                f"Call the {DOCUMENT_TOOL_NAME} tool with all seven sections. "
                "Do not produce any output outside of this tool call."
            )
        else:
            parts.append(
                "Format the response as plain text. Start each section with a "
                "markdown heading line (## followed by the section title) and "
                "write nothing before the first heading."
            )
        return "\n".join(parts)

    def build_user_prompt(self, note: ClinicalNote) -> str:
        sections = ["## Clinical Note", note.effective_text.strip()]
        medication_block = _build_medication_guidance(_extract_medications(note.effective_text))
        if medication_block:
            sections.append(medication_block)
        sections.append(
            "Write the patient document for this note now, following the "
            "structure and rules in the system prompt."
        )
        return "\n\n".join(sections)
