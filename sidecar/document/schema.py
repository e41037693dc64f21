"""
Canonical seven-section contract for patient documents.

Both the structured validator and the fallback text parser read from this
module, so the order, titles and heading markers cannot drift between the
two parsing paths.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from api.document_models import SectionType, SupportedLanguage

CANONICAL_ORDER: tuple[SectionType, ...] = (
    SectionType.INTRODUCTION,
    SectionType.EXPLANATION,
    SectionType.TREATMENT,
    SectionType.LIFESTYLE,
    SectionType.MONITORING,
    SectionType.RISKS,
    SectionType.SUMMARY,
)

DEFAULT_LANGUAGE = SupportedLanguage.ENGLISH


@dataclass(frozen=True)
class SectionConstraints:
    type: SectionType
    position: int
    min_content_length: int = 1
    title_required: bool = True
    titles: dict[SupportedLanguage, str] = field(default_factory=dict)
    # Lowercase, accent-free keywords that identify this section's heading
    markers: tuple[str, ...] = ()

    def title_for(self, language: SupportedLanguage | None = None) -> str:
        return self.titles.get(language or DEFAULT_LANGUAGE) or self.titles[DEFAULT_LANGUAGE]


_TITLES: dict[SectionType, dict[SupportedLanguage, str]] = {
    SectionType.INTRODUCTION: {
        SupportedLanguage.ENGLISH: "Introduction",
        SupportedLanguage.SPANISH: "Introducción",
        SupportedLanguage.FRENCH: "Introduction",
    },
    SectionType.EXPLANATION: {
        SupportedLanguage.ENGLISH: "What Happened",
        SupportedLanguage.SPANISH: "Qué ocurrió",
        SupportedLanguage.FRENCH: "Ce qui s'est passé",
    },
    SectionType.TREATMENT: {
        SupportedLanguage.ENGLISH: "Your Treatment",
        SupportedLanguage.SPANISH: "Su tratamiento",
        SupportedLanguage.FRENCH: "Votre traitement",
    },
    SectionType.LIFESTYLE: {
        SupportedLanguage.ENGLISH: "Living Well",
        SupportedLanguage.SPANISH: "Estilo de vida",
        SupportedLanguage.FRENCH: "Mode de vie",
    },
    SectionType.MONITORING: {
        SupportedLanguage.ENGLISH: "Follow-Up and Monitoring",
        SupportedLanguage.SPANISH: "Seguimiento y control",
        SupportedLanguage.FRENCH: "Suivi et surveillance",
    },
    SectionType.RISKS: {
        SupportedLanguage.ENGLISH: "Warning Signs and Risks",
        SupportedLanguage.SPANISH: "Señales de alarma y riesgos",
        SupportedLanguage.FRENCH: "Signes d'alerte et risques",
    },
    SectionType.SUMMARY: {
        SupportedLanguage.ENGLISH: "Summary",
        SupportedLanguage.SPANISH: "Resumen",
        SupportedLanguage.FRENCH: "Résumé",
    },
}

# English, Spanish and French keywords, accents stripped.
_MARKERS: dict[SectionType, tuple[str, ...]] = {
    SectionType.INTRODUCTION: (
        "introduction", "intro", "overview", "about this",
        "introduccion", "presentacion", "presentation", "apercu",
    ),
    SectionType.EXPLANATION: (
        "explanation", "what happened", "your condition", "diagnosis",
        "understanding", "explicacion", "que ocurrio", "que paso",
        "su condicion", "diagnostico", "explication", "ce qui s'est passe",
        "votre etat", "diagnostic",
    ),
    SectionType.TREATMENT: (
        "treatment", "procedure", "medication", "medications", "medicines", "therapy",
        "tratamiento", "medicamentos", "procedimiento", "traitement",
        "medicaments",
    ),
    SectionType.LIFESTYLE: (
        "lifestyle", "living well", "diet", "exercise", "daily life",
        "estilo de vida", "dieta", "ejercicio", "mode de vie",
        "alimentation", "activite physique",
    ),
    SectionType.MONITORING: (
        "monitoring", "follow-up", "follow up", "check-up", "appointments",
        "seguimiento", "control", "citas", "suivi", "surveillance",
        "rendez-vous",
    ),
    SectionType.RISKS: (
        "risks", "risk", "warning signs", "when to call", "emergency",
        "complications", "riesgos", "riesgo", "senales de alarma",
        "complicaciones", "risques", "risque", "signes d'alerte", "urgence",
    ),
    SectionType.SUMMARY: (
        "summary", "key points", "takeaways", "in short", "resumen",
        "puntos clave", "resume", "en resume", "points cles",
    ),
}

PLACEHOLDER_CONTENT: dict[SupportedLanguage, str] = {
    SupportedLanguage.ENGLISH: "Not available.",
    SupportedLanguage.SPANISH: "No disponible.",
    SupportedLanguage.FRENCH: "Non disponible.",
}

_CONSTRAINTS: dict[SectionType, SectionConstraints] = {
    section_type: SectionConstraints(
        type=section_type,
        position=position,
        titles=_TITLES[section_type],
        markers=_MARKERS[section_type],
    )
    for position, section_type in enumerate(CANONICAL_ORDER)
}


def describe(section_type: SectionType | str) -> SectionConstraints:
    """Return the constraints for a section type.

    Accepts the enum or its string value; raises ValueError for anything
    outside the seven known types.
    """
    return _CONSTRAINTS[SectionType(section_type)]


def placeholder_for(language: SupportedLanguage | None = None) -> str:
    return PLACEHOLDER_CONTENT.get(language or DEFAULT_LANGUAGE, PLACEHOLDER_CONTENT[DEFAULT_LANGUAGE])


def canonical_position(section_type: SectionType) -> int:
    return _CONSTRAINTS[section_type].position
