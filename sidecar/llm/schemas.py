"""Tool schema used to request a structured patient document."""

from __future__ import annotations

from document.schema import CANONICAL_ORDER

DOCUMENT_TOOL_NAME = "write_patient_document"

_SECTION_ITEM = {
    "type": "object",
    "properties": {
        "type": {
            "type": "string",
            "enum": [t.value for t in CANONICAL_ORDER],
            "description": "Which of the seven document sections this is.",
        },
        "title": {
            "type": "string",
            "description": "Heading shown to the patient, in the document language.",
        },
        "content": {
            "type": "string",
            "description": "Body text of the section in plain, patient-friendly language.",
        },
    },
    "required": ["type", "title", "content"],
}

DOCUMENT_TOOL_SCHEMA = {
    "type": "object",
    "properties": {
        "sections": {
            "type": "array",
            "items": _SECTION_ITEM,
            "minItems": len(CANONICAL_ORDER),
            "maxItems": len(CANONICAL_ORDER),
            "description": (
                "Exactly one entry per section type, in this order: "
                + ", ".join(t.value for t in CANONICAL_ORDER)
                + "."
            ),
        },
    },
    "required": ["sections"],
}
