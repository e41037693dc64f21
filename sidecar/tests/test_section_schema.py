"""Tests for the canonical section schema."""

import pytest

from api.document_models import SectionType, SupportedLanguage
from document.schema import (
    CANONICAL_ORDER,
    canonical_position,
    describe,
    placeholder_for,
)


class TestCanonicalOrder:
    def test_seven_types_in_fixed_order(self):
        assert [t.value for t in CANONICAL_ORDER] == [
            "introduction",
            "explanation",
            "treatment",
            "lifestyle",
            "monitoring",
            "risks",
            "summary",
        ]

    def test_covers_every_section_type(self):
        assert set(CANONICAL_ORDER) == set(SectionType)

    def test_positions_match_order(self):
        for index, section_type in enumerate(CANONICAL_ORDER):
            assert canonical_position(section_type) == index
            assert describe(section_type).position == index


class TestDescribe:
    def test_accepts_enum_and_string(self):
        assert describe(SectionType.RISKS) is describe("risks")

    def test_unknown_type_raises(self):
        with pytest.raises(ValueError):
            describe("appendix")

    def test_every_section_requires_content_and_title(self):
        for section_type in CANONICAL_ORDER:
            constraints = describe(section_type)
            assert constraints.min_content_length >= 1
            assert constraints.title_required is True
            assert constraints.markers

    def test_titles_for_every_language(self):
        for section_type in CANONICAL_ORDER:
            for language in SupportedLanguage:
                assert describe(section_type).title_for(language).strip()

    def test_title_defaults_to_english(self):
        assert describe(SectionType.SUMMARY).title_for(None) == "Summary"
        assert describe(SectionType.SUMMARY).title_for(SupportedLanguage.FRENCH) == "Résumé"

    def test_markers_are_folded(self):
        # Markers are matched against accent-free lowercase text
        for section_type in CANONICAL_ORDER:
            for marker in describe(section_type).markers:
                assert marker == marker.lower()
                assert marker.isascii()


class TestPlaceholder:
    def test_localized(self):
        assert placeholder_for(SupportedLanguage.SPANISH) == "No disponible."
        assert placeholder_for(SupportedLanguage.FRENCH) == "Non disponible."

    def test_default_english(self):
        assert placeholder_for() == "Not available."
