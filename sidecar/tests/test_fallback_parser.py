"""Tests for the heuristic free-text section parser."""

from api.document_models import SectionType, SupportedLanguage
from document.fallback_parser import parse
from document.schema import CANONICAL_ORDER


def _by_type(sections):
    return {s.type: s for s in sections}


MARKDOWN_DOC = """\
## Introduction
This letter explains your recent hospital stay.

## What Happened
You had a small heart attack (NSTEMI).

## Your Treatment
A stent was placed in your LAD artery.
- Aspirin 81 mg daily
- Ticagrelor 90 mg twice daily

## Living Well
Walk 20 minutes a day and avoid salty foods.

## Follow-Up and Monitoring
See your cardiologist in 2 weeks.

## Warning Signs and Risks
Call 911 for chest pain that does not go away.

## Summary
Take your medicines every day.
"""


class TestHeadingStyles:
    def test_markdown_headings(self):
        sections = parse(MARKDOWN_DOC)
        assert [s.type for s in sections] == list(CANONICAL_ORDER)
        by_type = _by_type(sections)
        assert "Ticagrelor 90 mg" in by_type[SectionType.TREATMENT].content
        assert by_type[SectionType.TREATMENT].title == "Your Treatment"
        assert by_type[SectionType.RISKS].content.startswith("Call 911")

    def test_bold_and_label_headings(self):
        text = (
            "**Diagnosis:** You had a heart attack.\n"
            "**Medications**\n"
            "Keep taking aspirin.\n"
            "Summary: Rest and take your pills.\n"
        )
        by_type = _by_type(parse(text))
        assert by_type[SectionType.EXPLANATION].content == "**Diagnosis:** You had a heart attack."
        assert by_type[SectionType.TREATMENT].content == "Keep taking aspirin."
        assert by_type[SectionType.SUMMARY].content == "Summary: Rest and take your pills."

    def test_labelled_line_keeps_its_label(self):
        text = "Medications: aspirin, ticagrelor.\nDiet: eat less salt.\n"
        by_type = _by_type(parse(text))
        assert by_type[SectionType.TREATMENT].content == "Medications: aspirin, ticagrelor."
        assert by_type[SectionType.TREATMENT].title == "Medications"
        assert by_type[SectionType.LIFESTYLE].content == "Diet: eat less salt."

    def test_labelled_lines_under_markdown_heading_are_content(self):
        text = (
            "## Your Treatment\n"
            "Medications: aspirin, ticagrelor.\n"
            "Diet: eat less salt.\n"
            "## Summary\nRest.\n"
        )
        by_type = _by_type(parse(text))
        assert by_type[SectionType.TREATMENT].content == (
            "Medications: aspirin, ticagrelor.\nDiet: eat less salt."
        )
        assert by_type[SectionType.LIFESTYLE].content == "Not available."
        assert by_type[SectionType.SUMMARY].content == "Rest."

    def test_numbered_headings(self):
        text = "1. Overview\nHello.\n2. Treatment\nA stent.\n3. Risks\nBleeding.\n"
        by_type = _by_type(parse(text))
        assert by_type[SectionType.INTRODUCTION].content == "Hello."
        assert by_type[SectionType.TREATMENT].content == "A stent."
        assert by_type[SectionType.RISKS].content == "Bleeding."

    def test_list_items_are_not_headings(self):
        text = (
            "## Living Well\n"
            "1. Exercise for 30 minutes most days.\n"
            "2. Resume normal activities slowly\n"
            "## Summary\nDone.\n"
        )
        by_type = _by_type(parse(text))
        lifestyle = by_type[SectionType.LIFESTYLE].content
        assert "Exercise for 30 minutes" in lifestyle
        assert "Resume normal activities" in lifestyle
        assert by_type[SectionType.SUMMARY].content == "Done."

    def test_spanish_headings_with_accents(self):
        text = (
            "## Qué ocurrió\nTuvo un infarto.\n"
            "## Señales de alarma y riesgos\nLlame al 911.\n"
            "## Resumen\nTome sus medicamentos.\n"
        )
        by_type = _by_type(parse(text, language=SupportedLanguage.SPANISH))
        assert by_type[SectionType.EXPLANATION].content == "Tuvo un infarto."
        assert by_type[SectionType.RISKS].content == "Llame al 911."
        assert by_type[SectionType.SUMMARY].content == "Tome sus medicamentos."
        assert by_type[SectionType.TREATMENT].content == "No disponible."

    def test_french_headings(self):
        text = "Suivi et surveillance\nRendez-vous dans un mois.\n\nRésumé\nTout va bien.\n"
        by_type = _by_type(parse(text, language=SupportedLanguage.FRENCH))
        assert by_type[SectionType.MONITORING].content == "Rendez-vous dans un mois."
        assert by_type[SectionType.SUMMARY].content == "Tout va bien."


class TestTotality:
    def test_empty_and_none_give_placeholders(self):
        for text in (None, "", "   \n\n"):
            sections = parse(text)
            assert [s.type for s in sections] == list(CANONICAL_ORDER)
            assert all(s.content == "Not available." for s in sections)

    def test_no_headings_goes_to_explanation(self):
        sections = parse("You had a heart attack and a stent was placed.")
        by_type = _by_type(sections)
        assert by_type[SectionType.EXPLANATION].content.startswith("You had a heart attack")
        assert by_type[SectionType.SUMMARY].content == "Not available."

    def test_preamble_goes_to_introduction(self):
        text = "Dear patient,\n\n## Summary\nRest well.\n"
        by_type = _by_type(parse(text))
        assert by_type[SectionType.INTRODUCTION].content == "Dear patient,"

    def test_placeholder_sections_use_localized_default_titles(self):
        by_type = _by_type(parse("## Summary\nRest.", language=SupportedLanguage.SPANISH))
        assert by_type[SectionType.RISKS].title == "Señales de alarma y riesgos"
        assert by_type[SectionType.SUMMARY].title == "Summary"

    def test_repeated_heading_appends_and_keeps_first_title(self):
        text = "## Summary\nFirst.\n## Key Points\nSecond.\n"
        summary = _by_type(parse(text))[SectionType.SUMMARY]
        assert summary.title == "Summary"
        assert "First." in summary.content and "Second." in summary.content

    def test_code_fences_are_dropped(self):
        text = "```markdown\n## Summary\nRest.\n```\n"
        assert _by_type(parse(text))[SectionType.SUMMARY].content == "Rest."

    def test_every_section_has_title_and_content(self):
        for section in parse("random words\n# \n###\n**\n:"):
            assert section.title.strip()
            assert section.content.strip()
