"""Tests for clinical note extraction from uploaded files."""

import io
from unittest.mock import AsyncMock, MagicMock, patch

import fitz
import pytest
from PIL import Image

from extraction.note_extractor import NoteExtractor

NOTE_TEXT = "Assessment: NSTEMI s/p DES to LAD. Plan: DAPT x 12 months, atorvastatin 80 mg."


def _pdf_bytes(*page_texts: str) -> bytes:
    doc = fitz.open()
    for text in page_texts:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text, fontsize=10)
    data = doc.tobytes()
    doc.close()
    return data


def _png_bytes() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (40, 20), "white").save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def extractor():
    return NoteExtractor()


class TestTextFiles:
    @pytest.mark.asyncio
    async def test_plain_text(self, extractor):
        outcome = await extractor.extract(NOTE_TEXT.encode(), "note.txt")
        assert outcome.text == NOTE_TEXT
        assert outcome.method == "direct_input"
        assert outcome.manual_entry_required is False

    @pytest.mark.asyncio
    async def test_empty_text_needs_manual_entry(self, extractor):
        outcome = await extractor.extract(b"   \n", "note.md")
        assert outcome.manual_entry_required is True
        assert outcome.warnings

    @pytest.mark.asyncio
    async def test_unsupported_type(self, extractor):
        outcome = await extractor.extract(b"PK\x03\x04", "note.docx")
        assert outcome.manual_entry_required is True
        assert ".docx" in outcome.warnings[0]


class TestPdf:
    @pytest.mark.asyncio
    async def test_text_layer(self, extractor):
        outcome = await extractor.extract(_pdf_bytes(NOTE_TEXT), "discharge.pdf")
        assert outcome.method == "pdf_text"
        assert "NSTEMI" in outcome.text
        assert outcome.manual_entry_required is False

    @pytest.mark.asyncio
    async def test_corrupt_pdf_needs_manual_entry(self, extractor):
        outcome = await extractor.extract(b"not a pdf at all", "broken.pdf")
        assert outcome.manual_entry_required is True
        assert outcome.text == ""

    @pytest.mark.asyncio
    async def test_scanned_page_without_provider(self, extractor):
        outcome = await extractor.extract(_pdf_bytes(""), "scan.pdf")
        assert outcome.manual_entry_required is True
        assert any("no AI provider" in w for w in outcome.warnings)

    @pytest.mark.asyncio
    async def test_scanned_page_uses_vision_ocr(self, extractor):
        ocr = AsyncMock(return_value=("Plan: aspirin 81 mg daily", 0.95))
        with patch("extraction.note_extractor.vision_ocr_page", ocr):
            outcome = await extractor.extract(
                _pdf_bytes(NOTE_TEXT, ""), "mixed.pdf", llm_client=MagicMock(),
            )
        assert outcome.method == "vision_ocr"
        assert "NSTEMI" in outcome.text
        assert "aspirin 81 mg" in outcome.text
        ocr.assert_awaited_once()


class TestImages:
    @pytest.mark.asyncio
    async def test_image_without_provider(self, extractor):
        outcome = await extractor.extract(_png_bytes(), "photo.png")
        assert outcome.manual_entry_required is True

    @pytest.mark.asyncio
    async def test_image_with_provider(self, extractor):
        ocr = AsyncMock(return_value=(NOTE_TEXT, 0.95))
        with patch("extraction.note_extractor.vision_ocr_page", ocr):
            outcome = await extractor.extract(_png_bytes(), "photo.png", llm_client=MagicMock())
        assert outcome.text == NOTE_TEXT
        assert outcome.method == "vision_ocr"

    @pytest.mark.asyncio
    async def test_ocr_failure_needs_manual_entry(self, extractor):
        ocr = AsyncMock(return_value=("", 0.0))
        with patch("extraction.note_extractor.vision_ocr_page", ocr):
            outcome = await extractor.extract(_png_bytes(), "photo.jpg", llm_client=MagicMock())
        assert outcome.manual_entry_required is True

    @pytest.mark.asyncio
    async def test_invalid_image_bytes(self, extractor):
        outcome = await extractor.extract(b"\x00\x01garbage", "photo.png", llm_client=MagicMock())
        assert outcome.manual_entry_required is True


class TestUnreadableFiles:
    @pytest.mark.asyncio
    async def test_mupdf_runtime_error_needs_manual_entry(self, extractor):
        broken = RuntimeError("cannot open broken document")
        with patch("extraction.note_extractor.fitz.open", side_effect=broken):
            outcome = await extractor.extract(b"%PDF-1.7 truncated", "broken.pdf")
        assert outcome.manual_entry_required is True
        assert outcome.text == ""

    @pytest.mark.asyncio
    async def test_decompression_bomb_needs_manual_entry(self, extractor):
        bomb = Image.DecompressionBombError("Image size exceeds limit")
        with patch("extraction.note_extractor.Image.open", side_effect=bomb):
            outcome = await extractor.extract(_png_bytes(), "huge.png", llm_client=MagicMock())
        assert outcome.manual_entry_required is True
        assert "could not be read" in outcome.warnings[0]
