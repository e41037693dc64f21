"""
Turn an uploaded clinical note (text, PDF or image) into plain text.

Extraction problems never reach the workflow as exceptions: the outcome
carries empty text and ``manual_entry_required`` so the clinician can type
or paste the note instead.
"""

from __future__ import annotations

import io
import logging
import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import fitz
from PIL import Image, UnidentifiedImageError

from extraction.vision_ocr import vision_ocr_page

if TYPE_CHECKING:
    from llm.client import LLMClient

logger = logging.getLogger(__name__)

TEXT_EXTENSIONS = {".txt", ".text", ".md"}
PDF_EXTENSIONS = {".pdf"}
IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".webp", ".tif", ".tiff", ".bmp"}

# Pages whose text layer is shorter than this are treated as scanned
_MIN_TEXT_LAYER_CHARS = 40
_RENDER_DPI = 300


@dataclass
class ExtractionOutcome:
    text: str = ""
    method: str = "none"
    warnings: list[str] = field(default_factory=list)
    manual_entry_required: bool = False

    @classmethod
    def manual(cls, warning: str) -> ExtractionOutcome:
        return cls(warnings=[warning], manual_entry_required=True)


class NoteExtractor:
    async def extract(
        self,
        content: bytes,
        filename: str,
        llm_client: LLMClient | None = None,
    ) -> ExtractionOutcome:
        ext = os.path.splitext(filename or "")[1].lower()
        try:
            if ext in TEXT_EXTENSIONS:
                outcome = self._extract_text(content)
            elif ext in PDF_EXTENSIONS:
                outcome = await self._extract_pdf(content, llm_client)
            elif ext in IMAGE_EXTENSIONS:
                outcome = await self._extract_image(content, llm_client)
            else:
                return ExtractionOutcome.manual(
                    f"Unsupported file type '{ext or filename}'. Please type or paste the note."
                )
        except (
            RuntimeError,  # includes fitz.FileDataError
            UnidentifiedImageError,
            Image.DecompressionBombError,
            OSError,
            ValueError,
        ) as e:
            logger.warning("Note extraction failed for %s: %s", filename, e)
            return ExtractionOutcome.manual(
                "The file could not be read. Please type or paste the note."
            )

        if not outcome.text.strip():
            outcome.manual_entry_required = True
            outcome.warnings.append("No text could be extracted. Please type or paste the note.")
        logger.info(
            "Extracted %d chars from %s via %s", len(outcome.text), ext or "upload", outcome.method,
        )
        return outcome

    @staticmethod
    def _extract_text(content: bytes) -> ExtractionOutcome:
        text = content.decode("utf-8", errors="replace").strip()
        return ExtractionOutcome(text=text, method="direct_input")

    async def _extract_pdf(
        self, content: bytes, llm_client: LLMClient | None,
    ) -> ExtractionOutcome:
        warnings: list[str] = []
        page_texts: list[str] = []
        used_vision = False

        doc = fitz.open(stream=content, filetype="pdf")
        try:
            for index, page in enumerate(doc, start=1):
                text = page.get_text("text").strip()
                if len(text) >= _MIN_TEXT_LAYER_CHARS:
                    page_texts.append(text)
                    continue

                if llm_client is None:
                    if not text:
                        warnings.append(
                            f"Page {index}: no text layer and no AI provider configured for OCR."
                        )
                    page_texts.append(text)
                    continue

                vision_text, confidence = await vision_ocr_page(llm_client, self._render_page(page))
                if confidence > 0:
                    used_vision = True
                    page_texts.append(vision_text)
                    warnings.append(f"Page {index}: AI-assisted OCR used (scanned page).")
                else:
                    page_texts.append(text)
                    warnings.append(f"Page {index}: OCR failed; page text may be incomplete.")
        finally:
            doc.close()

        full_text = "\n\n".join(t for t in page_texts if t)
        return ExtractionOutcome(
            text=full_text,
            method="vision_ocr" if used_vision else "pdf_text",
            warnings=warnings,
        )

    async def _extract_image(
        self, content: bytes, llm_client: LLMClient | None,
    ) -> ExtractionOutcome:
        image = Image.open(io.BytesIO(content))
        image.load()
        if llm_client is None:
            return ExtractionOutcome.manual(
                "Image notes need an AI provider for OCR. Configure one in settings "
                "or type the note."
            )

        text, confidence = await vision_ocr_page(llm_client, image)
        if confidence <= 0:
            return ExtractionOutcome.manual("OCR failed for this image. Please type or paste the note.")
        return ExtractionOutcome(text=text, method="vision_ocr")

    @staticmethod
    def _render_page(page: fitz.Page) -> Image.Image:
        zoom = _RENDER_DPI / 72
        pix = page.get_pixmap(matrix=fitz.Matrix(zoom, zoom))
        return Image.frombytes("RGB", (pix.width, pix.height), pix.samples)
