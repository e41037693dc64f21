"""LLM vision OCR for photographed or scanned clinical notes."""

from __future__ import annotations

import io
import logging

from PIL import Image

from llm.client import LLMClient

logger = logging.getLogger(__name__)

OCR_CONFIDENCE = 0.95

_VISION_SYSTEM_PROMPT = (
    "You are an expert medical document OCR system. You read printed and "
    "handwritten clinical notes, including cardiology discharge summaries, "
    "procedure notes and clinic letters."
)

_VISION_USER_PROMPT = """\
Transcribe ALL text visible on this clinical note page.

Rules:
- Keep section headings (e.g. HPI, Assessment, Plan, Medications) on their own lines
- Preserve drug names, doses, frequencies and vital signs exactly as written
- Keep list items one per line
- Mark handwritten text with [HW] prefix
- Do NOT interpret, summarize, or omit anything
- If a value is unclear, give your best reading and note uncertainty with [?]"""

# Cheaper vision-capable models for OCR; absent means the configured model
_OCR_MODELS = {
    "claude": "claude-haiku-4-5-20251001",
    "openai": "gpt-4.1-mini",
}


def _ocr_client(llm_client: LLMClient) -> LLMClient:
    model = _OCR_MODELS.get(llm_client.provider.value)
    if model is None:
        return llm_client
    return LLMClient(provider=llm_client.provider, api_key=llm_client.api_key, model=model)


def _png_bytes(image: Image.Image) -> bytes:
    buf = io.BytesIO()
    image.convert("RGB").save(buf, format="PNG")
    return buf.getvalue()


async def vision_ocr_page(
    llm_client: LLMClient,
    page_image: Image.Image,
) -> tuple[str, float]:
    """OCR a page image using LLM vision.

    Returns (transcribed_text, confidence). Confidence is OCR_CONFIDENCE on
    success and 0.0 on failure; failures are logged, never raised.
    """
    try:
        response = await _ocr_client(llm_client).call_with_vision(
            system_prompt=_VISION_SYSTEM_PROMPT,
            user_prompt=_VISION_USER_PROMPT,
            image_bytes=_png_bytes(page_image),
            media_type="image/png",
            max_tokens=4096,
            temperature=0.0,
        )
    except Exception:
        logger.exception("Vision OCR failed")
        return "", 0.0

    text = (response.raw_content or "").strip()
    if not text:
        logger.warning("Vision OCR returned empty text")
        return "", 0.0

    logger.info(
        "Vision OCR produced %d chars via %s (in=%d, out=%d tokens)",
        len(text), response.model, response.input_tokens, response.output_tokens,
    )
    return text, OCR_CONFIDENCE
