"""
LLM-backed document generator.

Adapts ``LLMClient`` to the workflow controller's generator interface: it
builds prompts from the note and profile, makes exactly one provider call
and hands back the raw result. Validation and fallback parsing happen
downstream in the normalizer.
"""

from __future__ import annotations

import logging
from typing import Optional

from api.document_models import RawGenerationResult, StructuredGeneration, TextGeneration
from api.workflow_models import ClinicalNote, PersonalizationProfile
from llm.client import LLMClient, LLMResponse
from llm.prompt_engine import PromptEngine
from llm.schemas import DOCUMENT_TOOL_NAME, DOCUMENT_TOOL_SCHEMA

logger = logging.getLogger(__name__)


def to_raw_result(response: LLMResponse) -> RawGenerationResult:
    """Tool output becomes a structured result; anything else is a text blob."""
    if response.tool_call_result is not None:
        return StructuredGeneration(payload=response.tool_call_result)
    return TextGeneration(text=response.raw_content or "")


class LLMDocumentGenerator:
    def __init__(
        self,
        client: LLMClient,
        prompt_engine: Optional[PromptEngine] = None,
        structured: bool = True,
        max_tokens: int = 4096,
    ):
        self.client = client
        self.prompt_engine = prompt_engine or PromptEngine()
        self.structured = structured
        self.max_tokens = max_tokens

    async def generate(
        self, note: ClinicalNote, profile: PersonalizationProfile,
    ) -> RawGenerationResult:
        system_prompt = self.prompt_engine.build_system_prompt(profile, structured=self.structured)
        user_prompt = self.prompt_engine.build_user_prompt(note)

        if self.structured:
            response = await self.client.call_with_tool(
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                tool_name=DOCUMENT_TOOL_NAME,
                tool_schema=DOCUMENT_TOOL_SCHEMA,
                max_tokens=self.max_tokens,
            )
        else:
            response = await self.client.call(
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                max_tokens=self.max_tokens,
            )

        logger.info(
            "Generated document via %s/%s (%d in, %d out tokens, tool=%s)",
            response.provider.value,
            response.model,
            response.input_tokens,
            response.output_tokens,
            response.tool_call_result is not None,
        )
        return to_raw_result(response)
