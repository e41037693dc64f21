"""
LLM client abstraction over Claude, OpenAI and AWS Bedrock.

Structured output uses each provider's native mechanism:
- Claude: tool_use with a forced tool_choice
- OpenAI: function calling
- Bedrock: Converse API toolConfig

Plain-text and vision calls go through the same per-provider request
helpers with no tool attached.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)

TOOL_DESCRIPTION = "Generate structured patient education document"

# Bedrock needs inference profile IDs (region prefix + versioned model ID).
_BEDROCK_MODEL_MAP = {
    "claude-sonnet-4-6": "anthropic.claude-sonnet-4-6",
    "claude-sonnet-4-5": "anthropic.claude-sonnet-4-5-20250929-v1:0",
    "claude-haiku-4-5-20251001": "anthropic.claude-haiku-4-5-20251001-v1:0",
    "claude-opus-4-20250514": "anthropic.claude-opus-4-20250514-v1:0",
}

_BEDROCK_REGION_PREFIX = {
    "us-east-1": "us",
    "us-east-2": "us",
    "us-west-2": "us",
    "eu-west-1": "eu",
    "eu-central-1": "eu",
    "ap-northeast-1": "ap",
    "ap-southeast-1": "ap",
}

_BEDROCK_IMAGE_FORMATS = {
    "image/png": "png",
    "image/jpeg": "jpeg",
    "image/gif": "gif",
    "image/webp": "webp",
}


def _to_bedrock_model_id(model: str, region: str = "us-east-1") -> str:
    """Map an Anthropic model ID to a regional Bedrock inference profile ID."""
    if model[:3] in ("us.", "eu.", "ap.") and "anthropic." in model:
        return model
    prefix = _BEDROCK_REGION_PREFIX.get(region, "us")
    if "anthropic." in model:
        return f"{prefix}.{model}"
    base = _BEDROCK_MODEL_MAP.get(model, f"anthropic.{model}-v1:0")
    return f"{prefix}.{base}"


class LLMProvider(str, Enum):
    CLAUDE = "claude"
    OPENAI = "openai"
    BEDROCK = "bedrock"


@dataclass
class LLMResponse:
    """Raw response from an LLM API call."""

    provider: LLMProvider
    raw_content: str
    tool_call_result: Optional[dict]
    model: str
    input_tokens: int
    output_tokens: int


@dataclass
class _Image:
    data: bytes
    media_type: str


class LLMClient:
    """Unified LLM client. Instantiated per-request from the stored settings."""

    def __init__(
        self,
        provider: LLMProvider,
        api_key: str | dict,
        model: Optional[str] = None,
    ):
        self.provider = provider
        self.api_key = api_key
        self.model = model or self._default_model()

    def _default_model(self) -> str:
        if self.provider in (LLMProvider.CLAUDE, LLMProvider.BEDROCK):
            return "claude-sonnet-4-6"
        return "gpt-4.1-mini"

    # --- Public API ---

    async def call_with_tool(
        self,
        system_prompt: str,
        user_prompt: str,
        tool_name: str,
        tool_schema: dict[str, Any],
        max_tokens: int = 4096,
        temperature: float = 0.2,
    ) -> LLMResponse:
        """Send a prompt and force a structured tool call in the response."""
        return await self._dispatch(
            system_prompt, user_prompt, max_tokens, temperature,
            tool=(tool_name, tool_schema),
        )

    async def call(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 4096,
        temperature: float = 0.2,
    ) -> LLMResponse:
        """Send a prompt and return a plain text response (no tool use)."""
        return await self._dispatch(system_prompt, user_prompt, max_tokens, temperature)

    async def call_with_vision(
        self,
        system_prompt: str,
        user_prompt: str,
        image_bytes: bytes,
        media_type: str = "image/png",
        max_tokens: int = 4096,
        temperature: float = 0.0,
    ) -> LLMResponse:
        """Send an image plus a text prompt and return a plain text response."""
        return await self._dispatch(
            system_prompt, user_prompt, max_tokens, temperature,
            image=_Image(image_bytes, media_type),
        )

    async def _dispatch(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        temperature: float,
        tool: Optional[tuple[str, dict[str, Any]]] = None,
        image: Optional[_Image] = None,
    ) -> LLMResponse:
        logger.debug(
            "LLM call provider=%s model=%s tool=%s image=%s",
            self.provider.value, self.model, tool[0] if tool else None, image is not None,
        )
        if self.provider == LLMProvider.CLAUDE:
            return await self._call_claude(system_prompt, user_prompt, max_tokens, temperature, tool, image)
        if self.provider == LLMProvider.BEDROCK:
            return await self._call_bedrock(system_prompt, user_prompt, max_tokens, temperature, tool, image)
        return await self._call_openai(system_prompt, user_prompt, max_tokens, temperature, tool, image)

    # --- Claude ---

    async def _call_claude(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        temperature: float,
        tool: Optional[tuple[str, dict[str, Any]]],
        image: Optional[_Image],
    ) -> LLMResponse:
        import anthropic

        if image is not None:
            content: Any = [
                {
                    "type": "image",
                    "source": {
                        "type": "base64",
                        "media_type": image.media_type,
                        "data": base64.b64encode(image.data).decode("ascii"),
                    },
                },
                {"type": "text", "text": user_prompt},
            ]
        else:
            content = user_prompt

        kwargs: dict[str, Any] = {}
        if tool is not None:
            tool_name, tool_schema = tool
            kwargs["tools"] = [
                {"name": tool_name, "description": TOOL_DESCRIPTION, "input_schema": tool_schema}
            ]
            kwargs["tool_choice"] = {"type": "tool", "name": tool_name}

        client = anthropic.AsyncAnthropic(api_key=self.api_key)
        response = await client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system_prompt,
            messages=[{"role": "user", "content": content}],
            **kwargs,
        )

        tool_result = None
        raw_text = ""
        for block in response.content:
            if block.type == "tool_use" and tool is not None and block.name == tool[0]:
                tool_result = block.input
            elif block.type == "text":
                raw_text += block.text

        return LLMResponse(
            provider=LLMProvider.CLAUDE,
            raw_content=raw_text,
            tool_call_result=tool_result,
            model=response.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )

    # --- OpenAI ---

    async def _call_openai(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        temperature: float,
        tool: Optional[tuple[str, dict[str, Any]]],
        image: Optional[_Image],
    ) -> LLMResponse:
        import openai

        if image is not None:
            b64_data = base64.b64encode(image.data).decode("ascii")
            user_content: Any = [
                {"type": "image_url", "image_url": {"url": f"data:{image.media_type};base64,{b64_data}"}},
                {"type": "text", "text": user_prompt},
            ]
        else:
            user_content = user_prompt

        kwargs: dict[str, Any] = {}
        if tool is not None:
            tool_name, tool_schema = tool
            kwargs["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": tool_name,
                        "description": TOOL_DESCRIPTION,
                        "parameters": tool_schema,
                    },
                }
            ]
            kwargs["tool_choice"] = {"type": "function", "function": {"name": tool_name}}

        client = openai.AsyncOpenAI(api_key=self.api_key)
        response = await client.chat.completions.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
            **kwargs,
        )

        choice = response.choices[0]
        tool_result = None
        if tool is not None and choice.message.tool_calls:
            arguments = choice.message.tool_calls[0].function.arguments
            try:
                tool_result = json.loads(arguments)
            except json.JSONDecodeError:
                # Keep the malformed arguments so the normalizer can still
                # recover sections from them as text.
                logger.warning("OpenAI returned non-JSON tool arguments")
                return LLMResponse(
                    provider=LLMProvider.OPENAI,
                    raw_content=arguments,
                    tool_call_result=None,
                    model=response.model,
                    input_tokens=response.usage.prompt_tokens,
                    output_tokens=response.usage.completion_tokens,
                )

        return LLMResponse(
            provider=LLMProvider.OPENAI,
            raw_content=choice.message.content or "",
            tool_call_result=tool_result,
            model=response.model,
            input_tokens=response.usage.prompt_tokens,
            output_tokens=response.usage.completion_tokens,
        )

    # --- Bedrock ---

    def _get_bedrock_client(self):
        """Create a boto3 Bedrock Runtime client from the stored credentials.

        An access_key of "iam_role" leaves credentials to boto3's default
        chain (task role, instance profile, environment).
        """
        import boto3

        creds = self.api_key
        if not isinstance(creds, dict):
            raise ValueError("Bedrock provider requires AWS credentials dict")

        region = creds.get("region", "us-east-1")
        if creds.get("access_key") == "iam_role":
            return boto3.client("bedrock-runtime", region_name=region)

        return boto3.client(
            "bedrock-runtime",
            aws_access_key_id=creds["access_key"],
            aws_secret_access_key=creds["secret_key"],
            region_name=region,
        )

    async def _call_bedrock(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        temperature: float,
        tool: Optional[tuple[str, dict[str, Any]]],
        image: Optional[_Image],
    ) -> LLMResponse:
        bedrock = self._get_bedrock_client()
        region = self.api_key.get("region", "us-east-1") if isinstance(self.api_key, dict) else "us-east-1"
        model_id = _to_bedrock_model_id(self.model, region)

        content: list[dict[str, Any]] = []
        if image is not None:
            img_format = _BEDROCK_IMAGE_FORMATS.get(image.media_type, "png")
            content.append({"image": {"format": img_format, "source": {"bytes": image.data}}})
        content.append({"text": user_prompt})

        kwargs: dict[str, Any] = {}
        if tool is not None:
            tool_name, tool_schema = tool
            kwargs["toolConfig"] = {
                "tools": [
                    {
                        "toolSpec": {
                            "name": tool_name,
                            "description": TOOL_DESCRIPTION,
                            "inputSchema": {"json": tool_schema},
                        }
                    }
                ],
                "toolChoice": {"tool": {"name": tool_name}},
            }

        def _invoke():
            return bedrock.converse(
                modelId=model_id,
                system=[{"text": system_prompt}],
                messages=[{"role": "user", "content": content}],
                inferenceConfig={"maxTokens": max_tokens, "temperature": temperature},
                **kwargs,
            )

        # boto3 is synchronous; keep the event loop free while it runs
        response = await asyncio.get_running_loop().run_in_executor(None, _invoke)

        tool_result = None
        raw_text = ""
        for block in response["output"]["message"]["content"]:
            if "toolUse" in block and tool is not None and block["toolUse"]["name"] == tool[0]:
                tool_result = block["toolUse"]["input"]
            elif "text" in block:
                raw_text += block["text"]

        usage = response.get("usage", {})
        return LLMResponse(
            provider=LLMProvider.BEDROCK,
            raw_content=raw_text,
            tool_call_result=tool_result,
            model=model_id,
            input_tokens=usage.get("inputTokens", 0),
            output_tokens=usage.get("outputTokens", 0),
        )
