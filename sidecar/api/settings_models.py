"""Pydantic models for application settings."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from api.document_models import SupportedLanguage


class LLMProviderEnum(str, Enum):
    CLAUDE = "claude"
    OPENAI = "openai"
    BEDROCK = "bedrock"


class AppSettings(BaseModel):
    """Settings loaded from SQLite (non-secret) and the keychain (secret)."""

    llm_provider: LLMProviderEnum = LLMProviderEnum.CLAUDE
    claude_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_region: str = "us-east-1"
    claude_model: Optional[str] = None
    openai_model: Optional[str] = None
    # Tool-call output with fallback parsing; False requests plain text only
    structured_output: bool = True
    default_language: SupportedLanguage = SupportedLanguage.ENGLISH
    generation_timeout_seconds: float = Field(default=120.0, gt=0, le=600)


class SettingsUpdate(BaseModel):
    """Partial update for settings."""

    llm_provider: Optional[LLMProviderEnum] = None
    claude_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_region: Optional[str] = None
    claude_model: Optional[str] = None
    openai_model: Optional[str] = None
    structured_output: Optional[bool] = None
    default_language: Optional[SupportedLanguage] = None
    generation_timeout_seconds: Optional[float] = Field(default=None, gt=0, le=600)
