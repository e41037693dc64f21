"""
Persistent settings store: non-secret values in SQLite, API keys in the
OS keychain.

Public API: get_settings, update_settings, get_api_key_for_provider.
"""

from __future__ import annotations

import logging

from api.document_models import SupportedLanguage
from api.settings_models import AppSettings, LLMProviderEnum, SettingsUpdate
from storage.database import get_db
from storage.keychain import (
    AWS_ACCESS_KEY,
    AWS_SECRET_KEY,
    CLAUDE_KEY,
    OPENAI_KEY,
    get_keychain,
)

logger = logging.getLogger(__name__)

# Non-secret settings stored in SQLite
_DB_KEYS = (
    "llm_provider",
    "claude_model",
    "openai_model",
    "aws_region",
    "structured_output",
    "default_language",
    "generation_timeout_seconds",
)
# Secret keys stored in the OS keychain
_SECRET_KEYS = (CLAUDE_KEY, OPENAI_KEY, AWS_ACCESS_KEY, AWS_SECRET_KEY)


def get_settings() -> AppSettings:
    """Return current settings (loaded fresh from SQLite + keychain)."""
    all_db = get_db().get_all_settings()
    keychain = get_keychain()

    return AppSettings(
        llm_provider=LLMProviderEnum(all_db["llm_provider"])
        if "llm_provider" in all_db
        else LLMProviderEnum.CLAUDE,
        claude_api_key=keychain.get_key(CLAUDE_KEY),
        openai_api_key=keychain.get_key(OPENAI_KEY),
        aws_access_key_id=keychain.get_key(AWS_ACCESS_KEY),
        aws_secret_access_key=keychain.get_key(AWS_SECRET_KEY),
        aws_region=all_db.get("aws_region", "us-east-1"),
        claude_model=all_db.get("claude_model"),
        openai_model=all_db.get("openai_model"),
        structured_output=all_db.get("structured_output", "true") != "false",
        default_language=SupportedLanguage(all_db["default_language"])
        if "default_language" in all_db
        else SupportedLanguage.ENGLISH,
        generation_timeout_seconds=float(all_db["generation_timeout_seconds"])
        if "generation_timeout_seconds" in all_db
        else 120.0,
    )


def update_settings(update: SettingsUpdate) -> AppSettings:
    """Apply a partial update and return the new settings."""
    db = get_db()
    keychain = get_keychain()
    update_data = update.model_dump(exclude_unset=True)

    for secret_key in _SECRET_KEYS:
        if secret_key not in update_data:
            continue
        val = update_data.pop(secret_key)
        if val is None:
            keychain.delete_key(secret_key)
        else:
            keychain.set_key(secret_key, val)

    for key in _DB_KEYS:
        if key not in update_data:
            continue
        val = update_data[key]
        if val is None:
            db.delete_setting(key)
        elif isinstance(val, bool):
            db.set_setting(key, "true" if val else "false")
        else:
            # Enums -> store their value string
            db.set_setting(key, val.value if hasattr(val, "value") else str(val))

    logger.info("Settings updated: %s", sorted(update.model_fields_set))
    return get_settings()


def get_api_key_for_provider(provider: str) -> str | dict | None:
    """Return the credentials for a provider, or None when not configured.

    Bedrock credentials come back as a dict with access_key, secret_key and
    region, the shape ``LLMClient`` expects.
    """
    keychain = get_keychain()
    if provider == LLMProviderEnum.CLAUDE.value:
        return keychain.get_key(CLAUDE_KEY)
    if provider == LLMProviderEnum.OPENAI.value:
        return keychain.get_key(OPENAI_KEY)
    if provider == LLMProviderEnum.BEDROCK.value:
        access_key = keychain.get_key(AWS_ACCESS_KEY)
        secret_key = keychain.get_key(AWS_SECRET_KEY)
        if not access_key or not secret_key:
            return None
        return {
            "access_key": access_key,
            "secret_key": secret_key,
            "region": get_db().get_all_settings().get("aws_region", "us-east-1"),
        }
    return None
