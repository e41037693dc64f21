"""OS keychain integration for provider credentials."""

from __future__ import annotations

import logging

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

logger = logging.getLogger(__name__)

_SERVICE_NAME = "cardiobrief"

CLAUDE_KEY = "claude_api_key"
OPENAI_KEY = "openai_api_key"
AWS_ACCESS_KEY = "aws_access_key_id"
AWS_SECRET_KEY = "aws_secret_access_key"


class KeychainManager:
    """Store and retrieve API keys via the OS keychain.

    When no usable keyring backend exists (headless CI, minimal containers)
    keys are kept in process memory for the life of the sidecar.
    """

    def __init__(self) -> None:
        self._available = False
        self._fallback: dict[str, str] = {}
        try:
            keyring.get_credential(_SERVICE_NAME, None)
            self._available = True
            logger.info("OS keychain is available")
        except (KeyringError, RuntimeError):
            logger.warning("OS keychain unavailable; API keys will be stored in memory only")

    def get_key(self, name: str) -> str | None:
        if self._available:
            try:
                return keyring.get_password(_SERVICE_NAME, name)
            except KeyringError:
                logger.warning("Keychain read failed for %s; using in-memory value", name)
        return self._fallback.get(name)

    def set_key(self, name: str, value: str) -> None:
        if self._available:
            try:
                keyring.set_password(_SERVICE_NAME, name, value)
                return
            except KeyringError:
                logger.warning("Failed to write to keychain; using fallback")
        self._fallback[name] = value

    def delete_key(self, name: str) -> None:
        if self._available:
            try:
                keyring.delete_password(_SERVICE_NAME, name)
            except PasswordDeleteError:
                # Nothing stored under this name
                pass
            except KeyringError:
                logger.warning("Failed to delete %s from keychain", name)
        self._fallback.pop(name, None)


_keychain_instance: KeychainManager | None = None


def get_keychain() -> KeychainManager:
    """Return the module-level KeychainManager singleton."""
    global _keychain_instance
    if _keychain_instance is None:
        _keychain_instance = KeychainManager()
    return _keychain_instance
