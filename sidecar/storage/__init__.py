"""Persistent storage: SQLite database and OS keychain integration."""

from storage.database import Database, get_db
from storage.keychain import KeychainManager, get_keychain

__all__ = [
    "Database",
    "get_db",
    "KeychainManager",
    "get_keychain",
]
