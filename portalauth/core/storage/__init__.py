"""
Client-Side Storage
===================

Two storage scopes (short-lived and persistent) behind one token store.
"""

from portalauth.core.storage.backends import (
    MemoryBackend,
    Scope,
    SqliteBackend,
    StorageBackend,
)
from portalauth.core.storage.token_store import StoredItem, TokenStore

__all__ = [
    "MemoryBackend",
    "Scope",
    "SqliteBackend",
    "StorageBackend",
    "StoredItem",
    "TokenStore",
]
