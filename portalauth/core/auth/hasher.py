"""
Credential Hashing
==================

One-way transform applied to a password before it leaves the client.

The digest is deterministic (SHA-256, hex encoded) so the remote
endpoint can compare it against what it stored at registration. This is
not a password storage scheme; the server is expected to apply its own
salted hash on top.
"""

from __future__ import annotations

import asyncio
import hashlib
from typing import Final

DIGEST_HEX_LENGTH: Final[int] = 64


class CredentialHasher:
    """
    Hashes secrets off the event loop thread.

    Usage:
        hasher = CredentialHasher()
        digest = await hasher.hash("correct horse battery staple")
    """

    __slots__ = ()

    def __repr__(self) -> str:
        return "CredentialHasher(sha256)"

    @staticmethod
    def digest(secret: str) -> str:
        """Synchronous SHA-256 hex digest of the UTF-8 encoded secret."""
        return hashlib.sha256(secret.encode("utf-8")).hexdigest()

    async def hash(self, secret: str) -> str:
        """Return the hex digest of ``secret`` (64 characters)."""
        return await asyncio.to_thread(self.digest, secret)


_default_hasher = CredentialHasher()


async def hash_password(password: str) -> str:
    """Hash a password with the default hasher."""
    return await _default_hasher.hash(password)
