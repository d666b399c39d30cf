"""
AES-256-GCM Record Sealing
==========================

Seals stored records with AES-256-GCM so values kept in a storage scope
are confidential and tamper-evident at rest.

Sealed layout:
    nonce (12 bytes) || ciphertext || tag (16 bytes)

The storage key name is bound as associated data, so a sealed record
copied under another key fails to open.
"""

from __future__ import annotations

import secrets
from typing import Final, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

AES_KEY_SIZE: Final[int] = 32  # 256 bits
AES_NONCE_SIZE: Final[int] = 12  # 96 bits (NIST recommended for GCM)
AES_TAG_SIZE: Final[int] = 16  # 128 bits


class SealError(Exception):
    """Raised when a sealed record cannot be opened."""
    pass


class AesGcmCipher:
    """
    AES-256-GCM authenticated encryption for storage records.

    Usage:
        key = AesGcmCipher.generate_key()
        cipher = AesGcmCipher(key)
        blob = cipher.seal(b'{"value": 1}', aad=b"auth_session")
        cipher.open(blob, aad=b"auth_session")
    """

    __slots__ = ("_aead",)

    def __init__(self, key: bytes) -> None:
        if len(key) != AES_KEY_SIZE:
            raise ValueError(f"Key must be exactly {AES_KEY_SIZE} bytes")
        self._aead = AESGCM(key)

    def __repr__(self) -> str:
        return "AesGcmCipher(key=<hidden>)"

    @staticmethod
    def generate_key() -> bytes:
        """Generate a random AES-256 key from the OS CSPRNG."""
        return secrets.token_bytes(AES_KEY_SIZE)

    def seal(self, plaintext: bytes, aad: Optional[bytes] = None) -> bytes:
        """
        Encrypt and authenticate plaintext under a fresh random nonce.

        Returns:
            nonce || ciphertext || tag
        """
        nonce = secrets.token_bytes(AES_NONCE_SIZE)
        return nonce + self._aead.encrypt(nonce, plaintext, aad)

    def open(self, blob: bytes, aad: Optional[bytes] = None) -> bytes:
        """
        Verify and decrypt a sealed blob.

        Raises:
            SealError: If the blob is truncated, tampered with, or was
                sealed under another key or associated data
        """
        if len(blob) < AES_NONCE_SIZE + AES_TAG_SIZE:
            raise SealError("Sealed record too short")

        nonce, ciphertext = blob[:AES_NONCE_SIZE], blob[AES_NONCE_SIZE:]
        try:
            return self._aead.decrypt(nonce, ciphertext, aad)
        except InvalidTag as exc:
            raise SealError("Sealed record failed authentication") from exc
