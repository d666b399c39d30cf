"""
Cryptographic Core
==================

AES-256-GCM sealing of client-side storage records.
"""

from portalauth.core.crypto.aes_gcm import AesGcmCipher, SealError

__all__ = [
    "AesGcmCipher",
    "SealError",
]
