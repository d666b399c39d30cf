"""
Random tokens and CSRF checks.
"""

from __future__ import annotations

import hmac
import secrets
from typing import Optional

from portalauth.security.constants import CSRF_TOKEN_BYTES


def generate_secure_token(nbytes: int = CSRF_TOKEN_BYTES) -> str:
    """Hex token from the OS CSPRNG (two characters per byte)."""
    if nbytes < 16:
        raise ValueError("Tokens need at least 16 bytes of entropy")
    return secrets.token_hex(nbytes)


def validate_csrf_token(token: Optional[str], expected: Optional[str]) -> bool:
    """Constant-time comparison of a presented CSRF token with the issued one."""
    if not token or not expected:
        return False
    return hmac.compare_digest(token.encode(), expected.encode())
