"""
Security Constants
==================

Security-related constants shared across the client.
"""

from typing import Final

# Password policy (client-side strength check)
MIN_PASSWORD_LENGTH: Final[int] = 8
PASSWORD_SPECIAL_CHARS: Final[str] = '!@#$%^&*(),.?":{}|<>'

# Tokens
CSRF_TOKEN_BYTES: Final[int] = 32  # 64 hex characters

# Login throttling
MAX_LOGIN_ATTEMPTS: Final[int] = 5
LOCKOUT_MINUTES: Final[int] = 15

# Session
SESSION_MAX_AGE_SECONDS: Final[int] = 60 * 60 * 24 * 7  # 7 days
RENEW_BEFORE_EXPIRY_SECONDS: Final[int] = 60 * 5
