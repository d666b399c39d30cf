"""
Security Module
===============

Token generation, CSRF comparison and password strength checks.
"""

from portalauth.security.password import PasswordStrength, validate_password_strength
from portalauth.security.tokens import generate_secure_token, validate_csrf_token

__all__ = [
    "PasswordStrength",
    "generate_secure_token",
    "validate_csrf_token",
    "validate_password_strength",
]
