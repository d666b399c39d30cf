"""
Password Strength
=================

Client-side strength check run before a registration is submitted. The
server remains the authority; this only gives early feedback.
"""

from __future__ import annotations

from dataclasses import dataclass

from portalauth.security.constants import MIN_PASSWORD_LENGTH, PASSWORD_SPECIAL_CHARS


@dataclass(frozen=True, slots=True)
class PasswordStrength:
    """
    Result of a strength check.

    Attributes:
        is_valid: Every requirement is met
        score: Number of requirements met (0-5)
        requirements: Requirement name -> met
    """
    is_valid: bool
    score: int
    requirements: dict[str, bool]

    def __repr__(self) -> str:
        """Never echoes the password."""
        return f"PasswordStrength(is_valid={self.is_valid}, score={self.score})"

    @property
    def failed(self) -> list[str]:
        return [name for name, met in self.requirements.items() if not met]


def validate_password_strength(password: str) -> PasswordStrength:
    """
    Check a password against the client policy.

    Requirements: minimum length, an uppercase letter, a lowercase letter,
    a digit and a special character.
    """
    requirements = {
        "min_length": len(password) >= MIN_PASSWORD_LENGTH,
        "has_uppercase": any(c.isupper() for c in password),
        "has_lowercase": any(c.islower() for c in password),
        "has_number": any(c.isdigit() for c in password),
        "has_special_char": any(c in PASSWORD_SPECIAL_CHARS for c in password),
    }
    score = sum(requirements.values())
    return PasswordStrength(
        is_valid=score == len(requirements),
        score=score,
        requirements=requirements,
    )
