"""
Validation Utilities
====================

Form field validators used before credentials or registration data leave
the client.

Each validator factory returns a callable taking the field value and
returning an error message, or None when the value passes.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Mapping, Optional, Sequence

from portalauth.core.errors import ValidationError

Validator = Callable[[Any], Optional[str]]

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def required(message: str = "This field is required") -> Validator:
    def check(value: Any) -> Optional[str]:
        return message if _is_blank(value) else None
    return check


def min_length(length: int, message: Optional[str] = None) -> Validator:
    message = message or f"Must be at least {length} characters"

    def check(value: Any) -> Optional[str]:
        if _is_blank(value):
            return None
        return message if len(str(value)) < length else None
    return check


def max_length(length: int, message: Optional[str] = None) -> Validator:
    message = message or f"Must be at most {length} characters"

    def check(value: Any) -> Optional[str]:
        if _is_blank(value):
            return None
        return message if len(str(value)) > length else None
    return check


def email(message: str = "Please enter a valid email address") -> Validator:
    def check(value: Any) -> Optional[str]:
        if _is_blank(value):
            return None
        return None if _EMAIL_RE.match(str(value)) else message
    return check


def pattern(regex: str | re.Pattern[str], message: str = "Invalid format") -> Validator:
    compiled = re.compile(regex) if isinstance(regex, str) else regex

    def check(value: Any) -> Optional[str]:
        if _is_blank(value):
            return None
        return None if compiled.search(str(value)) else message
    return check


def equals(other_field: str, message: Optional[str] = None) -> Callable[[Any, Mapping[str, Any]], Optional[str]]:
    """
    Cross-field check, e.g. password confirmation.

    Unlike the single-value validators this one also receives the whole
    form, so ``validate_fields`` passes it both.
    """
    message = message or f"Must match {other_field}"

    def check(value: Any, data: Mapping[str, Any]) -> Optional[str]:
        return None if value == data.get(other_field) else message

    check.cross_field = True  # type: ignore[attr-defined]
    return check


def validate_fields(
    data: Mapping[str, Any],
    rules: Mapping[str, Sequence[Callable[..., Optional[str]]]],
) -> dict[str, list[str]]:
    """
    Run every rule against its field.

    Args:
        data: Submitted form values
        rules: Field name -> validators

    Returns:
        Field name -> error messages, for fields with at least one failure
    """
    errors: dict[str, list[str]] = {}
    for field_name, validators in rules.items():
        value = data.get(field_name)
        for validator in validators:
            if getattr(validator, "cross_field", False):
                error = validator(value, data)
            else:
                error = validator(value)
            if error:
                errors.setdefault(field_name, []).append(error)
    return errors


def validate_string_safe(
    value: Any,
    min_length: int = 0,
    max_length: int = 1000,
    allow_empty: bool = False,
    field_name: str = "value",
) -> str:
    """
    Validate a free-text value.

    Returns:
        The value unchanged

    Raises:
        ValidationError: With ``field_errors`` keyed by ``field_name``
    """
    def fail(message: str) -> ValidationError:
        return ValidationError(message, field_errors={field_name: [message]})

    if not isinstance(value, str):
        raise fail(f"{field_name} must be a string")
    if not allow_empty and not value:
        raise fail(f"{field_name} cannot be empty")
    if len(value) < min_length:
        raise fail(f"{field_name} must be at least {min_length} characters")
    if len(value) > max_length:
        raise fail(f"{field_name} must be at most {max_length} characters")
    if "\x00" in value:
        raise fail(f"{field_name} contains invalid characters")
    return value
