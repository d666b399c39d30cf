"""
Error Taxonomy
==============

Exceptions raised by the auth client, and the mapping from an error to
the message shown to the user.

Authentication failures are translated into user-facing errors at the
session manager boundary. Transport errors (network, server, HTTP status)
pass through unchanged.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Final, Mapping, Optional


class ErrorType(Enum):
    """Categories used to pick a user-facing message."""
    VALIDATION = "VALIDATION_ERROR"
    NETWORK = "NETWORK_ERROR"
    AUTH = "AUTHENTICATION_ERROR"
    PERMISSION = "PERMISSION_ERROR"
    NOT_FOUND = "NOT_FOUND_ERROR"
    SERVER = "SERVER_ERROR"
    UNKNOWN = "UNKNOWN_ERROR"


DEFAULT_MESSAGES: Final[dict[ErrorType, str]] = {
    ErrorType.VALIDATION: "Please check your input and try again.",
    ErrorType.NETWORK: "Network error occurred. Please check your connection and try again.",
    ErrorType.AUTH: "Authentication failed. Please log in again.",
    ErrorType.PERMISSION: "You do not have permission to perform this action.",
    ErrorType.NOT_FOUND: "The requested resource was not found.",
    ErrorType.SERVER: "A server error occurred. Please try again later.",
    ErrorType.UNKNOWN: "An unexpected error occurred. Please try again.",
}

_STATUS_MESSAGES: Final[dict[int, str]] = {
    400: "Invalid request. Please check your input and try again.",
    401: "You need to be logged in to perform this action.",
    403: "You do not have permission to perform this action.",
    404: "The requested resource was not found.",
    429: "Too many requests. Please try again later.",
    500: "A server error occurred. Please try again later.",
}


class PortalAuthError(Exception):
    """Base exception for all auth client errors."""

    error_type: ErrorType = ErrorType.UNKNOWN

    # Whether str(error) is meant to be shown to the user as-is
    user_facing: bool = False


class LockedOut(PortalAuthError):
    """Raised when login is refused because of too many failed attempts."""

    error_type = ErrorType.AUTH
    user_facing = True

    def __init__(self, minutes: int, *, just_locked: bool = False) -> None:
        self.minutes = minutes
        if just_locked:
            message = (
                f"Account locked. Too many failed attempts. "
                f"Try again in {minutes} minutes."
            )
        else:
            message = f"Too many failed attempts. Please try again in {minutes} minutes."
        super().__init__(message)


class InvalidCredentials(PortalAuthError):
    """Raised when the remote endpoint rejects the email/password pair."""

    error_type = ErrorType.AUTH
    user_facing = True

    def __init__(self, remaining_attempts: int) -> None:
        self.remaining_attempts = remaining_attempts
        super().__init__(
            f"Invalid email or password. {remaining_attempts} attempts remaining."
        )


class ValidationError(PortalAuthError, ValueError):
    """
    Raised for rejected input.

    ``field_errors`` maps a field name to its messages; the exception text
    is every message joined by line breaks.
    """

    error_type = ErrorType.VALIDATION
    user_facing = True

    def __init__(
        self,
        message: Optional[str] = None,
        field_errors: Optional[Mapping[str, list[str]]] = None,
    ) -> None:
        self.field_errors = {k: list(v) for k, v in (field_errors or {}).items()}
        if message is None:
            message = "\n".join(
                msg for messages in self.field_errors.values() for msg in messages
            )
        super().__init__(message)

    @classmethod
    def from_payload(cls, errors: Mapping[str, Any]) -> ValidationError:
        """Build from a server ``{field: [msg, ...]}`` mapping."""
        field_errors: dict[str, list[str]] = {}
        for field_name, messages in errors.items():
            if isinstance(messages, (list, tuple)):
                field_errors[field_name] = [str(m) for m in messages]
            else:
                field_errors[field_name] = [str(messages)]
        return cls(field_errors=field_errors)


class NetworkError(PortalAuthError):
    """Raised when the remote endpoint could not be reached."""

    error_type = ErrorType.NETWORK


class ApiError(PortalAuthError):
    """Raised for a non-2xx response from the remote endpoint."""

    def __init__(self, status: int, message: Optional[str] = None, payload: Any = None) -> None:
        self.status = status
        self.payload = payload
        super().__init__(message or f"Request failed with status {status}")


class UnauthorizedError(ApiError):
    error_type = ErrorType.AUTH


class PermissionDeniedError(ApiError):
    error_type = ErrorType.PERMISSION


class NotFoundError(ApiError):
    error_type = ErrorType.NOT_FOUND


class ServerError(ApiError):
    error_type = ErrorType.SERVER


def error_for_status(status: int, message: Optional[str] = None, payload: Any = None) -> ApiError:
    """Pick the ApiError subclass matching an HTTP status code."""
    if status == 401:
        cls: type[ApiError] = UnauthorizedError
    elif status == 403:
        cls = PermissionDeniedError
    elif status == 404:
        cls = NotFoundError
    elif status >= 500:
        cls = ServerError
    else:
        cls = ApiError
    return cls(status, message, payload)


def user_friendly_message(error: BaseException, custom_message: Optional[str] = None) -> str:
    """
    Create a message suitable for showing to the user.

    Args:
        error: The error to describe
        custom_message: Overrides every other rule when given

    Returns:
        The message text
    """
    if custom_message:
        return custom_message

    if isinstance(error, PortalAuthError) and error.user_facing:
        return str(error)

    if isinstance(error, ApiError):
        return _STATUS_MESSAGES.get(error.status, DEFAULT_MESSAGES[ErrorType.UNKNOWN])

    if isinstance(error, PortalAuthError) and error.error_type is not ErrorType.UNKNOWN:
        return DEFAULT_MESSAGES[error.error_type]

    return str(error) or DEFAULT_MESSAGES[ErrorType.UNKNOWN]
