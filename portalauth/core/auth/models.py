"""
Session and user records held by the session manager.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional

from portalauth.utils.clock import from_millis, to_millis, utc_now

_USER_FIELDS = frozenset({"id", "identifier", "email", "roles", "permissions"})


def _as_set(value: Any) -> frozenset[str]:
    """Server payloads send either a list or a single string."""
    if value is None:
        return frozenset()
    if isinstance(value, str):
        return frozenset({value})
    if isinstance(value, Iterable):
        return frozenset(str(v) for v in value)
    return frozenset({str(value)})


@dataclass(frozen=True, slots=True)
class Session:
    """
    Authenticated-state record.

    A session is valid iff it exists and ``expires_at`` is in the future.
    """
    token: str
    expires_at: datetime

    def __repr__(self) -> str:
        """Safe representation without token."""
        return f"Session(expires_at={self.expires_at.isoformat()})"

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at <= (now or utc_now())

    def seconds_remaining(self, now: Optional[datetime] = None) -> float:
        return (self.expires_at - (now or utc_now())).total_seconds()

    def to_record(self) -> dict[str, Any]:
        return {"token": self.token, "expiresAt": to_millis(self.expires_at)}

    @classmethod
    def from_record(cls, record: Any) -> Session:
        """
        Rebuild from storage.

        Raises:
            ValueError: If the record is malformed
        """
        if not isinstance(record, Mapping):
            raise ValueError("Session record must be an object")
        token = record.get("token")
        expires_at = record.get("expiresAt")
        if not isinstance(token, str) or not token:
            raise ValueError("Session record has no token")
        if not isinstance(expires_at, (int, float)) or isinstance(expires_at, bool):
            raise ValueError("Session record has no expiry")
        try:
            return cls(token=token, expires_at=from_millis(expires_at))
        except (OverflowError, OSError) as exc:
            raise ValueError("Session expiry is out of range") from exc


@dataclass(frozen=True, slots=True)
class User:
    """Mirror of the server-issued user; replaced together with the session."""
    id: Optional[str]
    email: Optional[str]
    roles: frozenset[str] = field(default_factory=frozenset)
    permissions: frozenset[str] = field(default_factory=frozenset)
    profile: dict[str, Any] = field(default_factory=dict, compare=False)

    def __repr__(self) -> str:
        return f"User(id={self.id!r}, email={self.email!r}, roles={sorted(self.roles)})"

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> User:
        """Build from a server response (or a stored record)."""
        identifier = payload.get("id", payload.get("identifier"))
        return cls(
            id=str(identifier) if identifier is not None else None,
            email=payload.get("email"),
            roles=_as_set(payload.get("roles")),
            permissions=_as_set(payload.get("permissions")),
            profile={k: v for k, v in payload.items() if k not in _USER_FIELDS},
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            **self.profile,
            "id": self.id,
            "email": self.email,
            "roles": sorted(self.roles),
            "permissions": sorted(self.permissions),
        }

    def has_any_role(self, roles: Iterable[str]) -> bool:
        return not self.roles.isdisjoint(roles)

    def has_all_permissions(self, permissions: Iterable[str]) -> bool:
        return self.permissions.issuperset(permissions)
