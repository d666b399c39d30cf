"""
PortalAuth Authentication Module
================================

Client-side session lifecycle:
- Credential digests computed before anything is sent
- Failed-login counting with timed lockout
- Session, user and CSRF token persisted per storage scope
- Auth change notifications
- Token refresh ahead of expiry

Security Properties:
- Plaintext passwords never leave the client
- Session tokens are sealed at rest
- Expired sessions are evicted on read
"""

from portalauth.core.auth.attempts import AttemptTracker
from portalauth.core.auth.events import AUTH_CHANGE, AuthEvent, AuthEventBus
from portalauth.core.auth.hasher import CredentialHasher, hash_password
from portalauth.core.auth.models import Session, User
from portalauth.core.auth.refresh import RefreshScheduler
from portalauth.core.auth.session_control import SessionManager

__all__ = [
    "AUTH_CHANGE",
    "AttemptTracker",
    "AuthEvent",
    "AuthEventBus",
    "CredentialHasher",
    "RefreshScheduler",
    "Session",
    "SessionManager",
    "User",
    "hash_password",
]
