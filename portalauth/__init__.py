"""
PortalAuth - Client-Side Session Management
===========================================

This package keeps an application's authenticated session: login and
registration against a remote auth API, sealed token storage, lockout
after repeated failures, and token refresh ahead of expiry.

Security Notice:
- Plaintext passwords are never sent or stored
- No secrets are logged
- Expired or unreadable sessions count as signed out
"""

from portalauth.context import AuthContext, create_auth_context
from portalauth.core.config import PortalConfig
from portalauth.core.logging import get_secure_logger

__version__ = "0.1.0"
__author__ = "PortalAuth Team"

__all__ = ["AuthContext", "PortalConfig", "create_auth_context", "get_secure_logger", "__version__"]
