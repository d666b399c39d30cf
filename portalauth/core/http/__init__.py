"""
HTTP transport for the remote auth API.
"""

from portalauth.core.http.client import CSRF_HEADER, ApiClient

__all__ = ["ApiClient", "CSRF_HEADER"]
