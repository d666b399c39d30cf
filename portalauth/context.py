"""
Application Context
===================

Builds the object graph one application needs: token store, API client,
attempt tracker, event bus and session manager, all sharing a config and a
clock. Consumers receive the context instead of reaching for a global.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

import httpx

from portalauth.core.auth.attempts import AttemptTracker
from portalauth.core.auth.events import AuthEventBus
from portalauth.core.auth.session_control import SessionManager
from portalauth.core.config import PortalConfig
from portalauth.core.http.client import ApiClient
from portalauth.core.logging import configure_logging
from portalauth.core.storage.backends import MemoryBackend, Scope, SqliteBackend, StorageBackend
from portalauth.core.storage.token_store import TokenStore
from portalauth.utils.clock import Clock, utc_now

_log = logging.getLogger("portalauth.context")


@dataclass(slots=True)
class AuthContext:
    """Everything one application instance uses for authentication."""
    config: PortalConfig
    store: TokenStore
    api: ApiClient
    events: AuthEventBus
    tracker: AttemptTracker
    sessions: SessionManager

    async def __aenter__(self) -> AuthContext:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Stop the refresh timer and close the HTTP client."""
        self.sessions.scheduler.cancel()
        await self.api.aclose()


def create_auth_context(
    config: Optional[PortalConfig] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    clock: Clock = utc_now,
    navigator: Optional[Callable[[str], Any]] = None,
    session_backend: Optional[StorageBackend] = None,
    persistent_backend: Optional[StorageBackend] = None,
    setup_logging: bool = False,
) -> AuthContext:
    """
    Wire up an AuthContext.

    Args:
        config: Configuration (default: ``PortalConfig.load()``)
        transport: httpx transport override, e.g. a MockTransport in tests
        clock: Time source shared by every component
        navigator: Called with the login path after logout
        session_backend: Short-lived scope (default: in memory)
        persistent_backend: Durable scope (default: SQLite file in the data dir)
        setup_logging: Configure the ``portalauth`` logger from ``config``
    """
    config = config or PortalConfig.load()
    if setup_logging:
        configure_logging(config)

    if persistent_backend is None:
        persistent_backend = SqliteBackend(config.paths.data_dir / config.storage.persistent_filename)

    store = TokenStore(
        {
            Scope.SESSION: session_backend if session_backend is not None else MemoryBackend(),
            Scope.PERSISTENT: persistent_backend,
        },
        prefix=config.storage_prefix,
        encrypt=config.storage.encrypt,
        clock=clock,
    )
    api = ApiClient.from_config(config, transport=transport)
    events = AuthEventBus()
    tracker = AttemptTracker(
        store,
        max_attempts=config.lockout.max_attempts,
        lockout_minutes=config.lockout.lockout_minutes,
        clock=clock,
    )
    sessions = SessionManager(
        store,
        api,
        config=config,
        tracker=tracker,
        events=events,
        navigator=navigator,
        clock=clock,
    )
    api.set_credential_providers(sessions.get_token, sessions.get_csrf_token)

    _log.debug("Auth context created for %s", config.app.app_name)
    return AuthContext(
        config=config,
        store=store,
        api=api,
        events=events,
        tracker=tracker,
        sessions=sessions,
    )
