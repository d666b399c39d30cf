"""
Session Control
===============

Client-side session lifecycle: login, logout, registration and token
refresh against the remote auth API.

Responsibilities:
- Establish and clear the session, user and CSRF token atomically
- Persist the session to the short-lived scope, or the persistent scope
  when "remember me" is requested
- Consult the attempt tracker before every login
- Publish ``authChange`` events after every state transition
- Keep one refresh timer armed while a session is live

Storage writes always complete before the event is dispatched. Nothing
coordinates separate contexts sharing the same storage; the last writer
wins. In-flight login and refresh calls are not cancelled, so two racing
calls may apply their sessions out of order.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Any, Callable, Final, Iterable, Mapping, Optional, Union

from portalauth.core.auth.attempts import AttemptTracker
from portalauth.core.auth.events import AUTH_CHANGE, AuthEventBus, AuthEventHandler
from portalauth.core.auth.hasher import CredentialHasher
from portalauth.core.auth.models import Session, User
from portalauth.core.auth.refresh import RefreshScheduler
from portalauth.core.config import PortalConfig
from portalauth.core.errors import (
    ApiError,
    InvalidCredentials,
    LockedOut,
    PortalAuthError,
    UnauthorizedError,
    ValidationError,
)
from portalauth.core.http.client import ApiClient
from portalauth.core.storage.backends import Scope
from portalauth.core.storage.token_store import TokenStore
from portalauth.security.tokens import generate_secure_token
from portalauth.utils.clock import Clock, utc_now

SESSION_KEY: Final[str] = "auth_session"
USER_KEY: Final[str] = "auth_user"
CSRF_KEY: Final[str] = "auth_csrf"

_AUTH_KEYS: Final[tuple[str, ...]] = (SESSION_KEY, USER_KEY, CSRF_KEY)

UserLike = Union[User, Mapping[str, Any], None]

_log = logging.getLogger("portalauth.session")


def _as_names(value: Union[str, Iterable[str]]) -> list[str]:
    if isinstance(value, str):
        return [value]
    return list(value)


class SessionManager:
    """
    Owns the authenticated session of one application context.

    Usage:
        manager = SessionManager(store, api, config=config)

        user = await manager.login("alice@example.com", "S3cret!pass", remember_me=True)
        if manager.has_role(["admin", "editor"]):
            ...
        manager.logout()

    Errors raised by ``login``:
        LockedOut: too many failed attempts (carries the wait in minutes)
        InvalidCredentials: rejected credentials (carries attempts left)
        NetworkError / ServerError / ApiError: passed through unchanged
    """

    def __init__(
        self,
        store: TokenStore,
        api: ApiClient,
        *,
        config: Optional[PortalConfig] = None,
        tracker: Optional[AttemptTracker] = None,
        events: Optional[AuthEventBus] = None,
        hasher: Optional[CredentialHasher] = None,
        navigator: Optional[Callable[[str], Any]] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._config = config or PortalConfig()
        self._store = store
        self._api = api
        self._clock = clock
        self._hasher = hasher or CredentialHasher()
        self._events = events or AuthEventBus()
        self._navigator = navigator
        self._tracker = tracker or AttemptTracker(
            store,
            max_attempts=self._config.lockout.max_attempts,
            lockout_minutes=self._config.lockout.lockout_minutes,
            clock=clock,
        )
        self._scheduler = RefreshScheduler(
            self.refresh_token,
            is_session_valid=self.is_authenticated,
            renew_before_expiry=self._config.session.renew_before_expiry_seconds,
            min_delay=self._config.session.min_refresh_delay_seconds,
            default_expires_in=self._config.session.max_age_seconds,
        )

        self._session: Optional[Session] = None
        self._user: Optional[User] = None
        self._csrf_token: Optional[str] = None
        self._remember_me = False
        self._background: set[asyncio.Task[None]] = set()

    def __repr__(self) -> str:
        return f"SessionManager(authenticated={self._session is not None})"

    @property
    def tracker(self) -> AttemptTracker:
        return self._tracker

    @property
    def events(self) -> AuthEventBus:
        return self._events

    @property
    def scheduler(self) -> RefreshScheduler:
        return self._scheduler

    # -- public operations --------------------------------------------------

    async def login(self, email: str, password: str, remember_me: bool = False) -> Optional[User]:
        """
        Authenticate and start a session.

        Args:
            email: Account email
            password: Plaintext password (only its digest is sent)
            remember_me: Persist the session across restarts

        Returns:
            The signed-in user
        """
        if self._tracker.is_locked_out():
            raise LockedOut(self._tracker.remaining_lockout_minutes())

        digest = await self._hasher.hash(password)

        try:
            response = await self._api.post(
                self._config.api.login_path,
                {"email": email, "password": digest},
                auth=False,
            )
        except UnauthorizedError as exc:
            self._tracker.record_failure()
            if self._tracker.is_locked_out():
                raise LockedOut(self._tracker.lockout_minutes, just_locked=True) from exc
            raise InvalidCredentials(self._tracker.remaining_attempts) from exc

        token, user, expires_in = self._unpack(response)
        if not token:
            raise PortalAuthError("Login response did not include a session token")

        signed_in = self.start_session(token, user, expires_in, remember_me=remember_me)
        self._tracker.reset()
        _log.info("Login succeeded")
        return signed_in

    def logout(self, redirect: bool = True) -> Optional[asyncio.Task[None]]:
        """
        Sign out locally, then tell the server without waiting for it.

        Local state is cleared first and unconditionally; a failing
        notification is only logged.

        Returns:
            The notification task, when an event loop is running
        """
        self.clear_session()

        task: Optional[asyncio.Task[None]] = None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            _log.debug("No running event loop; logout notification skipped")
        else:
            task = loop.create_task(self._notify_logout())
            self._background.add(task)
            task.add_done_callback(self._background.discard)

        if redirect and self._navigator is not None:
            self._navigator(self._config.session.login_redirect_path)

        return task

    async def _notify_logout(self) -> None:
        try:
            await self._api.post(self._config.api.logout_path, {})
        except Exception as exc:
            _log.warning("Logout notification failed: %s", exc)

    async def register(self, user_data: Mapping[str, Any]) -> Optional[User]:
        """
        Create an account; sign in when the server returns a token.

        The caller's mapping is not modified.

        Raises:
            ValidationError: The server rejected one or more fields
        """
        payload = dict(user_data)
        if payload.get("password"):
            payload["password"] = await self._hasher.hash(payload["password"])

        try:
            response = await self._api.post(self._config.api.register_path, payload, auth=False)
        except ApiError as exc:
            errors = exc.payload.get("errors") if isinstance(exc.payload, dict) else None
            if isinstance(errors, Mapping) and errors:
                raise ValidationError.from_payload(errors) from exc
            raise

        token, user, expires_in = self._unpack(response)
        if token:
            _log.info("Registration returned a session; signing in")
            return self.start_session(token, user, expires_in)

        if isinstance(user, User):
            return user
        return User.from_payload(user) if isinstance(user, Mapping) else None

    async def refresh_token(self) -> bool:
        """
        Renew the session token.

        Never raises: on any failure the session is cleared and False is
        returned.

        Returns:
            True when a new session was started
        """
        try:
            self.get_session()
            remember_me = self._remember_me

            response = await self._api.post(self._config.api.refresh_path, {}, auth=False)
            token, user, expires_in = self._unpack(response)
            if not token:
                return False

            self.start_session(token, user or self.get_user(), expires_in, remember_me=remember_me)
            return True
        except Exception as exc:
            _log.warning("Token refresh failed; signing out: %s", exc)
            self.clear_session()
            return False

    # -- session state ------------------------------------------------------

    def start_session(
        self,
        token: str,
        user: UserLike,
        expires_in: Optional[float] = None,
        *,
        remember_me: bool = False,
    ) -> Optional[User]:
        """
        Establish session, user and CSRF token, arm the refresh timer and
        publish ``authChange``.
        """
        if not expires_in:
            expires_in = self._config.session.max_age_seconds

        session = Session(token=token, expires_at=self._clock() + timedelta(seconds=expires_in))
        if isinstance(user, User):
            current_user: Optional[User] = user
        elif isinstance(user, Mapping):
            current_user = User.from_payload(user)
        else:
            current_user = None
        csrf_token = generate_secure_token()

        scope = Scope.PERSISTENT if remember_me else Scope.SESSION
        other = Scope.SESSION if remember_me else Scope.PERSISTENT

        self._store.set(scope, SESSION_KEY, session.to_record())
        if current_user is not None:
            self._store.set(scope, USER_KEY, current_user.to_payload())
        else:
            self._store.remove(scope, USER_KEY)
        self._store.remove_items(other, (SESSION_KEY, USER_KEY))

        self._store.set(Scope.SESSION, CSRF_KEY, csrf_token)
        self._store.set(Scope.PERSISTENT, CSRF_KEY, csrf_token)

        self._session = session
        self._user = current_user
        self._csrf_token = csrf_token
        self._remember_me = remember_me

        self._scheduler.arm(expires_in)
        self._events.dispatch(AUTH_CHANGE, is_authenticated=True, user=current_user)
        return current_user

    def clear_session(self) -> None:
        """Drop session, user and CSRF token from memory and both scopes."""
        for scope in Scope:
            self._store.remove_items(scope, _AUTH_KEYS)

        self._session = None
        self._user = None
        self._csrf_token = None
        self._remember_me = False

        self._scheduler.cancel()
        self._events.dispatch(AUTH_CHANGE, is_authenticated=False, user=None)

    def get_session(self) -> Optional[Session]:
        """
        Current valid session, or None.

        Checks memory, then the short-lived scope, then the persistent
        scope. An expired session is evicted.
        """
        session = self._session
        remember_me = self._remember_me

        if session is None:
            for scope in (Scope.SESSION, Scope.PERSISTENT):
                record = self._store.get(scope, SESSION_KEY)
                if record is None:
                    continue
                try:
                    session = Session.from_record(record)
                except ValueError as exc:
                    _log.debug("Discarding malformed session in %s scope: %s", scope.value, exc)
                    self._store.remove(scope, SESSION_KEY)
                    continue
                remember_me = scope is Scope.PERSISTENT
                break

        if session is None:
            return None

        if session.is_expired(self._clock()):
            _log.info("Session expired")
            self.clear_session()
            return None

        self._session = session
        self._remember_me = remember_me
        return session

    def get_user(self) -> Optional[User]:
        """User of the current session, or None when signed out."""
        if self.get_session() is None:
            return None
        if self._user is not None:
            return self._user

        for scope in (Scope.SESSION, Scope.PERSISTENT):
            payload = self._store.get(scope, USER_KEY)
            if isinstance(payload, Mapping):
                self._user = User.from_payload(payload)
                return self._user
        return None

    def get_csrf_token(self) -> Optional[str]:
        return (
            self._csrf_token
            or self._store.get(Scope.SESSION, CSRF_KEY)
            or self._store.get(Scope.PERSISTENT, CSRF_KEY)
        )

    def get_token(self) -> Optional[str]:
        session = self.get_session()
        return session.token if session is not None else None

    def is_authenticated(self) -> bool:
        return self.get_session() is not None

    def has_role(self, role: Union[str, Iterable[str]]) -> bool:
        """True if the user holds at least one of the given roles."""
        user = self.get_user()
        if user is None:
            return False
        return user.has_any_role(_as_names(role))

    def has_permission(self, permission: Union[str, Iterable[str]]) -> bool:
        """True only if the user holds every one of the given permissions."""
        user = self.get_user()
        if user is None:
            return False
        return user.has_all_permissions(_as_names(permission))

    # -- integration hooks --------------------------------------------------

    def on(self, event_name: str, callback: AuthEventHandler) -> Callable[[], None]:
        """Subscribe to auth events; returns the unsubscribe function."""
        return self._events.on(event_name, callback)

    def on_visibility_change(self, visible: bool) -> Optional[asyncio.Task[None]]:
        """Call when the application returns to (or leaves) the foreground."""
        return self._scheduler.on_visibility_change(visible)

    def resume(self) -> bool:
        """
        Pick up a stored session at startup and arm its refresh timer.

        Returns:
            True if a valid session was found
        """
        session = self.get_session()
        if session is None:
            return False
        self._scheduler.arm(session.seconds_remaining(self._clock()))
        return True

    @staticmethod
    def _unpack(response: Any) -> tuple[Optional[str], Any, Optional[float]]:
        """Pull token, user and expiresIn out of an auth response body."""
        if not isinstance(response, Mapping):
            return None, None, None

        token = response.get("token")
        expires_in = response.get("expiresIn")
        try:
            expires_in = float(expires_in) if expires_in is not None else None
        except (TypeError, ValueError):
            expires_in = None
        return (token if isinstance(token, str) and token else None), response.get("user"), expires_in
