"""
Auth Event Bus
==============

Synchronous publish/subscribe for authentication state changes.

Subscribers registered before a dispatch receive it in registration
order, during the dispatch call. Nothing is buffered or replayed for
late subscribers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Final, Optional

if TYPE_CHECKING:
    from portalauth.core.auth.models import User

AUTH_CHANGE: Final[str] = "authChange"

_log = logging.getLogger("portalauth.events")


@dataclass(frozen=True, slots=True)
class AuthEvent:
    """Notification delivered to subscribers; never persisted."""
    name: str
    is_authenticated: bool
    user: Optional[User] = None
    extra: dict[str, Any] = field(default_factory=dict)


AuthEventHandler = Callable[[AuthEvent], Any]


class AuthEventBus:
    """
    Topic-keyed list of callbacks.

    Usage:
        bus = AuthEventBus()
        unsubscribe = bus.on(AUTH_CHANGE, lambda event: print(event.is_authenticated))
        bus.dispatch(AUTH_CHANGE, is_authenticated=False)
        unsubscribe()
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        self._handlers: dict[str, list[AuthEventHandler]] = {}

    def on(self, event_name: str, callback: AuthEventHandler) -> Callable[[], None]:
        """
        Subscribe to an event.

        Returns:
            A function that removes this subscription (safe to call twice)
        """
        handlers = self._handlers.setdefault(event_name, [])
        # Wrap so the same callable can be subscribed more than once
        def entry(event: AuthEvent) -> Any:
            return callback(event)

        handlers.append(entry)

        def unsubscribe() -> None:
            try:
                handlers.remove(entry)
            except ValueError:
                pass

        return unsubscribe

    def subscriber_count(self, event_name: str) -> int:
        return len(self._handlers.get(event_name, ()))

    def dispatch(
        self,
        event_name: str,
        *,
        is_authenticated: bool,
        user: Optional[User] = None,
        **extra: Any,
    ) -> AuthEvent:
        """
        Deliver an event to current subscribers.

        A subscriber that raises is logged; delivery continues with the
        next one.
        """
        event = AuthEvent(
            name=event_name,
            is_authenticated=is_authenticated,
            user=user,
            extra=dict(extra),
        )

        for handler in list(self._handlers.get(event_name, ())):
            try:
                handler(event)
            except Exception:
                _log.exception("Subscriber for %s failed", event_name)

        return event
