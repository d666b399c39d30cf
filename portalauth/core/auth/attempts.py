"""
Login Attempt Tracking
======================

Counts consecutive failed logins and computes lockout windows.

States:
    Normal(count)    -- count < max_attempts
    LockedOut(until) -- entered on the max_attempts-th consecutive failure

A lockout ends on success (``reset``) or once ``until`` has passed; the
latter is applied lazily by ``is_locked_out``.

Both values live in the short-lived storage scope. Separate contexts
sharing that scope race on it (last write wins).
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import Final, Optional

from portalauth.core.storage.backends import Scope
from portalauth.core.storage.token_store import TokenStore
from portalauth.security.constants import LOCKOUT_MINUTES, MAX_LOGIN_ATTEMPTS
from portalauth.utils.clock import Clock, from_millis, to_millis, utc_now

LOGIN_ATTEMPTS_KEY: Final[str] = "login_attempts"
LOCKOUT_UNTIL_KEY: Final[str] = "lockout_until"

DEFAULT_MAX_ATTEMPTS: Final[int] = MAX_LOGIN_ATTEMPTS
DEFAULT_LOCKOUT_MINUTES: Final[int] = LOCKOUT_MINUTES

_log = logging.getLogger("portalauth.attempts")


class AttemptTracker:
    """
    Failed-login counter with lockout.

    Usage:
        tracker = AttemptTracker(store)
        if tracker.is_locked_out():
            ...
        tracker.record_failure()
        tracker.reset()
    """

    __slots__ = ("_store", "_max_attempts", "_lockout_minutes", "_clock")

    def __init__(
        self,
        store: TokenStore,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        lockout_minutes: int = DEFAULT_LOCKOUT_MINUTES,
        clock: Clock = utc_now,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._store = store
        self._max_attempts = max_attempts
        self._lockout_minutes = lockout_minutes
        self._clock = clock

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @property
    def lockout_minutes(self) -> int:
        return self._lockout_minutes

    @property
    def attempts(self) -> int:
        """Consecutive failures recorded so far."""
        value = self._store.get(Scope.SESSION, LOGIN_ATTEMPTS_KEY, 0)
        try:
            return max(0, int(value))
        except (TypeError, ValueError):
            return 0

    @property
    def remaining_attempts(self) -> int:
        return max(0, self._max_attempts - self.attempts)

    @property
    def locked_until(self) -> Optional[datetime]:
        value = self._store.get(Scope.SESSION, LOCKOUT_UNTIL_KEY)
        if value is None:
            return None
        try:
            return from_millis(float(value))
        except (TypeError, ValueError, OverflowError, OSError):
            return None

    def record_failure(self) -> int:
        """
        Count one failed login, locking out on the last allowed attempt.

        Returns:
            The new consecutive failure count
        """
        count = self.attempts + 1
        self._store.set(Scope.SESSION, LOGIN_ATTEMPTS_KEY, count)

        if count >= self._max_attempts:
            until = self._clock() + timedelta(minutes=self._lockout_minutes)
            self._store.set(Scope.SESSION, LOCKOUT_UNTIL_KEY, to_millis(until))
            _log.warning("Login locked for %d minutes after %d failed attempts",
                         self._lockout_minutes, count)
        else:
            _log.info("Failed login attempt %d of %d", count, self._max_attempts)

        return count

    def reset(self) -> None:
        """Return to Normal(0)."""
        self._store.remove(Scope.SESSION, LOGIN_ATTEMPTS_KEY)
        self._store.remove(Scope.SESSION, LOCKOUT_UNTIL_KEY)

    def is_locked_out(self) -> bool:
        """
        Gate consulted before any login request.

        An expired lockout is cleared here, resetting the counter.
        """
        until = self.locked_until
        if until is None:
            return False

        if until > self._clock():
            return True

        _log.info("Login lockout expired")
        self.reset()
        return False

    def remaining_lockout_minutes(self) -> int:
        """Minutes (rounded up) until the lockout ends; 0 when not locked."""
        until = self.locked_until
        if until is None:
            return 0
        remaining = (until - self._clock()) / timedelta(minutes=1)
        return max(0, math.ceil(remaining))
