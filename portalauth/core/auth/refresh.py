"""
Auto-Refresh Scheduling
=======================

Two independent triggers feeding the same token refresh operation:

- a one-shot timer armed for shortly before the session expires
- a foreground hook called when the application becomes visible again

At most one timer is pending per scheduler; arming again replaces it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Final, Optional

from portalauth.security.constants import RENEW_BEFORE_EXPIRY_SECONDS, SESSION_MAX_AGE_SECONDS

DEFAULT_RENEW_BEFORE_EXPIRY: Final[int] = RENEW_BEFORE_EXPIRY_SECONDS
DEFAULT_MIN_DELAY: Final[int] = 60
DEFAULT_EXPIRES_IN: Final[int] = SESSION_MAX_AGE_SECONDS

_log = logging.getLogger("portalauth.refresh")


class RefreshScheduler:
    """
    Cancellable delayed refresh.

    Usage:
        scheduler = RefreshScheduler(manager.refresh_token,
                                     is_session_valid=manager.is_authenticated)
        scheduler.arm(expires_in=3600)   # fires after 3300 s
        scheduler.on_visibility_change(True)
        scheduler.cancel()
    """

    __slots__ = (
        "_refresh", "_is_session_valid", "_renew_before_expiry",
        "_min_delay", "_default_expires_in", "_task", "_delay", "_background",
    )

    def __init__(
        self,
        refresh: Callable[[], Awaitable[bool]],
        *,
        is_session_valid: Optional[Callable[[], bool]] = None,
        renew_before_expiry: float = DEFAULT_RENEW_BEFORE_EXPIRY,
        min_delay: float = DEFAULT_MIN_DELAY,
        default_expires_in: float = DEFAULT_EXPIRES_IN,
    ) -> None:
        self._refresh = refresh
        self._is_session_valid = is_session_valid
        self._renew_before_expiry = renew_before_expiry
        self._min_delay = min_delay
        self._default_expires_in = default_expires_in
        self._task: Optional[asyncio.Task[None]] = None
        self._delay: Optional[float] = None
        self._background: set[asyncio.Task[None]] = set()

    @property
    def delay(self) -> Optional[float]:
        """Seconds the most recent ``arm`` call scheduled the refresh for."""
        return self._delay

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def compute_delay(self, expires_in: Optional[float] = None) -> float:
        horizon = expires_in if expires_in else self._default_expires_in
        return max(horizon - self._renew_before_expiry, self._min_delay)

    def arm(self, expires_in: Optional[float] = None) -> float:
        """
        Schedule a refresh before ``expires_in`` seconds have passed.

        Cancels any previously armed timer. Without a running event loop the
        delay is recorded but nothing is scheduled.

        Returns:
            The delay in seconds
        """
        self.cancel()
        delay = self.compute_delay(expires_in)
        self._delay = delay

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            _log.debug("No running event loop; refresh in %.0fs not scheduled", delay)
            return delay

        self._task = loop.create_task(self._fire_after(delay))
        _log.debug("Token refresh scheduled in %.0fs", delay)
        return delay

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _fire_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        # The refresh re-arms on success; detach first so that does not cancel us
        self._task = None
        await self._run_refresh()

    async def _run_refresh(self) -> None:
        try:
            await self._refresh()
        except Exception:
            _log.exception("Scheduled token refresh failed")

    def on_visibility_change(self, visible: bool) -> Optional[asyncio.Task[None]]:
        """
        Foreground hook: refresh now if visible and a session is valid.

        Returns:
            The refresh task when one was started
        """
        if not visible:
            return None
        if self._is_session_valid is not None and not self._is_session_valid():
            return None

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            _log.debug("No running event loop; foreground refresh skipped")
            return None

        task = loop.create_task(self._run_refresh())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task
