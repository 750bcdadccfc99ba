"""Popup-style OAuth flow.

The flow only needs something that can be opened, polled for ``closed`` and
closed. A browser popup fits, and so does ``PendingFlow``: the server-side
handle that the OAuth callback route marks complete while API clients poll
the flow status endpoint.
"""
from __future__ import annotations
import inspect
import secrets
import time
from typing import Awaitable, Callable, Literal, Protocol
import structlog

from crown.config import settings
from crown.services.scheduler import poll_until
from crown.services.state_store import StateStore

log = structlog.get_logger(__name__)

TIKTOK_LOGOUT_URL = "https://www.tiktok.com/logout"

Outcome = Literal["completed", "timed_out", "blocked"]


class Window(Protocol):
    @property
    def closed(self) -> bool: ...
    def close(self) -> None: ...


WindowOpener = Callable[[str], "Window | None | Awaitable[Window | None]"]


async def open_window(opener: WindowOpener, url: str) -> Window | None:
    win = opener(url)
    if inspect.isawaitable(win):
        win = await win
    return win


class PopupOAuthFlow:
    def __init__(
        self,
        opener: WindowOpener,
        *,
        state: StateStore | None = None,
        poll_interval: float | None = None,
        timeout: float | None = None,
        logout_url: str = TIKTOK_LOGOUT_URL,
        logout_grace: float | None = None,
    ) -> None:
        self._opener = opener
        self._state = state
        self.poll_interval = poll_interval if poll_interval is not None else settings.oauth_poll_seconds
        self.timeout = timeout if timeout is not None else settings.oauth_timeout_seconds
        self.logout_url = logout_url
        self.logout_grace = logout_grace if logout_grace is not None else settings.oauth_logout_grace_seconds

    async def open(self, url: str) -> Outcome:
        """Open ``url`` and wait until the window closes or the timeout elapses."""
        win = await open_window(self._opener, url)
        if win is None:
            log.info("oauth.popup_blocked")
            return "blocked"
        done = await poll_until(lambda: win.closed, interval=self.poll_interval, timeout=self.timeout)
        if done:
            log.info("oauth.popup_closed")
            return "completed"
        win.close()
        log.info("oauth.popup_timed_out", timeout=self.timeout)
        return "timed_out"

    async def clear_provider_state(self) -> list[str]:
        if self._state is None:
            return []
        stale = [k for k in await self._state.keys() if "tiktok" in k.lower()]
        if stale:
            await self._state.delete(*stale)
        return stale

    async def switch_account(self, url: str) -> Outcome:
        """Log out of the provider first so the auth page offers an account choice."""
        cleared = await self.clear_provider_state()
        log.info("oauth.switch_account", cleared=len(cleared))
        logout = await open_window(self._opener, self.logout_url)
        if logout is not None:
            closed = await poll_until(lambda: logout.closed, interval=self.poll_interval, timeout=self.logout_grace)
            if not closed:
                logout.close()
        return await self.open(url)


class PendingFlow:
    """A server-side stand-in for a popup window."""

    def __init__(self, user_id: str, url: str, *, timeout: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.id = secrets.token_urlsafe(16)
        self.user_id = user_id
        self.url = url
        self._timeout = timeout
        self._clock = clock
        self.opened_at = clock()
        self._outcome: Literal["pending", "completed", "timed_out"] = "pending"

    @property
    def outcome(self) -> str:
        if self._outcome == "pending" and self._clock() - self.opened_at >= self._timeout:
            self._outcome = "timed_out"
        return self._outcome

    @property
    def closed(self) -> bool:
        return self.outcome != "pending"

    def complete(self) -> None:
        if self.outcome == "pending":
            self._outcome = "completed"

    def close(self) -> None:
        if self.outcome == "pending":
            self._outcome = "timed_out"


class FlowRegistry:
    def __init__(self, timeout: float | None = None, clock: Callable[[], float] = time.monotonic) -> None:
        self.timeout = timeout if timeout is not None else settings.oauth_timeout_seconds
        self._clock = clock
        self._flows: dict[str, PendingFlow] = {}

    def opener_for(self, user_id: str) -> Callable[[str], PendingFlow]:
        def _open(url: str) -> PendingFlow:
            self.prune()
            flow = PendingFlow(user_id, url, timeout=self.timeout, clock=self._clock)
            self._flows[flow.id] = flow
            log.info("oauth.flow_opened", flow_id=flow.id, user_id=user_id)
            return flow
        return _open

    def get(self, flow_id: str, user_id: str | None = None) -> PendingFlow | None:
        flow = self._flows.get(flow_id)
        if flow is None or (user_id is not None and flow.user_id != user_id):
            return None
        return flow

    def latest_for(self, user_id: str) -> PendingFlow | None:
        flows = [f for f in self._flows.values() if f.user_id == user_id]
        return flows[-1] if flows else None

    def complete(self, flow_id: str) -> PendingFlow | None:
        flow = self._flows.get(flow_id)
        if flow:
            flow.complete()
            log.info("oauth.flow_completed", flow_id=flow_id, outcome=flow.outcome)
        return flow

    def prune(self) -> None:
        # finished flows are kept one extra timeout so clients can read the outcome
        horizon = self._clock() - 2 * self.timeout
        for fid in [fid for fid, f in self._flows.items() if f.closed and f.opened_at < horizon]:
            self._flows.pop(fid, None)


flows = FlowRegistry()

def get_flow_registry() -> FlowRegistry:
    return flows
