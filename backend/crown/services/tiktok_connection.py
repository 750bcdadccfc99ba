"""TikTok connection state for one signed-in user.

``refresh_connection`` is debounced so that bursts of callers (several views
mounting, several requests in a row) produce one account fetch. Managers live
in a per-user registry so the debounce window spans HTTP requests.
"""
from __future__ import annotations
import asyncio
from typing import Any, Awaitable, Callable
import structlog

from crown.config import settings
from crown.errors import BackendError, BackendUnavailable
from crown.schemas.tiktok import ConnectionState, TikTokAccount
from crown.services.backend_client import BackendClient
from crown.services.oauth_flow import Outcome, PopupOAuthFlow, Window, WindowOpener, open_window
from crown.services.scheduler import Debouncer, Scheduler, poll_until

log = structlog.get_logger(__name__)

CONNECT_POLL_SECONDS = 0.5


class TikTokConnectionManager:
    def __init__(
        self,
        backend: BackendClient,
        *,
        user_id: str | None = None,
        debounce_seconds: float | None = None,
        clock: Callable[[], float] | None = None,
        connect_poll_seconds: float = CONNECT_POLL_SECONDS,
    ) -> None:
        self._backend = backend
        self.user_id = user_id
        window = debounce_seconds if debounce_seconds is not None else settings.tiktok_refresh_debounce_seconds
        self._debounce = Debouncer(window, clock) if clock else Debouncer(window)
        self._connect_poll = connect_poll_seconds
        self._token: str | None = None
        self._lock = asyncio.Lock()
        self.scheduler = Scheduler(owner=f"tiktok:{user_id}")
        self.state = ConnectionState()

    # ------------------------------------------------------------------ state

    def bind(self, access_token: str | None) -> "TikTokConnectionManager":
        """Attach the caller's current bearer token (it rotates on refresh)."""
        self._token = access_token
        return self

    def _reset(self) -> None:
        self.state = ConnectionState(phase="disconnected")

    def _apply(self, accounts: list[TikTokAccount]) -> None:
        primary = next((a for a in accounts if a.is_primary), None)
        self.state = ConnectionState(
            is_connected=bool(accounts),
            tiktok_accounts=accounts,
            primary_account=primary,
            is_loading=False,
            is_reconnecting=self.state.is_reconnecting,
            phase="connected" if accounts else "disconnected",
        )

    def snapshot(self) -> ConnectionState:
        return self.state.model_copy(deep=True)

    # ---------------------------------------------------------------- refresh

    async def refresh_connection(self, force: bool = False) -> ConnectionState:
        if not self._token:
            self._reset()
            return self.snapshot()
        if not self._debounce.ready(force):
            log.debug("tiktok.refresh_debounced", user_id=self.user_id)
            return self.snapshot()

        async with self._lock:
            self.state.is_loading = True
            if self.state.phase == "unknown":
                self.state.phase = "loading"
            try:
                accounts = await self._backend.list_accounts(self._token)
            except BackendUnavailable:
                # keep what we had; the next refresh will try again
                log.warning("tiktok.refresh_unreachable", user_id=self.user_id)
                self.state.is_loading = False
                if self.state.phase == "loading":
                    self.state.phase = "unknown"
                return self.snapshot()
            except BackendError as e:
                log.warning("tiktok.refresh_failed", user_id=self.user_id, status=e.status, error=e.message)
                reconnecting = self.state.is_reconnecting
                self._reset()
                self.state.is_reconnecting = reconnecting
                return self.snapshot()
            self._apply(accounts)
            log.info("tiktok.refreshed", user_id=self.user_id, accounts=len(accounts), connected=self.state.is_connected)
            return self.snapshot()

    # ---------------------------------------------------------------- connect

    async def _initiate(self, force_account_selection: bool, emphasize_video_permissions: bool = True) -> str:
        return await self._backend.initiate_auth(
            self._token,
            force_account_selection=force_account_selection,
            emphasize_video_permissions=emphasize_video_permissions,
        )

    async def connect_with_video_permissions(self, opener: WindowOpener, *, force_account_selection: bool = True) -> bool:
        """Run the whole connect round trip; True once the window closed and state was refreshed.

        There is no timeout here: the window owns its own lifetime.
        """
        if not self._token:
            self._reset()
            return False
        self.state.is_reconnecting = True
        try:
            win = await open_window(opener, await self._initiate(force_account_selection))
            if win is None:
                log.info("tiktok.connect_blocked", user_id=self.user_id)
                return False
            await poll_until(lambda: win.closed, interval=self._connect_poll)
            await self.refresh_connection(force=True)
            return True
        finally:
            self.state.is_reconnecting = False

    async def popup_connect(
        self,
        popup: PopupOAuthFlow,
        *,
        switch_account: bool = False,
        emphasize_video_permissions: bool = True,
    ) -> Outcome:
        """Connect through the popup helper, bounded by its timeout; a forced switch logs out first."""
        if not self._token:
            self._reset()
            return "blocked"
        self.state.is_reconnecting = True
        try:
            url = await self._initiate(switch_account, emphasize_video_permissions)
            outcome = await (popup.switch_account(url) if switch_account else popup.open(url))
            log.info("tiktok.popup_connect", user_id=self.user_id, outcome=outcome)
            if outcome == "completed":
                await self.refresh_connection(force=True)
            return outcome
        finally:
            self.state.is_reconnecting = False

    async def _launch(self, run: Callable[[WindowOpener], Awaitable[Any]], opener: WindowOpener) -> Window | None:
        """Start ``run`` under the manager's scheduler and return the first window it opens.

        None when the opener refused or nothing was opened. Errors raised before
        a window opened go to the caller.
        """
        opened: asyncio.Future = asyncio.get_running_loop().create_future()

        async def _capture(url: str) -> Window | None:
            win = await open_window(opener, url)
            if not opened.done():
                opened.set_result(win)
            return win

        async def _run() -> None:
            try:
                await run(_capture)
            except Exception as e:
                if opened.done():
                    raise
                opened.set_exception(e)
            finally:
                if not opened.done():
                    opened.set_result(None)

        self.scheduler.after("connect", 0, _run)
        return await opened

    async def start_connect(self, opener: WindowOpener, *, force_account_selection: bool = True) -> Window | None:
        """``connect_with_video_permissions`` in the background."""
        return await self._launch(
            lambda op: self.connect_with_video_permissions(op, force_account_selection=force_account_selection), opener
        )

    async def start_popup_connect(
        self,
        opener: WindowOpener,
        make_popup: Callable[[WindowOpener], PopupOAuthFlow],
        *,
        switch_account: bool = False,
        emphasize_video_permissions: bool = True,
    ) -> Window | None:
        """``popup_connect`` in the background."""
        return await self._launch(
            lambda op: self.popup_connect(
                make_popup(op), switch_account=switch_account, emphasize_video_permissions=emphasize_video_permissions
            ),
            opener,
        )

    # --------------------------------------------------------------- accounts

    async def set_primary_account(self, account_id: str) -> ConnectionState:
        if not self._token:
            self._reset()
            return self.snapshot()
        # never optimistic: state only changes after the backend confirms
        await self._backend.set_primary(self._token, account_id)
        log.info("tiktok.primary_set", user_id=self.user_id, account_id=account_id)
        return await self.refresh_connection(force=True)

    async def delete_account(self, account_id: str) -> ConnectionState:
        if not self._token:
            self._reset()
            return self.snapshot()
        await self._backend.delete_account(self._token, account_id)
        log.info("tiktok.account_deleted", user_id=self.user_id, account_id=account_id)
        return await self.refresh_connection(force=True)

    async def disconnect_all_accounts(self) -> ConnectionState:
        if not self._token:
            self._reset()
            return self.snapshot()
        self.state.is_loading = True
        try:
            await self._backend.disconnect(self._token)
        finally:
            self.state.is_loading = False
        self._reset()
        log.info("tiktok.disconnected", user_id=self.user_id)
        return self.snapshot()

    async def close(self) -> None:
        await self.scheduler.cancel_all()


class ConnectionRegistry:
    def __init__(self, factory: Callable[[str], TikTokConnectionManager]) -> None:
        self._factory = factory
        self._managers: dict[str, TikTokConnectionManager] = {}

    def get(self, user_id: str) -> TikTokConnectionManager:
        mgr = self._managers.get(user_id)
        if mgr is None:
            mgr = self._managers[user_id] = self._factory(user_id)
        return mgr

    async def drop(self, user_id: str) -> None:
        mgr = self._managers.pop(user_id, None)
        if mgr:
            await mgr.close()

    async def close(self) -> None:
        for uid in list(self._managers):
            await self.drop(uid)


_registry: ConnectionRegistry | None = None

def get_connection_registry() -> ConnectionRegistry:
    global _registry
    if _registry is None:
        from crown.services.backend_client import get_backend_client
        _registry = ConnectionRegistry(lambda uid: TikTokConnectionManager(get_backend_client(), user_id=uid))
    return _registry
