"""Session & profile store.

Holds the signed-in session and the derived profile, persists the login
timestamp, and enforces the rolling session lifetime:

* a login older than ``max_age`` is signed out on the next check;
* admin/organizer sessions renew the timestamp on every valid check
  (sliding expiry), user sessions keep the original one (fixed expiry);
* once fewer than 24 hours remain a single warning notice is published.
"""
from __future__ import annotations
import asyncio
import time
from datetime import datetime, timedelta, timezone as dt_tz
from typing import Awaitable, Callable
from uuid import UUID
import structlog

from crown.config import settings
from crown.events import EventBus, notify
from crown.models.profile import STAFF_ROLES
from crown.schemas.auth import ProfilePublic
from crown.services.auth_provider import AuthSession
from crown.services.scheduler import Scheduler
from crown.services.state_store import StateStore

log = structlog.get_logger(__name__)

ADMIN_LOGIN_KEY = "admin_login_time"
USER_LOGIN_KEY = "user_login_time"
WARNING_SHOWN_KEY = "session_warning_shown"
# survives sign-out; tokens issued before it are refused until the next sign-in
EXPIRED_AT_KEY = "session_expired_at"

AUTH_EVENTS = ("SIGNED_IN", "SIGNED_OUT", "TOKEN_REFRESHED")

ProfileLoader = Callable[[UUID], Awaitable[ProfilePublic | None]]


def _now_ms() -> int:
    return int(time.time() * 1000)


class SessionStore:
    def __init__(
        self,
        *,
        auth,
        load_profile: ProfileLoader,
        state: StateStore,
        bus: EventBus,
        clock: Callable[[], int] = _now_ms,
        max_age: timedelta | None = None,
        warn_after: timedelta | None = None,
        profile_retries: int = 3,
        profile_retry_delay: float = 1.0,
    ) -> None:
        self._auth = auth
        self._load_profile_fn = load_profile
        self._state = state
        self._bus = bus
        self._clock = clock
        self.max_age_ms = int((max_age or timedelta(days=settings.session_max_age_days)).total_seconds() * 1000)
        self.warn_after_ms = int((warn_after or timedelta(days=settings.session_warning_after_days)).total_seconds() * 1000)
        self._profile_retries = profile_retries
        self._profile_retry_delay = profile_retry_delay
        self._scheduler: Scheduler | None = None

        self.session: AuthSession | None = None
        self.profile: ProfilePublic | None = None

    # ------------------------------------------------------------------ state

    @property
    def signed_in(self) -> bool:
        return self.session is not None

    @property
    def role(self) -> str:
        return self.profile.role if self.profile else "user"

    @property
    def sliding(self) -> bool:
        return self.role in STAFF_ROLES

    def _user_id(self) -> str | None:
        return str(self.session.user_id) if self.session else None

    # --------------------------------------------------------------- loading

    async def load(self, access_token: str | None) -> AuthSession | None:
        """Fetch the current session from the provider and, if present, its profile."""
        if not access_token:
            self.session, self.profile = None, None
            return None
        self.session = await self._auth.get_user(access_token)
        if self.session:
            await self._load_profile()
        else:
            self.profile = None
        return self.session

    def adopt(self, session: AuthSession, profile: ProfilePublic | None) -> None:
        """Use a session already verified by the caller (e.g. a decoded token)."""
        self.session, self.profile = session, profile

    async def _load_profile(self) -> None:
        assert self.session is not None
        user_id = self.session.user_id
        for attempt in range(self._profile_retries + 1):
            try:
                profile = await self._load_profile_fn(user_id)
            except Exception as e:
                # the session survives a failed profile load
                log.error("session.profile_load_failed", user_id=str(user_id), error=str(e))
                self.profile = None
                await notify(self._bus, "Failed to load user profile", level="error", user_id=str(user_id))
                return
            if profile is not None:
                self.profile = profile
                return
            # new sign-ups: the profile row may still be being created
            if attempt < self._profile_retries:
                log.info("session.profile_missing_retry", user_id=str(user_id), attempt=attempt + 1)
                await asyncio.sleep(self._profile_retry_delay * (attempt + 1))
        self.profile = None

    async def handle_auth_event(self, event: str, session: AuthSession | None) -> None:
        if event not in AUTH_EVENTS:
            raise ValueError(f"Unknown auth event: {event}")
        log.info("session.auth_event", auth_event=event, user_id=str(session.user_id) if session else None)

        if event == "SIGNED_OUT" or session is None:
            await self._clear()
        else:
            self.session = session
            await self._load_profile()
            if event == "SIGNED_IN":
                await self._record_login()
        await self._bus.publish("authState", {"event": event, "user_id": self._user_id() or (str(session.user_id) if session else None)})

    # ---------------------------------------------------------------- expiry

    async def _record_login(self) -> None:
        now = str(self._clock())
        if self.sliding:
            await self._state.set(ADMIN_LOGIN_KEY, now)
            await self._state.delete(USER_LOGIN_KEY)
        else:
            await self._state.set(USER_LOGIN_KEY, now)
            await self._state.delete(ADMIN_LOGIN_KEY)
        await self._state.delete(WARNING_SHOWN_KEY, EXPIRED_AT_KEY)

    async def login_time(self) -> int | None:
        raw = await self._state.get(ADMIN_LOGIN_KEY) or await self._state.get(USER_LOGIN_KEY)
        try:
            return int(raw) if raw else None
        except ValueError:
            return None

    async def expires_at(self) -> datetime | None:
        login = await self.login_time()
        if login is None:
            return None
        return datetime.fromtimestamp((login + self.max_age_ms) / 1000, tz=dt_tz.utc)

    async def check_session_expiry(self) -> bool:
        """True (and signed out) when the login is older than the max age."""
        if not self.session:
            return False
        login = await self.login_time()
        if login is None:
            login = await self._seed_login()
            if login is None:
                log.info("session.replay_refused", user_id=self._user_id())
                return await self._expire(mark=False)
        now = self._clock()
        if now - login > self.max_age_ms:
            log.info("session.expired", user_id=self._user_id(), age_ms=now - login, role=self.role)
            return await self._expire()
        if self.sliding:
            await self._state.set(ADMIN_LOGIN_KEY, str(now))
        return False

    async def _seed_login(self) -> int | None:
        """Login time for a session with no stored one, or None when its token predates the last expiry.

        Only a SIGNED_IN event clears the expiry marker, so replaying a token
        that was already expired never buys a new clock.
        """
        assert self.session is not None
        issued_ms = self.session.issued_at * 1000 if self.session.issued_at is not None else None
        expired_at = await self._state.get(EXPIRED_AT_KEY)
        if expired_at is not None and (issued_ms is None or issued_ms <= int(expired_at)):
            return None
        login = issued_ms if issued_ms is not None else self._clock()
        await self._state.set(ADMIN_LOGIN_KEY if self.sliding else USER_LOGIN_KEY, str(login))
        return login

    async def _expire(self, *, mark: bool = True) -> bool:
        user_id = self._user_id()
        if mark:
            await self._state.set(EXPIRED_AT_KEY, str(self._clock()))
        await self.sign_out()
        await notify(self._bus, "Your session has expired. Please sign in again.", level="warning", user_id=user_id)
        return True

    async def check_expiry_warning(self) -> bool:
        """Publish the one-shot "session ending soon" notice. True if it was published."""
        if not self.session:
            return False
        login = await self.login_time()
        if login is None:
            return False
        elapsed = self._clock() - login
        if elapsed <= self.warn_after_ms:
            return False
        hours_left = -(-(self.max_age_ms - elapsed) // 3_600_000)  # ceil
        if not 0 < hours_left <= 24:
            return False
        if await self._state.get(WARNING_SHOWN_KEY):
            return False
        await self._state.set(WARNING_SHOWN_KEY, "true")
        await notify(
            self._bus,
            f"Your session will expire in {hours_left} hours. Please save your work.",
            level="warning",
            user_id=self._user_id(),
            hours_left=hours_left,
        )
        return True

    # -------------------------------------------------------------- sign out

    async def sign_out(self) -> None:
        session = self.session
        self._stop_timers()
        if session:
            await self._auth.sign_out(session.access_token)
        await self._clear()
        await self._bus.publish("authState", {"event": "SIGNED_OUT", "user_id": str(session.user_id) if session else None})

    async def _clear(self) -> None:
        await self._state.delete(ADMIN_LOGIN_KEY, USER_LOGIN_KEY, WARNING_SHOWN_KEY)
        self.session = None
        self.profile = None

    # ---------------------------------------------------------------- timers

    def start(self, scheduler: Scheduler) -> None:
        self._scheduler = scheduler
        scheduler.every("session-expiry", settings.session_check_seconds, self.check_session_expiry, run_immediately=True)
        scheduler.every("session-warning", settings.session_warning_check_seconds, self.check_expiry_warning, run_immediately=True)

    def _stop_timers(self) -> None:
        if self._scheduler:
            self._scheduler.cancel("session-expiry")
            self._scheduler.cancel("session-warning")

    async def stop(self) -> None:
        if self._scheduler:
            await self._scheduler.cancel_all()
            self._scheduler = None
