from __future__ import annotations
from dataclasses import dataclass
from uuid import UUID
import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from crown.db import get_session
from crown.errors import Forbidden, NotSignedIn, SessionExpired
from crown.events import EventBus, get_event_bus
from crown.models.profile import Profile
from crown.schemas.auth import ProfilePublic
from crown.security import decode_access_token
from crown.services.auth_provider import AuthSession, get_auth_provider
from crown.services.session_store import ProfileLoader, SessionStore
from crown.services.state_store import ScopedState, StateStore, get_state_store

security = HTTPBearer(auto_error=False)


def to_profile_public(p: Profile) -> ProfilePublic:
    return ProfilePublic(
        id=p.id, email=p.email, full_name=p.full_name, role=p.effective_role,
        created_at=p.created_at, updated_at=p.updated_at,
    )


def make_profile_loader(session: AsyncSession) -> ProfileLoader:
    async def _load(user_id: UUID) -> ProfilePublic | None:
        p = await session.get(Profile, user_id)
        return to_profile_public(p) if p else None
    return _load


def make_pooled_profile_loader(sessions: async_sessionmaker[AsyncSession]) -> ProfileLoader:
    """Loader that checks a connection out only for the duration of each read."""
    async def _load(user_id: UUID) -> ProfilePublic | None:
        async with sessions() as session:
            p = await session.get(Profile, user_id)
            return to_profile_public(p) if p else None
    return _load


def decode_bearer(credentials: HTTPAuthorizationCredentials | None) -> tuple[str, dict]:
    if credentials is None:
        raise NotSignedIn("Please sign in first")
    token = credentials.credentials
    try:
        data = decode_access_token(token)
        UUID(data["sub"])
    except (jwt.PyJWTError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token")
    return token, data


@dataclass
class CurrentUser:
    id: UUID
    token: str
    email: str | None
    profile: ProfilePublic | None
    store: SessionStore

    @property
    def role(self) -> str:
        return self.profile.role if self.profile else "user"


def build_session_store(
    user_id: UUID,
    *,
    session: AsyncSession | None = None,
    state: StateStore,
    bus: EventBus,
    auth=None,
    load_profile: ProfileLoader | None = None,
) -> SessionStore:
    return SessionStore(
        auth=auth or get_auth_provider(),
        load_profile=load_profile or make_profile_loader(session),
        state=ScopedState(state, f"user:{user_id}"),
        bus=bus,
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    session: AsyncSession = Depends(get_session),
    state: StateStore = Depends(get_state_store),
    bus: EventBus = Depends(get_event_bus),
    auth=Depends(get_auth_provider),
) -> CurrentUser:
    token, data = decode_bearer(credentials)
    user_id = UUID(data["sub"])

    store = build_session_store(user_id, session=session, state=state, bus=bus, auth=auth)
    p = await session.get(Profile, user_id)
    store.adopt(AuthSession(user_id=user_id, access_token=token, email=data.get("email"), issued_at=data.get("iat")), to_profile_public(p) if p else None)
    if await store.check_session_expiry():
        raise SessionExpired("Session expired")
    return CurrentUser(id=user_id, token=token, email=data.get("email"), profile=store.profile, store=store)


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    session: AsyncSession = Depends(get_session),
    state: StateStore = Depends(get_state_store),
    bus: EventBus = Depends(get_event_bus),
    auth=Depends(get_auth_provider),
) -> CurrentUser | None:
    if credentials is None:
        return None
    return await get_current_user(credentials, session, state, bus, auth)


def require_roles(*roles: str):
    async def _dep(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in roles:
            raise Forbidden("You do not have permission to perform this action")
        return user
    return _dep


require_admin = require_roles("admin")
require_staff = require_roles("admin", "organizer")
