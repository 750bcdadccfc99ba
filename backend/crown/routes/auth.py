from __future__ import annotations
from datetime import datetime, timezone as dt_tz
from uuid import UUID
from fastapi import APIRouter, Depends, Header, HTTPException, Response
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from crown.auth_deps import CurrentUser, build_session_store, decode_bearer, get_current_user, security
from crown.db import get_session
from crown.events import EventBus, get_event_bus
from crown.schemas.auth import AuthEvent, RedirectRequest, RedirectTarget, SessionInfo
from crown.services.auth_provider import AuthSession, get_auth_provider
from crown.services.auth_redirect import AuthRedirect
from crown.services.session_store import SessionStore
from crown.services.state_store import ScopedState, StateStore, get_state_store

router = APIRouter(prefix="/auth", tags=["auth"])


async def _session_info(store: SessionStore) -> SessionInfo:
    assert store.session is not None
    login = await store.login_time()
    return SessionInfo(
        user_id=store.session.user_id,
        email=store.session.email,
        role=store.role,
        profile=store.profile,
        login_time=datetime.fromtimestamp(login / 1000, tz=dt_tz.utc) if login else None,
        expires_at=await store.expires_at(),
        sliding=store.sliding,
    )


@router.post("/session", response_model=SessionInfo)
async def start_session(
    payload: AuthEvent,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    session: AsyncSession = Depends(get_session),
    state: StateStore = Depends(get_state_store),
    bus: EventBus = Depends(get_event_bus),
    auth=Depends(get_auth_provider),
):
    # no expiry check here: signing in again is how an expired session recovers
    token, data = decode_bearer(credentials)
    user_id = UUID(data["sub"])
    store = build_session_store(user_id, session=session, state=state, bus=bus, auth=auth)
    await store.handle_auth_event(payload.event, AuthSession(user_id=user_id, access_token=token, email=data.get("email"), issued_at=data.get("iat")))
    return await _session_info(store)


@router.get("/session", response_model=SessionInfo)
async def get_session_info(user: CurrentUser = Depends(get_current_user)):
    return await _session_info(user.store)


@router.delete("/session", status_code=204)
async def end_session(user: CurrentUser = Depends(get_current_user)):
    await user.store.sign_out()
    return Response(status_code=204)


def _redirect_for(client_id: str | None, state: StateStore) -> AuthRedirect:
    if not client_id:
        raise HTTPException(status_code=400, detail="Missing X-Client-Id header")
    return AuthRedirect(ScopedState(state, f"client:{client_id}"))


@router.put("/redirect", status_code=204)
async def remember_redirect(
    payload: RedirectRequest,
    x_client_id: str | None = Header(default=None, alias="X-Client-Id"),
    state: StateStore = Depends(get_state_store),
):
    await _redirect_for(x_client_id, state).remember(payload.url, payload.params)
    return Response(status_code=204)


@router.post("/redirect/resolve", response_model=RedirectTarget)
async def resolve_redirect(
    x_client_id: str | None = Header(default=None, alias="X-Client-Id"),
    state: StateStore = Depends(get_state_store),
    user: CurrentUser = Depends(get_current_user),
):
    path = await _redirect_for(x_client_id, state).resolve(user.role)
    return RedirectTarget(path=path)
