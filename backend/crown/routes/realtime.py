"""Live updates over a websocket.

A connection plays the part of a mounted client app: it forwards table change
events and the caller's own notices, and runs the session expiry timers for as
long as it stays open. With ``contest_id`` it also polls that contest's
leaderboard and pushes each refresh as a ``leaderboard`` event.

Database reads use short-lived sessions; an open socket holds no connection.
"""
from __future__ import annotations
import asyncio
from datetime import datetime, timezone as dt_tz
from uuid import UUID
import jwt
import structlog
from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from crown.auth_deps import build_session_store, make_pooled_profile_loader
from crown.db import get_sessionmaker
from crown.events import EventBus, get_event_bus
from crown.schemas.leaderboard import LeaderboardEntry
from crown.security import decode_access_token
from crown.services.auth_provider import AuthSession, get_auth_provider
from crown.services.backend_client import BackendClient, get_backend_client
from crown.services.leaderboard import LeaderboardPoller
from crown.services.scheduler import Scheduler
from crown.services.state_store import StateStore, get_state_store

log = structlog.get_logger(__name__)
router = APIRouter(tags=["realtime"])

CLOSE_UNAUTHORIZED = 4401
PERSONAL_TOPICS = ("notice", "authState")


def visible_to(event: dict, user_id: str) -> bool:
    if event.get("topic") not in PERSONAL_TOPICS:
        return True
    owner = (event.get("detail") or {}).get("user_id")
    return owner is None or owner == user_id


def leaderboard_event(contest_id: str, entries: list[LeaderboardEntry]) -> dict:
    return {
        "topic": "leaderboard",
        "at": datetime.now(dt_tz.utc).isoformat(),
        "detail": {"contest_id": contest_id, "entries": [e.model_dump(mode="json") for e in entries]},
    }


async def _drain(ws: WebSocket) -> None:
    # client messages are ignored; this only notices the disconnect
    try:
        while True:
            await ws.receive_text()
    except WebSocketDisconnect:
        return


@router.websocket("/ws/updates")
async def updates(
    ws: WebSocket,
    token: str = Query(...),
    contest_id: UUID | None = Query(default=None),
    sessions: async_sessionmaker[AsyncSession] = Depends(get_sessionmaker),
    state: StateStore = Depends(get_state_store),
    bus: EventBus = Depends(get_event_bus),
    auth=Depends(get_auth_provider),
    backend: BackendClient = Depends(get_backend_client),
):
    try:
        data = decode_access_token(token)
        user_id = UUID(data["sub"])
    except (jwt.PyJWTError, ValueError):
        await ws.close(code=CLOSE_UNAUTHORIZED)
        return

    await ws.accept()
    uid = str(user_id)
    load_profile = make_pooled_profile_loader(sessions)
    store = build_session_store(user_id, state=state, bus=bus, auth=auth, load_profile=load_profile)
    store.adopt(
        AuthSession(user_id=user_id, access_token=token, email=data.get("email"), issued_at=data.get("iat")),
        await load_profile(user_id),
    )

    scheduler = Scheduler(owner=f"ws:{uid}")
    structlog.contextvars.bind_contextvars(user_id=uid)
    log.info("ws.connected", contest_id=str(contest_id) if contest_id else None)
    async with bus.stream() as queue:
        store.start(scheduler)
        if contest_id:
            cid = str(contest_id)

            def _push(entries: list[LeaderboardEntry]) -> None:
                try:
                    queue.put_nowait(leaderboard_event(cid, entries))
                except asyncio.QueueFull:
                    log.warning("ws.leaderboard_dropped", contest_id=cid)

            LeaderboardPoller(backend, cid, on_update=_push, scheduler=scheduler).start()
        receiver = asyncio.create_task(_drain(ws))
        try:
            while True:
                getter = asyncio.create_task(queue.get())
                done, _ = await asyncio.wait({getter, receiver}, return_when=asyncio.FIRST_COMPLETED)
                if receiver in done:
                    getter.cancel()
                    break
                event = getter.result()
                if not visible_to(event, uid):
                    continue
                await ws.send_json(event)
                detail = event.get("detail") or {}
                if event["topic"] == "authState" and detail.get("event") == "SIGNED_OUT" and detail.get("user_id") == uid:
                    await ws.close(code=CLOSE_UNAUTHORIZED)
                    break
        finally:
            receiver.cancel()
            await scheduler.cancel_all()
            log.info("ws.disconnected")
