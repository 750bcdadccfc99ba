from __future__ import annotations
from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from crown.auth_deps import CurrentUser, get_current_user
from crown.db import get_session
from crown.events import EventBus, get_event_bus
from crown.models.submission import ContestLink
from crown.routes.contests import get_contest_or_404
from crown.schemas.submission import JoinPreview, JoinResult, SubmissionPublic, SubmitVideoRequest, VideoOption
from crown.services import join_flow
from crown.services.backend_client import BackendClient, get_backend_client
from crown.services.tiktok_connection import ConnectionRegistry, get_connection_registry

router = APIRouter(prefix="/contests", tags=["submissions"])


@router.post("/{contest_id}/join", response_model=JoinPreview)
async def begin_join(
    contest_id: UUID,
    session: AsyncSession = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
    backend: BackendClient = Depends(get_backend_client),
    registry: ConnectionRegistry = Depends(get_connection_registry),
):
    return await join_flow.begin_join(
        session, contest_id=contest_id, user_id=user.id, token=user.token,
        connection=registry.get(str(user.id)), backend=backend,
    )


@router.get("/{contest_id}/join/videos", response_model=list[VideoOption])
async def join_videos(
    contest_id: UUID,
    session: AsyncSession = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
    backend: BackendClient = Depends(get_backend_client),
):
    await get_contest_or_404(session, contest_id)
    return join_flow.tag_videos(await backend.list_videos(user.token))


@router.post("/{contest_id}/join/videos/{video_id}/select", response_model=VideoOption)
async def select_video(
    contest_id: UUID,
    video_id: str,
    session: AsyncSession = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
    backend: BackendClient = Depends(get_backend_client),
    bus: EventBus = Depends(get_event_bus),
):
    await get_contest_or_404(session, contest_id)
    return await join_flow.select_video(backend, token=user.token, video_id=video_id, bus=bus, user_id=user.id)


@router.post("/{contest_id}/submissions", response_model=JoinResult, status_code=201)
async def submit_video(
    contest_id: UUID,
    payload: SubmitVideoRequest,
    session: AsyncSession = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
    backend: BackendClient = Depends(get_backend_client),
    bus: EventBus = Depends(get_event_bus),
):
    if not payload.agreed_guidelines:
        raise HTTPException(status_code=422, detail="You must agree to the contest guidelines")
    return await join_flow.submit_video(
        session, contest_id=contest_id, user_id=user.id, token=user.token,
        video_id=payload.video_id, backend=backend, bus=bus,
    )


@router.get("/{contest_id}/submissions", response_model=list[SubmissionPublic])
async def list_submissions(contest_id: UUID, session: AsyncSession = Depends(get_session)):
    await get_contest_or_404(session, contest_id)
    rows = (await session.execute(
        select(ContestLink)
        .where(ContestLink.contest_id == contest_id, ContestLink.active.is_(True))
        .order_by(ContestLink.views.desc(), ContestLink.submission_date)
    )).scalars().all()
    return [join_flow.to_submission_public(r) for r in rows]
