from __future__ import annotations
from datetime import datetime, timezone as dt_tz
from uuid import UUID
from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile
from sqlalchemy import select, func, exists, delete
from sqlalchemy.ext.asyncio import AsyncSession
from crown.auth_deps import CurrentUser, get_optional_user, require_staff
from crown.config import settings
from crown.db import get_session
from crown.errors import NotFound
from crown.events import EventBus, get_event_bus
from crown.models.contest import Contest, ContestParticipant
from crown.models.profile import STAFF_ROLES
from crown.models.submission import ContestLink
from crown.schemas.contest import ContestCreate, ContestPublic, ContestUpdate, ParticipantPublic
from crown.schemas.leaderboard import LeaderboardEntry
from crown.services.backend_client import BackendClient, get_backend_client
from crown.services.contest_status import compute_status, time_remaining, time_until_start, validate_dates
from crown.services.leaderboard import fetch_leaderboard
from crown.services.media import object_key, validate_image
from crown.services.storage import put_bytes

router = APIRouter(prefix="/contests", tags=["contests"])

# hidden from everyone but staff
PRIVATE_STATUSES = ("draft", "hidden")


def to_public(c: Contest, *, participant_count: int, is_participant: bool, now: datetime) -> ContestPublic:
    return ContestPublic(
        id=c.id, name=c.name, description=c.description, cover_image=c.cover_image,
        start_date=c.start_date, end_date=c.end_date, submission_deadline=c.submission_deadline,
        status=c.status, computed_status=compute_status(c.status, c.start_date, c.end_date, now),
        music_category=c.music_category,
        prize_per_winner=float(c.prize_per_winner) if c.prize_per_winner is not None else None,
        total_prize=float(c.total_prize) if c.total_prize is not None else None,
        num_winners=c.num_winners, prize_titles=list(c.prize_titles or []),
        guidelines=c.guidelines, rules=c.rules, hashtags=list(c.hashtags or []),
        max_participants=c.max_participants, created_by=c.created_by, created_at=c.created_at,
        participant_count=participant_count,
        is_participant=is_participant,
        time_remaining=time_remaining(c.status, c.start_date, c.end_date, now),
        time_until_start=time_until_start(c.start_date, now),
    )


async def hydrate_public(session: AsyncSession, c: Contest, user_id: UUID | None) -> ContestPublic:
    participant_count = await session.scalar(
        select(func.count()).select_from(ContestParticipant).where(ContestParticipant.contest_id == c.id)
    )
    is_participant = False
    if user_id:
        is_participant = await session.scalar(
            select(exists().where(ContestParticipant.contest_id == c.id, ContestParticipant.user_id == user_id))
        )
    return to_public(
        c, participant_count=int(participant_count or 0), is_participant=bool(is_participant), now=datetime.now(dt_tz.utc)
    )


async def hydrate_many(session: AsyncSession, contests: list[Contest], user_id: UUID | None) -> list[ContestPublic]:
    """Like ``hydrate_public`` for a whole page: two queries regardless of its length."""
    if not contests:
        return []
    ids = [c.id for c in contests]
    counts = dict(
        (await session.execute(
            select(ContestParticipant.contest_id, func.count())
            .where(ContestParticipant.contest_id.in_(ids))
            .group_by(ContestParticipant.contest_id)
        )).all()
    )
    joined: set[UUID] = set()
    if user_id:
        joined = set((await session.scalars(
            select(ContestParticipant.contest_id).where(
                ContestParticipant.contest_id.in_(ids), ContestParticipant.user_id == user_id
            )
        )).all())
    now = datetime.now(dt_tz.utc)
    return [
        to_public(c, participant_count=int(counts.get(c.id, 0)), is_participant=c.id in joined, now=now)
        for c in contests
    ]


async def get_contest_or_404(session: AsyncSession, contest_id: UUID) -> Contest:
    c = await session.get(Contest, contest_id)
    if not c:
        raise NotFound("Contest not found")
    return c


def _is_staff(user: CurrentUser | None) -> bool:
    return bool(user and user.role in STAFF_ROLES)


async def publish_contest_change(bus: EventBus, op: str, contest_id: UUID) -> None:
    await bus.publish("contestUpdate", {"table": "contests", "op": op, "id": str(contest_id)})


@router.get("", response_model=list[ContestPublic])
async def list_contests(
    status: str | None = Query(default=None, description="Filter by computed status"),
    session: AsyncSession = Depends(get_session),
    user: CurrentUser | None = Depends(get_optional_user),
):
    rows = (await session.execute(select(Contest).order_by(Contest.start_date.desc()))).scalars().all()
    if not _is_staff(user):
        rows = [c for c in rows if c.status not in PRIVATE_STATUSES]
    out = await hydrate_many(session, list(rows), user.id if user else None)
    if status:
        wanted = "ended" if status == "completed" else status
        out = [c for c in out if c.computed_status == wanted]
    return out


@router.post("", response_model=ContestPublic, status_code=201)
async def create_contest(
    payload: ContestCreate,
    session: AsyncSession = Depends(get_session),
    user: CurrentUser = Depends(require_staff),
    bus: EventBus = Depends(get_event_bus),
):
    err = validate_dates(payload.start_date, payload.end_date)
    if err:
        raise HTTPException(status_code=422, detail=err)
    c = Contest(**payload.model_dump(), created_by=user.id)
    session.add(c)
    await session.commit()
    await session.refresh(c)
    await publish_contest_change(bus, "INSERT", c.id)
    return await hydrate_public(session, c, user.id)


@router.get("/{contest_id}", response_model=ContestPublic)
async def get_contest(
    contest_id: UUID,
    session: AsyncSession = Depends(get_session),
    user: CurrentUser | None = Depends(get_optional_user),
):
    c = await get_contest_or_404(session, contest_id)
    if c.status in PRIVATE_STATUSES and not _is_staff(user):
        raise NotFound("Contest not found")
    return await hydrate_public(session, c, user.id if user else None)


@router.patch("/{contest_id}", response_model=ContestPublic)
async def update_contest(
    contest_id: UUID,
    payload: ContestUpdate,
    session: AsyncSession = Depends(get_session),
    user: CurrentUser = Depends(require_staff),
    bus: EventBus = Depends(get_event_bus),
):
    c = await get_contest_or_404(session, contest_id)
    changes = payload.model_dump(exclude_unset=True)
    if "start_date" in changes or "end_date" in changes:
        err = validate_dates(changes.get("start_date") or c.start_date, changes.get("end_date") or c.end_date)
        if err:
            raise HTTPException(status_code=422, detail=err)
    if "hashtags" in changes and changes["hashtags"] is not None:
        changes["hashtags"] = [h.strip().lstrip("#") for h in changes["hashtags"] if h and h.strip().lstrip("#")]
    for field, value in changes.items():
        setattr(c, field, value)
    await session.commit()
    await session.refresh(c)
    await publish_contest_change(bus, "UPDATE", c.id)
    return await hydrate_public(session, c, user.id)


@router.delete("/{contest_id}", status_code=204)
async def delete_contest(
    contest_id: UUID,
    session: AsyncSession = Depends(get_session),
    user: CurrentUser = Depends(require_staff),
    bus: EventBus = Depends(get_event_bus),
):
    c = await get_contest_or_404(session, contest_id)
    # children first, the FK cascade isn't guaranteed on every backend
    await session.execute(delete(ContestLink).where(ContestLink.contest_id == contest_id))
    await session.execute(delete(ContestParticipant).where(ContestParticipant.contest_id == contest_id))
    await session.delete(c)
    await session.commit()
    await publish_contest_change(bus, "DELETE", contest_id)
    return Response(status_code=204)


@router.get("/{contest_id}/participants", response_model=list[ParticipantPublic])
async def list_participants(contest_id: UUID, session: AsyncSession = Depends(get_session)):
    await get_contest_or_404(session, contest_id)
    rows = (await session.execute(
        select(ContestParticipant).where(ContestParticipant.contest_id == contest_id).order_by(ContestParticipant.joined_at)
    )).scalars().all()
    return [ParticipantPublic(id=p.id, contest_id=p.contest_id, user_id=p.user_id, joined_at=p.joined_at, is_active=p.is_active) for p in rows]


@router.get("/{contest_id}/leaderboard", response_model=list[LeaderboardEntry])
async def contest_leaderboard(
    contest_id: UUID,
    response: Response,
    limit: int = Query(default=settings.leaderboard_default_limit, ge=1, le=500),
    backend: BackendClient = Depends(get_backend_client),
):
    response.headers["Cache-Control"] = "public, max-age=15"
    return await fetch_leaderboard(backend, str(contest_id), limit)


@router.post("/{contest_id}/cover", response_model=ContestPublic)
async def upload_cover(
    contest_id: UUID,
    image: UploadFile = File(...),
    session: AsyncSession = Depends(get_session),
    user: CurrentUser = Depends(require_staff),
    bus: EventBus = Depends(get_event_bus),
):
    c = await get_contest_or_404(session, contest_id)
    data = await image.read()
    mime = validate_image(data)
    c.cover_image = put_bytes(settings.bucket_covers, object_key("cover-images", mime), data, mime)
    await session.commit()
    await session.refresh(c)
    await publish_contest_change(bus, "UPDATE", c.id)
    return await hydrate_public(session, c, user.id)
