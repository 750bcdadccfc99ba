"""Contest join: check eligibility, pick a fresh TikTok video, submit.

The participant row and the submission row are written in one transaction.
A participant left behind without a submission is reused on the next attempt,
and the ``(contest_id, created_by)`` unique key turns a replayed submit into
"already joined".
"""
from __future__ import annotations
import time
from uuid import UUID
import structlog
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from crown.config import settings
from crown.errors import AlreadyJoined, ContestClosed, NotFound, NotSignedIn, StaleVideo, TikTokNotConnected
from crown.events import EventBus, notify
from crown.models.contest import Contest, ContestParticipant
from crown.models.submission import ContestLink
from crown.models.tiktok import TikTokProfile
from crown.schemas.submission import JoinPreview, JoinResult, SubmissionPublic, VideoOption
from crown.schemas.tiktok import TikTokVideo
from crown.services.backend_client import BackendClient
from crown.services.contest_status import is_joinable
from crown.services.tiktok_connection import TikTokConnectionManager
from crown.services.tiktok_urls import DEFAULT_USERNAME, canonical_video_url, embed_snippet

log = structlog.get_logger(__name__)


def video_age_seconds(video: TikTokVideo, now: float | None = None) -> int:
    now = time.time() if now is None else now
    return int(now) - int(video.create_time or 0)


def is_video_eligible(video: TikTokVideo, now: float | None = None) -> bool:
    return video_age_seconds(video, now) < settings.video_max_age_seconds


def tag_videos(videos: list[TikTokVideo], now: float | None = None) -> list[VideoOption]:
    now = time.time() if now is None else now
    return [VideoOption(video=v, eligible=is_video_eligible(v, now), age_seconds=video_age_seconds(v, now)) for v in videos]


async def _get_contest(session: AsyncSession, contest_id: UUID) -> Contest:
    contest = await session.get(Contest, contest_id)
    if not contest:
        raise NotFound("Contest not found")
    return contest


async def _check_open(session: AsyncSession, contest: Contest, user_id: UUID, *, has_participant: bool) -> None:
    reason = is_joinable(contest.status, contest.start_date, contest.end_date, contest.submission_deadline)
    if reason:
        raise ContestClosed(reason)
    if contest.max_participants and not has_participant:
        count = await session.scalar(
            select(func.count()).select_from(ContestParticipant).where(ContestParticipant.contest_id == contest.id)
        )
        if int(count or 0) >= contest.max_participants:
            raise ContestClosed("This contest is full")


async def _participant(session: AsyncSession, contest_id: UUID, user_id: UUID) -> ContestParticipant | None:
    return await session.scalar(
        select(ContestParticipant).where(ContestParticipant.contest_id == contest_id, ContestParticipant.user_id == user_id)
    )


async def _submission(session: AsyncSession, contest_id: UUID, user_id: UUID) -> ContestLink | None:
    return await session.scalar(
        select(ContestLink).where(ContestLink.contest_id == contest_id, ContestLink.created_by == user_id)
    )


async def begin_join(
    session: AsyncSession,
    *,
    contest_id: UUID,
    user_id: UUID | None,
    token: str | None,
    connection: TikTokConnectionManager,
    backend: BackendClient,
    now: float | None = None,
) -> JoinPreview:
    if not user_id or not token:
        raise NotSignedIn("Please sign in first")
    state = await connection.bind(token).refresh_connection()
    if not state.is_connected:
        raise TikTokNotConnected()

    contest = await _get_contest(session, contest_id)
    participant = await _participant(session, contest_id, user_id)
    if participant and await _submission(session, contest_id, user_id):
        raise AlreadyJoined()
    await _check_open(session, contest, user_id, has_participant=participant is not None)

    videos = await backend.list_videos(token)
    log.info("join.begin", contest_id=str(contest_id), user_id=str(user_id), videos=len(videos), resuming=participant is not None)
    return JoinPreview(contest_id=contest_id, videos=tag_videos(videos, now), resuming=participant is not None)


async def _fresh_video(backend: BackendClient, token: str, video_id: str) -> TikTokVideo:
    for v in await backend.list_videos(token):
        if v.id == video_id:
            return v
    raise NotFound("Selected video was not found in your TikTok account")


async def select_video(
    backend: BackendClient,
    *,
    token: str | None,
    video_id: str,
    bus: EventBus | None = None,
    user_id: UUID | None = None,
    now: float | None = None,
) -> VideoOption:
    if not token:
        raise NotSignedIn("Please sign in first")
    video = await _fresh_video(backend, token, video_id)
    if not is_video_eligible(video, now):
        err = StaleVideo()
        if bus:
            await notify(bus, err.message, level="error", user_id=str(user_id) if user_id else None, action=err.action, link=err.link)
        raise err
    return VideoOption(video=video, eligible=True, age_seconds=video_age_seconds(video, now))


async def _tiktok_username(session: AsyncSession, user_id: UUID) -> str:
    profile = await session.scalar(
        select(TikTokProfile)
        .where(TikTokProfile.user_id == user_id)
        .order_by(TikTokProfile.is_primary.desc(), TikTokProfile.created_at)
        .limit(1)
    )
    return (profile.username if profile and profile.username else None) or DEFAULT_USERNAME


def to_submission_public(link: ContestLink) -> SubmissionPublic:
    return SubmissionPublic(
        id=link.id, contest_id=link.contest_id, created_by=link.created_by, url=link.url,
        title=link.title, thumbnail=link.thumbnail, username=link.username,
        views=link.views or 0, likes=link.likes or 0, comments=link.comments or 0, shares=link.shares or 0,
        tiktok_video_id=link.tiktok_video_id, embed_code=link.embed_code,
        video_type=link.video_type, submission_date=link.submission_date, duration=link.duration,
    )


async def submit_video(
    session: AsyncSession,
    *,
    contest_id: UUID,
    user_id: UUID | None,
    token: str | None,
    video_id: str,
    backend: BackendClient,
    bus: EventBus | None = None,
    now: float | None = None,
) -> JoinResult:
    if not user_id or not token:
        raise NotSignedIn("Please sign in first")
    contest = await _get_contest(session, contest_id)
    participant = await _participant(session, contest_id, user_id)
    if await _submission(session, contest_id, user_id):
        raise AlreadyJoined()
    await _check_open(session, contest, user_id, has_participant=participant is not None)

    # the clock kept running since selection: check the age again on a fresh list
    video = await select_video(backend, token=token, video_id=video_id, bus=bus, user_id=user_id, now=now)
    video = video.video

    username = await _tiktok_username(session, user_id)
    url = canonical_video_url(video.id, username, video.share_url)

    try:
        if participant is None:
            participant = ContestParticipant(contest_id=contest_id, user_id=user_id)
            session.add(participant)
            await session.flush()
        else:
            log.info("join.reuse_participant", contest_id=str(contest_id), user_id=str(user_id), participant_id=str(participant.id))
        link = ContestLink(
            contest_id=contest_id,
            created_by=user_id,
            url=url,
            title=video.title or video.video_description or "TikTok Video",
            thumbnail=video.cover_image_url,
            username=username,
            views=video.view_count or 0,
            likes=video.like_count or 0,
            comments=video.comment_count or 0,
            shares=video.share_count or 0,
            tiktok_video_id=video.id,
            embed_code=embed_snippet(url, video.id),
            video_type="tiktok",
            is_contest_submission=True,
            duration=video.duration,
        )
        session.add(link)
        await session.commit()
    except IntegrityError:
        await session.rollback()
        log.info("join.duplicate", contest_id=str(contest_id), user_id=str(user_id))
        raise AlreadyJoined()

    await session.refresh(link)
    log.info("join.submitted", contest_id=str(contest_id), user_id=str(user_id), video_id=video.id)
    if bus:
        await bus.publish("contestUpdate", {"table": "contest_links", "op": "INSERT", "contest_id": str(contest_id), "id": str(link.id)})
        await notify(bus, "Successfully joined contest and submitted your video!", user_id=str(user_id))
    return JoinResult(participant_id=participant.id, submission=to_submission_public(link))
