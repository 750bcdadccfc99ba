from __future__ import annotations
from uuid import UUID
import structlog
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from crown.config import settings
from crown.errors import MinimumMediaViolation, NotFound
from crown.events import EventBus
from crown.models.media import VideoLink
from crown.services.storage import remove_object

log = structlog.get_logger(__name__)


async def active_count(session: AsyncSession) -> int:
    return int(await session.scalar(select(func.count()).select_from(VideoLink).where(VideoLink.active.is_(True))) or 0)


def check_can_remove(active_now: int, removing_active: bool, minimum: int | None = None) -> None:
    minimum = settings.min_active_videos if minimum is None else minimum
    if removing_active and active_now - 1 < minimum:
        raise MinimumMediaViolation(f"At least {minimum} active videos are required on the homepage")


async def delete_video(session: AsyncSession, video_id: UUID, bus: EventBus | None = None) -> None:
    video = await session.get(VideoLink, video_id)
    if not video:
        raise NotFound("Video not found")
    check_can_remove(await active_count(session), video.active)
    keys = [(settings.bucket_videos, video.storage_key), (settings.bucket_thumbnails, video.thumbnail_key)]
    await session.delete(video)
    await session.commit()
    for bucket, key in keys:
        if key:
            remove_object(bucket, key)
    log.info("media.deleted", video_id=str(video_id))
    if bus:
        await bus.publish("videoUpdate", {"table": "video_links", "op": "DELETE", "id": str(video_id)})


async def set_active(session: AsyncSession, video_id: UUID, active: bool, bus: EventBus | None = None) -> VideoLink:
    video = await session.get(VideoLink, video_id)
    if not video:
        raise NotFound("Video not found")
    if video.active and not active:
        check_can_remove(await active_count(session), True)
    video.active = active
    await session.commit()
    await session.refresh(video)
    log.info("media.toggled", video_id=str(video_id), active=active)
    if bus:
        await bus.publish("videoUpdate", {"table": "video_links", "op": "UPDATE", "id": str(video_id)})
    return video
