from __future__ import annotations
from uuid import UUID
from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from crown.auth_deps import CurrentUser, require_staff
from crown.config import settings
from crown.db import get_session
from crown.events import EventBus, get_event_bus
from crown.models.media import VideoLink
from crown.schemas.media import ToggleActive, VideoLinkPublic
from crown.services import video_library
from crown.services.media import object_key, validate_image, validate_video
from crown.services.storage import put_bytes

router = APIRouter(prefix="/media", tags=["media"])


def to_public(v: VideoLink) -> VideoLinkPublic:
    return VideoLinkPublic(
        id=v.id, title=v.title, username=v.username, url=v.url, thumbnail=v.thumbnail,
        video_type=v.video_type, active=v.active, created_at=v.created_at,
    )


@router.get("", response_model=list[VideoLinkPublic])
async def list_media(
    active_only: bool = Query(default=True),
    session: AsyncSession = Depends(get_session),
):
    q = select(VideoLink).order_by(VideoLink.created_at.desc())
    if active_only:
        q = q.where(VideoLink.active.is_(True))
    return [to_public(v) for v in (await session.execute(q)).scalars().all()]


@router.post("", response_model=VideoLinkPublic, status_code=201)
async def upload_media(
    title: str = Form(..., min_length=1, max_length=200),
    username: str | None = Form(default=None),
    video: UploadFile = File(...),
    thumbnail: UploadFile | None = File(default=None),
    session: AsyncSession = Depends(get_session),
    user: CurrentUser = Depends(require_staff),
    bus: EventBus = Depends(get_event_bus),
):
    video_bytes = await video.read()
    video_mime = validate_video(video_bytes, video.content_type)
    thumb_bytes = await thumbnail.read() if thumbnail else None
    thumb_mime = validate_image(thumb_bytes) if thumb_bytes else None

    video_key = object_key("media", video_mime)
    item = VideoLink(
        title=title, username=username, video_type="upload", created_by=user.id,
        url=put_bytes(settings.bucket_videos, video_key, video_bytes, video_mime),
        storage_key=video_key,
    )
    if thumb_bytes:
        item.thumbnail_key = object_key("media", thumb_mime)
        item.thumbnail = put_bytes(settings.bucket_thumbnails, item.thumbnail_key, thumb_bytes, thumb_mime)
    session.add(item)
    await session.commit()
    await session.refresh(item)
    await bus.publish("videoUpdate", {"table": "video_links", "op": "INSERT", "id": str(item.id)})
    return to_public(item)


@router.patch("/{video_id}", response_model=VideoLinkPublic)
async def toggle_media(
    video_id: UUID,
    payload: ToggleActive,
    session: AsyncSession = Depends(get_session),
    user: CurrentUser = Depends(require_staff),
    bus: EventBus = Depends(get_event_bus),
):
    return to_public(await video_library.set_active(session, video_id, payload.active, bus))


@router.delete("/{video_id}", status_code=204)
async def delete_media(
    video_id: UUID,
    session: AsyncSession = Depends(get_session),
    user: CurrentUser = Depends(require_staff),
    bus: EventBus = Depends(get_event_bus),
):
    await video_library.delete_video(session, video_id, bus)
    return Response(status_code=204)
