from __future__ import annotations
from uuid import UUID
from fastapi import APIRouter, Depends
from redis import Redis
from rq import Queue
from sqlalchemy.ext.asyncio import AsyncSession
from crown.auth_deps import CurrentUser, require_admin
from crown.config import settings
from crown.db import get_session
from crown.events import EventBus, get_event_bus
from crown.jobs.sync_metrics import sync_tiktok_metrics
from crown.routes.contests import get_contest_or_404, hydrate_public, publish_contest_change
from crown.schemas.contest import ContestPublic, ExtendRequest, StatusChange
from crown.services.contest_status import extend_end

router = APIRouter(prefix="/admin", tags=["admin"])

_queue: Queue | None = None

def get_queue() -> Queue:
    # RQ queue (lazy single instance)
    global _queue
    if _queue is None:
        _queue = Queue("default", connection=Redis.from_url(settings.redis_url))
    return _queue


@router.post("/contests/{contest_id}/status", response_model=ContestPublic)
async def change_status(
    contest_id: UUID,
    payload: StatusChange,
    session: AsyncSession = Depends(get_session),
    user: CurrentUser = Depends(require_admin),
    bus: EventBus = Depends(get_event_bus),
):
    c = await get_contest_or_404(session, contest_id)
    c.status = payload.status
    await session.commit()
    await session.refresh(c)
    await publish_contest_change(bus, "UPDATE", c.id)
    return await hydrate_public(session, c, user.id)


@router.post("/contests/{contest_id}/extend", response_model=ContestPublic)
async def extend_contest(
    contest_id: UUID,
    payload: ExtendRequest,
    session: AsyncSession = Depends(get_session),
    user: CurrentUser = Depends(require_admin),
    bus: EventBus = Depends(get_event_bus),
):
    c = await get_contest_or_404(session, contest_id)
    c.end_date = extend_end(c.end_date, payload.days)
    await session.commit()
    await session.refresh(c)
    await publish_contest_change(bus, "UPDATE", c.id)
    return await hydrate_public(session, c, user.id)


@router.post("/sync-metrics", status_code=202)
async def enqueue_metrics_sync(user: CurrentUser = Depends(require_admin), queue: Queue = Depends(get_queue)):
    job = queue.enqueue(sync_tiktok_metrics, job_timeout=600)
    return {"job_id": job.id, "status": "queued"}
