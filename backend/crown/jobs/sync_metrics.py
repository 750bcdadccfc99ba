from __future__ import annotations
import asyncio
from datetime import datetime, timezone as dt_tz
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from crown.db import SessionLocal
from crown.errors import CrownError
from crown.models.submission import ContestLink
from crown.services.backend_client import BackendClient
from crown.services.tiktok_urls import extract_video_id

log = structlog.get_logger(__name__)


async def sync_all(session: AsyncSession, backend: BackendClient) -> dict:
    """Refresh engagement counts of every active submission; one bad item never stops the run."""
    links = (await session.execute(select(ContestLink).where(ContestLink.active.is_(True)))).scalars().all()
    updated = failed = skipped = 0
    for link in links:
        if not link.url:
            skipped += 1
            continue
        if not link.tiktok_video_id:
            link.tiktok_video_id = extract_video_id(link.url)
        try:
            stats = await backend.scrape_video(link.url)
        except CrownError as e:
            log.warning("sync.scrape_failed", link_id=str(link.id), error=e.message)
            failed += 1
            continue
        if not stats:
            failed += 1
            continue
        link.views, link.likes = stats["views"], stats["likes"]
        link.comments, link.shares = stats["comments"], stats["shares"]
        link.last_stats_update = datetime.now(dt_tz.utc)
        updated += 1
    await session.commit()
    result = {"success": True, "updated": updated, "failed": failed, "skipped": skipped, "total": len(links)}
    log.info("sync.done", **result)
    return result


async def _run(sessionmaker: async_sessionmaker = SessionLocal) -> dict:
    backend = BackendClient()
    try:
        async with sessionmaker() as session:
            return await sync_all(session, backend)
    finally:
        await backend.close()


def sync_tiktok_metrics() -> dict:
    # RQ entry point (sync); run the async coroutine
    return asyncio.run(_run())
