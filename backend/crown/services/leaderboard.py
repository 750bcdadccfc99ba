"""Leaderboard reads and periodic refresh."""
from __future__ import annotations
from typing import Awaitable, Callable
import httpx
import structlog

from crown.config import settings
from crown.schemas.leaderboard import LeaderboardEntry
from crown.services.backend_client import BackendClient
from crown.services.scheduler import Scheduler

log = structlog.get_logger(__name__)


async def fetch_leaderboard(backend: BackendClient, contest_id: str, limit: int | None = None) -> list[LeaderboardEntry]:
    """Current ranking, or an empty list when the backend can't answer in time."""
    try:
        return await backend.leaderboard(contest_id, limit=limit)
    except (httpx.HTTPError, ValueError) as e:
        log.warning("leaderboard.fetch_failed", contest_id=contest_id, error=str(e) or type(e).__name__)
        return []


class LeaderboardPoller:
    def __init__(
        self,
        backend: BackendClient,
        contest_id: str,
        *,
        limit: int | None = None,
        interval: float | None = None,
        on_update: Callable[[list[LeaderboardEntry]], Awaitable[None] | None] | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        self._backend = backend
        self.contest_id = contest_id
        self.limit = limit
        self.interval = interval if interval is not None else settings.leaderboard_poll_seconds
        self._on_update = on_update
        # a shared scheduler (e.g. a websocket's) owns the timer under its own key
        self.scheduler = scheduler or Scheduler(owner=f"leaderboard:{contest_id}")
        self.key = f"leaderboard:{contest_id}"
        self.entries: list[LeaderboardEntry] = []

    async def refresh(self) -> list[LeaderboardEntry]:
        self.entries = await fetch_leaderboard(self._backend, self.contest_id, self.limit)
        if self._on_update:
            result = self._on_update(self.entries)
            if result is not None:
                await result
        return self.entries

    def start(self) -> None:
        self.scheduler.every(self.key, self.interval, self.refresh, run_immediately=True)

    @property
    def running(self) -> bool:
        return self.scheduler.is_active(self.key)

    async def stop(self) -> None:
        self.scheduler.cancel(self.key)
