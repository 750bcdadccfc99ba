from __future__ import annotations
from pydantic import BaseModel, ConfigDict
from datetime import datetime

class LeaderboardEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    rank: int
    user_id: str | None = None
    username: str | None = None
    video_id: str | None = None
    views: int = 0
    likes: int = 0
    comments: int = 0
    shares: int = 0
    submission_date: datetime | None = None
