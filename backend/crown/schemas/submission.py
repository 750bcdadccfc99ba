from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Literal
from uuid import UUID
from datetime import datetime

from crown.schemas.tiktok import TikTokVideo


class SubmissionPublic(BaseModel):
    id: UUID
    contest_id: UUID
    created_by: UUID
    url: str
    title: str | None = None
    thumbnail: str | None = None
    username: str | None = None
    views: int = 0
    likes: int = 0
    comments: int = 0
    shares: int = 0
    tiktok_video_id: str | None = None
    embed_code: str | None = None
    video_type: Literal["tiktok", "upload"] = "tiktok"
    submission_date: datetime
    duration: int | None = None


class VideoOption(BaseModel):
    video: TikTokVideo
    eligible: bool
    age_seconds: int


class JoinPreview(BaseModel):
    contest_id: UUID
    step: Literal["select-video"] = "select-video"
    videos: list[VideoOption] = Field(default_factory=list)
    resuming: bool = False  # participant row exists without a submission


class SelectVideoRequest(BaseModel):
    video_id: str = Field(min_length=1)


class SubmitVideoRequest(BaseModel):
    video_id: str = Field(min_length=1)
    agreed_guidelines: bool = True


class JoinResult(BaseModel):
    participant_id: UUID
    submission: SubmissionPublic
