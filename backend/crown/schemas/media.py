from __future__ import annotations
from pydantic import BaseModel
from typing import Literal
from uuid import UUID
from datetime import datetime

class VideoLinkPublic(BaseModel):
    id: UUID
    title: str
    username: str | None = None
    url: str
    thumbnail: str | None = None
    video_type: Literal["tiktok", "upload"] = "upload"
    active: bool
    created_at: datetime

class ToggleActive(BaseModel):
    active: bool
