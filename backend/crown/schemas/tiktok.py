from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field
from typing import Literal
from datetime import datetime

class TikTokAccount(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    tiktok_user_id: str | None = None
    username: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None
    is_primary: bool = False
    follower_count: int | None = None
    following_count: int | None = None
    likes_count: int | None = None
    video_count: int | None = None
    is_verified: bool = False
    created_at: datetime | None = None

class TikTokVideo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    title: str | None = None
    cover_image_url: str | None = None
    share_url: str | None = None
    video_description: str | None = None
    duration: int | None = None
    create_time: int = 0  # epoch seconds, platform reported
    view_count: int = 0
    like_count: int = 0
    comment_count: int = 0
    share_count: int = 0
    height: int | None = None
    width: int | None = None

class ConnectionState(BaseModel):
    is_connected: bool = False
    tiktok_accounts: list[TikTokAccount] = Field(default_factory=list)
    primary_account: TikTokAccount | None = None
    is_loading: bool = False
    is_reconnecting: bool = False
    phase: Literal["unknown", "loading", "connected", "disconnected"] = "unknown"

class SetPrimaryRequest(BaseModel):
    account_id: str = Field(min_length=1)

class ConnectRequest(BaseModel):
    force_account_selection: bool = False
    emphasize_video_permissions: bool = True

class OAuthFlowPublic(BaseModel):
    flow_id: str
    url: str | None = None
    # a forced account switch opens the provider logout page before the auth page
    kind: Literal["auth", "logout"] = "auth"
    outcome: Literal["pending", "completed", "timed_out", "blocked"] = "pending"
