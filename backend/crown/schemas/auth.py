from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Literal
from uuid import UUID
from datetime import datetime

Role = Literal["user", "admin", "organizer"]

class ProfilePublic(BaseModel):
    id: UUID
    email: str | None = None
    full_name: str | None = None
    role: Role = "user"
    created_at: datetime | None = None
    updated_at: datetime | None = None

class SessionInfo(BaseModel):
    user_id: UUID
    email: str | None = None
    role: Role
    profile: ProfilePublic | None = None
    login_time: datetime | None = None
    expires_at: datetime | None = None
    sliding: bool = False

class RedirectRequest(BaseModel):
    url: str = Field(min_length=1, max_length=2048)
    params: str | None = Field(default=None, max_length=2048)

class RedirectTarget(BaseModel):
    path: str

class AuthEvent(BaseModel):
    event: Literal["SIGNED_IN", "TOKEN_REFRESHED"] = "SIGNED_IN"
