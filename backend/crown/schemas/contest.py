from __future__ import annotations
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Literal
from uuid import UUID
from datetime import datetime

ContestStatus = Literal["draft", "active", "ended", "hidden", "archived"]
ComputedStatus = Literal["draft", "active", "ended", "hidden", "archived"]

def _normalize_status(v):
    # "completed" is the older spelling of "ended"
    return "ended" if v == "completed" else v

class ContestBase(BaseModel):
    name: str = Field(min_length=3, max_length=200)
    description: str | None = None
    start_date: datetime
    end_date: datetime
    submission_deadline: datetime | None = None
    music_category: str | None = Field(default=None, max_length=80)
    prize_per_winner: float | None = Field(default=None, ge=0)
    total_prize: float | None = Field(default=None, ge=0)
    num_winners: int | None = Field(default=None, ge=1)
    prize_titles: list[str] = Field(default_factory=list)
    guidelines: str | None = None
    rules: str | None = None
    hashtags: list[str] = Field(default_factory=list)
    max_participants: int | None = Field(default=None, ge=1)

    @field_validator("hashtags")
    @classmethod
    def strip_hashes(cls, v: list[str]):
        return [h.strip().lstrip("#") for h in v if h and h.strip().lstrip("#")]

class ContestCreate(ContestBase):
    status: ContestStatus = "draft"

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v):
        return _normalize_status(v)

    @model_validator(mode="after")
    def dates_in_order(self):
        if self.end_date <= self.start_date:
            raise ValueError("End date must be after start date")
        return self

class ContestUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=3, max_length=200)
    description: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    submission_deadline: datetime | None = None
    music_category: str | None = None
    prize_per_winner: float | None = Field(default=None, ge=0)
    total_prize: float | None = Field(default=None, ge=0)
    num_winners: int | None = Field(default=None, ge=1)
    prize_titles: list[str] | None = None
    guidelines: str | None = None
    rules: str | None = None
    hashtags: list[str] | None = None
    max_participants: int | None = Field(default=None, ge=1)

class StatusChange(BaseModel):
    status: ContestStatus

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v):
        return _normalize_status(v)

class ExtendRequest(BaseModel):
    days: int = Field(ge=1, le=365)

class TimeLeft(BaseModel):
    days: int
    hours: int
    minutes: int
    seconds: int
    label: str

class ContestPublic(BaseModel):
    id: UUID
    name: str
    description: str | None
    cover_image: str | None
    start_date: datetime
    end_date: datetime
    submission_deadline: datetime | None
    status: ContestStatus
    computed_status: ComputedStatus
    music_category: str | None
    prize_per_winner: float | None
    total_prize: float | None
    num_winners: int | None
    prize_titles: list[str]
    guidelines: str | None
    rules: str | None
    hashtags: list[str]
    max_participants: int | None
    created_by: UUID | None
    created_at: datetime
    participant_count: int = 0
    is_participant: bool = False
    time_remaining: TimeLeft | None = None
    time_until_start: TimeLeft | None = None

class ParticipantPublic(BaseModel):
    id: UUID
    contest_id: UUID
    user_id: UUID
    joined_at: datetime
    is_active: bool
