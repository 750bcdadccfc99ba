from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, Numeric, Boolean, DateTime, Text, ForeignKey, UniqueConstraint, Uuid, func
from crown.db import Base, JSONType

class Contest(Base):
    __tablename__ = "contests"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text())
    cover_image: Mapped[str | None] = mapped_column(Text())
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    submission_deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="draft")  # draft|active|ended|hidden|archived
    music_category: Mapped[str | None] = mapped_column(String(80))
    prize_per_winner: Mapped[float | None] = mapped_column(Numeric(12, 2))
    total_prize: Mapped[float | None] = mapped_column(Numeric(12, 2))
    num_winners: Mapped[int | None] = mapped_column(Integer)
    prize_titles: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    guidelines: Mapped[str | None] = mapped_column(Text())
    rules: Mapped[str | None] = mapped_column(Text())
    hashtags: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    max_participants: Mapped[int | None] = mapped_column(Integer)
    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("profiles.id", ondelete="SET NULL"), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

class ContestParticipant(Base):
    __tablename__ = "contest_participants"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    contest_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("contests.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), index=True, nullable=False)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("contest_id", "user_id", name="uq_contest_participants_contest_user"),
    )
