from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, BigInteger, Boolean, DateTime, Text, ForeignKey, UniqueConstraint, Uuid, func
from crown.db import Base


class ContestLink(Base):
    """A contest entry referencing one externally hosted video."""
    __tablename__ = "contest_links"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    contest_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("contests.id", ondelete="CASCADE"), index=True, nullable=False
    )
    created_by: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), index=True, nullable=False
    )

    url: Mapped[str] = mapped_column(Text(), nullable=False)
    title: Mapped[str | None] = mapped_column(Text())
    thumbnail: Mapped[str | None] = mapped_column(Text())
    username: Mapped[str | None] = mapped_column(String(120))

    views: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    likes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    comments: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    shares: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    tiktok_video_id: Mapped[str | None] = mapped_column(String(64), index=True)
    embed_code: Mapped[str | None] = mapped_column(Text())
    video_type: Mapped[str] = mapped_column(String(16), nullable=False, default="tiktok")  # tiktok|upload
    is_contest_submission: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    duration: Mapped[int | None] = mapped_column(Integer)

    last_stats_update: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    submission_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        # one submission per (contest, user); makes a replayed join a no-op
        UniqueConstraint("contest_id", "created_by", name="uq_contest_links_contest_creator"),
    )
