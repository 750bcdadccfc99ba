from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Boolean, DateTime, Text, ForeignKey, Uuid, func
from crown.db import Base

class VideoLink(Base):
    """Homepage media library item."""
    __tablename__ = "video_links"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    username: Mapped[str | None] = mapped_column(String(120))
    url: Mapped[str] = mapped_column(Text(), nullable=False)
    thumbnail: Mapped[str | None] = mapped_column(Text())
    video_type: Mapped[str] = mapped_column(String(16), nullable=False, default="upload")  # tiktok|upload
    storage_key: Mapped[str | None] = mapped_column(Text())
    thumbnail_key: Mapped[str | None] = mapped_column(Text())
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("profiles.id", ondelete="SET NULL"), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
