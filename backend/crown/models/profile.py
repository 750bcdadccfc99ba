from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, DateTime, Uuid, func
from crown.db import Base

ROLES = ("user", "admin", "organizer")
STAFF_ROLES = ("admin", "organizer")

class Profile(Base):
    """One row per provider auth identity; id is the auth user id."""
    __tablename__ = "profiles"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    email: Mapped[str | None] = mapped_column(String(320))
    full_name: Mapped[str | None] = mapped_column(String(200))
    role: Mapped[str | None] = mapped_column(String(16), default="user")  # user|admin|organizer
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def effective_role(self) -> str:
        return self.role if self.role in ROLES else "user"
