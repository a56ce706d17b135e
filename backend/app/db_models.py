from datetime import datetime, timezone

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from app.db import Base


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionDB(Base):
    __tablename__ = "sessions"
    __table_args__ = (
        Index("ix_sessions_user_created", "user_id", "created_at"),
    )

    session_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    idea_text: Mapped[str] = mapped_column(Text, nullable=False)
    domain_hint: Mapped[str] = mapped_column(String(64), nullable=False, default="General")
    tone_preference: Mapped[str] = mapped_column(String(64), nullable=False, default="Professional")
    status: Mapped[str] = mapped_column(String(32), index=True, nullable=False, default="created")
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    data_json: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, nullable=False)
