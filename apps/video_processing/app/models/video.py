"""SQLAlchemy model for videos."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ..db.session import Base


class VideoModel(Base):
    """One row per uploaded raw video, keyed by the filename stem."""

    __tablename__ = "videos"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    uid: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    filename: Mapped[str | None] = mapped_column(String(512), nullable=True)
    # NULL until the first processing attempt claims the video.
    status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    title: Mapped[str | None] = mapped_column(String(512), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=datetime.utcnow, nullable=False, index=True
    )
