"""SQLAlchemy model for transcripts."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ..db.session import Base


class TranscriptModel(Base):
    """Speech-to-text job state for one transcript slot of a video."""

    __tablename__ = "transcripts"

    video_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    transcript_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    operation_name: Mapped[str | None] = mapped_column(String(512), nullable=True)
    gcs_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    segment_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    duration_seconds: Mapped[float | None] = mapped_column(Float, nullable=True)
    language: Mapped[str | None] = mapped_column(String(32), nullable=True)
    model: Mapped[str | None] = mapped_column(String(64), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    audio_gcs_uri: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    user_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=False), nullable=True
    )
