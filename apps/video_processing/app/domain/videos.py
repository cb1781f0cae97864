from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from .common import CamelModel, ensure_transition

PROCESSED_PREFIX = "processed-"
AUDIO_EXTENSION = ".flac"


class VideoStatus(str, Enum):
    """Lifecycle states for a raw upload moving through the pipeline."""

    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"


# Re-writing the current status is accepted so redelivered messages stay harmless.
VIDEO_TRANSITIONS: dict[VideoStatus | None, frozenset[VideoStatus]] = {
    None: frozenset({VideoStatus.PROCESSING, VideoStatus.PROCESSED, VideoStatus.FAILED}),
    VideoStatus.PROCESSING: frozenset(
        {VideoStatus.PROCESSING, VideoStatus.PROCESSED, VideoStatus.FAILED}
    ),
    VideoStatus.PROCESSED: frozenset({VideoStatus.PROCESSED}),
    VideoStatus.FAILED: frozenset({VideoStatus.FAILED}),
}


def validate_video_transition(
    current: VideoStatus | None, requested: VideoStatus
) -> None:
    ensure_transition("video", VIDEO_TRANSITIONS, current, requested)


class Video(CamelModel):
    id: str
    uid: Optional[str] = None
    filename: Optional[str] = None
    status: Optional[VideoStatus] = None
    title: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class VideoUpdate(CamelModel):
    """Partial write; only explicitly provided fields are persisted."""

    uid: Optional[str] = None
    filename: Optional[str] = None
    status: Optional[VideoStatus] = None
    title: Optional[str] = None
    description: Optional[str] = None

    def changes(self) -> dict[str, object]:
        return self.model_dump(exclude_unset=True)


class VideoListResponse(CamelModel):
    data: list[Video]
    count: int


def video_id_from_filename(filename: str) -> str:
    """``<uid>-<millis>.mp4`` -> ``<uid>-<millis>``."""

    return filename.split(".", 1)[0]


def owner_id_from_video_id(video_id: str) -> str:
    return video_id.split("-", 1)[0]


def processed_filename(raw_filename: str) -> str:
    return f"{PROCESSED_PREFIX}{raw_filename}"


def audio_filename(video_id: str) -> str:
    return f"{video_id}{AUDIO_EXTENSION}"
