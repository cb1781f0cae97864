from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from .common import CamelModel, ensure_transition

DEFAULT_TRANSCRIPT_ID = "primary"


class TranscriptStatus(str, Enum):
    """Lifecycle states for a speech-to-text job attached to a video."""

    PENDING = "pending"
    RUNNING = "running"
    FAILED = "failed"
    DONE = "done"


TERMINAL_TRANSCRIPT_STATUSES = frozenset({TranscriptStatus.DONE, TranscriptStatus.FAILED})

# DONE maps to nothing: a finished transcript is immutable.
TRANSCRIPT_TRANSITIONS: dict[TranscriptStatus | None, frozenset[TranscriptStatus]] = {
    None: frozenset({TranscriptStatus.PENDING, TranscriptStatus.FAILED}),
    TranscriptStatus.PENDING: frozenset(
        {TranscriptStatus.PENDING, TranscriptStatus.RUNNING, TranscriptStatus.FAILED}
    ),
    TranscriptStatus.RUNNING: frozenset(
        {TranscriptStatus.RUNNING, TranscriptStatus.DONE, TranscriptStatus.FAILED}
    ),
    TranscriptStatus.FAILED: frozenset({TranscriptStatus.RUNNING, TranscriptStatus.FAILED}),
    TranscriptStatus.DONE: frozenset(),
}


def validate_transcript_transition(
    current: TranscriptStatus | None, requested: TranscriptStatus
) -> None:
    ensure_transition("transcript", TRANSCRIPT_TRANSITIONS, current, requested)


class Transcript(CamelModel):
    video_id: str
    transcript_id: str = DEFAULT_TRANSCRIPT_ID
    status: Optional[TranscriptStatus] = None
    operation_name: Optional[str] = None
    gcs_path: Optional[str] = None
    segment_count: Optional[int] = Field(default=None, ge=0)
    duration_seconds: Optional[float] = Field(default=None, ge=0)
    language: Optional[str] = None
    model: Optional[str] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    audio_gcs_uri: Optional[str] = None
    user_id: Optional[str] = None


class TranscriptCreate(CamelModel):
    status: TranscriptStatus = TranscriptStatus.PENDING
    language: str
    model: str
    audio_gcs_uri: Optional[str] = None
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None


class TranscriptUpdate(CamelModel):
    """Merge mutation; unset fields are left untouched, explicit ``None`` clears."""

    status: Optional[TranscriptStatus] = None
    operation_name: Optional[str] = None
    gcs_path: Optional[str] = None
    segment_count: Optional[int] = Field(default=None, ge=0)
    duration_seconds: Optional[float] = Field(default=None, ge=0)
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    audio_gcs_uri: Optional[str] = None
    user_id: Optional[str] = None

    def changes(self) -> dict[str, object]:
        return self.model_dump(exclude_unset=True)


class TranscriptSegment(CamelModel):
    text: str
    start_time: float = Field(ge=0)
    end_time: float = Field(ge=0)
    confidence: Optional[float] = None


class TranscriptPayload(CamelModel):
    """The JSON artifact written to the transcripts bucket."""

    video_id: str
    language: str
    model: str
    duration_seconds: float = 0.0
    segments: list[TranscriptSegment] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)
