from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.transcripts import (
    TERMINAL_TRANSCRIPT_STATUSES,
    Transcript,
    TranscriptCreate,
    TranscriptStatus,
    TranscriptUpdate,
    validate_transcript_transition,
)
from ..models.transcript import TranscriptModel


class TranscriptsRepository(Protocol):
    async def get(self, video_id: str, transcript_id: str) -> Transcript | None: ...

    async def create(
        self, video_id: str, transcript_id: str, payload: TranscriptCreate
    ) -> Transcript: ...

    async def update(
        self, video_id: str, transcript_id: str, update: TranscriptUpdate
    ) -> Transcript: ...

    async def update_status(
        self,
        video_id: str,
        transcript_id: str,
        status: TranscriptStatus,
        **overrides: Any,
    ) -> Transcript: ...


def _prepare_changes(
    current: TranscriptStatus | None, changes: dict[str, Any]
) -> dict[str, Any]:
    requested = changes.get("status")
    if requested is None:
        return changes
    requested = TranscriptStatus(requested)
    validate_transcript_transition(current, requested)
    if requested in TERMINAL_TRANSCRIPT_STATUSES and "completed_at" not in changes:
        changes["completed_at"] = datetime.utcnow()
    changes["status"] = requested
    return changes


def _status_update(status: TranscriptStatus, overrides: dict[str, Any]) -> TranscriptUpdate:
    return TranscriptUpdate.model_validate({**overrides, "status": status})


class InMemoryTranscriptsRepository:
    """Ephemeral transcript ledger keyed by ``(video_id, transcript_id)``."""

    def __init__(self) -> None:
        self._transcripts: dict[tuple[str, str], Transcript] = {}

    async def get(self, video_id: str, transcript_id: str) -> Transcript | None:
        return self._transcripts.get((video_id, transcript_id))

    def _merge(self, video_id: str, transcript_id: str, changes: dict[str, Any]) -> Transcript:
        key = (video_id, transcript_id)
        existing = self._transcripts.get(key)
        changes = _prepare_changes(existing.status if existing else None, changes)
        if existing is None:
            transcript = Transcript(video_id=video_id, transcript_id=transcript_id, **changes)
        else:
            transcript = existing.model_copy(update=changes)
        self._transcripts[key] = transcript
        return transcript

    async def create(
        self, video_id: str, transcript_id: str, payload: TranscriptCreate
    ) -> Transcript:
        changes = payload.model_dump()
        changes["created_at"] = changes.get("created_at") or datetime.utcnow()
        return self._merge(video_id, transcript_id, changes)

    async def update(
        self, video_id: str, transcript_id: str, update: TranscriptUpdate
    ) -> Transcript:
        return self._merge(video_id, transcript_id, update.changes())

    async def update_status(
        self,
        video_id: str,
        transcript_id: str,
        status: TranscriptStatus,
        **overrides: Any,
    ) -> Transcript:
        return await self.update(video_id, transcript_id, _status_update(status, overrides))


class SqlAlchemyTranscriptsRepository:
    """Transcript repository backed by SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _load(self, video_id: str, transcript_id: str) -> TranscriptModel | None:
        result = await self._session.execute(
            select(TranscriptModel).where(
                TranscriptModel.video_id == video_id,
                TranscriptModel.transcript_id == transcript_id,
            )
        )
        return result.scalar_one_or_none()

    async def get(self, video_id: str, transcript_id: str) -> Transcript | None:
        model = await self._load(video_id, transcript_id)
        if not model:
            return None
        return Transcript.model_validate(model)

    async def _merge(
        self, video_id: str, transcript_id: str, changes: dict[str, Any]
    ) -> Transcript:
        model = await self._load(video_id, transcript_id)
        current = TranscriptStatus(model.status) if model and model.status else None
        changes = _prepare_changes(current, changes)
        if changes.get("status") is not None:
            changes["status"] = changes["status"].value

        if model is None:
            model = TranscriptModel(video_id=video_id, transcript_id=transcript_id, **changes)
            self._session.add(model)
        else:
            for field, value in changes.items():
                setattr(model, field, value)
        try:
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise
        await self._session.refresh(model)
        return Transcript.model_validate(model)

    async def create(
        self, video_id: str, transcript_id: str, payload: TranscriptCreate
    ) -> Transcript:
        changes = payload.model_dump()
        changes["created_at"] = changes.get("created_at") or datetime.utcnow()
        return await self._merge(video_id, transcript_id, changes)

    async def update(
        self, video_id: str, transcript_id: str, update: TranscriptUpdate
    ) -> Transcript:
        return await self._merge(video_id, transcript_id, update.changes())

    async def update_status(
        self,
        video_id: str,
        transcript_id: str,
        status: TranscriptStatus,
        **overrides: Any,
    ) -> Transcript:
        return await self.update(video_id, transcript_id, _status_update(status, overrides))
