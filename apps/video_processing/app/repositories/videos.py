from __future__ import annotations

from datetime import datetime
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.videos import Video, VideoStatus, VideoUpdate, validate_video_transition
from ..models.video import VideoModel


class VideosRepository(Protocol):
    async def get(self, video_id: str) -> Video | None: ...

    async def set(self, video_id: str, update: VideoUpdate) -> Video: ...

    async def is_new(self, video_id: str) -> bool: ...

    async def list_recent(self, limit: int = 20) -> list[Video]: ...

    async def ping(self) -> None: ...


def _check_status(current: VideoStatus | None, changes: dict[str, object]) -> None:
    requested = changes.get("status")
    if requested is not None:
        validate_video_transition(current, VideoStatus(requested))


class InMemoryVideosRepository:
    """Ephemeral video ledger used by tests and local runs."""

    def __init__(self) -> None:
        self._videos: dict[str, Video] = {}

    async def get(self, video_id: str) -> Video | None:
        return self._videos.get(video_id)

    async def set(self, video_id: str, update: VideoUpdate) -> Video:
        changes = update.changes()
        now = datetime.utcnow()
        existing = self._videos.get(video_id)
        _check_status(existing.status if existing else None, changes)
        if existing is None:
            video = Video(id=video_id, created_at=now, updated_at=now, **changes)
        else:
            video = existing.model_copy(update={**changes, "updated_at": now})
        self._videos[video_id] = video
        return video

    async def is_new(self, video_id: str) -> bool:
        video = self._videos.get(video_id)
        return video is None or video.status is None

    async def list_recent(self, limit: int = 20) -> list[Video]:
        ordered = sorted(self._videos.values(), key=lambda video: video.updated_at, reverse=True)
        return ordered[:limit]

    async def ping(self) -> None:
        return None


class SqlAlchemyVideosRepository:
    """Video repository backed by SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _load(self, video_id: str) -> VideoModel | None:
        result = await self._session.execute(
            select(VideoModel).where(VideoModel.id == video_id)
        )
        return result.scalar_one_or_none()

    async def get(self, video_id: str) -> Video | None:
        model = await self._load(video_id)
        if not model:
            return None
        return Video.model_validate(model)

    async def set(self, video_id: str, update: VideoUpdate) -> Video:
        changes = update.changes()
        now = datetime.utcnow()
        model = await self._load(video_id)
        current = VideoStatus(model.status) if model and model.status else None
        _check_status(current, changes)
        if "status" in changes and changes["status"] is not None:
            changes["status"] = VideoStatus(changes["status"]).value

        if model is None:
            model = VideoModel(id=video_id, created_at=now, updated_at=now, **changes)
            self._session.add(model)
        else:
            for field, value in changes.items():
                setattr(model, field, value)
            model.updated_at = now
        try:
            await self._session.commit()
        except Exception:
            # Leave the shared session usable for the retry and failure writes.
            await self._session.rollback()
            raise
        await self._session.refresh(model)
        return Video.model_validate(model)

    async def is_new(self, video_id: str) -> bool:
        result = await self._session.execute(
            select(VideoModel.status).where(VideoModel.id == video_id)
        )
        return result.scalar_one_or_none() is None

    async def list_recent(self, limit: int = 20) -> list[Video]:
        result = await self._session.execute(
            select(VideoModel).order_by(VideoModel.updated_at.desc()).limit(limit)
        )
        return [Video.model_validate(model) for model in result.scalars().all()]

    async def ping(self) -> None:
        await self._session.execute(select(VideoModel.id).limit(1))
