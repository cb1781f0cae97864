from __future__ import annotations

from typing import AsyncGenerator

import structlog
from fastapi import Depends, HTTPException, status
from google.auth.exceptions import DefaultCredentialsError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import Settings, get_settings
from ..db import get_sessionmaker
from ..repositories.transcripts import (
    InMemoryTranscriptsRepository,
    SqlAlchemyTranscriptsRepository,
    TranscriptsRepository,
)
from ..repositories.videos import (
    InMemoryVideosRepository,
    SqlAlchemyVideosRepository,
    VideosRepository,
)
from ..services.health import HealthService
from ..services.media import FfmpegTranscoder, LocalWorkspace
from ..services.storage import (
    MinioStorageService,
    StorageConfigurationError,
    build_storage_service,
)
from ..services.transcription import SpeechTranscriptionClient, build_transcription_client
from ..services.transcription_jobs import TranscriptionJobRunner
from ..services.transcription_queue import (
    TaskQueueConfigurationError,
    TranscriptionQueuePublisher,
    build_transcription_publisher,
)
from ..services.video_processor import VideoProcessor

logger = structlog.get_logger(__name__)

# Without DATABASE_URL the service keeps its ledger in process memory.
_videos_fallback = InMemoryVideosRepository()
_transcripts_fallback = InMemoryTranscriptsRepository()
_storage_service: MinioStorageService | None = None
_publisher: TranscriptionQueuePublisher | None = None
_transcription_client: SpeechTranscriptionClient | None = None
_transcoder = FfmpegTranscoder()


def get_app_settings() -> Settings:
    return get_settings()


async def get_optional_session(
    settings: Settings = Depends(get_app_settings),
) -> AsyncGenerator[AsyncSession | None, None]:
    if not settings.database_url:
        yield None
        return
    async with get_sessionmaker()() as session:
        yield session


async def get_videos_repository(
    session: AsyncSession | None = Depends(get_optional_session),
) -> VideosRepository:
    if session is None:
        return _videos_fallback
    return SqlAlchemyVideosRepository(session)


async def get_transcripts_repository(
    session: AsyncSession | None = Depends(get_optional_session),
) -> TranscriptsRepository:
    if session is None:
        return _transcripts_fallback
    return SqlAlchemyTranscriptsRepository(session)


def _build_storage() -> MinioStorageService:
    global _storage_service
    if _storage_service is None:
        _storage_service = build_storage_service()
    return _storage_service


async def get_storage_service() -> MinioStorageService:
    try:
        return _build_storage()
    except StorageConfigurationError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc


async def get_optional_storage_service() -> MinioStorageService | None:
    try:
        return _build_storage()
    except StorageConfigurationError as exc:
        logger.warning("dependencies.storage.unavailable", error=str(exc))
        return None


async def get_transcription_publisher(
    settings: Settings = Depends(get_app_settings),
) -> TranscriptionQueuePublisher | None:
    global _publisher
    if not settings.enable_transcription:
        return None
    if _publisher is None:
        try:
            _publisher = build_transcription_publisher(settings)
        except TaskQueueConfigurationError as exc:
            logger.warning("dependencies.publisher.unavailable", error=str(exc))
            return None
    return _publisher


def get_workspace(settings: Settings = Depends(get_app_settings)) -> LocalWorkspace:
    return LocalWorkspace.from_settings(settings)


async def get_video_processor(
    settings: Settings = Depends(get_app_settings),
    storage: MinioStorageService = Depends(get_storage_service),
    workspace: LocalWorkspace = Depends(get_workspace),
    videos: VideosRepository = Depends(get_videos_repository),
    transcripts: TranscriptsRepository = Depends(get_transcripts_repository),
    publisher: TranscriptionQueuePublisher | None = Depends(get_transcription_publisher),
) -> VideoProcessor:
    return VideoProcessor.from_settings(
        settings,
        storage=storage,
        transcoder=_transcoder,
        workspace=workspace,
        videos=videos,
        transcripts=transcripts,
        publisher=publisher,
    )


async def get_transcription_client(
    settings: Settings = Depends(get_app_settings),
    storage: MinioStorageService = Depends(get_storage_service),
) -> SpeechTranscriptionClient:
    global _transcription_client
    if _transcription_client is None:
        try:
            _transcription_client = build_transcription_client(storage, settings)
        except DefaultCredentialsError as exc:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Speech-to-Text credentials are not configured",
            ) from exc
    return _transcription_client


async def get_transcription_runner(
    transcripts: TranscriptsRepository = Depends(get_transcripts_repository),
    client: SpeechTranscriptionClient = Depends(get_transcription_client),
) -> TranscriptionJobRunner:
    return TranscriptionJobRunner(transcripts=transcripts, client=client)


async def get_health_service(
    settings: Settings = Depends(get_app_settings),
    videos: VideosRepository = Depends(get_videos_repository),
    storage: MinioStorageService | None = Depends(get_optional_storage_service),
) -> HealthService:
    return HealthService(settings=settings, videos=videos, storage=storage)
