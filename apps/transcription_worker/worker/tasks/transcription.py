"""Celery task that runs queued speech-to-text jobs."""

from __future__ import annotations

import asyncio

import structlog

from apps.video_processing.app.db.session import dispose_engine, get_sessionmaker
from apps.video_processing.app.domain.messages import (
    MessageDecodeError,
    TranscriptionJobMessage,
    decode_transcription_job,
)
from apps.video_processing.app.repositories.transcripts import SqlAlchemyTranscriptsRepository
from apps.video_processing.app.services.storage import MinioStorageService, build_storage_service
from apps.video_processing.app.services.transcription import (
    SpeechTranscriptionClient,
    TranscriptionFailedError,
    TranscriptionTimeoutError,
    build_transcription_client,
)
from apps.video_processing.app.services.transcription_jobs import TranscriptionJobRunner

from ..start import celery_app

logger = structlog.get_logger(__name__)

RETRY_DELAY_SECONDS = 60
MAX_RETRIES = 3

_storage: MinioStorageService | None = None
_client: SpeechTranscriptionClient | None = None


def _get_client() -> SpeechTranscriptionClient:
    global _storage, _client
    if _client is None:
        if _storage is None:
            _storage = build_storage_service()
        _client = build_transcription_client(_storage)
    return _client


@celery_app.task(name="transcription.process", bind=True, max_retries=MAX_RETRIES)
def transcription_process(self, *, payload: dict) -> dict:
    """Celery entrypoint that bridges into the async runner."""

    try:
        job = decode_transcription_job(payload)
    except MessageDecodeError as exc:
        # Redelivering a malformed job cannot succeed.
        logger.error("worker.transcription.invalid_payload", error=str(exc))
        return {"status": "rejected", "error": str(exc)}

    try:
        return asyncio.run(_transcription_process(job))
    except (TranscriptionTimeoutError, TranscriptionFailedError) as exc:
        # Already recorded as failed; a timeout is not retried and a failed
        # remote operation would only be resubmitted.
        logger.error(
            "worker.transcription.failed",
            video_id=job.video_id,
            transcript_id=job.transcript_id,
            error=str(exc),
        )
        return {
            "status": "failed",
            "video_id": job.video_id,
            "transcript_id": job.transcript_id,
            "error": str(exc),
        }
    except Exception as exc:
        logger.warning(
            "worker.transcription.retry",
            video_id=job.video_id,
            transcript_id=job.transcript_id,
            attempt=self.request.retries + 1,
            error=str(exc),
        )
        raise self.retry(exc=exc, countdown=RETRY_DELAY_SECONDS)


async def _transcription_process(job: TranscriptionJobMessage) -> dict:
    logger.info(
        "worker.transcription.start",
        video_id=job.video_id,
        transcript_id=job.transcript_id,
        operation_name=job.operation_name,
    )
    try:
        async with get_sessionmaker()() as session:
            runner = TranscriptionJobRunner(
                transcripts=SqlAlchemyTranscriptsRepository(session),
                client=_get_client(),
            )
            outcome = await runner.handle(job)
    finally:
        # Each task runs on a fresh event loop; pooled connections must not outlive it.
        await dispose_engine()
    logger.info(
        "worker.transcription.finished",
        video_id=job.video_id,
        transcript_id=job.transcript_id,
        outcome=outcome.value,
    )
    return {
        "status": outcome.value,
        "video_id": job.video_id,
        "transcript_id": job.transcript_id,
    }
