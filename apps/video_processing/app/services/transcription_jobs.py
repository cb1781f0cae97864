"""Consumer-side handling of a single transcription job."""

from __future__ import annotations

from enum import Enum

import structlog

from ..domain.messages import TranscriptionJobMessage
from ..domain.transcripts import TranscriptStatus, TranscriptUpdate
from ..repositories.transcripts import TranscriptsRepository
from ..telemetry import record_transcription_job
from .transcription import SpeechTranscriptionClient, TranscriptionFailedError

logger = structlog.get_logger(__name__)

TRANSCRIPT_NOT_FOUND_MESSAGE = "Transcript record not found"


class TranscriptionJobOutcome(str, Enum):
    COMPLETED = "completed"
    ALREADY_DONE = "already_done"
    TRANSCRIPT_MISSING = "transcript_missing"


class TranscriptionJobRunner:
    """Drive one job to ``done``, resuming a previously submitted operation."""

    def __init__(
        self,
        *,
        transcripts: TranscriptsRepository,
        client: SpeechTranscriptionClient,
    ) -> None:
        self._transcripts = transcripts
        self._client = client

    async def handle(self, job: TranscriptionJobMessage) -> TranscriptionJobOutcome:
        log = logger.bind(
            video_id=job.video_id,
            transcript_id=job.transcript_id,
            component="transcription_jobs",
        )
        transcript = await self._transcripts.get(job.video_id, job.transcript_id)
        if transcript is None:
            log.warning("transcription_jobs.transcript_missing")
            await self._transcripts.update_status(
                job.video_id,
                job.transcript_id,
                TranscriptStatus.FAILED,
                error=TRANSCRIPT_NOT_FOUND_MESSAGE,
            )
            record_transcription_job(TranscriptionJobOutcome.TRANSCRIPT_MISSING.value)
            return TranscriptionJobOutcome.TRANSCRIPT_MISSING

        if transcript.status is TranscriptStatus.DONE:
            log.info("transcription_jobs.already_done", gcs_path=transcript.gcs_path)
            record_transcription_job(TranscriptionJobOutcome.ALREADY_DONE.value)
            return TranscriptionJobOutcome.ALREADY_DONE

        try:
            operation_name = job.operation_name or transcript.operation_name
            if not operation_name:
                operation_name = await self._client.start(job.audio_gcs_uri, job.video_id)
                await self._transcripts.update(
                    job.video_id,
                    job.transcript_id,
                    TranscriptUpdate(operation_name=operation_name),
                )
            else:
                log.info("transcription_jobs.resuming", operation_name=operation_name)

            await self._transcripts.update_status(
                job.video_id,
                job.transcript_id,
                TranscriptStatus.RUNNING,
                operation_name=operation_name,
            )
            payload = await self._client.poll(operation_name, job.video_id)
            gcs_path = await self._client.upload_payload(job.video_id, payload)
            await self._transcripts.update_status(
                job.video_id,
                job.transcript_id,
                TranscriptStatus.DONE,
                gcs_path=gcs_path,
                segment_count=len(payload.segments),
                duration_seconds=payload.duration_seconds,
                error=None,
            )
        except Exception as exc:
            log.error("transcription_jobs.failed", error=str(exc))
            await self._record_failure(job, exc)
            record_transcription_job("failed")
            raise

        log.info(
            "transcription_jobs.completed",
            gcs_path=gcs_path,
            segments=len(payload.segments),
        )
        record_transcription_job(TranscriptionJobOutcome.COMPLETED.value)
        return TranscriptionJobOutcome.COMPLETED

    async def _record_failure(self, job: TranscriptionJobMessage, exc: Exception) -> None:
        overrides: dict[str, object] = {"error": str(exc)}
        # A failed remote operation cannot be resumed; a redelivery must resubmit.
        if isinstance(exc, TranscriptionFailedError):
            overrides["operation_name"] = None
        try:
            await self._transcripts.update_status(
                job.video_id, job.transcript_id, TranscriptStatus.FAILED, **overrides
            )
        except Exception as record_exc:
            logger.error(
                "transcription_jobs.record_failure.failed",
                video_id=job.video_id,
                transcript_id=job.transcript_id,
                error=str(record_exc),
            )
