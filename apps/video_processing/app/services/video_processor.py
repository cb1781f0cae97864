"""Raw video to processed video pipeline with bounded retries."""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog

from ..core.config import Settings
from ..domain.messages import TranscriptionJobMessage
from ..domain.outcomes import NonFatalOutcome
from ..domain.transcripts import DEFAULT_TRANSCRIPT_ID, TranscriptCreate, TranscriptStatus
from ..domain.videos import (
    VideoStatus,
    VideoUpdate,
    audio_filename,
    owner_id_from_video_id,
)
from ..repositories.transcripts import TranscriptsRepository
from ..repositories.videos import VideosRepository
from ..telemetry import record_video_job
from .media import FfmpegTranscoder, LocalWorkspace
from .storage import MinioStorageService
from .transcription_queue import TranscriptionQueuePublisher

logger = structlog.get_logger(__name__)


class VideoProcessingError(RuntimeError):
    """Raised when every attempt failed without leaving an error to surface."""


class VideoProcessor:
    """Download, transcode, publish and hand the audio track to transcription."""

    def __init__(
        self,
        *,
        storage: MinioStorageService,
        transcoder: FfmpegTranscoder,
        workspace: LocalWorkspace,
        videos: VideosRepository,
        transcripts: TranscriptsRepository,
        publisher: TranscriptionQueuePublisher | None,
        raw_bucket: str,
        processed_bucket: str,
        audio_bucket: str,
        language: str,
        model: str,
        max_attempts: int = 3,
        enable_transcription: bool = True,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._storage = storage
        self._transcoder = transcoder
        self._workspace = workspace
        self._videos = videos
        self._transcripts = transcripts
        self._publisher = publisher
        self._raw_bucket = raw_bucket
        self._processed_bucket = processed_bucket
        self._audio_bucket = audio_bucket
        self._language = language
        self._model = model
        self._max_attempts = max_attempts
        self._enable_transcription = enable_transcription

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        storage: MinioStorageService,
        transcoder: FfmpegTranscoder,
        workspace: LocalWorkspace,
        videos: VideosRepository,
        transcripts: TranscriptsRepository,
        publisher: TranscriptionQueuePublisher | None,
    ) -> "VideoProcessor":
        return cls(
            storage=storage,
            transcoder=transcoder,
            workspace=workspace,
            videos=videos,
            transcripts=transcripts,
            publisher=publisher,
            raw_bucket=settings.raw_video_bucket_name,
            processed_bucket=settings.processed_video_bucket_name,
            audio_bucket=settings.audio_work_bucket_name,
            language=settings.speech_to_text_language,
            model=settings.speech_to_text_model,
            max_attempts=settings.processing_max_attempts,
            enable_transcription=settings.enable_transcription,
        )

    async def process(self, input_file: str, output_file: str, video_id: str) -> None:
        """Run the pipeline, retrying step failures up to ``max_attempts`` times.

        The video ends up ``processed`` or, once every attempt failed, ``failed``
        with the last error re-raised. Transcription problems never fail the job.
        """

        log = logger.bind(video_id=video_id, component="video_processor")
        last_error: Exception | None = None

        for attempt in range(1, self._max_attempts + 1):
            log.info(
                "video_processor.attempt.start",
                attempt=attempt,
                max_attempts=self._max_attempts,
                input_file=input_file,
                output_file=output_file,
            )
            try:
                await self._convert_and_publish(input_file, output_file, video_id)
            except Exception as exc:
                last_error = exc
                log.error(
                    "video_processor.attempt.failed",
                    attempt=attempt,
                    max_attempts=self._max_attempts,
                    error=str(exc),
                )
                await self._cleanup(input_file, output_file, video_id)
                if attempt < self._max_attempts:
                    log.warning("video_processor.attempt.retry", next_attempt=attempt + 1)
                continue

            if self._enable_transcription:
                await self._trigger_transcription(video_id, output_file)
            await self._cleanup(input_file, output_file, video_id)
            record_video_job("processed")
            log.info("video_processor.completed", attempt=attempt, input_file=input_file)
            return

        try:
            await self._videos.set(video_id, VideoUpdate(status=VideoStatus.FAILED))
        except Exception as exc:
            log.error("video_processor.mark_failed.failed", error=str(exc))
        record_video_job("failed")
        error = last_error or VideoProcessingError(
            f"Video processing failed after {self._max_attempts} attempts"
        )
        log.error(
            "video_processor.exhausted",
            attempts=self._max_attempts,
            error=str(error),
        )
        raise error

    async def _convert_and_publish(
        self, input_file: str, output_file: str, video_id: str
    ) -> None:
        raw_path = self._workspace.raw_path(input_file)
        processed_path = self._workspace.processed_path(output_file)

        await asyncio.to_thread(
            self._storage.download_to_path, self._raw_bucket, input_file, raw_path
        )
        await asyncio.to_thread(self._transcoder.transcode, raw_path, processed_path)
        await asyncio.to_thread(
            self._storage.upload_file,
            self._processed_bucket,
            output_file,
            processed_path,
            public=True,
        )
        await self._videos.set(
            video_id,
            VideoUpdate(status=VideoStatus.PROCESSED, filename=output_file),
        )

    async def _trigger_transcription(self, video_id: str, processed_file: str) -> None:
        transcript_id = DEFAULT_TRANSCRIPT_ID
        user_id = owner_id_from_video_id(video_id)
        audio_name = audio_filename(video_id)
        audio_path = self._workspace.processed_path(audio_name)
        log = logger.bind(
            video_id=video_id, transcript_id=transcript_id, component="video_processor"
        )

        try:
            if self._publisher is None:
                raise RuntimeError("Transcription publisher is not configured")
            await asyncio.to_thread(
                self._transcoder.extract_audio,
                self._workspace.processed_path(processed_file),
                audio_path,
            )
            audio_uri = await asyncio.to_thread(
                self._storage.upload_file,
                self._audio_bucket,
                audio_name,
                audio_path,
                content_type="audio/flac",
            )
            await self._transcripts.create(
                video_id,
                transcript_id,
                TranscriptCreate(
                    language=self._language,
                    model=self._model,
                    audio_gcs_uri=audio_uri,
                    user_id=user_id,
                ),
            )
            await asyncio.to_thread(
                self._publisher.publish,
                TranscriptionJobMessage(
                    video_id=video_id,
                    transcript_id=transcript_id,
                    audio_gcs_uri=audio_uri,
                    user_id=user_id,
                ),
            )
        except Exception as exc:
            log.error("video_processor.transcription.queue_failed", error=str(exc))
            try:
                await self._transcripts.update_status(
                    video_id, transcript_id, TranscriptStatus.FAILED, error=str(exc)
                )
            except Exception as record_exc:
                log.error(
                    "video_processor.transcription.record_failed", error=str(record_exc)
                )
            return
        finally:
            outcome = await self._delete_local(audio_path)
            self._log_outcome(outcome, video_id)

        log.info("video_processor.transcription.queued", audio_uri=audio_uri)
        # The job is already on the queue; a worker that picked it up owns the status.
        try:
            current = await self._transcripts.get(video_id, transcript_id)
            if current is None or current.status is not TranscriptStatus.PENDING:
                log.info(
                    "video_processor.transcription.mark_running_skipped",
                    status=current.status.value if current and current.status else None,
                )
                return
            await self._transcripts.update_status(
                video_id, transcript_id, TranscriptStatus.RUNNING
            )
        except Exception as exc:
            log.warning("video_processor.transcription.mark_running_skipped", error=str(exc))

    async def _delete_local(self, path: Path) -> NonFatalOutcome:
        try:
            result: object = await asyncio.to_thread(self._workspace.delete, path)
        except Exception as exc:
            result = exc
        return NonFatalOutcome.from_result("delete_local_file", str(path), result)

    async def _cleanup(self, input_file: str, output_file: str, video_id: str) -> None:
        outcomes = await asyncio.gather(
            self._delete_local(self._workspace.raw_path(input_file)),
            self._delete_local(self._workspace.processed_path(output_file)),
        )
        for outcome in outcomes:
            self._log_outcome(outcome, video_id)

    @staticmethod
    def _log_outcome(outcome: NonFatalOutcome, video_id: str) -> None:
        if outcome.succeeded:
            return
        logger.error(
            "video_processor.cleanup.failed",
            video_id=video_id,
            component="video_processor",
            operation=outcome.operation,
            target=outcome.target,
            error=str(outcome.error),
        )
