"""Google Speech-to-Text long-running recognition client."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable

import structlog
from google.cloud import speech

from ..core.config import Settings, get_settings
from ..domain.transcripts import TranscriptPayload, TranscriptSegment
from .storage import MinioStorageService

logger = structlog.get_logger(__name__)

TRANSCRIPT_OBJECT_NAME = "transcript.json"


class TranscriptionError(RuntimeError):
    """Raised when a recognition job cannot be submitted or read back."""


class TranscriptionFailedError(TranscriptionError):
    """The remote operation finished with an error or without a response."""


class TranscriptionTimeoutError(TranscriptionError):
    """The operation was still running when the poll ceiling was reached."""


def resolve_recognition_model(configured: str) -> str:
    return "latest_short" if configured == "short" else "latest_long"


def transcript_object_key(video_id: str) -> str:
    return f"{video_id}/{TRANSCRIPT_OBJECT_NAME}"


def _duration_to_seconds(value: Any) -> float | None:
    if value is None:
        return None
    if isinstance(value, timedelta):
        return value.total_seconds()
    seconds = getattr(value, "seconds", 0) or 0
    nanos = getattr(value, "nanos", 0) or 0
    return float(seconds) + float(nanos) / 1_000_000_000


def build_transcript_payload(
    video_id: str,
    response: speech.LongRunningRecognizeResponse,
    *,
    language: str,
    model: str,
) -> TranscriptPayload:
    """Map recognition results onto one segment per result.

    Only the first alternative of each result is kept. A segment spans from its
    first word's start to its last word's end; without word offsets both are 0.
    """

    segments: list[TranscriptSegment] = []
    max_end = 0.0
    for result in response.results:
        if not result.alternatives:
            continue
        alternative = result.alternatives[0]
        words = list(alternative.words)
        start_time = (_duration_to_seconds(words[0].start_time) if words else None) or 0.0
        end_time = _duration_to_seconds(words[-1].end_time) if words else None
        if end_time is None:
            end_time = start_time
        max_end = max(max_end, end_time)
        segments.append(
            TranscriptSegment(
                text=(alternative.transcript or "").strip(),
                start_time=start_time,
                end_time=end_time,
                confidence=alternative.confidence,
            )
        )
    return TranscriptPayload(
        video_id=video_id,
        language=language,
        model=model,
        duration_seconds=max_end,
        segments=segments,
        created_at=datetime.utcnow(),
    )


class SpeechTranscriptionClient:
    """Submits, polls and stores speech recognition jobs."""

    def __init__(
        self,
        *,
        client: speech.SpeechClient,
        storage: MinioStorageService,
        transcripts_bucket: str,
        language: str,
        model: str,
        poll_interval_seconds: float = 30.0,
        max_poll_attempts: int = 120,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._storage = storage
        self._transcripts_bucket = transcripts_bucket
        self._language = language
        self._model = model
        self._poll_interval = poll_interval_seconds
        self._max_poll_attempts = max_poll_attempts
        self._sleep = sleep

    @property
    def language(self) -> str:
        return self._language

    @property
    def model(self) -> str:
        return self._model

    def _recognition_config(self) -> speech.RecognitionConfig:
        return speech.RecognitionConfig(
            encoding=speech.RecognitionConfig.AudioEncoding.FLAC,
            language_code=self._language,
            model=resolve_recognition_model(self._model),
            enable_automatic_punctuation=True,
            enable_word_time_offsets=True,
            profanity_filter=False,
        )

    async def start(self, audio_uri: str, reference_id: str) -> str:
        """Submit a long-running recognition and return its operation name."""

        operation = await asyncio.to_thread(
            self._client.long_running_recognize,
            config=self._recognition_config(),
            audio=speech.RecognitionAudio(uri=audio_uri),
        )
        operation_name = getattr(getattr(operation, "operation", None), "name", None)
        if not operation_name:
            raise TranscriptionError("Speech-to-Text did not return an operation name")
        logger.info(
            "transcription.job.started",
            component="transcription",
            operation_name=operation_name,
            reference_id=reference_id,
            audio_uri=audio_uri,
        )
        return operation_name

    async def poll(self, operation_name: str, video_id: str) -> TranscriptPayload:
        operations = self._client.transport.operations_client
        for attempt in range(1, self._max_poll_attempts + 1):
            operation = await asyncio.to_thread(operations.get_operation, operation_name)
            if operation.done:
                return self._payload_from_operation(operation, operation_name, video_id)

            progress = 0
            if operation.HasField("metadata") and operation.metadata.value:
                metadata = speech.LongRunningRecognizeMetadata.deserialize(
                    operation.metadata.value
                )
                progress = metadata.progress_percent
            logger.info(
                "transcription.job.running",
                component="transcription",
                operation_name=operation_name,
                attempt=attempt,
                progress=progress,
            )
            if attempt < self._max_poll_attempts:
                await self._sleep(self._poll_interval)

        raise TranscriptionTimeoutError(
            f"Transcription operation {operation_name} did not complete within allotted time"
        )

    def _payload_from_operation(
        self, operation: Any, operation_name: str, video_id: str
    ) -> TranscriptPayload:
        if operation.HasField("error") and operation.error.code:
            raise TranscriptionFailedError(
                f"Transcription operation {operation_name} failed: {operation.error.message}"
            )
        if not operation.HasField("response") or not operation.response.value:
            raise TranscriptionFailedError(
                f"Transcription response missing for operation {operation_name}"
            )
        response = speech.LongRunningRecognizeResponse.deserialize(operation.response.value)
        payload = build_transcript_payload(
            video_id, response, language=self._language, model=self._model
        )
        logger.info(
            "transcription.job.completed",
            component="transcription",
            operation_name=operation_name,
            segments=len(payload.segments),
            duration_seconds=payload.duration_seconds,
        )
        return payload

    async def upload_payload(self, video_id: str, payload: TranscriptPayload) -> str:
        object_key = transcript_object_key(video_id)
        if payload.video_id != video_id:
            payload = payload.model_copy(update={"video_id": video_id})
        uri = await asyncio.to_thread(
            self._storage.upload_bytes,
            self._transcripts_bucket,
            object_key,
            payload.to_json().encode("utf-8"),
            content_type="application/json",
        )
        logger.info(
            "transcription.payload.uploaded",
            component="transcription",
            video_id=video_id,
            uri=uri,
        )
        return uri


def build_transcription_client(
    storage: MinioStorageService, settings: Settings | None = None
) -> SpeechTranscriptionClient:
    settings = settings or get_settings()
    return SpeechTranscriptionClient(
        client=speech.SpeechClient(),
        storage=storage,
        transcripts_bucket=settings.transcripts_bucket_name,
        language=settings.speech_to_text_language,
        model=settings.speech_to_text_model,
        poll_interval_seconds=settings.transcription_poll_interval_seconds,
        max_poll_attempts=settings.transcription_max_poll_attempts,
    )
