from __future__ import annotations

import json
from typing import Any

import structlog
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import PlainTextResponse

from ...core.config import Settings
from ...domain.messages import (
    MessageDecodeError,
    decode_raw_video_notification,
    decode_transcription_job,
    message_id_from,
)
from ...domain.videos import (
    VideoStatus,
    VideoUpdate,
    owner_id_from_video_id,
    processed_filename,
    video_id_from_filename,
)
from ...repositories.videos import VideosRepository
from ...services.transcription_jobs import TranscriptionJobOutcome, TranscriptionJobRunner
from ...services.video_processor import VideoProcessor
from ..dependencies import (
    get_app_settings,
    get_transcription_runner,
    get_video_processor,
    get_videos_repository,
)

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["ingress"])

PROCESSING_SUCCEEDED = "Processing completed successfully"
PROCESSING_FAILED_ACK = "Message acknowledged, but processing failed"


async def _read_json(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None


def _log_push_request(body: Any, request: Request) -> str:
    message_id = message_id_from(body, request.headers) or "unknown"
    message = body.get("message") if isinstance(body, dict) else None
    logger.info(
        "ingress.push.received",
        component="ingress",
        message_id=message_id,
        subscription=request.headers.get("ce-subject"),
        attributes=message.get("attributes") if isinstance(message, dict) else None,
    )
    return message_id


@router.post("/process-video", response_class=PlainTextResponse)
async def process_video(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    videos: VideosRepository = Depends(get_videos_repository),
    processor: VideoProcessor = Depends(get_video_processor),
) -> PlainTextResponse:
    """Handle a "new raw video" push; every outcome is acknowledged with 200."""

    body = await _read_json(request)
    message_id = _log_push_request(body, request)

    try:
        notification = decode_raw_video_notification(body)
    except MessageDecodeError as exc:
        logger.error(
            "ingress.process_video.invalid_message",
            message_id=message_id,
            error=str(exc),
        )
        return PlainTextResponse(f"Bad Request: {exc}", status_code=status.HTTP_200_OK)

    if not settings.is_production:
        logger.debug(
            "ingress.process_video.decoded",
            message_id=message_id,
            payload=notification.model_dump(),
        )

    input_file = notification.name
    output_file = processed_filename(input_file)
    video_id = video_id_from_filename(input_file)
    log = logger.bind(message_id=message_id, video_id=video_id)

    try:
        if not await videos.is_new(video_id):
            log.info("ingress.process_video.duplicate")
            return PlainTextResponse(
                "Bad Request: video already processing or processed.",
                status_code=status.HTTP_200_OK,
            )

        await videos.set(
            video_id,
            VideoUpdate(uid=owner_id_from_video_id(video_id), status=VideoStatus.PROCESSING),
        )
        await processor.process(input_file, output_file, video_id)
    except Exception as exc:
        log.error("ingress.process_video.failed", error=str(exc))
        return PlainTextResponse(PROCESSING_FAILED_ACK, status_code=status.HTTP_200_OK)

    log.info("ingress.process_video.completed")
    return PlainTextResponse(PROCESSING_SUCCEEDED, status_code=status.HTTP_200_OK)


@router.post("/transcribe-audio", response_class=PlainTextResponse)
async def transcribe_audio(
    request: Request,
    runner: TranscriptionJobRunner = Depends(get_transcription_runner),
) -> PlainTextResponse:
    body = await _read_json(request)
    try:
        job = decode_transcription_job(body)
    except MessageDecodeError as exc:
        logger.error("ingress.transcribe_audio.invalid_message", error=str(exc))
        return PlainTextResponse(
            f"Bad Request: {exc}", status_code=status.HTTP_400_BAD_REQUEST
        )

    log = logger.bind(video_id=job.video_id, transcript_id=job.transcript_id)
    try:
        outcome = await runner.handle(job)
    except Exception as exc:
        log.error("ingress.transcribe_audio.failed", error=str(exc))
        return PlainTextResponse(
            f"Transcription failed: {exc}",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if outcome is TranscriptionJobOutcome.TRANSCRIPT_MISSING:
        return PlainTextResponse("Transcript record not found; marked as failed")
    if outcome is TranscriptionJobOutcome.ALREADY_DONE:
        return PlainTextResponse("Transcript already completed")
    return PlainTextResponse("Transcription completed successfully")
