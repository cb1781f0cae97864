"""Celery publisher for transcription jobs."""

from __future__ import annotations

from dataclasses import dataclass

import structlog
from celery import Celery

from ..core.config import Settings, get_settings
from ..domain.messages import TranscriptionJobMessage

logger = structlog.get_logger(__name__)

TRANSCRIPTION_TASK_NAME = "transcription.process"


class TaskQueueConfigurationError(RuntimeError):
    """Raised when Celery cannot be configured from the environment."""


@dataclass
class TranscriptionQueuePublisher:
    """Fire-and-forget publisher routing jobs to the transcription queue."""

    app: Celery
    topic: str

    def publish(self, job: TranscriptionJobMessage) -> str:
        """Queue ``job`` and return the broker message id."""

        if not self.topic or not self.topic.strip():
            raise TaskQueueConfigurationError("TRANSCRIPTION_TOPIC_NAME is not configured")
        result = self.app.send_task(
            TRANSCRIPTION_TASK_NAME,
            kwargs={"payload": job.to_wire()},
            queue=self.topic,
            ignore_result=True,
        )
        message_id = str(result.id)
        logger.info(
            "transcription_queue.published",
            component="transcription_queue",
            topic=self.topic,
            message_id=message_id,
            video_id=job.video_id,
            transcript_id=job.transcript_id,
        )
        return message_id


def build_celery_app(name: str, settings: Settings | None = None) -> Celery:
    settings = settings or get_settings()
    broker = settings.broker_url
    if not broker:
        raise TaskQueueConfigurationError(
            "CELERY_BROKER_URL or REDIS_URL must be configured for task dispatch"
        )
    backend = settings.celery_result_backend or broker
    app = Celery(name, broker=broker, backend=backend)
    app.conf.update(
        task_default_queue=settings.transcription_topic_name,
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
    )
    return app


def build_transcription_publisher(
    settings: Settings | None = None,
) -> TranscriptionQueuePublisher:
    settings = settings or get_settings()
    if not settings.transcription_topic_name.strip():
        raise TaskQueueConfigurationError("TRANSCRIPTION_TOPIC_NAME is not configured")
    return TranscriptionQueuePublisher(
        app=build_celery_app("video_processing", settings),
        topic=settings.transcription_topic_name,
    )
