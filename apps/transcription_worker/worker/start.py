from celery import Celery

from apps.video_processing.app.core.config import get_settings
from apps.video_processing.app.core.logging import configure_logging

from .telemetry import configure_worker_telemetry

settings = get_settings()
BROKER_URL = settings.broker_url or "redis://redis:6379/0"

celery_app = Celery(
    "transcription_worker",
    broker=BROKER_URL,
    backend=settings.celery_result_backend or BROKER_URL,
    include=["apps.transcription_worker.worker.tasks.transcription"],
)
celery_app.conf.update(
    task_default_queue=settings.transcription_topic_name,
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)
configure_logging(settings)
configure_worker_telemetry(celery_app)
