from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        populate_by_name=True,
        extra="ignore",
    )

    project_name: str = "Video Processing Service"

    raw_video_bucket_name: str = Field(default="raw-videos", alias="RAW_VIDEO_BUCKET_NAME")
    processed_video_bucket_name: str = Field(
        default="processed-videos", alias="PROCESSED_VIDEO_BUCKET_NAME"
    )
    audio_work_bucket_name: str = Field(default="audio-work", alias="AUDIO_WORK_BUCKET_NAME")
    transcripts_bucket_name: str = Field(default="transcripts", alias="TRANSCRIPTS_BUCKET_NAME")

    transcription_topic_name: str = Field(
        default="transcription-jobs",
        alias="TRANSCRIPTION_TOPIC_NAME",
        description="Queue that carries transcription jobs to the worker",
    )
    speech_to_text_model: str = Field(
        default="long",
        alias="SPEECH_TO_TEXT_MODEL",
        description="'short' selects latest_short, anything else latest_long",
    )
    speech_to_text_language: str = Field(default="en-US", alias="SPEECH_TO_TEXT_LANGUAGE")
    enable_transcription: bool = Field(default=True, alias="ENABLE_TRANSCRIPTION")
    processing_max_attempts: int = Field(default=3, ge=1, alias="PROCESSING_MAX_ATTEMPTS")
    transcription_poll_interval_seconds: float = Field(
        default=30.0, ge=0, alias="TRANSCRIPTION_POLL_INTERVAL_SECONDS"
    )
    transcription_max_poll_attempts: int = Field(
        default=120,
        ge=1,
        alias="TRANSCRIPTION_MAX_POLL_ATTEMPTS",
        description="120 polls at 30s gives a 60 minute ceiling",
    )

    local_raw_video_dir: Path = Field(default=Path("./raw-videos"), alias="LOCAL_RAW_VIDEO_DIR")
    local_processed_video_dir: Path = Field(
        default=Path("./processed-videos"), alias="LOCAL_PROCESSED_VIDEO_DIR"
    )

    project_id: str | None = Field(default=None, alias="PROJECT_ID")
    region: str | None = Field(default=None, alias="REGION")
    service_name: str = Field(default="video-processing-service", alias="SERVICE_NAME")
    service_version: str = Field(default="dev", alias="SERVICE_VERSION")
    environment: str = Field(default="development", alias="APP_ENV")

    database_url: str | None = Field(
        default=None,
        alias="DATABASE_URL",
        description="SQLAlchemy async connection string for the metadata store",
    )

    s3_endpoint_url: str | None = Field(default=None, alias="S3_ENDPOINT_URL")
    s3_access_key: str | None = Field(default=None, alias="S3_ACCESS_KEY")
    s3_secret_key: str | None = Field(default=None, alias="S3_SECRET_KEY")
    s3_region: str = Field(default="us-east-1", alias="S3_REGION")
    s3_secure: bool | None = Field(default=None, alias="S3_SECURE")
    object_uri_scheme: str = Field(
        default="gs",
        alias="OBJECT_URI_SCHEME",
        description="Scheme used when rendering object URIs handed to the speech service",
    )

    redis_url: str | None = Field(default=None, alias="REDIS_URL")
    celery_broker_url: str | None = Field(
        default=None,
        alias="CELERY_BROKER_URL",
        description="Broker URL for Celery; falls back to Redis when unset",
    )
    celery_result_backend: str | None = Field(default=None, alias="CELERY_RESULT_BACKEND")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=True, alias="LOG_JSON")

    enable_prometheus_metrics: bool = Field(default=True, alias="ENABLE_PROMETHEUS_METRICS")
    prometheus_metrics_path: str = Field(
        default="/metrics/prometheus", alias="PROMETHEUS_METRICS_PATH"
    )
    otel_exporter_otlp_endpoint: str | None = Field(
        default=None, alias="OTEL_EXPORTER_OTLP_ENDPOINT"
    )
    otel_exporter_otlp_headers: str | None = Field(
        default=None,
        alias="OTEL_EXPORTER_OTLP_HEADERS",
        description="Comma separated key=value pairs added to OTLP requests",
    )
    otel_service_name: str | None = Field(default=None, alias="OTEL_SERVICE_NAME")

    worker_prometheus_port: int | None = Field(default=None, alias="WORKER_PROMETHEUS_PORT")
    worker_prometheus_host: str = Field(default="0.0.0.0", alias="WORKER_PROMETHEUS_HOST")

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def broker_url(self) -> str | None:
        return self.celery_broker_url or self.redis_url


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()
