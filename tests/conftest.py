"""Shared fakes and fixtures for the video processing tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from apps.video_processing.app.core.config import Settings
from apps.video_processing.app.domain.messages import TranscriptionJobMessage
from apps.video_processing.app.domain.transcripts import TranscriptPayload, TranscriptSegment
from apps.video_processing.app.repositories.transcripts import InMemoryTranscriptsRepository
from apps.video_processing.app.repositories.videos import InMemoryVideosRepository
from apps.video_processing.app.services.media import LocalWorkspace, MediaProcessingError
from apps.video_processing.app.services.storage import StorageError
from apps.video_processing.app.services.video_processor import VideoProcessor


class FakeStorage:
    """Records transfers; optionally fails the first ``fail_downloads`` downloads."""

    def __init__(self, *, fail_downloads: int = 0, missing_buckets: set[str] | None = None) -> None:
        self.fail_downloads = fail_downloads
        self.missing_buckets = missing_buckets or set()
        self.downloads: list[tuple[str, str]] = []
        self.uploads: list[dict[str, object]] = []
        self.byte_uploads: list[tuple[str, str, bytes]] = []

    def object_uri(self, bucket: str, object_key: str) -> str:
        return f"gs://{bucket}/{object_key}"

    def bucket_exists(self, bucket: str) -> bool:
        return bucket not in self.missing_buckets

    def download_to_path(self, bucket: str, object_key: str, destination) -> Path:
        self.downloads.append((bucket, object_key))
        if self.fail_downloads:
            self.fail_downloads -= 1
            raise StorageError(f"Failed to download gs://{bucket}/{object_key}")
        target = Path(destination)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(b"raw-video")
        return target

    def upload_file(self, bucket, object_key, file_path, *, content_type=None, public=False) -> str:
        self.uploads.append(
            {
                "bucket": bucket,
                "object_key": object_key,
                "path": Path(file_path),
                "public": public,
                "content_type": content_type,
            }
        )
        return self.object_uri(bucket, object_key)

    def upload_bytes(self, bucket, object_key, data, *, content_type="application/octet-stream") -> str:
        self.byte_uploads.append((bucket, object_key, data))
        return self.object_uri(bucket, object_key)


class FakeTranscoder:
    def __init__(self, *, fail_transcode: bool = False, fail_audio: bool = False) -> None:
        self.fail_transcode = fail_transcode
        self.fail_audio = fail_audio
        self.transcoded: list[tuple[Path, Path]] = []
        self.extracted: list[tuple[Path, Path]] = []

    def transcode(self, source, target) -> Path:
        self.transcoded.append((Path(source), Path(target)))
        if self.fail_transcode:
            raise MediaProcessingError("ffmpeg transcode failed", stderr="boom")
        Path(target).write_bytes(b"processed-video")
        return Path(target)

    def extract_audio(self, source, target) -> Path:
        self.extracted.append((Path(source), Path(target)))
        if self.fail_audio:
            raise MediaProcessingError("ffmpeg extract_audio failed", stderr="no audio stream")
        Path(target).write_bytes(b"flac")
        return Path(target)


class FakePublisher:
    def __init__(self, *, error: Exception | None = None) -> None:
        self.error = error
        self.published: list[TranscriptionJobMessage] = []

    def publish(self, job: TranscriptionJobMessage) -> str:
        if self.error is not None:
            raise self.error
        self.published.append(job)
        return f"message-{len(self.published)}"


class FakeTranscriptionClient:
    """Speech client double; ``poll_error`` makes polling raise."""

    language = "en-US"
    model = "long"

    def __init__(self, *, poll_error: Exception | None = None) -> None:
        self.poll_error = poll_error
        self.started: list[tuple[str, str]] = []
        self.polled: list[str] = []
        self.uploaded: list[tuple[str, TranscriptPayload]] = []

    async def start(self, audio_uri: str, reference_id: str) -> str:
        self.started.append((audio_uri, reference_id))
        return f"operations/{len(self.started)}"

    async def poll(self, operation_name: str, video_id: str) -> TranscriptPayload:
        self.polled.append(operation_name)
        if self.poll_error is not None:
            raise self.poll_error
        return TranscriptPayload(
            video_id=video_id,
            language=self.language,
            model=self.model,
            duration_seconds=4.0,
            segments=[
                TranscriptSegment(text="Hello world", start_time=0.0, end_time=4.0, confidence=0.9)
            ],
        )

    async def upload_payload(self, video_id: str, payload: TranscriptPayload) -> str:
        self.uploaded.append((video_id, payload))
        return f"gs://transcripts/{video_id}/transcript.json"


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        local_raw_video_dir=tmp_path / "raw",
        local_processed_video_dir=tmp_path / "processed",
        transcription_poll_interval_seconds=0,
        database_url=None,
        enable_prometheus_metrics=False,
    )


@pytest.fixture
def workspace(settings: Settings) -> LocalWorkspace:
    workspace = LocalWorkspace.from_settings(settings)
    workspace.setup()
    return workspace


@pytest.fixture
def videos_repo() -> InMemoryVideosRepository:
    return InMemoryVideosRepository()


@pytest.fixture
def transcripts_repo() -> InMemoryTranscriptsRepository:
    return InMemoryTranscriptsRepository()


def build_processor(
    settings: Settings,
    workspace: LocalWorkspace,
    videos: InMemoryVideosRepository,
    transcripts: InMemoryTranscriptsRepository,
    *,
    storage: FakeStorage | None = None,
    transcoder: FakeTranscoder | None = None,
    publisher: FakePublisher | None = None,
) -> VideoProcessor:
    return VideoProcessor.from_settings(
        settings,
        storage=storage or FakeStorage(),
        transcoder=transcoder or FakeTranscoder(),
        workspace=workspace,
        videos=videos,
        transcripts=transcripts,
        publisher=publisher if publisher is not None else FakePublisher(),
    )
