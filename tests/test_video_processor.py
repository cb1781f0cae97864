"""
Tests for the video processing orchestrator.

Property: a processed video is transcoded, published publicly, marked
``processed`` and queued for transcription; failures are retried a bounded
number of times before the video is marked ``failed``.
"""

import asyncio

import pytest
from hypothesis import given, settings as hypothesis_settings, strategies as st

from apps.video_processing.app.core.config import Settings
from apps.video_processing.app.domain.transcripts import TranscriptStatus
from apps.video_processing.app.domain.videos import (
    VideoStatus,
    audio_filename,
    owner_id_from_video_id,
    processed_filename,
    video_id_from_filename,
)
from apps.video_processing.app.repositories.transcripts import InMemoryTranscriptsRepository
from apps.video_processing.app.repositories.videos import InMemoryVideosRepository
from apps.video_processing.app.services.media import LocalWorkspace, MediaProcessingError
from apps.video_processing.app.services.storage import StorageError
from apps.video_processing.app.services.transcription_queue import TaskQueueConfigurationError

from conftest import FakePublisher, FakeStorage, FakeTranscoder, build_processor

RAW_FILE = "user42-1700000000000.mp4"
VIDEO_ID = "user42-1700000000000"
PROCESSED_FILE = "processed-user42-1700000000000.mp4"


@st.composite
def raw_filename_strategy(draw):
    """Generate raw upload names of the form ``<uid>-<millis>.<ext>``."""
    uid = draw(st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789", min_size=1, max_size=28))
    millis = draw(st.integers(min_value=1_000_000_000_000, max_value=9_999_999_999_999))
    ext = draw(st.sampled_from(["mp4", "mov", "webm", "mkv"]))
    return f"{uid}-{millis}.{ext}", uid, f"{uid}-{millis}"


@hypothesis_settings(max_examples=100)
@given(names=raw_filename_strategy())
def test_filename_helpers_derive_ids(names):
    filename, uid, video_id = names

    assert video_id_from_filename(filename) == video_id
    assert owner_id_from_video_id(video_id) == uid
    assert processed_filename(filename) == f"processed-{filename}"
    assert audio_filename(video_id) == f"{video_id}.flac"


def test_success_path_publishes_and_queues_transcription(settings, workspace, videos_repo, transcripts_repo):
    storage = FakeStorage()
    transcoder = FakeTranscoder()
    publisher = FakePublisher()
    processor = build_processor(
        settings,
        workspace,
        videos_repo,
        transcripts_repo,
        storage=storage,
        transcoder=transcoder,
        publisher=publisher,
    )

    asyncio.run(processor.process(RAW_FILE, PROCESSED_FILE, VIDEO_ID))

    video = asyncio.run(videos_repo.get(VIDEO_ID))
    assert video is not None
    assert video.status is VideoStatus.PROCESSED
    assert video.filename == PROCESSED_FILE

    assert storage.downloads == [(settings.raw_video_bucket_name, RAW_FILE)]
    processed_upload, audio_upload = storage.uploads
    assert processed_upload["bucket"] == settings.processed_video_bucket_name
    assert processed_upload["object_key"] == PROCESSED_FILE
    assert processed_upload["public"] is True
    assert audio_upload["bucket"] == settings.audio_work_bucket_name
    assert audio_upload["object_key"] == f"{VIDEO_ID}.flac"
    assert audio_upload["public"] is False

    transcript = asyncio.run(transcripts_repo.get(VIDEO_ID, "primary"))
    assert transcript is not None
    assert transcript.status is TranscriptStatus.RUNNING
    assert transcript.user_id == "user42"
    assert transcript.language == settings.speech_to_text_language
    assert transcript.model == settings.speech_to_text_model
    assert transcript.audio_gcs_uri == f"gs://{settings.audio_work_bucket_name}/{VIDEO_ID}.flac"

    [job] = publisher.published
    assert job.video_id == VIDEO_ID
    assert job.transcript_id == "primary"
    assert job.user_id == "user42"

    # Local scratch files are gone.
    assert not workspace.raw_path(RAW_FILE).exists()
    assert not workspace.processed_path(PROCESSED_FILE).exists()
    assert not workspace.processed_path(f"{VIDEO_ID}.flac").exists()


def test_retry_recovers_after_transient_download_failure(settings, workspace, videos_repo, transcripts_repo):
    storage = FakeStorage(fail_downloads=1)
    processor = build_processor(settings, workspace, videos_repo, transcripts_repo, storage=storage)

    asyncio.run(processor.process(RAW_FILE, PROCESSED_FILE, VIDEO_ID))

    assert len(storage.downloads) == 2
    video = asyncio.run(videos_repo.get(VIDEO_ID))
    assert video.status is VideoStatus.PROCESSED


@hypothesis_settings(max_examples=20, deadline=None)
@given(max_attempts=st.integers(min_value=1, max_value=5))
def test_retries_are_bounded_and_video_marked_failed(tmp_path_factory, max_attempts):
    base = tmp_path_factory.mktemp("attempts")
    settings = Settings(
        local_raw_video_dir=base / "raw",
        local_processed_video_dir=base / "processed",
        processing_max_attempts=max_attempts,
    )
    workspace = LocalWorkspace.from_settings(settings)
    workspace.setup()
    videos = InMemoryVideosRepository()
    storage = FakeStorage(fail_downloads=max_attempts + 10)
    publisher = FakePublisher()
    processor = build_processor(
        settings, workspace, videos, InMemoryTranscriptsRepository(), storage=storage, publisher=publisher
    )

    with pytest.raises(StorageError):
        asyncio.run(processor.process(RAW_FILE, PROCESSED_FILE, VIDEO_ID))

    assert len(storage.downloads) == max_attempts
    assert storage.uploads == []
    assert publisher.published == []
    video = asyncio.run(videos.get(VIDEO_ID))
    assert video.status is VideoStatus.FAILED


def test_transcode_failure_cleans_up_raw_file(settings, workspace, videos_repo, transcripts_repo):
    transcoder = FakeTranscoder(fail_transcode=True)
    processor = build_processor(settings, workspace, videos_repo, transcripts_repo, transcoder=transcoder)

    with pytest.raises(MediaProcessingError):
        asyncio.run(processor.process(RAW_FILE, PROCESSED_FILE, VIDEO_ID))

    assert len(transcoder.transcoded) == settings.processing_max_attempts
    assert not workspace.raw_path(RAW_FILE).exists()


def test_publish_failure_does_not_fail_the_video(settings, workspace, videos_repo, transcripts_repo):
    publisher = FakePublisher(error=TaskQueueConfigurationError("broker down"))
    processor = build_processor(settings, workspace, videos_repo, transcripts_repo, publisher=publisher)

    asyncio.run(processor.process(RAW_FILE, PROCESSED_FILE, VIDEO_ID))

    video = asyncio.run(videos_repo.get(VIDEO_ID))
    assert video.status is VideoStatus.PROCESSED
    transcript = asyncio.run(transcripts_repo.get(VIDEO_ID, "primary"))
    assert transcript.status is TranscriptStatus.FAILED
    assert transcript.error == "broker down"
    assert transcript.completed_at is not None
    assert not workspace.processed_path(f"{VIDEO_ID}.flac").exists()


def test_audio_extraction_failure_records_failed_transcript(settings, workspace, videos_repo, transcripts_repo):
    storage = FakeStorage()
    transcoder = FakeTranscoder(fail_audio=True)
    publisher = FakePublisher()
    processor = build_processor(
        settings,
        workspace,
        videos_repo,
        transcripts_repo,
        storage=storage,
        transcoder=transcoder,
        publisher=publisher,
    )

    asyncio.run(processor.process(RAW_FILE, PROCESSED_FILE, VIDEO_ID))

    assert [upload["object_key"] for upload in storage.uploads] == [PROCESSED_FILE]
    assert publisher.published == []
    transcript = asyncio.run(transcripts_repo.get(VIDEO_ID, "primary"))
    assert transcript.status is TranscriptStatus.FAILED
    assert "extract_audio" in transcript.error


def test_transcription_disabled_skips_fan_out(settings, workspace, videos_repo, transcripts_repo):
    settings = settings.model_copy(update={"enable_transcription": False})
    publisher = FakePublisher()
    processor = build_processor(settings, workspace, videos_repo, transcripts_repo, publisher=publisher)

    asyncio.run(processor.process(RAW_FILE, PROCESSED_FILE, VIDEO_ID))

    assert publisher.published == []
    assert asyncio.run(transcripts_repo.get(VIDEO_ID, "primary")) is None


def test_cleanup_failure_is_not_fatal(settings, workspace, videos_repo, transcripts_repo, monkeypatch):
    def broken_delete(path):
        raise PermissionError(f"cannot remove {path}")

    monkeypatch.setattr(workspace, "delete", broken_delete)
    processor = build_processor(settings, workspace, videos_repo, transcripts_repo)

    asyncio.run(processor.process(RAW_FILE, PROCESSED_FILE, VIDEO_ID))

    video = asyncio.run(videos_repo.get(VIDEO_ID))
    assert video.status is VideoStatus.PROCESSED


class FastWorkerPublisher(FakePublisher):
    """Simulates a worker that finishes the job before ``publish`` returns."""

    def __init__(self, transcripts: InMemoryTranscriptsRepository) -> None:
        super().__init__()
        self.transcripts = transcripts

    def publish(self, job):
        message_id = super().publish(job)
        for status in (TranscriptStatus.RUNNING, TranscriptStatus.DONE):
            asyncio.run(self.transcripts.update_status(job.video_id, job.transcript_id, status))
        return message_id


def test_worker_finishing_first_keeps_done_transcript(settings, workspace, videos_repo, transcripts_repo):
    publisher = FastWorkerPublisher(transcripts_repo)
    processor = build_processor(settings, workspace, videos_repo, transcripts_repo, publisher=publisher)

    asyncio.run(processor.process(RAW_FILE, PROCESSED_FILE, VIDEO_ID))

    assert len(publisher.published) == 1
    transcript = asyncio.run(transcripts_repo.get(VIDEO_ID, "primary"))
    assert transcript.status is TranscriptStatus.DONE
    assert transcript.error is None


class RejectingWorkerPublisher(FakePublisher):
    """Simulates a worker whose recognition request is refused straight away."""

    def __init__(self, transcripts: InMemoryTranscriptsRepository) -> None:
        super().__init__()
        self.transcripts = transcripts

    def publish(self, job):
        message_id = super().publish(job)
        asyncio.run(
            self.transcripts.update_status(
                job.video_id, job.transcript_id, TranscriptStatus.FAILED, error="quota exceeded"
            )
        )
        return message_id


def test_worker_failure_before_mark_running_is_kept(settings, workspace, videos_repo, transcripts_repo):
    publisher = RejectingWorkerPublisher(transcripts_repo)
    processor = build_processor(settings, workspace, videos_repo, transcripts_repo, publisher=publisher)

    asyncio.run(processor.process(RAW_FILE, PROCESSED_FILE, VIDEO_ID))

    transcript = asyncio.run(transcripts_repo.get(VIDEO_ID, "primary"))
    assert transcript.status is TranscriptStatus.FAILED
    assert transcript.error == "quota exceeded"
    assert asyncio.run(videos_repo.get(VIDEO_ID)).status is VideoStatus.PROCESSED
