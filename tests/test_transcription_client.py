"""
Tests for the Speech-to-Text client wrapper.

Operations are built from real ``google.cloud.speech`` messages serialised into
``google.longrunning`` operations, so the decode path matches production.
"""

import asyncio
import json
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from google.cloud import speech
from google.longrunning import operations_pb2
from google.protobuf import any_pb2
from google.rpc import status_pb2
from hypothesis import given, settings, strategies as st

from apps.video_processing.app.services.transcription import (
    SpeechTranscriptionClient,
    TranscriptionError,
    TranscriptionFailedError,
    TranscriptionTimeoutError,
    build_transcript_payload,
    resolve_recognition_model,
)

from conftest import FakeStorage


def _word(start: float, end: float, word: str = "hi") -> speech.WordInfo:
    return speech.WordInfo(
        word=word,
        start_time=timedelta(seconds=start),
        end_time=timedelta(seconds=end),
    )


def _response(*results) -> speech.LongRunningRecognizeResponse:
    return speech.LongRunningRecognizeResponse(results=list(results))


def _result(transcript: str, confidence: float, words) -> speech.SpeechRecognitionResult:
    return speech.SpeechRecognitionResult(
        alternatives=[
            speech.SpeechRecognitionAlternative(
                transcript=transcript, confidence=confidence, words=words
            )
        ]
    )


def _done_operation(response: speech.LongRunningRecognizeResponse) -> operations_pb2.Operation:
    return operations_pb2.Operation(
        name="operations/123",
        done=True,
        response=any_pb2.Any(
            type_url="type.googleapis.com/google.cloud.speech.v1.LongRunningRecognizeResponse",
            value=speech.LongRunningRecognizeResponse.serialize(response),
        ),
    )


def _running_operation(progress: int) -> operations_pb2.Operation:
    metadata = speech.LongRunningRecognizeMetadata(progress_percent=progress)
    return operations_pb2.Operation(
        name="operations/123",
        done=False,
        metadata=any_pb2.Any(
            type_url="type.googleapis.com/google.cloud.speech.v1.LongRunningRecognizeMetadata",
            value=speech.LongRunningRecognizeMetadata.serialize(metadata),
        ),
    )


def _client(speech_client, *, storage=None, max_poll_attempts=5, sleeps=None):
    async def record_sleep(seconds: float) -> None:
        if sleeps is not None:
            sleeps.append(seconds)

    return SpeechTranscriptionClient(
        client=speech_client,
        storage=storage or FakeStorage(),
        transcripts_bucket="test-transcripts",
        language="en-US",
        model="long",
        poll_interval_seconds=30,
        max_poll_attempts=max_poll_attempts,
        sleep=record_sleep,
    )


def test_start_submits_flac_long_running_recognition():
    speech_client = MagicMock()
    speech_client.long_running_recognize.return_value.operation.name = "operations/123"

    operation_name = asyncio.run(_client(speech_client).start("gs://audio/sample.flac", "job-1"))

    assert operation_name == "operations/123"
    kwargs = speech_client.long_running_recognize.call_args.kwargs
    assert kwargs["audio"].uri == "gs://audio/sample.flac"
    config = kwargs["config"]
    assert config.encoding == speech.RecognitionConfig.AudioEncoding.FLAC
    assert config.language_code == "en-US"
    assert config.model == "latest_long"
    assert config.enable_automatic_punctuation is True
    assert config.enable_word_time_offsets is True
    assert config.profanity_filter is False


def test_start_without_operation_name_raises():
    speech_client = MagicMock()
    speech_client.long_running_recognize.return_value.operation.name = ""

    with pytest.raises(TranscriptionError, match="did not return an operation name"):
        asyncio.run(_client(speech_client).start("gs://audio/sample.flac", "job-1"))


@pytest.mark.parametrize(
    ("configured", "expected"),
    [("short", "latest_short"), ("long", "latest_long"), ("video", "latest_long"), ("", "latest_long")],
)
def test_model_selection(configured, expected):
    assert resolve_recognition_model(configured) == expected


def test_poll_maps_segments_after_progress_updates():
    speech_client = MagicMock()
    speech_client.transport.operations_client.get_operation.side_effect = [
        _running_operation(10),
        _running_operation(70),
        _done_operation(
            _response(_result(" Hello world ", 0.92, [_word(0, 2), _word(2, 4)]))
        ),
    ]
    sleeps: list[float] = []

    payload = asyncio.run(_client(speech_client, sleeps=sleeps).poll("operations/123", "video-7"))

    assert payload.video_id == "video-7"
    assert payload.language == "en-US"
    assert payload.model == "long"
    assert payload.duration_seconds == 4
    [segment] = payload.segments
    assert segment.text == "Hello world"
    assert segment.start_time == 0
    assert segment.end_time == 4
    assert segment.confidence == pytest.approx(0.92)
    assert sleeps == [30, 30]


def test_poll_times_out_after_max_attempts():
    speech_client = MagicMock()
    speech_client.transport.operations_client.get_operation.return_value = _running_operation(5)
    sleeps: list[float] = []

    with pytest.raises(TranscriptionTimeoutError):
        asyncio.run(
            _client(speech_client, max_poll_attempts=3, sleeps=sleeps).poll("operations/123", "v")
        )

    assert speech_client.transport.operations_client.get_operation.call_count == 3
    assert len(sleeps) == 2


def test_poll_raises_on_remote_error():
    speech_client = MagicMock()
    speech_client.transport.operations_client.get_operation.return_value = operations_pb2.Operation(
        name="operations/123",
        done=True,
        error=status_pb2.Status(code=3, message="audio is corrupt"),
    )

    with pytest.raises(TranscriptionFailedError, match="audio is corrupt"):
        asyncio.run(_client(speech_client).poll("operations/123", "v"))


def test_poll_raises_when_response_missing():
    speech_client = MagicMock()
    speech_client.transport.operations_client.get_operation.return_value = operations_pb2.Operation(
        name="operations/123", done=True
    )

    with pytest.raises(TranscriptionFailedError, match="response missing"):
        asyncio.run(_client(speech_client).poll("operations/123", "v"))


def test_segment_without_words_spans_zero():
    payload = build_transcript_payload(
        "v", _response(_result("silence", 0.5, [])), language="en-US", model="long"
    )

    [segment] = payload.segments
    assert segment.start_time == 0
    assert segment.end_time == 0
    assert payload.duration_seconds == 0


def test_results_without_alternatives_are_skipped():
    response = _response(
        speech.SpeechRecognitionResult(alternatives=[]),
        _result("kept", 0.8, [_word(1, 1.5)]),
    )

    payload = build_transcript_payload("v", response, language="en-US", model="long")

    assert [segment.text for segment in payload.segments] == ["kept"]


word_spans = st.lists(
    st.tuples(st.integers(min_value=0, max_value=3600), st.integers(min_value=0, max_value=30)),
    min_size=1,
    max_size=6,
)


@settings(max_examples=50, deadline=None)
@given(results=st.lists(word_spans, min_size=1, max_size=5))
def test_duration_is_max_segment_end(results):
    response = _response(
        *[
            _result(f"segment {index}", 0.5, [_word(start, start + length) for start, length in spans])
            for index, spans in enumerate(results)
        ]
    )

    payload = build_transcript_payload("v", response, language="en-US", model="long")

    ends = [spans[-1][0] + spans[-1][1] for spans in results]
    starts = [spans[0][0] for spans in results]
    assert len(payload.segments) == len(results)
    assert payload.duration_seconds == pytest.approx(max(ends))
    assert [segment.start_time for segment in payload.segments] == pytest.approx(starts)
    assert [segment.end_time for segment in payload.segments] == pytest.approx(ends)


def test_upload_payload_writes_json_to_transcripts_bucket():
    storage = FakeStorage()
    payload = build_transcript_payload(
        "video-9", _response(_result("hi", 0.9, [_word(0, 1)])), language="en-US", model="long"
    )

    uri = asyncio.run(_client(MagicMock(), storage=storage).upload_payload("video-9", payload))

    assert uri == "gs://test-transcripts/video-9/transcript.json"
    [(bucket, key, data)] = storage.byte_uploads
    assert (bucket, key) == ("test-transcripts", "video-9/transcript.json")
    document = json.loads(data)
    assert document["videoId"] == "video-9"
    assert document["durationSeconds"] == 1
    assert document["segments"][0]["startTime"] == 0
    assert "createdAt" in document
