"""Wire formats for queue deliveries and their validating decoders."""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any, Mapping, Optional

from pydantic import ConfigDict, Field, ValidationError

from .common import CamelModel


class MessageDecodeError(ValueError):
    """Raised when an inbound delivery cannot be turned into a job."""


class PushMessage(CamelModel):
    data: Optional[str] = None
    message_id: Optional[str] = None
    attributes: dict[str, str] = Field(default_factory=dict)


class PushEnvelope(CamelModel):
    """Outer wrapper delivered by a push subscription."""

    message: Optional[PushMessage] = None
    subscription: Optional[str] = None


class RawVideoNotification(CamelModel):
    """Payload announcing a new object in the raw bucket."""

    model_config = ConfigDict(extra="allow")

    name: str


class TranscriptionJobMessage(CamelModel):
    video_id: str
    transcript_id: str
    audio_gcs_uri: str
    user_id: Optional[str] = None
    operation_name: Optional[str] = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


TRANSCRIPTION_JOB_REQUIRED_FIELDS = ("videoId", "transcriptId", "audioGcsUri")


def _decode_data(data: str) -> Any:
    try:
        raw = base64.b64decode(data, validate=False)
    except (binascii.Error, ValueError) as exc:
        raise MessageDecodeError("Invalid base64 in message data") from exc
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MessageDecodeError("Invalid JSON in message") from exc


def decode_raw_video_notification(body: Any) -> RawVideoNotification:
    """Decode ``{message: {data: base64(JSON{name, ...})}}`` into a notification."""

    message = body.get("message") if isinstance(body, Mapping) else None
    data = message.get("data") if isinstance(message, Mapping) else None
    if not data or not isinstance(data, str):
        raise MessageDecodeError("No message data found in request")

    payload = _decode_data(data)
    if not isinstance(payload, Mapping) or not payload.get("name"):
        raise MessageDecodeError("Missing filename in payload")
    if not isinstance(payload["name"], str):
        raise MessageDecodeError("Filename in payload must be a string")
    return RawVideoNotification.model_validate(dict(payload))


def message_id_from(body: Any, headers: Mapping[str, str]) -> str | None:
    message = body.get("message") if isinstance(body, Mapping) else None
    if isinstance(message, Mapping):
        message_id = message.get("messageId") or message.get("message_id")
        if message_id:
            return str(message_id)
    return headers.get("ce-id") or headers.get("x-request-id")


def decode_transcription_job(body: Any) -> TranscriptionJobMessage:
    """Validate a transcription job, unwrapping a push envelope when present."""

    if isinstance(body, Mapping) and isinstance(body.get("message"), Mapping):
        data = body["message"].get("data")
        if not data or not isinstance(data, str):
            raise MessageDecodeError("No message data found in request")
        body = _decode_data(data)

    if not isinstance(body, Mapping):
        raise MessageDecodeError("Transcription job must be a JSON object")

    missing = [
        field
        for field in TRANSCRIPTION_JOB_REQUIRED_FIELDS
        if not isinstance(body.get(field), str) or not body.get(field)
    ]
    if missing:
        raise MessageDecodeError(f"Missing required fields: {', '.join(missing)}")

    try:
        return TranscriptionJobMessage.model_validate(dict(body))
    except ValidationError as exc:
        raise MessageDecodeError(f"Invalid transcription job: {exc.errors()[0]['msg']}") from exc
