"""SQLAlchemy ORM rows backing the metadata store."""

from .transcript import TranscriptModel
from .video import VideoModel

__all__ = [
    "TranscriptModel",
    "VideoModel",
]
