"""Celery tasks consumed from the transcription queue."""
