"""Local working directories and ffmpeg-backed media conversions."""

from __future__ import annotations

from pathlib import Path

import ffmpeg
import structlog

from ..core.config import Settings

logger = structlog.get_logger(__name__)

TARGET_HEIGHT = 360
AUDIO_SAMPLE_RATE_HZ = 16000


class MediaProcessingError(RuntimeError):
    """Raised when ffmpeg fails or leaves no output behind."""

    def __init__(self, message: str, *, stderr: str | None = None) -> None:
        super().__init__(message)
        self.stderr = stderr


class LocalWorkspace:
    """The two scratch directories raw downloads and derived files live in."""

    def __init__(self, *, raw_dir: Path | str, processed_dir: Path | str) -> None:
        self.raw_dir = Path(raw_dir)
        self.processed_dir = Path(processed_dir)

    @classmethod
    def from_settings(cls, settings: Settings) -> "LocalWorkspace":
        return cls(
            raw_dir=settings.local_raw_video_dir,
            processed_dir=settings.local_processed_video_dir,
        )

    def setup(self) -> None:
        for directory in (self.raw_dir, self.processed_dir):
            if directory.exists():
                continue
            directory.mkdir(parents=True, exist_ok=True)
            logger.info("workspace.directory.created", path=str(directory))

    def raw_path(self, filename: str) -> Path:
        return self.raw_dir / filename

    def processed_path(self, filename: str) -> Path:
        return self.processed_dir / filename

    def delete(self, path: Path | str) -> bool:
        """Remove ``path``; returns False when there was nothing to remove."""

        target = Path(path)
        try:
            target.unlink()
        except FileNotFoundError:
            logger.debug("workspace.delete.missing", path=str(target))
            return False
        logger.info("workspace.delete.completed", path=str(target))
        return True


def _stderr_text(exc: ffmpeg.Error) -> str:
    return exc.stderr.decode("utf-8", "ignore") if exc.stderr else str(exc)


class FfmpegTranscoder:
    """Runs the two conversions the pipeline needs."""

    def _run(self, stream, *, operation: str, source: Path, target: Path) -> Path:
        logger.info(
            "media.conversion.start",
            operation=operation,
            source=str(source),
            target=str(target),
        )
        try:
            stream.overwrite_output().run(capture_stdout=True, capture_stderr=True)
        except ffmpeg.Error as exc:
            stderr = _stderr_text(exc)
            logger.error(
                "media.conversion.failed",
                operation=operation,
                source=str(source),
                error=stderr,
            )
            raise MediaProcessingError(
                f"ffmpeg {operation} failed for {source.name}", stderr=stderr
            ) from exc
        if not target.exists():
            raise MediaProcessingError(f"ffmpeg did not produce {target.name}")
        logger.info("media.conversion.completed", operation=operation, target=str(target))
        return target

    @staticmethod
    def build_transcode(source: Path, target: Path):
        """Scale to 360p keeping the aspect ratio with an even width."""

        return ffmpeg.input(str(source)).output(str(target), vf=f"scale=-2:{TARGET_HEIGHT}")

    @staticmethod
    def build_audio_extraction(source: Path, target: Path):
        """Mono 16 kHz FLAC input for long-running recognition."""

        return ffmpeg.input(str(source)).output(
            str(target),
            vn=None,
            ac=1,
            ar=AUDIO_SAMPLE_RATE_HZ,
            acodec="flac",
        )

    def transcode(self, source: Path | str, target: Path | str) -> Path:
        source, target = Path(source), Path(target)
        target.parent.mkdir(parents=True, exist_ok=True)
        stream = self.build_transcode(source, target)
        return self._run(stream, operation="transcode", source=source, target=target)

    def extract_audio(self, source: Path | str, target: Path | str) -> Path:
        source, target = Path(source), Path(target)
        target.parent.mkdir(parents=True, exist_ok=True)
        stream = self.build_audio_extraction(source, target)
        return self._run(stream, operation="extract_audio", source=source, target=target)
