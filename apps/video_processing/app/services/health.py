"""Dependency probes behind ``GET /health``."""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable

import structlog

from ..core.config import Settings
from ..domain.health import (
    CheckStatus,
    DependencyCheck,
    HealthResponse,
    derive_overall_status,
)
from ..repositories.videos import VideosRepository
from .storage import MinioStorageService

logger = structlog.get_logger(__name__)

SERVICE_STARTED_AT = time.monotonic()


async def _timed(probe: Callable[[], Awaitable[str | None]], name: str) -> DependencyCheck:
    start = time.perf_counter()
    try:
        failure = await probe()
    except Exception as exc:
        logger.warning("health.check.failed", dependency=name, error=str(exc))
        failure = str(exc) or f"Unknown error checking {name}"
    latency_ms = round((time.perf_counter() - start) * 1000, 2)
    if failure:
        return DependencyCheck(status=CheckStatus.FAIL, details=failure, latency_ms=latency_ms)
    return DependencyCheck(status=CheckStatus.PASS, latency_ms=latency_ms)


class HealthService:
    def __init__(
        self,
        *,
        settings: Settings,
        videos: VideosRepository | None,
        storage: MinioStorageService | None,
        started_at: float = SERVICE_STARTED_AT,
    ) -> None:
        self._settings = settings
        self._videos = videos
        self._storage = storage
        self._started_at = started_at

    async def _check_metadata_store(self) -> str | None:
        if self._videos is None:
            return "Metadata store is not configured"
        await self._videos.ping()
        return None

    async def _check_bucket(self, bucket: str) -> str | None:
        if self._storage is None:
            return "Object storage is not configured"
        exists = await asyncio.to_thread(self._storage.bucket_exists, bucket)
        if not exists:
            return f"Bucket {bucket} does not exist"
        return None

    async def build_response(self) -> HealthResponse:
        metadata_store, raw_bucket, processed_bucket = await asyncio.gather(
            _timed(self._check_metadata_store, "metadataStore"),
            _timed(
                lambda: self._check_bucket(self._settings.raw_video_bucket_name),
                "rawVideoBucket",
            ),
            _timed(
                lambda: self._check_bucket(self._settings.processed_video_bucket_name),
                "processedVideoBucket",
            ),
        )
        dependencies = {
            "metadataStore": metadata_store,
            "rawVideoBucket": raw_bucket,
            "processedVideoBucket": processed_bucket,
        }
        return HealthResponse(
            status=derive_overall_status(dependencies.values()),
            timestamp=datetime.now(timezone.utc),
            uptime_seconds=round(time.monotonic() - self._started_at),
            version=self._settings.service_version,
            environment=self._settings.environment,
            dependencies=dependencies,
        )
