"""Object store gateway built on the MinIO S3 client."""

from __future__ import annotations

import io
from mimetypes import guess_type
from pathlib import Path
from urllib.parse import urlparse

import structlog
from minio import Minio
from minio.error import S3Error

from ..core.config import Settings, get_settings

logger = structlog.get_logger(__name__)

PUBLIC_READ_HEADERS = {"x-amz-acl": "public-read"}


class StorageConfigurationError(RuntimeError):
    """Raised when storage configuration is invalid."""


class StorageError(RuntimeError):
    """Raised when an object store call fails."""


class MinioStorageService:
    """Bucket-addressed wrapper around MinIO for the pipeline's transfers."""

    def __init__(self, *, client: Minio, uri_scheme: str = "gs") -> None:
        self._client = client
        self._uri_scheme = uri_scheme

    def object_uri(self, bucket: str, object_key: str) -> str:
        """Return a ``<scheme>://bucket/key`` URI for the provided object."""

        return f"{self._uri_scheme}://{bucket}/{object_key}"

    def bucket_exists(self, bucket: str) -> bool:
        try:
            return self._client.bucket_exists(bucket)
        except S3Error as exc:
            raise StorageError(f"Unable to inspect bucket '{bucket}': {exc}") from exc

    def download_to_path(self, bucket: str, object_key: str, destination: Path | str) -> Path:
        """Download an object to a local path and return the resulting file path."""

        target = Path(destination)
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._client.fget_object(bucket, object_key, str(target))
        except S3Error as exc:
            logger.error(
                "storage.download.failed",
                bucket=bucket,
                object_key=object_key,
                error=str(exc),
            )
            raise StorageError(
                f"Failed to download {self.object_uri(bucket, object_key)}: {exc}"
            ) from exc
        logger.info(
            "storage.download.completed",
            bucket=bucket,
            object_key=object_key,
            destination=str(target),
        )
        return target

    def upload_file(
        self,
        bucket: str,
        object_key: str,
        file_path: Path | str,
        *,
        content_type: str | None = None,
        public: bool = False,
    ) -> str:
        """Upload a local file and return its object URI."""

        path = Path(file_path)
        if content_type is None:
            content_type = guess_type(path.name)[0] or "application/octet-stream"
        try:
            self._client.fput_object(
                bucket,
                object_key,
                str(path),
                content_type=content_type,
                metadata=dict(PUBLIC_READ_HEADERS) if public else None,
            )
        except S3Error as exc:
            logger.error(
                "storage.upload.failed",
                bucket=bucket,
                object_key=object_key,
                error=str(exc),
            )
            raise StorageError(
                f"Failed to upload {path} to {self.object_uri(bucket, object_key)}: {exc}"
            ) from exc
        uri = self.object_uri(bucket, object_key)
        logger.info("storage.upload.completed", uri=uri, public=public)
        return uri

    def upload_bytes(
        self,
        bucket: str,
        object_key: str,
        data: bytes,
        *,
        content_type: str = "application/octet-stream",
    ) -> str:
        try:
            self._client.put_object(
                bucket,
                object_key,
                io.BytesIO(data),
                length=len(data),
                content_type=content_type,
            )
        except S3Error as exc:
            raise StorageError(
                f"Failed to write {self.object_uri(bucket, object_key)}: {exc}"
            ) from exc
        uri = self.object_uri(bucket, object_key)
        logger.info("storage.upload.completed", uri=uri, size=len(data))
        return uri


def build_storage_service(settings: Settings | None = None) -> MinioStorageService:
    """Instantiate a storage service from application settings."""

    settings = settings or get_settings()
    if not all(
        [
            settings.s3_endpoint_url,
            settings.s3_access_key,
            settings.s3_secret_key,
        ]
    ):
        raise StorageConfigurationError("S3/MinIO environment variables are not fully set")

    parsed = urlparse(str(settings.s3_endpoint_url))
    secure = (
        settings.s3_secure
        if settings.s3_secure is not None
        else parsed.scheme == "https"
    )
    client = Minio(
        parsed.netloc,
        access_key=settings.s3_access_key,
        secret_key=settings.s3_secret_key,
        secure=secure,
        region=settings.s3_region,
    )
    return MinioStorageService(client=client, uri_scheme=settings.object_uri_scheme)
