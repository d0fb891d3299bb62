"""
Object storage for profile photos (MinIO / S3).

Two SDK clients are kept: the internal one talks to the store over the
service network for uploads and bucket management, the external one signs
URLs against the publicly reachable endpoint. The MinIO SDK is blocking, so
every call runs in a worker thread.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from datetime import timedelta
from io import BytesIO
from urllib.parse import urlsplit

import structlog
from minio import Minio
from minio.error import MinioException

from usersvc.config import Settings, get_settings
from usersvc.errors import StorageError

logger = structlog.get_logger()

# Content type -> file extension for profile photos
PHOTO_CONTENT_TYPES: dict[str, str] = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}


def normalize_endpoint(raw: str) -> tuple[str, bool]:
    """Turn ``host:port`` or ``http(s)://host[:port]`` into ``(host, secure)``.

    Raises ValueError for an empty endpoint, a URL without a host, or a URL
    carrying a path.
    """
    raw = raw.strip()
    if not raw:
        msg = "empty endpoint"
        raise ValueError(msg)

    if raw.startswith(("http://", "https://")):
        parts = urlsplit(raw)
        if parts.path not in ("", "/"):
            msg = f"endpoint must not contain a path: {raw!r}"
            raise ValueError(msg)
        if not parts.netloc:
            msg = f"endpoint url missing host: {raw!r}"
            raise ValueError(msg)
        return parts.netloc, parts.scheme == "https"

    return raw, False


def profile_photo_key(subject: str, content_type: str) -> str:
    """Object key for a user's profile photo. Raises ValueError for unsupported types."""
    ext = PHOTO_CONTENT_TYPES.get(content_type)
    if ext is None:
        msg = "only jpeg, png and webp images are allowed"
        raise ValueError(msg)
    return f"users/{subject}/profile.{ext}"


class BaseObjectStore(ABC):
    """Operations the service needs from the object store."""

    bucket: str
    public_base_url: str

    @abstractmethod
    async def ensure_bucket(self) -> None:
        """Create the bucket when it does not exist."""
        ...

    @abstractmethod
    async def put_object(self, key: str, data: bytes, content_type: str) -> None:
        """Upload ``data`` under ``key``."""
        ...

    @abstractmethod
    async def presign_get(self, key: str, expires: timedelta) -> str:
        """Time-limited download URL."""
        ...

    @abstractmethod
    async def presign_put(self, key: str, expires: timedelta) -> str:
        """Time-limited upload URL."""
        ...

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url.rstrip('/')}/{key}"

    def key_from_public_url(self, url: str) -> str:
        """Inverse of ``public_url``. Raises ValueError for foreign URLs."""
        prefix = self.public_base_url.rstrip("/") + "/"
        if not url.startswith(prefix) or len(url) == len(prefix):
            msg = "url does not belong to this bucket"
            raise ValueError(msg)
        return url[len(prefix):]


class MinioObjectStore(BaseObjectStore):
    """MinIO SDK implementation."""

    def __init__(
        self,
        endpoint: str,
        access_key: str,
        secret_key: str,
        bucket: str,
        public_base_url: str,
        external_endpoint: str = "",
        region: str = "us-east-1",
    ) -> None:
        internal_host, internal_secure = normalize_endpoint(endpoint)
        # Presigning falls back to the internal endpoint when no public one is set
        external_host, external_secure = normalize_endpoint(external_endpoint or endpoint)

        self.bucket = bucket
        self.public_base_url = public_base_url
        self._internal = Minio(
            internal_host,
            access_key=access_key,
            secret_key=secret_key,
            secure=internal_secure,
            region=region,
        )
        self._presign = Minio(
            external_host,
            access_key=access_key,
            secret_key=secret_key,
            secure=external_secure,
            region=region,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> MinioObjectStore:
        return cls(
            endpoint=settings.s3_endpoint,
            access_key=settings.s3_access_key,
            secret_key=settings.s3_secret_key,
            bucket=settings.s3_bucket,
            public_base_url=settings.s3_public_base_url,
            external_endpoint=settings.s3_external_endpoint,
            region=settings.s3_region,
        )

    async def ensure_bucket(self) -> None:
        def _ensure_bucket() -> None:
            if not self._internal.bucket_exists(self.bucket):
                self._internal.make_bucket(self.bucket)
                logger.info("bucket_created", bucket=self.bucket)

        try:
            await asyncio.to_thread(_ensure_bucket)
        except (MinioException, OSError) as e:
            msg = f"ensure bucket {self.bucket} failed"
            raise StorageError(msg) from e

    async def put_object(self, key: str, data: bytes, content_type: str) -> None:
        try:
            await asyncio.to_thread(
                self._internal.put_object,
                self.bucket,
                key,
                BytesIO(data),
                len(data),
                content_type=content_type,
            )
        except (MinioException, OSError) as e:
            logger.warning("object_upload_failed", key=key, error=str(e))
            msg = "upload failed"
            raise StorageError(msg) from e

    async def presign_get(self, key: str, expires: timedelta) -> str:
        try:
            return await asyncio.to_thread(self._presign.presigned_get_object, self.bucket, key, expires=expires)
        except (MinioException, OSError) as e:
            msg = "presign failed"
            raise StorageError(msg) from e

    async def presign_put(self, key: str, expires: timedelta) -> str:
        try:
            return await asyncio.to_thread(self._presign.presigned_put_object, self.bucket, key, expires=expires)
        except (MinioException, OSError) as e:
            msg = "presign failed"
            raise StorageError(msg) from e


async def ensure_bucket_with_retry(store: BaseObjectStore, attempts: int = 10, delay_seconds: float = 2.0) -> bool:
    """Try ``ensure_bucket`` until it succeeds. Returns False if every attempt failed."""
    for attempt in range(1, attempts + 1):
        try:
            await store.ensure_bucket()
            logger.info("bucket_ready", bucket=store.bucket, attempt=attempt)
            return True
        except StorageError:
            logger.warning("bucket_not_ready", bucket=store.bucket, attempt=attempt, max_attempts=attempts)
            if attempt < attempts:
                await asyncio.sleep(delay_seconds)
    logger.error("bucket_unavailable", bucket=store.bucket)
    return False


def get_object_store() -> MinioObjectStore:
    """Build the store from application settings."""
    return MinioObjectStore.from_settings(get_settings())
