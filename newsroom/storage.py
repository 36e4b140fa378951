"""
S3-compatible object storage for uploaded media.

Works against any bucket speaking the S3 API (Cloudflare R2, MinIO, AWS).
The ``minio`` client is blocking, so every call is pushed to a worker thread.
"""
import asyncio
import io
import logging
import os
import secrets
from dataclasses import dataclass

from minio import Minio
from minio.error import S3Error

from newsroom.config import settings
from newsroom.errors import ApiError

logger = logging.getLogger(__name__)


class StorageError(ApiError):
    status_code = 500


@dataclass(frozen=True)
class StoredObject:
    key: str
    url: str
    size: int
    mime_type: str


def build_key(original_name: str, folder: str = "media") -> str:
    """``<folder>/<32 hex chars><ext>``; the extension keeps the original case."""
    _, ext = os.path.splitext(original_name or "")
    return f"{folder}/{secrets.token_hex(16)}{ext}"


def public_url(key: str) -> str:
    return f"{settings.STORAGE_PUBLIC_URL.rstrip('/')}/{key}"


class ObjectStorage:
    def __init__(self) -> None:
        self._client: Minio | None = None

    @property
    def client(self) -> Minio:
        if self._client is None:
            self._client = Minio(
                endpoint=settings.STORAGE_ENDPOINT,
                access_key=settings.STORAGE_ACCESS_KEY,
                secret_key=settings.STORAGE_SECRET_KEY,
                secure=settings.STORAGE_SECURE,
                region=settings.STORAGE_REGION,
            )
        return self._client

    async def upload(
        self, content: bytes, original_name: str, content_type: str, folder: str = "media"
    ) -> StoredObject:
        key = build_key(original_name, folder)
        try:
            await asyncio.to_thread(
                self.client.put_object,
                bucket_name=settings.STORAGE_BUCKET,
                object_name=key,
                data=io.BytesIO(content),
                length=len(content),
                content_type=content_type,
            )
        except S3Error as exc:
            logger.error("Storing %s failed: %s", key, exc)
            raise StorageError("Failed to upload file") from exc
        logger.info("Stored %s (%d bytes)", key, len(content))
        return StoredObject(key=key, url=public_url(key), size=len(content), mime_type=content_type)

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(
                self.client.remove_object,
                bucket_name=settings.STORAGE_BUCKET,
                object_name=key,
            )
        except S3Error as exc:
            logger.error("Deleting %s failed: %s", key, exc)
            raise StorageError("Failed to delete media") from exc
        logger.info("Deleted %s", key)


_storage = ObjectStorage()


def get_storage() -> ObjectStorage:
    """FastAPI dependency; tests override it with an in-memory store."""
    return _storage
