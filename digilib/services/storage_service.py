"""Private object storage for resource files (S3-compatible, via the minio SDK)."""

from __future__ import annotations

import io
import logging
from datetime import timedelta
from typing import Optional

import urllib3
from minio import Minio
from minio.error import MinioException, S3Error

from digilib.core.config import Settings

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when the object store rejects or cannot complete a call."""


class ObjectStorage:
    """A thin wrapper around the Minio client bound to one private bucket.

    The bucket is never given a public policy: objects are only reachable
    through presigned URLs produced by :meth:`signed_download_url`.
    """

    def __init__(
        self,
        bucket_name: str,
        *,
        endpoint: str,
        access_key: str,
        secret_key: str,
        secure: bool = True,
        region: Optional[str] = None,
        timeout_seconds: int = 10,
        client: Optional[Minio] = None,
    ) -> None:
        if client is None:
            http_client = urllib3.PoolManager(
                timeout=urllib3.Timeout(connect=timeout_seconds, read=timeout_seconds),
                retries=False,
            )
            client = Minio(
                endpoint=endpoint,
                access_key=access_key,
                secret_key=secret_key,
                secure=secure,
                region=region,
                http_client=http_client,
            )
        self.client = client
        self.bucket_name = bucket_name

    @classmethod
    def from_settings(cls, settings: Settings) -> "ObjectStorage":
        return cls(
            settings.storage_bucket,
            endpoint=settings.storage_endpoint,
            access_key=settings.storage_access_key,
            secret_key=settings.storage_secret_key,
            secure=settings.storage_secure,
            region=settings.storage_region or None,
        )

    def ensure_bucket(self) -> None:
        try:
            if not self.client.bucket_exists(self.bucket_name):
                self.client.make_bucket(self.bucket_name)
        except (MinioException, urllib3.exceptions.HTTPError) as exc:
            raise StorageError(f"Bucket {self.bucket_name!r} unavailable: {exc}") from exc

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        try:
            self.client.put_object(
                self.bucket_name,
                key,
                io.BytesIO(data),
                len(data),
                content_type=content_type,
            )
        except (MinioException, urllib3.exceptions.HTTPError) as exc:
            raise StorageError(f"Upload of {key!r} failed: {exc}") from exc
        logger.info("Stored object %s (%d bytes)", key, len(data))
        return key

    def delete(self, key: str) -> None:
        try:
            self.client.remove_object(self.bucket_name, key)
        except S3Error as exc:
            if exc.code != "NoSuchKey":
                raise StorageError(f"Delete of {key!r} failed: {exc}") from exc
        except (MinioException, urllib3.exceptions.HTTPError) as exc:
            raise StorageError(f"Delete of {key!r} failed: {exc}") from exc
        logger.info("Deleted object %s", key)

    def exists(self, key: str) -> bool:
        try:
            self.client.stat_object(self.bucket_name, key)
            return True
        except S3Error as exc:
            if exc.code in ("NoSuchKey", "NoSuchObject"):
                return False
            raise StorageError(f"Stat of {key!r} failed: {exc}") from exc
        except (MinioException, urllib3.exceptions.HTTPError) as exc:
            raise StorageError(f"Stat of {key!r} failed: {exc}") from exc

    def signed_download_url(self, key: str, *, filename: str, ttl_seconds: int) -> str:
        """Presigned GET for one object that forces a download instead of inline rendering."""
        safe_name = filename.replace('"', "").replace("\r", "").replace("\n", "") or key.rsplit("/", 1)[-1]
        try:
            return self.client.presigned_get_object(
                self.bucket_name,
                key,
                expires=timedelta(seconds=ttl_seconds),
                response_headers={"response-content-disposition": f'attachment; filename="{safe_name}"'},
            )
        except (MinioException, urllib3.exceptions.HTTPError, ValueError) as exc:
            raise StorageError(f"Signing of {key!r} failed: {exc}") from exc
