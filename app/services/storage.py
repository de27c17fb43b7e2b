"""S3 storage helpers for uploaded media."""

from __future__ import annotations

import secrets
import string
import time
from typing import Any
from uuid import UUID

from botocore.exceptions import BotoCoreError, ClientError
from fastapi.concurrency import run_in_threadpool

from app.config.settings import StorageConfig
from app.models.media import MediaType
from app.services.aws import create_boto3_client

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


class StorageError(RuntimeError):
    """Raised when reading or signing S3 objects fails."""


class MediaStorage:
    """Bucket-per-media-type facade over S3.

    Storage paths have the form ``<bucket>/<owner_id>/<epoch_ms>-<suffix>`` so
    the bucket can be recovered from the path alone.
    """

    def __init__(self, config: StorageConfig, client: Any | None = None) -> None:
        self._config = config
        self._client = client or create_boto3_client(
            "s3",
            region_name=config.region,
            aws_access_key_id=config.access_key,
            aws_secret_access_key=config.secret_key,
        )

    def bucket_for(self, media_type: MediaType) -> str:
        if media_type == MediaType.IMAGE:
            return self._config.image_bucket
        return self._config.audio_bucket

    def build_storage_path(self, owner_id: UUID, media_type: MediaType) -> str:
        suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(6))
        return f"{self.bucket_for(media_type)}/{owner_id}/{int(time.time() * 1000)}-{suffix}"

    @staticmethod
    def split_path(storage_path: str) -> tuple[str, str]:
        bucket, _, key = storage_path.strip("/").partition("/")
        if not bucket or not key:
            raise StorageError(f"Invalid storage path: {storage_path!r}")
        return bucket, key

    async def create_upload_url(self, storage_path: str, content_type: str) -> str:
        """Return a time-limited presigned PUT URL for ``storage_path``."""

        bucket, key = self.split_path(storage_path)
        try:
            return await run_in_threadpool(
                self._client.generate_presigned_url,
                "put_object",
                Params={"Bucket": bucket, "Key": key, "ContentType": content_type},
                ExpiresIn=self._config.upload_url_expires_seconds,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to create signed URL: {exc}") from exc

    async def download_bytes(self, storage_path: str) -> bytes:
        """Fetch the raw object body stored at ``storage_path``."""

        bucket, key = self.split_path(storage_path)

        def _read() -> bytes:
            response = self._client.get_object(Bucket=bucket, Key=key)
            return response["Body"].read()

        try:
            data = await run_in_threadpool(_read)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to download {storage_path}: {exc}") from exc

        if not data:
            raise StorageError(f"Stored object {storage_path} is empty.")
        return data


__all__ = ["MediaStorage", "StorageError"]
