"""
S3 blob backend for encrypted file attachments.

Blobs are stored as ``{bucket}/{prefix}/{file_id}``.  boto3 is synchronous,
so every call is moved off the event loop with ``asyncio.to_thread``; the
client itself is created lazily and shared (boto3 clients are thread-safe).
"""
from __future__ import annotations

import asyncio
import logging
from typing import Protocol, cast

from typing_extensions import TypedDict

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from scenevault.backends.base import BlobBackend
from scenevault.config import Settings, settings
from scenevault.errors import (
    BlobNotFoundError,
    ConfigurationError,
    StorageReadError,
    StorageWriteError,
    WriteConflictError,
)

logger = logging.getLogger(__name__)

S3_CONFIG = Config(signature_version="s3v4", retries={"max_attempts": 3, "mode": "standard"})

_NOT_FOUND_CODES = frozenset({"NoSuchKey", "404", "NotFound"})


class _S3StreamingBody(Protocol):
    """Structural interface for the streaming body returned by S3 get_object."""

    def read(self) -> bytes: ...


class _GetObjectResponse(TypedDict):
    """Typed subset of the boto3 get_object response that we actually use."""

    Body: _S3StreamingBody


class _S3Client(Protocol):
    """Structural interface for the boto3 S3 client methods used in this module."""

    def get_object(self, *, Bucket: str, Key: str) -> _GetObjectResponse: ...
    def put_object(self, **kwargs: object) -> dict[str, object]: ...
    def head_object(self, *, Bucket: str, Key: str) -> dict[str, object]: ...


def _s3_client(config: Settings) -> _S3Client:
    """Create an S3 client with SigV4 for the configured region / endpoint."""
    # boto3 has no type stubs — cast to our Protocol at the untyped library boundary.
    return cast(
        _S3Client,
        boto3.client(
            "s3",
            region_name=config.aws_region,
            endpoint_url=config.aws_endpoint_url,
            config=S3_CONFIG,
        ),
    )


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


class S3BlobBackend(BlobBackend):
    """Blob backend over an S3-compatible object store."""

    name = "s3"

    def __init__(self, client: _S3Client | None = None, *, config: Settings | None = None) -> None:
        self._client = client
        self._config = config or settings

    def _get_client(self) -> _S3Client:
        if self._client is None:
            self._client = _s3_client(self._config)
        return self._client

    def _exists(self, bucket: str, key: str) -> bool:
        try:
            self._get_client().head_object(Bucket=bucket, Key=key)
        except ClientError as exc:
            if _error_code(exc) in _NOT_FOUND_CODES:
                return False
            raise
        return True

    def _put(
        self,
        bucket: str,
        key: str,
        data: bytes,
        cache_control: str | None,
        upsert: bool,
    ) -> None:
        if not upsert and self._exists(bucket, key):
            raise WriteConflictError(f"{bucket}/{key} already exists")
        kwargs: dict[str, object] = {
            "Bucket": bucket,
            "Key": key,
            "Body": data,
            "ContentType": "application/octet-stream",
        }
        if cache_control:
            kwargs["CacheControl"] = cache_control
        self._get_client().put_object(**kwargs)

    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        *,
        cache_control: str | None = None,
        upsert: bool = True,
    ) -> None:
        try:
            await asyncio.to_thread(self._put, bucket, path, data, cache_control, upsert)
        except NoCredentialsError as exc:
            raise ConfigurationError("AWS credentials not configured for file storage") from exc
        except (ClientError, BotoCoreError) as exc:
            logger.error(f"❌ S3 upload failed for {path}: {exc}")
            raise StorageWriteError(f"Failed to upload {bucket}/{path}") from exc
        logger.debug("✅ Uploaded %s (%d bytes)", path, len(data))

    def _get(self, bucket: str, key: str) -> bytes:
        response = self._get_client().get_object(Bucket=bucket, Key=key)
        return response["Body"].read()

    async def download(self, bucket: str, path: str) -> bytes:
        try:
            return await asyncio.to_thread(self._get, bucket, path)
        except NoCredentialsError as exc:
            raise ConfigurationError("AWS credentials not configured for file storage") from exc
        except ClientError as exc:
            if _error_code(exc) in _NOT_FOUND_CODES:
                raise BlobNotFoundError(f"{bucket}/{path} not found") from exc
            logger.error(f"❌ S3 download failed for {path}: {exc}")
            raise StorageReadError(f"Failed to download {bucket}/{path}") from exc
        except BotoCoreError as exc:
            logger.error(f"❌ S3 download failed for {path}: {exc}")
            raise StorageReadError(f"Failed to download {bucket}/{path}") from exc
