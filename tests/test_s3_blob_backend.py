"""Tests for the S3 blob backend (scenevault/backends/s3.py).

The boto3 client is replaced with a MagicMock; no network access.
"""
from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError, NoCredentialsError

from scenevault.backends.s3 import S3BlobBackend
from scenevault.config import Settings
from scenevault.errors import (
    BlobNotFoundError,
    ConfigurationError,
    StorageReadError,
    StorageWriteError,
    WriteConflictError,
)


def _make_client_error(code: str = "NoSuchKey", operation: str = "GetObject") -> ClientError:

    return ClientError(
        error_response={"Error": {"Code": code, "Message": "test"}},
        operation_name=operation,
    )


# ---------------------------------------------------------------------------
# upload
# ---------------------------------------------------------------------------


class TestUpload:

    @pytest.mark.asyncio
    async def test_put_object_arguments(self) -> None:

        client = MagicMock()
        await S3BlobBackend(client).upload("bucket", "rooms/r/f1", b"data", cache_control="public, max-age=60")

        client.put_object.assert_called_once_with(
            Bucket="bucket",
            Key="rooms/r/f1",
            Body=b"data",
            ContentType="application/octet-stream",
            CacheControl="public, max-age=60",
        )
        client.head_object.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_upsert_refuses_existing(self) -> None:

        client = MagicMock()
        with pytest.raises(WriteConflictError):
            await S3BlobBackend(client).upload("bucket", "k", b"data", upsert=False)
        client.put_object.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_upsert_writes_when_absent(self) -> None:

        client = MagicMock()
        client.head_object.side_effect = _make_client_error("404", "HeadObject")
        await S3BlobBackend(client).upload("bucket", "k", b"data", upsert=False)
        client.put_object.assert_called_once()

    @pytest.mark.asyncio
    async def test_client_error_is_write_error(self) -> None:

        client = MagicMock()
        client.put_object.side_effect = _make_client_error("AccessDenied", "PutObject")
        with pytest.raises(StorageWriteError):
            await S3BlobBackend(client).upload("bucket", "k", b"data")

    @pytest.mark.asyncio
    async def test_missing_credentials_is_configuration_error(self) -> None:

        client = MagicMock()
        client.put_object.side_effect = NoCredentialsError()
        with pytest.raises(ConfigurationError):
            await S3BlobBackend(client).upload("bucket", "k", b"data")


# ---------------------------------------------------------------------------
# download
# ---------------------------------------------------------------------------


class TestDownload:

    @pytest.mark.asyncio
    async def test_returns_body_bytes(self) -> None:

        client = MagicMock()
        client.get_object.return_value = {"Body": MagicMock(read=MagicMock(return_value=b"blob"))}
        assert await S3BlobBackend(client).download("bucket", "k") == b"blob"
        client.get_object.assert_called_once_with(Bucket="bucket", Key="k")

    @pytest.mark.asyncio
    async def test_no_such_key_is_not_found(self) -> None:

        client = MagicMock()
        client.get_object.side_effect = _make_client_error("NoSuchKey")
        with pytest.raises(BlobNotFoundError):
            await S3BlobBackend(client).download("bucket", "k")

    @pytest.mark.asyncio
    async def test_other_client_error_is_read_error(self) -> None:

        client = MagicMock()
        client.get_object.side_effect = _make_client_error("AccessDenied")
        with pytest.raises(StorageReadError) as exc_info:
            await S3BlobBackend(client).download("bucket", "k")
        assert not isinstance(exc_info.value, BlobNotFoundError)

    @pytest.mark.asyncio
    async def test_connection_error_is_read_error(self) -> None:

        client = MagicMock()
        client.get_object.side_effect = EndpointConnectionError(endpoint_url="http://localhost:9000")
        with pytest.raises(StorageReadError):
            await S3BlobBackend(client).download("bucket", "k")


@patch("scenevault.backends.s3.boto3")
def test_client_created_lazily_from_settings(mock_boto3: MagicMock) -> None:

    backend = S3BlobBackend()
    mock_boto3.client.assert_not_called()

    backend._get_client()
    backend._get_client()

    mock_boto3.client.assert_called_once()
    args, kwargs = mock_boto3.client.call_args
    assert args == ("s3",)
    assert "region_name" in kwargs


@patch("scenevault.backends.s3.boto3")
def test_client_uses_given_settings(mock_boto3: MagicMock) -> None:

    cfg = Settings(_env_file=None, aws_region="ap-south-1", aws_endpoint_url="http://minio:9000")
    S3BlobBackend(config=cfg)._get_client()

    _, kwargs = mock_boto3.client.call_args
    assert kwargs["region_name"] == "ap-south-1"
    assert kwargs["endpoint_url"] == "http://minio:9000"
