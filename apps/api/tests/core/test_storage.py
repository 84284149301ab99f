"""
Tests for the S3 blob store wrapper.

The boto3 client is replaced with a MagicMock.
"""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from timint.core.storage import S3BlobStore, StorageError


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


@pytest.fixture
def s3_client():
    return MagicMock()


@pytest.fixture
def store(s3_client) -> S3BlobStore:
    return S3BlobStore(bucket="kyc-test", client=s3_client)


class TestS3BlobStore:
    @pytest.mark.asyncio
    async def test_put_returns_key(self, store, s3_client):
        ref = await store.put("user-1/selfie-1.jpg", b"data", "image/jpeg")

        assert ref == "user-1/selfie-1.jpg"
        s3_client.put_object.assert_called_once_with(
            Bucket="kyc-test",
            Key="user-1/selfie-1.jpg",
            Body=b"data",
            ContentType="image/jpeg",
        )

    @pytest.mark.asyncio
    async def test_put_failure(self, store, s3_client):
        s3_client.put_object.side_effect = _client_error("InternalError", "PutObject")

        with pytest.raises(StorageError):
            await store.put("user-1/selfie-1.jpg", b"data", "image/jpeg")

    @pytest.mark.asyncio
    async def test_delete_missing_key_is_not_an_error(self, store, s3_client):
        s3_client.delete_object.side_effect = _client_error("NoSuchKey", "DeleteObject")

        await store.delete("user-1/gone.jpg")

    @pytest.mark.asyncio
    async def test_delete_failure(self, store, s3_client):
        s3_client.delete_object.side_effect = _client_error("AccessDenied", "DeleteObject")

        with pytest.raises(StorageError):
            await store.delete("user-1/selfie-1.jpg")

    @pytest.mark.asyncio
    async def test_signed_url(self, store, s3_client):
        s3_client.generate_presigned_url.return_value = "https://s3.test/signed"

        url = await store.signed_url("user-1/selfie-1.jpg", 3600)

        assert url == "https://s3.test/signed"
        s3_client.generate_presigned_url.assert_called_once_with(
            "get_object",
            Params={"Bucket": "kyc-test", "Key": "user-1/selfie-1.jpg"},
            ExpiresIn=3600,
        )
