"""
KYC Document Storage

S3-compatible blob storage for identity documents, using boto3.
The sync boto3 client runs in a worker thread so it doesn't block the
event loop (same approach as the Resend client in email.py).

Objects live in a private bucket; the admin review screen gets short-lived
presigned GET URLs instead of direct access.
"""

import asyncio
import logging
from functools import lru_cache
from typing import Protocol

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from timint.core.config import settings

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when the blob store cannot complete an operation."""


class BlobStore(Protocol):
    """Contract the registration lifecycle needs from document storage."""

    async def put(self, key: str, data: bytes, content_type: str) -> str: ...

    async def delete(self, key: str) -> None: ...

    async def signed_url(self, key: str, ttl_seconds: int) -> str: ...


@lru_cache
def _get_s3_client():
    return boto3.client(
        "s3",
        endpoint_url=settings.s3_endpoint_url,
        aws_access_key_id=settings.s3_access_key_id,
        aws_secret_access_key=settings.s3_secret_access_key,
        region_name=settings.s3_region,
        config=Config(signature_version="s3v4"),
    )


class S3BlobStore:
    """BlobStore backed by an S3 bucket."""

    def __init__(self, bucket: str | None = None, client=None):
        self.bucket = bucket or settings.kyc_bucket
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = _get_s3_client()
        return self._client

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        """
        Upload bytes under `key`.

        Returns:
            The object key, used as the opaque storage reference
        """
        try:
            await asyncio.to_thread(
                self.client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to store object {key}: {e}")
            raise StorageError(f"Failed to store object {key}") from e

        logger.info(f"Stored object {key} ({len(data)} bytes)")
        return key

    async def delete(self, key: str) -> None:
        """Delete an object. Deleting a missing key is not an error."""
        try:
            await asyncio.to_thread(self.client.delete_object, Bucket=self.bucket, Key=key)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("NoSuchKey", "404"):
                logger.info(f"Object {key} already absent")
                return
            logger.error(f"Failed to delete object {key}: {e}")
            raise StorageError(f"Failed to delete object {key}") from e
        except BotoCoreError as e:
            logger.error(f"Failed to delete object {key}: {e}")
            raise StorageError(f"Failed to delete object {key}") from e

        logger.info(f"Deleted object {key}")

    async def signed_url(self, key: str, ttl_seconds: int) -> str:
        """Return a presigned GET URL valid for `ttl_seconds`."""
        try:
            return await asyncio.to_thread(
                self.client.generate_presigned_url,
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=ttl_seconds,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to sign URL for {key}: {e}")
            raise StorageError(f"Failed to sign URL for {key}") from e


def get_blob_store() -> BlobStore:
    """FastAPI dependency for the document blob store."""
    return S3BlobStore()
