"""
S3 object storage for production deployments.

Objects are written with a public-read ACL so the returned URL can be
played directly by the browser.
"""

from __future__ import annotations

import asyncio
import logging
from urllib.parse import quote

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from audio_lti.utils.ids import AUDIO_CONTENT_TYPE, object_file_name

from .base import StorageBackend, StorageError, StoredAudio

logger = logging.getLogger(__name__)


class S3StorageBackend(StorageBackend):
    """Stores recordings under ``submissions/`` in an S3 bucket."""

    name = "s3"
    key_prefix = "submissions"

    def __init__(self, client, bucket_name: str, region: str = "us-east-1"):
        self._client = client
        self.bucket_name = bucket_name
        self.region = region

    @classmethod
    def from_credentials(
        cls,
        access_key_id: str,
        secret_access_key: str,
        bucket_name: str,
        region: str = "us-east-1",
    ) -> "S3StorageBackend":
        """Create a backend with its own boto3 client."""
        client = boto3.client(
            "s3",
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            region_name=region,
        )
        return cls(client, bucket_name, region)

    def media_origin(self) -> str:
        return f"https://{self.bucket_name}.s3.{self.region}.amazonaws.com"

    def public_url(self, key: str) -> str:
        return f"{self.media_origin()}/{quote(key)}"

    async def save(self, submission_id: str, data: bytes) -> StoredAudio:
        file_name = object_file_name(submission_id)
        key = f"{self.key_prefix}/{file_name}"

        try:
            # boto3 is blocking
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentType=AUDIO_CONTENT_TYPE,
                ACL="public-read",
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"S3 upload of {key} failed: {e}") from e

        logger.info(
            "Uploaded %d bytes for submission %s to s3://%s/%s",
            len(data), submission_id, self.bucket_name, key,
        )
        return StoredAudio(url=self.public_url(key), file_name=file_name)
