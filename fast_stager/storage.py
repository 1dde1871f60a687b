"""Object storage for generated images."""

import logging
from typing import Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import StagerConfig

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """An object could not be written to storage."""


class ObjectStorage(Protocol):
    def put(self, bucket: str, key: str, body: bytes, content_type: str) -> None:
        """Store ``body`` under ``bucket``/``key`` or raise StorageError."""
        ...


class S3Storage:
    """S3-backed storage using the default boto3 credential chain."""

    def __init__(self, region: str, client=None):
        self._client = client or boto3.Session(region_name=region).client("s3")

    @classmethod
    def from_config(cls, config: StagerConfig) -> "S3Storage":
        return cls(region=config.aws_region)

    def put(self, bucket: str, key: str, body: bytes, content_type: str) -> None:
        try:
            self._client.put_object(Bucket=bucket, Key=key, Body=body, ContentType=content_type)
        except (BotoCoreError, ClientError) as e:
            logger.exception(f"S3 upload failed for s3://{bucket}/{key}")
            raise StorageError(str(e)) from e
        logger.info(f"Uploaded {len(body)} bytes to s3://{bucket}/{key}")
