"""
Object store adapter bound to a single bucket.

Wraps the ``share_api.s3`` functions around one injected boto3 client so the
services never touch bucket names or client construction.
"""

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Dict, Iterator, Optional, Tuple, Union

import boto3
from botocore.config import Config

from share_api.s3.delete_objects import delete_s3_object
from share_api.s3.read_objects import (
    bucket_exists,
    generate_presigned_get_url,
    iter_s3_objects,
    object_exists_in_s3,
)
from share_api.s3.write_objects import create_bucket_if_missing, upload_s3_object

if TYPE_CHECKING:
    from mypy_boto3_s3 import S3Client

    from share_api.settings import Settings

logger = logging.getLogger(__name__)


def create_s3_client(settings: "Settings") -> "S3Client":
    """Build an S3 client with bounded timeouts and SigV4 presigning."""
    timeout = settings.io_timeout_seconds
    return boto3.client(
        "s3",
        config=Config(
            signature_version="s3v4",
            connect_timeout=timeout,
            read_timeout=timeout,
            retries={"max_attempts": 1, "mode": "standard"},
        ),
        **settings.s3_client_kwargs(),
    )


class ObjectStore:
    """Blob operations against one bucket."""

    def __init__(self, bucket_name: str, s3_client: Optional["S3Client"] = None):
        self.bucket_name = bucket_name
        self.s3_client = s3_client or boto3.client("s3")

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ObjectStore":
        store = cls(settings.s3_bucket_name, create_s3_client(settings))
        logger.info(f"Using S3 bucket: {store.bucket_name}")
        return store

    def put(self, key: str, data: bytes, content_type: Optional[str] = None) -> None:
        upload_s3_object(self.bucket_name, key, data, content_type=content_type, s3_client=self.s3_client)
        logger.debug(f"Stored {len(data)} bytes at {self.bucket_name}/{key}")

    def remove(self, key: str) -> None:
        delete_s3_object(self.bucket_name, key, s3_client=self.s3_client)
        logger.debug(f"Removed {self.bucket_name}/{key}")

    def exists(self, key: str) -> bool:
        return object_exists_in_s3(self.bucket_name, key, s3_client=self.s3_client)

    def presigned_get(
        self,
        key: str,
        ttl: Union[timedelta, int],
        extra_params: Optional[Dict[str, str]] = None,
    ) -> str:
        seconds = int(ttl.total_seconds()) if isinstance(ttl, timedelta) else int(ttl)
        return generate_presigned_get_url(
            self.bucket_name,
            key,
            expires_in=seconds,
            extra_params=extra_params,
            s3_client=self.s3_client,
        )

    def list_objects(self, prefix: str = "") -> Iterator[Tuple[str, datetime]]:
        return iter_s3_objects(self.bucket_name, prefix=prefix, s3_client=self.s3_client)

    def bucket_exists(self) -> bool:
        return bucket_exists(self.bucket_name, s3_client=self.s3_client)

    def ensure_bucket(self) -> bool:
        created = create_bucket_if_missing(self.bucket_name, s3_client=self.s3_client)
        if created:
            logger.info(f"Created S3 bucket: {self.bucket_name}")
        return created
