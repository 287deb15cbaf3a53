"""Functions for reading objects from an S3 bucket--the "R" in CRUD."""

from contextvars import ContextVar
from datetime import datetime
from typing import TYPE_CHECKING, Dict, Iterator, Optional, Tuple

import boto3
from botocore.exceptions import ClientError

if TYPE_CHECKING:
    from mypy_boto3_s3 import S3Client

_EXTRA_QUERY_PARAMS_HOOK_ID = "share-api-extra-query-params"
_extra_query_params: ContextVar[Optional[Dict[str, str]]] = ContextVar("_extra_query_params", default=None)


def _is_not_found(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NoSuchBucket", "NotFound")


def object_exists_in_s3(bucket_name: str, object_key: str, s3_client: Optional["S3Client"] = None) -> bool:
    """
    Check if an object exists in the S3 bucket using head_object.

    :param bucket_name: Name of the S3 bucket.
    :param object_key: Key of the object to check.
    :param s3_client: Optional S3 client to use. If not provided, a new client will be created.

    :return: True if the object exists, False otherwise.
    """
    s3_client = s3_client or boto3.client("s3")
    try:
        s3_client.head_object(Bucket=bucket_name, Key=object_key)
        return True
    except ClientError as err:
        if _is_not_found(err):
            return False
        raise


def bucket_exists(bucket_name: str, s3_client: Optional["S3Client"] = None) -> bool:
    s3_client = s3_client or boto3.client("s3")
    try:
        s3_client.head_bucket(Bucket=bucket_name)
        return True
    except ClientError as err:
        if _is_not_found(err):
            return False
        raise


def iter_s3_objects(
    bucket_name: str,
    prefix: str = "",
    s3_client: Optional["S3Client"] = None,
) -> Iterator[Tuple[str, datetime]]:
    """Yield ``(key, last_modified)`` for every object under ``prefix``, following pagination."""
    s3_client = s3_client or boto3.client("s3")
    paginator = s3_client.get_paginator("list_objects_v2")
    for page in paginator.paginate(Bucket=bucket_name, Prefix=prefix):
        for obj in page.get("Contents", []):
            yield obj["Key"], obj["LastModified"]


def _add_extra_query_params(request, **kwargs) -> None:
    extra = _extra_query_params.get()
    if extra:
        request.params.update(extra)


def generate_presigned_get_url(
    bucket_name: str,
    object_key: str,
    expires_in: int,
    extra_params: Optional[Dict[str, str]] = None,
    s3_client: Optional["S3Client"] = None,
) -> str:
    """
    Build a presigned GET URL for one object.

    Entries of ``extra_params`` are added to the query string before signing,
    so they are covered by the signature.

    :param expires_in: Lifetime of the URL in seconds.
    """
    s3_client = s3_client or boto3.client("s3")
    s3_client.meta.events.register(
        "before-sign.s3.GetObject",
        _add_extra_query_params,
        unique_id=_EXTRA_QUERY_PARAMS_HOOK_ID,
    )
    reset_token = _extra_query_params.set(dict(extra_params) if extra_params else None)
    try:
        return s3_client.generate_presigned_url(
            "get_object",
            Params={"Bucket": bucket_name, "Key": object_key},
            ExpiresIn=int(expires_in),
        )
    finally:
        _extra_query_params.reset(reset_token)
