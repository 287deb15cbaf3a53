"""Functions for writing objects to an S3 bucket--the "C" in CRUD."""

from typing import TYPE_CHECKING, Optional

import boto3

from share_api.s3.read_objects import bucket_exists

if TYPE_CHECKING:
    from mypy_boto3_s3 import S3Client


def upload_s3_object(
    bucket_name: str,
    object_key: str,
    file_content: bytes,
    content_type: Optional[str] = None,
    s3_client: Optional["S3Client"] = None,
) -> None:
    """
    Upload a file to an S3 bucket.

    :param bucket_name: The name of the S3 bucket.
    :param object_key: path to the object in the S3 bucket.
    :param file_content: The content of the file to upload.
    :param content_type: The MIME type of the file, e.g. "text/plain" for a text file.
    :param s3_client: An optional boto3 S3 client. If not provided, one will be created.
    """
    content_type = content_type or "application/octet-stream"
    s3_client = s3_client or boto3.client("s3")
    s3_client.put_object(
        Bucket=bucket_name,
        Key=object_key,
        Body=file_content,
        ContentType=content_type,
    )


def create_bucket_if_missing(bucket_name: str, s3_client: Optional["S3Client"] = None) -> bool:
    """
    Create the bucket unless it already exists.

    :return: True if the bucket was created by this call.
    """
    s3_client = s3_client or boto3.client("s3")
    if bucket_exists(bucket_name, s3_client=s3_client):
        return False
    region = s3_client.meta.region_name
    if region and region != "us-east-1":
        s3_client.create_bucket(
            Bucket=bucket_name,
            CreateBucketConfiguration={"LocationConstraint": region},
        )
    else:
        s3_client.create_bucket(Bucket=bucket_name)
    return True
