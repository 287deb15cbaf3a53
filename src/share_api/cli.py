# cli.py
import click
import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Set, Tuple

from share_api.adapters.storage import ObjectStore
from share_api.main import configure_logging, metadata_store_from_settings
from share_api.services.records import utc_now
from share_api.settings import get_settings
from share_api.utils.decorators import log_execution_time

# Configure logging
logger = logging.getLogger(__name__)

OBJECT_ID_LENGTH = 24

# Younger objects may belong to an upload whose record is still being written
DEFAULT_ORPHAN_MIN_AGE_MINUTES = 60


def record_id_from_key(key: str) -> str:
    """Object keys are ``{id}_{filename}``; return the id part, or '' if the key has another shape."""
    prefix, sep, _ = key.partition("_")
    if not sep or len(prefix) != OBJECT_ID_LENGTH:
        return ""
    return prefix


def find_orphaned_keys(
    objects: Iterable[Tuple[str, datetime]],
    record_ids: Set[str],
    modified_before: Optional[datetime] = None,
) -> List[str]:
    """Keys whose id prefix has no metadata record, skipping objects modified at or after ``modified_before``."""
    return [
        key
        for key, last_modified in objects
        if record_id_from_key(key) not in record_ids
        and (modified_before is None or last_modified < modified_before)
    ]


@click.group()
def cli():
    """Operator commands for the Secure Share API"""
    configure_logging(get_settings().log_level)


@cli.command()
def show_config():
    """Show current configuration"""
    settings = get_settings()

    print("Current Configuration:")
    print(f"  Deployment Mode: {settings.deployment_mode}")
    print(f"  AWS Region: {settings.aws_region}")
    print(f"  AWS Endpoint: {settings.aws_endpoint_url}")
    print(f"  S3 Bucket: {settings.s3_bucket_name}")
    print(f"  MongoDB Database: {settings.mongodb_database}.{settings.mongodb_collection}")
    print(f"  I/O Timeout: {settings.io_timeout_seconds}s")
    print(f"  File Retention: {settings.file_retention_hours}h")
    print(f"  One-time Token Lifetime: {settings.one_time_token_minutes}m")
    print(f"  Download URL Lifetime: {settings.download_url_minutes}m")
    print(f"  Identity Header: {settings.identity_header}")


@cli.command()
def init_db():
    """Create the bucket and the collection indexes if missing"""
    settings = get_settings()
    object_store = ObjectStore.from_settings(settings)
    metadata_store = metadata_store_from_settings(settings)
    try:
        if object_store.ensure_bucket():
            print(f"✅ Created bucket {object_store.bucket_name}")
        else:
            print(f"Bucket {object_store.bucket_name} already exists")
        metadata_store.init_collections()
        print(f"✅ Indexes ready on {settings.mongodb_database}.{settings.mongodb_collection}")
    finally:
        metadata_store.close()


@cli.command()
@click.option("--prefix", default="", help="Only scan keys under this prefix")
@click.option(
    "--older-than",
    "min_age_minutes",
    type=click.IntRange(min=0),
    default=DEFAULT_ORPHAN_MIN_AGE_MINUTES,
    show_default=True,
    help="Only consider objects last modified at least this many minutes ago",
)
@click.option("--delete", "delete_orphans", is_flag=True, help="Remove the orphaned objects")
@log_execution_time
def find_orphans(prefix, min_age_minutes, delete_orphans):
    """List stored objects that have no metadata record"""
    settings = get_settings()
    object_store = ObjectStore.from_settings(settings)
    metadata_store = metadata_store_from_settings(settings)
    modified_before = utc_now() - timedelta(minutes=min_age_minutes)
    try:
        record_ids = set(metadata_store.distinct_ids())
        orphans = find_orphaned_keys(object_store.list_objects(prefix), record_ids, modified_before)
    finally:
        metadata_store.close()

    if not orphans:
        print("No orphaned objects found")
        return

    print(f"Found {len(orphans)} orphaned object(s) in {object_store.bucket_name}:")
    for key in orphans:
        print(f"  {key}")

    if not delete_orphans:
        return

    failed = 0
    for key in orphans:
        try:
            object_store.remove(key)
        except Exception as e:
            failed += 1
            logger.error(f"Failed to remove orphan {key}: {e}")
    print(f"Removed {len(orphans) - failed} orphaned object(s), {failed} failed")
    if failed:
        raise click.ClickException(f"{failed} orphaned object(s) could not be removed")


if __name__ == "__main__":
    cli()
