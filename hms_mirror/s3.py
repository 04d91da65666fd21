"""S3 utilities for link tests and migration artifacts.

Provides helpers for:
- S3 path parsing (s3:// and s3a://)
- Checking that a location is reachable
- Reading and writing plan artifacts
"""

import logging
from typing import Any, Iterable

import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

S3_SCHEMES = ("s3://", "s3a://", "s3n://")


def get_s3_client(region: str = "us-east-1") -> Any:
    """Create boto3 S3 client.

    Args:
        region: AWS region for the S3 client.

    Returns:
        Boto3 S3 client configured for the specified region.
    """
    return boto3.client("s3", region_name=region)


def is_s3_path(path: str) -> bool:
    return path.startswith(S3_SCHEMES)


def parse_s3_path(s3_path: str) -> tuple[str, str]:
    """Parse S3 path into bucket and key.

    Args:
        s3_path: Full S3 path (s3://bucket/key or s3a://bucket/key).

    Returns:
        Tuple of (bucket, key).

    Raises:
        ValueError: If path is not a valid S3 path.
    """
    for scheme in S3_SCHEMES:
        if s3_path.startswith(scheme):
            parts = s3_path[len(scheme):].split("/", 1)
            bucket = parts[0]
            key = parts[1] if len(parts) > 1 else ""
            if not bucket:
                break
            return bucket, key
    raise ValueError(f"Invalid S3 path: {s3_path}")


def location_exists(location: str, region: str = "us-east-1") -> bool:
    """Check that an S3 location can be listed.

    A bucket root counts as reachable when the bucket can be listed at all;
    a prefix counts when at least one object lives under it.

    Args:
        location: S3 location to check.
        region: AWS region for S3 client.

    Returns:
        True when the location is reachable, False on an AWS error or when
        nothing exists under the prefix.
    """
    s3_client = get_s3_client(region)
    bucket, prefix = parse_s3_path(location.rstrip("/"))
    if prefix and not prefix.endswith("/"):
        prefix += "/"

    try:
        response = s3_client.list_objects_v2(Bucket=bucket, Prefix=prefix, MaxKeys=1)
    except (ClientError, BotoCoreError) as e:
        logger.warning(f"Link test failed for {location}: {e}")
        return False

    return not prefix or response.get("KeyCount", 0) > 0


def check_links(locations: Iterable[str], region: str = "us-east-1") -> dict[str, bool]:
    """Run location_exists over several namespaces.

    Non-S3 locations are reported as unreachable rather than raising.
    """
    results = {}
    for location in locations:
        if not is_s3_path(location):
            logger.warning(f"Skipping link test for non-S3 location: {location}")
            results[location] = False
            continue
        results[location] = location_exists(location, region=region)
    return results


def write_to_s3(
    content: str,
    s3_path: str,
    region: str = "us-east-1",
    content_type: str = "application/json",
) -> str:
    """Write string content to an S3 path.

    Args:
        content: String content to write.
        s3_path: Full S3 path to write to (s3://bucket/key).
        region: AWS region for S3 client.
        content_type: MIME type stored with the object.

    Returns:
        The S3 path where content was written.

    Raises:
        ValueError: If s3_path is not a valid S3 path.
    """
    s3_client = get_s3_client(region)
    bucket, key = parse_s3_path(s3_path)

    s3_client.put_object(
        Bucket=bucket,
        Key=key,
        Body=content.encode("utf-8"),
        ContentType=content_type,
    )

    return s3_path


def read_from_s3(s3_path: str, region: str = "us-east-1") -> str:
    """Read an S3 object as UTF-8 text."""
    s3_client = get_s3_client(region)
    bucket, key = parse_s3_path(s3_path)
    response = s3_client.get_object(Bucket=bucket, Key=key)
    return response["Body"].read().decode("utf-8")
