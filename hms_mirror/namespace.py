"""HCFS namespace helpers.

A namespace is the scheme and authority prefix of a storage location, e.g.
``hdfs://ns1:8020`` or ``s3a://bucket``. Everything after it is the path.
"""

import re
from typing import Optional

NAMESPACE_PATTERN = re.compile(r"^([a-zA-Z][a-zA-Z0-9+.\-]*://[^/]*)")


def get_namespace(location: Optional[str]) -> Optional[str]:
    """Return the namespace portion of a location, or None when it has none.

    Examples:
        >>> get_namespace("hdfs://ns1:8020/warehouse/t1")
        'hdfs://ns1:8020'
        >>> get_namespace("hdfs:///warehouse")
        'hdfs://'
        >>> get_namespace("/warehouse/t1") is None
        True
    """
    if not location:
        return None
    match = NAMESPACE_PATTERN.match(location)
    return match.group(1) if match else None


def strip_namespace(location: Optional[str]) -> Optional[str]:
    """Remove the namespace from a location, leaving the path."""
    namespace = get_namespace(location)
    if namespace is None:
        return location
    return location[len(namespace):]


def replace_namespace(location: str, new_namespace: str) -> str:
    """Swap the namespace of ``location`` for ``new_namespace``."""
    return new_namespace.rstrip("/") + strip_namespace(location)


def reduce_url_by(url: Optional[str], level: int) -> Optional[str]:
    """Drop the last ``level`` path segments of a location.

    The namespace is preserved. A trailing slash is ignored.

    Args:
        url: Location to reduce.
        level: Number of trailing path segments to remove.

    Returns:
        The reduced location. Reducing past the root yields the namespace
        alone, or "/" for a bare path.

    Raises:
        ValueError: If level is negative.

    Example:
        >>> reduce_url_by("hdfs://ns/a/b/t1", 1)
        'hdfs://ns/a/b'
    """
    if url is None:
        return None
    if level < 0:
        raise ValueError(f"Reduction level must be >= 0, got {level}")

    namespace = get_namespace(url) or ""
    path = strip_namespace(url).rstrip("/")

    if level:
        segments = path.split("/")
        path = "/".join(segments[:-level]) if level < len(segments) else ""

    return (namespace + path) or "/"


def join_path(*parts: str) -> str:
    """Join location fragments with single slashes."""
    cleaned = [p.strip("/") for p in parts[1:] if p]
    head = parts[0].rstrip("/") if parts and parts[0] else ""
    return "/".join([head] + cleaned) if cleaned else head
