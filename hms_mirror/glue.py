"""AWS Glue Data Catalog access.

Glue stands in for a Hive metastore: tables are fetched as Glue metadata
and rendered as ``SHOW CREATE TABLE`` lines so the rest of the package can
treat both sources the same way.
"""

import fnmatch
from typing import Any, Iterator, Optional

import boto3


def get_glue_client(region: str = "us-east-1") -> Any:
    """Create a boto3 Glue client for ``region``."""
    return boto3.client("glue", region_name=region)


def _catalog_args(catalog_id: Optional[str], **kwargs: str) -> dict[str, str]:
    # CatalogId is only sent for cross-account catalogs.
    if catalog_id:
        kwargs["CatalogId"] = catalog_id
    return kwargs


def _paginate(operation: str, result_key: str, region: str, **kwargs: Any) -> Iterator[dict[str, Any]]:
    paginator = get_glue_client(region).get_paginator(operation)
    for page in paginator.paginate(**kwargs):
        yield from page.get(result_key, [])


def get_glue_table_metadata(
    glue_database: str,
    table_name: str,
    region: str = "us-east-1",
    catalog_id: Optional[str] = None,
) -> dict[str, Any]:
    """Fetch one table's Glue metadata.

    Raises:
        botocore.exceptions.ClientError: ``EntityNotFoundException`` when the
            table doesn't exist, or any other AWS API error.
    """
    response = get_glue_client(region).get_table(**_catalog_args(catalog_id, DatabaseName=glue_database, Name=table_name))
    return response["Table"]


def get_glue_partitions(
    glue_database: str,
    table_name: str,
    region: str = "us-east-1",
    catalog_id: Optional[str] = None,
) -> list[dict[str, Any]]:
    """Fetch every partition of a table, following pagination.

    Returns:
        Glue partition dicts. ``Values`` holds the partition values in key
        order and ``StorageDescriptor.Location`` the partition directory.
    """
    args = _catalog_args(catalog_id, DatabaseName=glue_database, TableName=table_name)
    return list(_paginate("get_partitions", "Partitions", region, **args))


def list_glue_tables(
    glue_database: str,
    pattern: Optional[str] = None,
    region: str = "us-east-1",
    catalog_id: Optional[str] = None,
) -> list[str]:
    """List table names in a Glue database, sorted.

    Args:
        glue_database: Database to list.
        pattern: Optional glob (``sales_*``) the names must match.
        region: AWS region of the catalog.
        catalog_id: Account id of the catalog, when not the caller's own.
    """
    names = [
        table["Name"]
        for table in _paginate("get_tables", "TableList", region, **_catalog_args(catalog_id, DatabaseName=glue_database))
    ]
    if pattern is not None:
        names = fnmatch.filter(names, pattern)
    return sorted(names)


def _column_block(header: str, columns: list[str]) -> list[str]:
    if not columns:
        return [header + ")"]
    return [header] + [c + "," for c in columns[:-1]] + [columns[-1] + ")"]


def glue_table_to_definition(metadata: dict[str, Any]) -> list[str]:
    """Render Glue table metadata as ``SHOW CREATE TABLE`` style lines."""
    storage = metadata.get("StorageDescriptor", {})
    name = metadata["Name"]

    if metadata.get("TableType") == "VIRTUAL_VIEW":
        return [f"CREATE VIEW `{name}` AS", metadata.get("ViewOriginalText", "")]

    keyword = "CREATE EXTERNAL TABLE" if metadata.get("TableType") == "EXTERNAL_TABLE" else "CREATE TABLE"
    lines = _column_block(
        f"{keyword} `{name}`(", [f"  `{c['Name']}` {c['Type']}" for c in storage.get("Columns", [])]
    )

    partition_keys = metadata.get("PartitionKeys", [])
    if partition_keys:
        lines += _column_block("PARTITIONED BY (", [f"  `{k['Name']}` {k['Type']}" for k in partition_keys])

    for label, value in (
        ("ROW FORMAT SERDE", storage.get("SerdeInfo", {}).get("SerializationLibrary")),
        ("STORED AS INPUTFORMAT", storage.get("InputFormat")),
        ("OUTPUTFORMAT", storage.get("OutputFormat")),
        ("LOCATION", (storage.get("Location") or "").rstrip("/")),
    ):
        if value:
            lines += [label, f"  '{value}'"]

    parameters = metadata.get("Parameters", {})
    if parameters:
        lines += _column_block("TBLPROPERTIES (", [f"  '{k}'='{v}'" for k, v in sorted(parameters.items())])
    return lines


def glue_partition_spec(partition_keys: list[dict[str, Any]], values: list[str]) -> str:
    """Build ``k1=v1/k2=v2`` from Glue partition keys and values."""
    return "/".join(f"{key['Name']}={value}" for key, value in zip(partition_keys, values))
