"""Catalog scanning: discover tables and load their definitions and partitions."""

from __future__ import annotations

import fnmatch
import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol, runtime_checkable

from botocore.exceptions import ClientError

from hms_mirror import ddl
from hms_mirror.config import MirrorConfig
from hms_mirror.glue import (
    get_glue_partitions,
    get_glue_table_metadata,
    glue_partition_spec,
    glue_table_to_definition,
    list_glue_tables,
)
from hms_mirror.models import DataStrategyType, DBMirror, Environment, PhaseState, TableMirror, TableRef
from hms_mirror.parallel import run_parallel
from hms_mirror.warehouse import SourceLocationIndex

logger = logging.getLogger(__name__)


@runtime_checkable
class CatalogScanner(Protocol):
    """Protocol for reading table metadata from an environment's metastore."""

    def list_tables(self, environment: Environment, database: str) -> list[str]:
        ...

    def fetch_definition(self, environment: Environment, database: str, table: str) -> list[str]:
        """Return the table's DDL lines, or an empty list when it doesn't exist."""
        ...

    def fetch_partitions(self, environment: Environment, database: str, table: str) -> dict[str, str]:
        """Return partition spec -> location."""
        ...


@dataclass
class GlueCatalogScanner:
    """Read metadata from AWS Glue catalogs.

    Args:
        regions: AWS region of the catalog per environment.
        catalog_ids: Optional Glue catalog (account) id per environment.
    """

    regions: dict[Environment, str] = field(default_factory=lambda: {
        Environment.SOURCE: "us-east-1",
        Environment.TARGET: "us-east-1",
    })
    catalog_ids: dict[Environment, str] = field(default_factory=dict)

    def _region(self, environment: Environment) -> str:
        return self.regions.get(environment, "us-east-1")

    def list_tables(self, environment: Environment, database: str) -> list[str]:
        return list_glue_tables(
            database, region=self._region(environment), catalog_id=self.catalog_ids.get(environment)
        )

    def fetch_definition(self, environment: Environment, database: str, table: str) -> list[str]:
        try:
            metadata = get_glue_table_metadata(
                database, table, region=self._region(environment), catalog_id=self.catalog_ids.get(environment)
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "EntityNotFoundException":
                return []
            raise
        return glue_table_to_definition(metadata)

    def fetch_partitions(self, environment: Environment, database: str, table: str) -> dict[str, str]:
        region = self._region(environment)
        catalog_id = self.catalog_ids.get(environment)
        metadata = get_glue_table_metadata(database, table, region=region, catalog_id=catalog_id)
        partition_keys = metadata.get("PartitionKeys", [])
        if not partition_keys:
            return {}

        partitions = {}
        for partition in get_glue_partitions(database, table, region=region, catalog_id=catalog_id):
            spec = glue_partition_spec(partition_keys, partition.get("Values", []))
            location = partition.get("StorageDescriptor", {}).get("Location", "")
            partitions[spec] = location.rstrip("/")
        return partitions


class MetadataCollector:
    """Loads SOURCE/TARGET metadata for the tables in scope.

    Runs on its own bounded pool, separate from the build/execute workers.

    Args:
        scanner: Catalog to read from.
        config: Run configuration (filters, renames, discovery concurrency).
        index: Receives observed SOURCE locations for GLM derivation.
    """

    def __init__(self, scanner: CatalogScanner, config: MirrorConfig, index: Optional[SourceLocationIndex] = None):
        self.scanner = scanner
        self.config = config
        self.index = index or SourceLocationIndex(config.consolidation_level_base, config.partition_level_mismatch)

    def _in_scope(self, table: str) -> bool:
        table_filter = self.config.table_filter
        if table_filter.include and not fnmatch.fnmatch(table, table_filter.include):
            return False
        if table_filter.exclude and fnmatch.fnmatch(table, table_filter.exclude):
            return False
        return True

    def discover(self, database: str) -> DBMirror:
        """List the SOURCE tables of a database that pass the table filter."""
        db_mirror = DBMirror(database, resolved_name=self.config.resolve_database_name(database))
        for table in self.scanner.list_tables(Environment.SOURCE, database):
            if self._in_scope(table):
                db_mirror.add_table(TableMirror(table))
        logger.info(f"Discovered {len(db_mirror.tables)} tables in {database}")
        return db_mirror

    def load_table(self, db_mirror: DBMirror, table_mirror: TableMirror) -> TableMirror:
        source = table_mirror.environment_table(Environment.SOURCE)
        source.definition = self.scanner.fetch_definition(Environment.SOURCE, db_mirror.name, table_mirror.name)
        source.exists = bool(source.definition)
        if ddl.is_partitioned(source.definition):
            source.partitions = self.scanner.fetch_partitions(Environment.SOURCE, db_mirror.name, table_mirror.name)
            source.statistics["partitions"] = len(source.partitions)

        target = table_mirror.environment_table(Environment.TARGET)
        if self.config.strategy != DataStrategyType.STORAGE_MIGRATION:
            target.definition = self.scanner.fetch_definition(
                Environment.TARGET, db_mirror.resolved_name, table_mirror.name
            )
            target.exists = bool(target.definition)

        self._index_locations(db_mirror, table_mirror)
        return table_mirror

    def _index_locations(self, db_mirror: DBMirror, table_mirror: TableMirror) -> None:
        source = table_mirror.environment_table(Environment.SOURCE)
        location = ddl.get_location(source.definition)
        if not location or ddl.is_view(source.definition):
            return
        table_type = ddl.get_table_type(source.definition)
        self.index.add_table_source(db_mirror.name, table_mirror.name, table_type, location)
        for spec, partition_location in source.partitions.items():
            self.index.add_partition_source(
                db_mirror.name, table_mirror.name, table_type, spec, location, partition_location
            )

    def _load_or_fail(self, ref: TableRef) -> TableMirror:
        db_mirror, table_mirror = ref.db_mirror, ref.table_mirror
        try:
            return self.load_table(db_mirror, table_mirror)
        except Exception as e:
            logger.error(f"Failed to load metadata for {db_mirror.name}.{table_mirror.name}: {e}")
            table_mirror.add_error(Environment.SOURCE, f"Metadata collection failed: {e}")
            table_mirror.set_phase_state(PhaseState.ERROR)
            return table_mirror

    def collect(self, databases: list[str]) -> list[DBMirror]:
        """Discover and load every table of the given databases."""
        db_mirrors = [self.discover(database) for database in databases]
        items = [TableRef(db, table) for db in db_mirrors for table in db.tables.values()]
        run_parallel(
            self._load_or_fail,
            items,
            max_workers=self.config.discovery_concurrency,
            progress_callback=lambda done, total, _: logger.debug(f"Metadata {done}/{total}"),
        )
        return db_mirrors
