"""Warehouse plans and the index of observed source locations."""

import logging
import threading
from typing import Optional

from hms_mirror.errors import MissingConfigurationError
from hms_mirror.models import TableType, Warehouse
from hms_mirror.namespace import reduce_url_by

logger = logging.getLogger(__name__)


class WarehousePlanRegistry:
    """Per-database warehouse roots with an optional global default.

    Args:
        default: Warehouse returned for databases without a plan.
    """

    def __init__(self, default: Optional[Warehouse] = None):
        self._plans: dict[str, Warehouse] = {}
        self.default = default

    def add_warehouse_plan(self, database: str, external_directory: str, managed_directory: str) -> Optional[Warehouse]:
        """Register the warehouse roots for a database.

        Returns:
            The plan previously registered for the database, if any.

        Raises:
            ValueError: If either directory is blank or both are the same.
        """
        if not external_directory or not managed_directory:
            raise ValueError(f"Warehouse plan for {database} needs both external and managed directories")
        if external_directory.rstrip("/") == managed_directory.rstrip("/"):
            raise ValueError(f"External and managed directories for {database} must differ")
        previous = self._plans.get(database)
        self._plans[database] = Warehouse(
            external_directory.rstrip("/"), managed_directory.rstrip("/"), source="PLAN"
        )
        return previous

    def remove_warehouse_plan(self, database: str) -> Optional[Warehouse]:
        return self._plans.pop(database, None)

    def find_warehouse_plan(self, database: str) -> Optional[Warehouse]:
        return self._plans.get(database) or self.default

    def get_warehouse_plan(self, database: str) -> Warehouse:
        """Resolve the plan for a database.

        Raises:
            MissingConfigurationError: If neither a database plan nor a default exists.
        """
        warehouse = self.find_warehouse_plan(database)
        if warehouse is None:
            raise MissingConfigurationError(
                f"No warehouse plan found for database {database} and no global warehouse configured"
            )
        return warehouse

    @property
    def plans(self) -> dict[str, Warehouse]:
        return dict(self._plans)


class SourceLocationIndex:
    """Locations observed on the SOURCE cluster, grouped by database and table type.

    Populated while metadata is collected (possibly from several threads),
    then read during GLM derivation.
    """

    def __init__(self, consolidation_level_base: int = 1, partition_level_mismatch: bool = False):
        self.consolidation_level_base = consolidation_level_base
        self.partition_level_mismatch = partition_level_mismatch
        self._sources: dict[str, dict[TableType, dict[str, set[str]]]] = {}
        self._lock = threading.Lock()

    def _add(self, database: str, table_type: TableType, location: str, table: str) -> None:
        with self._lock:
            by_type = self._sources.setdefault(database, {})
            by_type.setdefault(table_type, {}).setdefault(location, set()).add(table)

    def add_table_source(self, database: str, table: str, table_type: TableType, location: str) -> None:
        if not location:
            return
        self._add(database, table_type, reduce_url_by(location, self.consolidation_level_base), table)

    def add_partition_source(
        self,
        database: str,
        table: str,
        table_type: TableType,
        partition_spec: str,
        table_location: str,
        partition_location: str,
    ) -> None:
        """Record a partition location that lives outside its table's directory."""
        if not partition_location or partition_location.startswith(table_location or "\0"):
            return
        if self.partition_level_mismatch:
            level = self.consolidation_level_base
        else:
            level = len(partition_spec.split("/")) + self.consolidation_level_base
        logger.debug(f"Partition {partition_spec} of {database}.{table} is outside the table location")
        self._add(database, table_type, reduce_url_by(partition_location, level), table)

    def locations(self, database: str) -> dict[TableType, dict[str, set[str]]]:
        with self._lock:
            return {
                table_type: {loc: set(tables) for loc, tables in locs.items()}
                for table_type, locs in self._sources.get(database, {}).items()
            }

    @property
    def databases(self) -> list[str]:
        with self._lock:
            return sorted(self._sources)
