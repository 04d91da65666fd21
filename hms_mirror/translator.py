"""Rewrite table and partition locations for the target side of a migration.

Precedence, highest first:

1. Global Location Map (GLM) prefix match.
2. Reset-to-default-location (RDL): warehouse plan roots.
3. Copy strategies: same path under the target namespace.
4. LINKED/COMMON: the original location.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from hms_mirror import ddl
from hms_mirror.config import MirrorConfig
from hms_mirror.errors import LocationMismatchError, MissingConfigurationError
from hms_mirror.ledger import TranslationLedger
from hms_mirror.location_map import GlobalLocationMap
from hms_mirror.models import DataStrategyType, DBMirror, Environment, TableMirror, TableType
from hms_mirror.namespace import get_namespace, strip_namespace
from hms_mirror.warehouse import WarehousePlanRegistry

logger = logging.getLogger(__name__)

NOT_SET = "NOT_SET"


@dataclass
class PartitionTranslationResult:
    """Outcome of translating every partition of a table."""

    translated: int = 0
    skipped: list[str] = field(default_factory=list)

    @property
    def warnings(self) -> int:
        return len(self.skipped)


class NamespaceTranslator:
    """Computes target locations and records them for distcp planning.

    Every call receives the database and table it works on; the translator
    holds only run-wide collaborators and is safe to share across workers.

    Args:
        config: Run configuration.
        glm: Global Location Map. Defaults to an empty map.
        warehouses: Warehouse plan registry. Defaults to one seeded with
            ``config.default_warehouse``.
        ledger: Ledger that receives translations when distcp is enabled.
    """

    def __init__(
        self,
        config: MirrorConfig,
        glm: Optional[GlobalLocationMap] = None,
        warehouses: Optional[WarehousePlanRegistry] = None,
        ledger: Optional[TranslationLedger] = None,
    ):
        self.config = config
        self.glm = glm if glm is not None else GlobalLocationMap()
        self.warehouses = warehouses or WarehousePlanRegistry(default=config.default_warehouse)
        self.ledger = ledger if ledger is not None else TranslationLedger()

    def target_namespace(self) -> str:
        return self.config.resolve_target_namespace()

    def _strategy(self, table_mirror: TableMirror) -> DataStrategyType:
        return table_mirror.strategy or self.config.strategy

    @staticmethod
    def _table_type(table_mirror: TableMirror) -> TableType:
        target = table_mirror.environments.get(Environment.TARGET)
        if target is not None and target.definition:
            return ddl.get_table_type(target.definition)
        return ddl.get_table_type(table_mirror.environment_table(Environment.SOURCE).definition)

    def translate_table_location(
        self,
        db_mirror: DBMirror,
        table_mirror: TableMirror,
        original_location: str,
        level: int = 1,
        partition_spec: Optional[str] = None,
    ) -> str:
        """Translate one table or partition location.

        Args:
            db_mirror: Database the table belongs to.
            table_mirror: Table being translated.
            original_location: SOURCE location, with namespace.
            level: 1 for the table, partition depth + 1 for a partition.
            partition_spec: Partition spec (``a=1/b=2``) when translating a partition.

        Returns:
            The new location, with namespace.

        Raises:
            MissingConfigurationError: RDL without a complete warehouse plan, or
                a STORAGE_MIGRATION that would leave data where it is.
            LocationMismatchError: A partition outside its table directory
                can't be aligned under RDL with distcp.
        """
        strategy = self._strategy(table_mirror)
        if not strategy.is_copy:
            new_location = original_location
            self._add_translation_if_required(db_mirror, table_mirror, original_location, new_location, level)
            return new_location

        target_ns = self.target_namespace()
        relative_dir = strip_namespace(original_location)
        table_type = self._table_type(table_mirror)
        glm_result = self.glm.resolve(relative_dir, table_type == TableType.EXTERNAL)

        if glm_result.mapped:
            new_location = target_ns + glm_result.mapped_dir
            table_mirror.remapped = True
            table_mirror.add_issue(
                Environment.TARGET,
                f"GLM applied. Original Location: {original_location} Mapped Location: {new_location}",
            )
            logger.info(f"{db_mirror.name}.{table_mirror.name}: GLM mapped {original_location} -> {new_location}")
        elif self.config.reset_to_default_location:
            new_location = self._default_location(db_mirror, table_mirror, table_type, target_ns, original_location, partition_spec)
        else:
            if strategy == DataStrategyType.STORAGE_MIGRATION:
                source_ns = (get_namespace(original_location) or self.config.source_namespace or "").rstrip("/")
                if source_ns == target_ns:
                    raise MissingConfigurationError(
                        f"{db_mirror.name}.{table_mirror.name}: STORAGE_MIGRATION with the same source and "
                        f"target namespace requires a GLM entry or reset-to-default-location for {original_location}"
                    )
            if db_mirror.resolved_name != db_mirror.name:
                relative_dir = relative_dir.replace(f"{db_mirror.name}.db", f"{db_mirror.resolved_name}.db", 1)
            new_location = target_ns + relative_dir
            self._warn_if_misaligned(db_mirror, table_mirror, table_type, new_location)

        self._add_translation_if_required(db_mirror, table_mirror, original_location, new_location, level)
        return new_location

    def _default_location(
        self,
        db_mirror: DBMirror,
        table_mirror: TableMirror,
        table_type: TableType,
        target_ns: str,
        original_location: str,
        partition_spec: Optional[str],
    ) -> str:
        warehouse = self.warehouses.get_warehouse_plan(db_mirror.name)
        if not warehouse.is_complete:
            raise MissingConfigurationError(
                f"Warehouse plan for {db_mirror.name} is incomplete; both external and managed directories are required"
            )

        if partition_spec and self.config.distcp.enabled:
            table_location = ddl.get_location(table_mirror.environment_table(Environment.SOURCE).definition)
            if table_location and not original_location.startswith(table_location):
                raise LocationMismatchError(
                    f"{db_mirror.name}.{table_mirror.name}: partition {partition_spec} at {original_location} is "
                    f"outside the table location {table_location}; its aligned location can't be determined for distcp",
                    location=original_location,
                )

        new_location = (
            f"{target_ns}{warehouse.root_for(table_type)}/{db_mirror.resolved_name}.db/{table_mirror.name}"
        )
        if partition_spec:
            new_location += f"/{partition_spec}"
        return new_location

    def _warn_if_misaligned(
        self, db_mirror: DBMirror, table_mirror: TableMirror, table_type: TableType, new_location: str
    ) -> None:
        warehouse = self.warehouses.find_warehouse_plan(db_mirror.name)
        if warehouse is None or not warehouse.root_for(table_type):
            return
        root = f"{warehouse.root_for(table_type)}/{db_mirror.resolved_name}.db"
        if not strip_namespace(new_location).startswith(root):
            table_mirror.add_issue(
                Environment.TARGET,
                f"Location {new_location} is not aligned with the warehouse plan directory {root}",
            )

    def _add_translation_if_required(
        self, db_mirror: DBMirror, table_mirror: TableMirror, original: str, target: str, level: int
    ) -> None:
        strategy = self._strategy(table_mirror)
        if not self.config.distcp.enabled or strategy == DataStrategyType.SQL or not strategy.is_copy:
            return
        self.ledger.append(
            db_mirror.name,
            self.config.distcp_environment(),
            original,
            target,
            level,
            self.config.distcp.consolidate_source_tables,
        )

    def translate_partition_locations(self, db_mirror: DBMirror, table_mirror: TableMirror) -> PartitionTranslationResult:
        """Translate every SOURCE partition location into the TARGET partitions.

        Partitions without a location are skipped and reported as issues.
        """
        result = PartitionTranslationResult()
        if not table_mirror.is_partitioned:
            return result

        source = table_mirror.environment_table(Environment.SOURCE)
        target = table_mirror.environment_table(Environment.TARGET)
        for spec, location in sorted(source.partitions.items()):
            if not location or not location.strip() or location == NOT_SET:
                result.skipped.append(spec)
                table_mirror.add_issue(Environment.TARGET, f"Partition {spec} has no location; skipped translation")
                continue
            level = len(spec.split("/")) + 1
            target.partitions[spec] = self.translate_table_location(db_mirror, table_mirror, location, level, spec)
            result.translated += 1

        if result.skipped:
            logger.warning(f"{db_mirror.name}.{table_mirror.name}: {len(result.skipped)} partitions without a location")
        return result
