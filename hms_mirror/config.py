"""Run configuration for hms_mirror.

Settings are plain dataclasses. ``MirrorConfig.from_env`` builds one from
``HMS_MIRROR_*`` environment variables, loading a ``.env`` file first.
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from dotenv import load_dotenv

from hms_mirror.errors import MissingConfigurationError
from hms_mirror.models import DataFlow, DataStrategyType, Environment, Warehouse

logger = logging.getLogger(__name__)

ENV_PREFIX = "HMS_MIRROR_"


@dataclass
class TransferConfig:
    """Where data moves and how working tables are named."""

    target_namespace: Optional[str] = None
    common_storage: Optional[str] = None
    intermediate_storage: Optional[str] = None
    remote_working_directory: str = "hms_mirror_working"
    export_base_directory: str = "/apps/hive/warehouse/export_"
    shadow_prefix: str = "hms_mirror_shadow_"
    transfer_prefix: str = "hms_mirror_transfer_"
    storage_migration_postfix: str = "_storage_migration"
    archive_prefix: str = "hms_mirror_archive_"


@dataclass
class DistcpConfig:
    enabled: bool = False
    data_flow: DataFlow = DataFlow.PULL
    consolidation_level: int = 1
    consolidate_source_tables: bool = False


@dataclass
class MigrateAcidConfig:
    on: bool = False
    downgrade: bool = False
    inplace: bool = False


@dataclass
class HybridConfig:
    export_import_partition_limit: int = 100


@dataclass
class TableFilter:
    """Glob patterns selecting which tables take part in a run."""

    include: Optional[str] = None
    exclude: Optional[str] = None


@dataclass
class MirrorConfig:
    """Everything a migration run needs to know.

    Args:
        strategy: Data strategy applied to every table.
        source_namespace: HCFS namespace of the SOURCE cluster.
        target_cluster_namespace: HCFS namespace of the TARGET cluster.
        reset_to_default_location: Place tables under their warehouse plan roots.
        dry_run: Build SQL and plans without applying anything.
        concurrency: Workers used for build/execute.
        discovery_concurrency: Workers used for metadata collection.
        strict_locations: Reject observed locations outside the source namespace
            while deriving the GLM.
        conversions_possible: Managed tables may become external on the target
            (legacy Hive source to a non-legacy target).
        consolidation_level_base: Levels trimmed from table locations when
            indexing them for GLM derivation.
        partition_level_mismatch: Partition directories do not follow the
            partition spec depth.
        save_working_tables: Skip cleanup of shadow/transfer/archive tables.
        execute_on_warning: Apply tables whose build ended with a warning. When
            off they stay at CALCULATED_SQL_WARNING for manual remediation.
        db_prefix: Prefix applied to target database names.
        db_rename: Explicit target database name (single database runs).
        default_warehouse: Warehouse used when a database has no plan.
        run_key: Identifier of the run, used for intermediate working paths.
    """

    strategy: DataStrategyType = DataStrategyType.SCHEMA_ONLY
    source_namespace: Optional[str] = None
    target_cluster_namespace: Optional[str] = None
    reset_to_default_location: bool = False
    dry_run: bool = True
    concurrency: int = 4
    discovery_concurrency: int = 4
    strict_locations: bool = False
    conversions_possible: bool = False
    consolidation_level_base: int = 1
    partition_level_mismatch: bool = False
    save_working_tables: bool = False
    execute_on_warning: bool = False
    sync: bool = False
    db_prefix: Optional[str] = None
    db_rename: Optional[str] = None
    default_warehouse: Optional[Warehouse] = None
    run_key: str = field(default_factory=lambda: datetime.now().strftime("%Y-%m-%d_%H-%M-%S"))
    transfer: TransferConfig = field(default_factory=TransferConfig)
    distcp: DistcpConfig = field(default_factory=DistcpConfig)
    migrate_acid: MigrateAcidConfig = field(default_factory=MigrateAcidConfig)
    hybrid: HybridConfig = field(default_factory=HybridConfig)
    table_filter: TableFilter = field(default_factory=TableFilter)

    # -------------------------------------------------------------------------

    def validate(self) -> None:
        """Reject contradictory settings.

        Raises:
            ValueError: If the settings cannot be used together.
        """
        if self.concurrency < 1 or self.discovery_concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        if self.distcp.consolidation_level < 0 or self.consolidation_level_base < 0:
            raise ValueError("consolidation levels must be >= 0")
        if self.distcp.enabled and self.strategy == DataStrategyType.EXPORT_IMPORT:
            raise ValueError("distcp can't be used with EXPORT_IMPORT")
        if self.migrate_acid.inplace and self.strategy not in (
            DataStrategyType.HYBRID, DataStrategyType.ACID_DOWNGRADE_INPLACE
        ):
            raise ValueError("in-place ACID downgrade is only available with HYBRID")
        if self.migrate_acid.inplace:
            self.migrate_acid.on = True
            self.migrate_acid.downgrade = True

    def resolve_database_name(self, database: str) -> str:
        if self.db_rename:
            return self.db_rename
        if self.db_prefix:
            return self.db_prefix + database
        return database

    def resolve_target_namespace(self) -> str:
        """Namespace new locations are written to.

        Common storage wins over an explicit target namespace, which wins
        over the TARGET cluster's own namespace. STORAGE_MIGRATION stays on
        the SOURCE cluster.

        Raises:
            MissingConfigurationError: If no namespace can be resolved.
        """
        for candidate in (
            self.transfer.common_storage,
            self.transfer.target_namespace,
            self.source_namespace if self.strategy == DataStrategyType.STORAGE_MIGRATION
            else self.target_cluster_namespace,
        ):
            if candidate:
                return candidate.rstrip("/")
        raise MissingConfigurationError("Unable to determine the target namespace")

    @property
    def is_push(self) -> bool:
        """True when SOURCE writes data out to the target storage."""
        return bool(
            self.transfer.intermediate_storage
            or self.transfer.common_storage
            or self.transfer.target_namespace
            or self.distcp.data_flow == DataFlow.PUSH
        )

    def distcp_environment(self) -> Environment:
        """Environment whose cluster runs the distcp jobs."""
        if self.strategy == DataStrategyType.STORAGE_MIGRATION or self.is_push:
            return Environment.SOURCE
        return Environment.TARGET

    # -------------------------------------------------------------------------

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "MirrorConfig":
        """Build a config from ``HMS_MIRROR_*`` environment variables.

        Args:
            env_file: Optional path to a .env file. Defaults to the .env
                discovered by python-dotenv.

        Returns:
            A validated MirrorConfig.
        """
        load_dotenv(dotenv_path=env_file)

        def get(name: str, default: Optional[str] = None) -> Optional[str]:
            return os.environ.get(ENV_PREFIX + name, default)

        def get_bool(name: str, default: bool = False) -> bool:
            value = get(name)
            if value is None:
                return default
            return value.strip().lower() in ("1", "true", "yes", "on")

        def get_int(name: str, default: int) -> int:
            value = get(name)
            return int(value) if value else default

        warehouse = None
        if get("WAREHOUSE_EXTERNAL") or get("WAREHOUSE_MANAGED"):
            warehouse = Warehouse(get("WAREHOUSE_EXTERNAL"), get("WAREHOUSE_MANAGED"), source="GLOBAL")

        config = cls(
            strategy=DataStrategyType(get("STRATEGY", DataStrategyType.SCHEMA_ONLY.value).upper()),
            source_namespace=get("SOURCE_NAMESPACE"),
            target_cluster_namespace=get("TARGET_CLUSTER_NAMESPACE"),
            reset_to_default_location=get_bool("RESET_TO_DEFAULT_LOCATION"),
            dry_run=not get_bool("EXECUTE"),
            concurrency=get_int("CONCURRENCY", 4),
            discovery_concurrency=get_int("DISCOVERY_CONCURRENCY", 4),
            strict_locations=get_bool("STRICT_LOCATIONS"),
            conversions_possible=get_bool("CONVERSIONS_POSSIBLE"),
            consolidation_level_base=get_int("CONSOLIDATION_LEVEL_BASE", 1),
            partition_level_mismatch=get_bool("PARTITION_LEVEL_MISMATCH"),
            save_working_tables=get_bool("SAVE_WORKING_TABLES"),
            execute_on_warning=get_bool("EXECUTE_ON_WARNING"),
            sync=get_bool("SYNC"),
            db_prefix=get("DB_PREFIX"),
            db_rename=get("DB_RENAME"),
            default_warehouse=warehouse,
            transfer=TransferConfig(
                target_namespace=get("TARGET_NAMESPACE"),
                common_storage=get("COMMON_STORAGE"),
                intermediate_storage=get("INTERMEDIATE_STORAGE"),
            ),
            distcp=DistcpConfig(
                enabled=get_bool("DISTCP"),
                data_flow=DataFlow(get("DISTCP_DATA_FLOW", DataFlow.PULL.value).upper()),
                consolidation_level=get_int("DISTCP_CONSOLIDATION_LEVEL", 1),
                consolidate_source_tables=get_bool("DISTCP_CONSOLIDATE_TABLES"),
            ),
            migrate_acid=MigrateAcidConfig(
                on=get_bool("MIGRATE_ACID"),
                downgrade=get_bool("MIGRATE_ACID_DOWNGRADE"),
                inplace=get_bool("MIGRATE_ACID_INPLACE"),
            ),
            table_filter=TableFilter(include=get("TABLE_INCLUDE"), exclude=get("TABLE_EXCLUDE")),
        )
        if get("RUN_KEY"):
            config.run_key = get("RUN_KEY")
        config.validate()
        logger.debug(f"Loaded configuration for strategy {config.strategy.value}")
        return config
