"""Data strategies: how a table's schema and data reach the target.

Each strategy builds SQL plans on the table's SOURCE and TARGET environment
tables, then applies them. Strategies keep no per-table state, so one
instance per type serves every worker.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

from hms_mirror import ddl, sql
from hms_mirror.config import MirrorConfig
from hms_mirror.connections import SqlRunner
from hms_mirror.models import DataStrategyType, DBMirror, Environment, EnvironmentTable, TableMirror
from hms_mirror.namespace import get_namespace, join_path
from hms_mirror.translator import NamespaceTranslator

logger = logging.getLogger(__name__)


class DataStrategy(ABC):
    """Base class for strategy variants.

    Args:
        config: Run configuration.
        translator: Location translator shared by the run.
        runner: Executes the generated SQL.
    """

    strategy_type: DataStrategyType

    def __init__(self, config: MirrorConfig, translator: NamespaceTranslator, runner: SqlRunner):
        self.config = config
        self.translator = translator
        self.runner = runner

    @abstractmethod
    def build(self, db_mirror: DBMirror, table_mirror: TableMirror) -> bool:
        """Generate the table's SQL plans. Returns False when the table can't be migrated."""

    def execute(self, db_mirror: DBMirror, table_mirror: TableMirror) -> bool:
        """Apply SOURCE then TARGET SQL, then cleanup unless working tables are kept."""
        for environment in (Environment.SOURCE, Environment.TARGET):
            if not self.runner.run_table_sql(table_mirror, environment):
                return False
        if self.config.save_working_tables:
            return True
        for environment in (Environment.SOURCE, Environment.TARGET):
            cleanup = table_mirror.environment_table(environment).cleanup_sql
            if not self.runner.run_table_sql(table_mirror, environment, cleanup):
                return False
        return True

    # -------------------------------------------------------------------------
    # Shared helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def is_acid(table_mirror: TableMirror) -> bool:
        return ddl.is_acid(table_mirror.environment_table(Environment.SOURCE).definition)

    def _source_location(self, table_mirror: TableMirror) -> Optional[str]:
        return ddl.get_location(table_mirror.environment_table(Environment.SOURCE).definition)

    def _source_namespace(self, table_mirror: TableMirror) -> str:
        return get_namespace(self._source_location(table_mirror)) or self.config.source_namespace or ""

    def _has_source(self, table_mirror: TableMirror) -> bool:
        if not table_mirror.environment_table(Environment.SOURCE).definition:
            table_mirror.add_error(Environment.SOURCE, "No SOURCE table definition available")
            return False
        return True

    def _build_target_definition(
        self,
        db_mirror: DBMirror,
        table_mirror: TableMirror,
        purge: bool = True,
        keep_acid: bool = False,
    ) -> EnvironmentTable:
        """Derive the TARGET definition from SOURCE with a translated location.

        ACID tables stay managed and unpinned when ``keep_acid`` is set;
        everything else becomes external.
        """
        source = table_mirror.environment_table(Environment.SOURCE)
        target = table_mirror.environment_table(Environment.TARGET)
        definition = ddl.change_table_name(source.definition, db_mirror.resolved_name, table_mirror.name)

        if keep_acid and self.is_acid(table_mirror):
            target.definition = ddl.remove_location(definition)
            return target

        target.definition = ddl.make_external(definition, purge=purge)
        location = ddl.get_location(source.definition)
        if location:
            new_location = self.translator.translate_table_location(db_mirror, table_mirror, location, 1)
            target.definition = ddl.update_location(target.definition, new_location)
        self.translator.translate_partition_locations(db_mirror, table_mirror)
        return target

    def _add_create_sql(self, db_mirror: DBMirror, table_mirror: TableMirror, drop_existing: bool = False) -> None:
        target = table_mirror.environment_table(Environment.TARGET)
        db = db_mirror.resolved_name
        target.add_sql("Selecting DB", sql.USE.format(db=db))
        if drop_existing or (target.exists and self.config.sync):
            target.add_sql("Dropping existing table", sql.DROP_TABLE.format(db=db, table=table_mirror.name))
        target.add_sql("Creating table", sql.create_statement(target.definition))
        self._add_partition_sql(db, table_mirror.name, table_mirror, target)

    def _add_partition_sql(self, db: str, table: str, table_mirror: TableMirror, env_table: EnvironmentTable) -> None:
        if not table_mirror.is_partitioned:
            return
        statement = sql.build_partition_add_statement(db, table, env_table.partitions)
        if statement:
            env_table.add_sql("Adding partitions", statement)
        else:
            env_table.add_sql("Discovering partitions", sql.MSCK_REPAIR_TABLE.format(db=db, table=table))

    def _insert_statement(self, table_mirror: TableMirror, src_db: str, src_table: str, db: str, table: str) -> str:
        columns = ddl.partition_columns(table_mirror.environment_table(Environment.SOURCE).definition)
        if columns:
            return sql.INSERT_OVERWRITE_PARTITIONED.format(
                src_db=src_db, src_table=src_table, db=db, table=table,
                partitions=", ".join(f"`{c}`" for c in columns),
            )
        return sql.INSERT_OVERWRITE.format(src_db=src_db, src_table=src_table, db=db, table=table)

    def _working_location(self, db_mirror: DBMirror, table_mirror: TableMirror) -> str:
        base = self.config.transfer.intermediate_storage or self._source_namespace(table_mirror)
        return join_path(
            base,
            self.config.transfer.remote_working_directory,
            self.config.run_key,
            f"{db_mirror.name}.db",
            table_mirror.name,
        )

    def _target_exists_without_sync(self, table_mirror: TableMirror) -> bool:
        if table_mirror.environment_table(Environment.TARGET).exists and not self.config.sync:
            table_mirror.add_issue(Environment.TARGET, "Table exists on TARGET and sync is off; schema left as is")
            return True
        return False


# =============================================================================
# Schema strategies
# =============================================================================


class SchemaOnlyStrategy(DataStrategy):
    """Create the schema on TARGET, pointed at the translated location."""

    strategy_type = DataStrategyType.SCHEMA_ONLY

    def build(self, db_mirror: DBMirror, table_mirror: TableMirror) -> bool:
        if not self._has_source(table_mirror):
            return False
        self._build_target_definition(db_mirror, table_mirror, purge=True, keep_acid=True)
        if self._target_exists_without_sync(table_mirror):
            return True
        self._add_create_sql(db_mirror, table_mirror)
        return True


class LinkedStrategy(DataStrategy):
    """Create the schema on TARGET over the SOURCE data, without owning it."""

    strategy_type = DataStrategyType.LINKED

    def build(self, db_mirror: DBMirror, table_mirror: TableMirror) -> bool:
        if not self._has_source(table_mirror):
            return False
        if self.is_acid(table_mirror):
            table_mirror.add_error(Environment.TARGET, "You can't 'LINK' ACID tables.")
            return False
        self._build_target_definition(db_mirror, table_mirror, purge=False)
        if self._target_exists_without_sync(table_mirror):
            return True
        self._add_create_sql(db_mirror, table_mirror)
        return True


class CommonStrategy(LinkedStrategy):
    """Both clusters share storage; TARGET schema reuses the SOURCE location."""

    strategy_type = DataStrategyType.COMMON


class ConvertLinkedStrategy(DataStrategy):
    """Replace a previously LINKED TARGET table with one at the translated location."""

    strategy_type = DataStrategyType.CONVERT_LINKED

    def build(self, db_mirror: DBMirror, table_mirror: TableMirror) -> bool:
        if not self._has_source(table_mirror):
            return False
        target = table_mirror.environment_table(Environment.TARGET)
        if not target.exists:
            table_mirror.add_issue(Environment.TARGET, "No linked table on TARGET; creating schema only")
            self._build_target_definition(db_mirror, table_mirror, purge=True, keep_acid=True)
            self._add_create_sql(db_mirror, table_mirror)
            return True
        if ddl.has_purge(target.definition):
            table_mirror.add_error(Environment.TARGET, "TARGET table owns its data and isn't linked; can't convert")
            return False
        self._build_target_definition(db_mirror, table_mirror, purge=True, keep_acid=True)
        self._add_create_sql(db_mirror, table_mirror, drop_existing=True)
        return True


class DumpStrategy(DataStrategy):
    """Write the TARGET DDL into the SOURCE script; nothing is applied."""

    strategy_type = DataStrategyType.DUMP

    def build(self, db_mirror: DBMirror, table_mirror: TableMirror) -> bool:
        if not self._has_source(table_mirror):
            return False
        target = self._build_target_definition(db_mirror, table_mirror, purge=True, keep_acid=True)
        source = table_mirror.environment_table(Environment.SOURCE)
        source.add_sql("Selecting DB", sql.USE.format(db=db_mirror.resolved_name))
        source.add_sql("Creating table", sql.create_statement(target.definition))
        self._add_partition_sql(db_mirror.resolved_name, table_mirror.name, table_mirror, source)
        return True

    def execute(self, db_mirror: DBMirror, table_mirror: TableMirror) -> bool:
        logger.info(f"{db_mirror.name}.{table_mirror.name}: DUMP only produces scripts; nothing applied")
        return True


# =============================================================================
# Data movement strategies
# =============================================================================


class SqlStrategy(DataStrategy):
    """Move data with INSERT OVERWRITE through a SHADOW table on TARGET.

    ACID tables are first copied into a non-ACID TRANSFER table on SOURCE,
    which the SHADOW table then reads.
    """

    strategy_type = DataStrategyType.SQL

    def build(self, db_mirror: DBMirror, table_mirror: TableMirror) -> bool:
        if not self._has_source(table_mirror):
            return False
        acid = self.is_acid(table_mirror)
        if acid and not self.config.migrate_acid.on:
            table_mirror.add_error(Environment.SOURCE, "ACID table requires migrate-acid for SQL migration")
            return False

        source = table_mirror.environment_table(Environment.SOURCE)
        db = db_mirror.resolved_name
        shadow_name = self.config.transfer.shadow_prefix + table_mirror.name
        data_location = self._source_location(table_mirror)

        if acid:
            data_location = self._build_transfer_table(db_mirror, table_mirror)

        shadow = table_mirror.environment_table(Environment.SHADOW)
        shadow.name = shadow_name
        shadow.definition = ddl.make_external(
            ddl.change_table_name(source.definition, db, shadow_name), purge=False
        )
        if data_location:
            shadow.definition = ddl.update_location(shadow.definition, data_location)

        self._build_target_definition(
            db_mirror, table_mirror, purge=True, keep_acid=not self.config.migrate_acid.downgrade
        )

        target = table_mirror.environment_table(Environment.TARGET)
        target.add_sql("Selecting DB", sql.USE.format(db=db))
        target.add_sql("Dropping shadow table", sql.DROP_TABLE.format(db=db, table=shadow_name))
        target.add_sql("Creating shadow table", sql.create_statement(shadow.definition))
        if table_mirror.is_partitioned:
            target.add_sql("Discovering shadow partitions", sql.MSCK_REPAIR_TABLE.format(db=db, table=shadow_name))
        if target.exists and self.config.sync:
            target.add_sql("Dropping existing table", sql.DROP_TABLE.format(db=db, table=table_mirror.name))
        target.add_sql("Creating table", sql.create_statement(target.definition))
        if table_mirror.is_partitioned:
            target.add_sql("Enabling dynamic partitions", sql.SET_DYNAMIC_PARTITIONS)
        target.add_sql(
            "Moving data from shadow table",
            self._insert_statement(table_mirror, db, shadow_name, db, table_mirror.name),
        )
        target.add_cleanup_sql("Dropping shadow table", sql.DROP_TABLE.format(db=db, table=shadow_name))
        return True

    def _build_transfer_table(self, db_mirror: DBMirror, table_mirror: TableMirror) -> str:
        source = table_mirror.environment_table(Environment.SOURCE)
        transfer = table_mirror.environment_table(Environment.TRANSFER)
        transfer.name = self.config.transfer.transfer_prefix + table_mirror.name
        location = self._working_location(db_mirror, table_mirror)
        transfer.definition = ddl.update_location(
            ddl.make_external(ddl.change_table_name(source.definition, db_mirror.name, transfer.name), purge=True),
            location,
        )

        source.add_sql("Selecting DB", sql.USE.format(db=db_mirror.name))
        source.add_sql("Dropping transfer table", sql.DROP_TABLE.format(db=db_mirror.name, table=transfer.name))
        source.add_sql("Creating transfer table", sql.create_statement(transfer.definition))
        if table_mirror.is_partitioned:
            source.add_sql("Enabling dynamic partitions", sql.SET_DYNAMIC_PARTITIONS)
        source.add_sql(
            "Moving data to transfer table",
            self._insert_statement(table_mirror, db_mirror.name, table_mirror.name, db_mirror.name, transfer.name),
        )
        source.add_cleanup_sql("Dropping transfer table", sql.DROP_TABLE.format(db=db_mirror.name, table=transfer.name))
        return location


class ExportImportStrategy(DataStrategy):
    """Hive EXPORT on SOURCE, IMPORT on TARGET."""

    strategy_type = DataStrategyType.EXPORT_IMPORT

    def build(self, db_mirror: DBMirror, table_mirror: TableMirror) -> bool:
        if not self._has_source(table_mirror):
            return False
        acid = self.is_acid(table_mirror)
        if acid and not self.config.migrate_acid.on:
            table_mirror.add_error(Environment.SOURCE, "ACID table requires migrate-acid for EXPORT_IMPORT")
            return False

        keep_acid = acid and not self.config.migrate_acid.downgrade
        target = self._build_target_definition(db_mirror, table_mirror, purge=True, keep_acid=keep_acid)
        export_dir = f"{self.config.transfer.export_base_directory}{db_mirror.name}/{table_mirror.name}"
        exchange_location = (
            join_path(self.config.transfer.intermediate_storage, export_dir)
            if self.config.transfer.intermediate_storage
            else self._source_namespace(table_mirror) + export_dir
        )

        source = table_mirror.environment_table(Environment.SOURCE)
        source.add_sql("Selecting DB", sql.USE.format(db=db_mirror.name))
        source.add_sql("Exporting table", sql.EXPORT_TABLE.format(
            db=db_mirror.name, table=table_mirror.name, location=exchange_location
        ))

        db = db_mirror.resolved_name
        target.add_sql("Selecting DB", sql.USE.format(db=db))
        if target.exists and self.config.sync:
            target.add_sql("Dropping existing table", sql.DROP_TABLE.format(db=db, table=table_mirror.name))
        if keep_acid:
            target.add_sql("Importing table", sql.IMPORT_TABLE.format(db=db, table=table_mirror.name, location=exchange_location))
        else:
            target.add_sql("Importing table", sql.IMPORT_EXTERNAL_TABLE.format(
                db=db, table=table_mirror.name, location=exchange_location, target=ddl.get_location(target.definition)
            ))
        return True


class HybridStrategy(DataStrategy):
    """EXPORT_IMPORT for small non-ACID tables, SQL for the rest."""

    strategy_type = DataStrategyType.HYBRID

    def __init__(self, config: MirrorConfig, translator: NamespaceTranslator, runner: SqlRunner):
        super().__init__(config, translator, runner)
        self._export_import = ExportImportStrategy(config, translator, runner)
        self._sql = SqlStrategy(config, translator, runner)

    def delegate(self, table_mirror: TableMirror) -> DataStrategy:
        partitions = len(table_mirror.environment_table(Environment.SOURCE).partitions)
        if self.is_acid(table_mirror) or partitions > self.config.hybrid.export_import_partition_limit:
            return self._sql
        return self._export_import

    def build(self, db_mirror: DBMirror, table_mirror: TableMirror) -> bool:
        delegate = self.delegate(table_mirror)
        table_mirror.add_step(f"HYBRID using {delegate.strategy_type.value}")
        return delegate.build(db_mirror, table_mirror)

    def execute(self, db_mirror: DBMirror, table_mirror: TableMirror) -> bool:
        return self.delegate(table_mirror).execute(db_mirror, table_mirror)


class StorageMigrationStrategy(DataStrategy):
    """Relocate a table's data within the SOURCE cluster.

    With distcp the data is copied out of band and the metadata is repointed;
    otherwise the data moves through SQL into a new table that is swapped in.
    """

    strategy_type = DataStrategyType.STORAGE_MIGRATION

    def build(self, db_mirror: DBMirror, table_mirror: TableMirror) -> bool:
        if not self._has_source(table_mirror):
            return False
        acid = self.is_acid(table_mirror)
        if acid and not self.config.distcp.enabled and not self.config.migrate_acid.on:
            table_mirror.add_error(Environment.SOURCE, "ACID table requires migrate-acid for STORAGE_MIGRATION")
            return False

        source = table_mirror.environment_table(Environment.SOURCE)
        target = table_mirror.environment_table(Environment.TARGET)
        target.definition = list(source.definition)
        location = ddl.get_location(source.definition)
        new_location = None
        if location:
            new_location = self.translator.translate_table_location(db_mirror, table_mirror, location, 1)
            target.definition = ddl.update_location(target.definition, new_location)
        self.translator.translate_partition_locations(db_mirror, table_mirror)

        db = db_mirror.name
        source.add_sql("Selecting DB", sql.USE.format(db=db))
        if self.config.distcp.enabled:
            if new_location:
                source.add_sql("Moving table location", sql.ALTER_TABLE_LOCATION.format(
                    db=db, table=table_mirror.name, location=new_location
                ))
            for spec, part_location in sorted(target.partitions.items()):
                source.add_sql("Moving partition location", sql.ALTER_PARTITION_LOCATION.format(
                    db=db, table=table_mirror.name, partition=sql.quote_partition_spec(spec), location=part_location
                ))
            return True

        new_name = table_mirror.name + self.config.transfer.storage_migration_postfix
        archive = self.config.transfer.archive_prefix + table_mirror.name
        new_definition = ddl.change_table_name(target.definition, db, new_name)
        source.add_sql("Creating relocated table", sql.create_statement(new_definition))
        if table_mirror.is_partitioned:
            source.add_sql("Enabling dynamic partitions", sql.SET_DYNAMIC_PARTITIONS)
        source.add_sql(
            "Moving data to relocated table",
            self._insert_statement(table_mirror, db, table_mirror.name, db, new_name),
        )
        source.add_sql("Archiving original table", sql.RENAME_TABLE.format(db=db, table=table_mirror.name, new_table=archive))
        source.add_sql("Swapping in relocated table", sql.RENAME_TABLE.format(db=db, table=new_name, new_table=table_mirror.name))
        source.add_cleanup_sql("Dropping archived table", sql.DROP_TABLE.format(db=db, table=archive))
        return True


class AcidDowngradeInPlaceStrategy(DataStrategy):
    """Replace an ACID table on SOURCE with an external copy of itself."""

    strategy_type = DataStrategyType.ACID_DOWNGRADE_INPLACE

    def build(self, db_mirror: DBMirror, table_mirror: TableMirror) -> bool:
        if not self._has_source(table_mirror):
            return False
        if not self.is_acid(table_mirror):
            table_mirror.add_error(Environment.SOURCE, "Only ACID tables can be downgraded in place")
            return False

        db = db_mirror.name
        archive = self.config.transfer.archive_prefix + table_mirror.name
        source = table_mirror.environment_table(Environment.SOURCE)
        target = table_mirror.environment_table(Environment.TARGET)
        target.definition = ddl.remove_location(
            ddl.make_external(ddl.change_table_name(source.definition, db, table_mirror.name), purge=True)
        )
        warehouse = self.translator.warehouses.find_warehouse_plan(db)
        if warehouse is not None and warehouse.external_directory:
            location = f"{self._source_namespace(table_mirror)}{warehouse.external_directory}/{db}.db/{table_mirror.name}"
            target.definition = ddl.update_location(target.definition, location)

        source.add_sql("Selecting DB", sql.USE.format(db=db))
        source.add_sql("Archiving ACID table", sql.RENAME_TABLE.format(db=db, table=table_mirror.name, new_table=archive))
        source.add_sql("Creating downgraded table", sql.create_statement(target.definition))
        if table_mirror.is_partitioned:
            source.add_sql("Enabling dynamic partitions", sql.SET_DYNAMIC_PARTITIONS)
        source.add_sql(
            "Moving data to downgraded table",
            self._insert_statement(table_mirror, db, archive, db, table_mirror.name),
        )
        source.add_cleanup_sql("Dropping archived ACID table", sql.DROP_TABLE.format(db=db, table=archive))
        return True


# =============================================================================
# Dispatch
# =============================================================================


STRATEGIES: dict[DataStrategyType, type[DataStrategy]] = {
    DataStrategyType.SCHEMA_ONLY: SchemaOnlyStrategy,
    DataStrategyType.SQL: SqlStrategy,
    DataStrategyType.EXPORT_IMPORT: ExportImportStrategy,
    DataStrategyType.HYBRID: HybridStrategy,
    DataStrategyType.STORAGE_MIGRATION: StorageMigrationStrategy,
    DataStrategyType.LINKED: LinkedStrategy,
    DataStrategyType.COMMON: CommonStrategy,
    DataStrategyType.DUMP: DumpStrategy,
    DataStrategyType.CONVERT_LINKED: ConvertLinkedStrategy,
    DataStrategyType.ACID_DOWNGRADE_INPLACE: AcidDowngradeInPlaceStrategy,
}


def select_strategy_type(config: MirrorConfig, table_mirror: TableMirror) -> DataStrategyType:
    """Strategy for a table: the configured one, except in-place ACID downgrades under HYBRID."""
    if (
        config.strategy == DataStrategyType.HYBRID
        and config.migrate_acid.inplace
        and DataStrategy.is_acid(table_mirror)
    ):
        return DataStrategyType.ACID_DOWNGRADE_INPLACE
    return config.strategy


def create_strategies(
    config: MirrorConfig, translator: NamespaceTranslator, runner: SqlRunner
) -> dict[DataStrategyType, DataStrategy]:
    return {strategy_type: cls(config, translator, runner) for strategy_type, cls in STRATEGIES.items()}
