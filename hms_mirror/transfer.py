"""Per-table migration orchestration: build, then execute, on a bounded pool."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional, Protocol, runtime_checkable

from hms_mirror import ddl
from hms_mirror.catalog import CatalogScanner, MetadataCollector
from hms_mirror.config import MirrorConfig
from hms_mirror.connections import ConnectionProvider, SqlRunner
from hms_mirror.database import DatabaseBuilder
from hms_mirror.distcp import DistcpPlan, DistcpPlanBuilder
from hms_mirror.errors import ConnectivityError, MirrorError, MissingConfigurationError
from hms_mirror.location_map import GlobalLocationMap
from hms_mirror.models import (
    DataStrategyType,
    DBMirror,
    Environment,
    PhaseState,
    ReturnStatus,
    TableMirror,
    TableRef,
    TableResult,
    can_transition,
)
from hms_mirror.namespace import join_path
from hms_mirror.parallel import MigrationSummary, create_summary, run_parallel
from hms_mirror.strategies import DataStrategy, create_strategies, select_strategy_type
from hms_mirror.translator import NamespaceTranslator
from hms_mirror.warehouse import WarehousePlanRegistry

logger = logging.getLogger(__name__)

DISTCP_ACID_MESSAGE = (
    "distcp cannot move ACID table data; downgrade the table (migrate-acid) or use a SQL based strategy"
)


@runtime_checkable
class IssueSink(Protocol):
    """Receives every table issue and error once a run completes."""

    def record(self, environment: Environment, table: str, message: str, error: bool = False) -> None:
        ...


class LoggingIssueSink:
    """IssueSink that writes to the module logger."""

    def record(self, environment: Environment, table: str, message: str, error: bool = False) -> None:
        if error:
            logger.error(f"{table} [{environment.value}] {message}")
        else:
            logger.warning(f"{table} [{environment.value}] {message}")


@dataclass
class MigrationReport:
    """Everything a run produced."""

    results: list[TableResult]
    summary: MigrationSummary
    distcp_plans: dict[str, dict[Environment, DistcpPlan]] = field(default_factory=dict)

    def __str__(self) -> str:
        return str(self.summary)


class TransferOrchestrator:
    """Runs each table through build then execute.

    Args:
        config: Run configuration.
        translator: Location translator. Defaults to one built from ``config``.
        connections: Connection provider used when not in dry-run mode.
        runner: SQL runner. Defaults to one over ``connections``.
        strategies: Strategy instances by type. Defaults to every registered variant.
        issue_sink: Receives table issues and errors after the run.
        link_checker: Callable returning reachability per location; run before planning.
    """

    def __init__(
        self,
        config: MirrorConfig,
        translator: Optional[NamespaceTranslator] = None,
        connections: Optional[ConnectionProvider] = None,
        runner: Optional[SqlRunner] = None,
        strategies: Optional[dict[DataStrategyType, DataStrategy]] = None,
        issue_sink: Optional[IssueSink] = None,
        link_checker: Optional[Callable[[list[str]], dict[str, bool]]] = None,
    ):
        self.config = config
        self.translator = translator or NamespaceTranslator(config)
        self.runner = runner or SqlRunner(connections, dry_run=config.dry_run)
        self.strategies = strategies or create_strategies(config, self.translator, self.runner)
        self.database_builder = DatabaseBuilder(config, self.translator.warehouses, self.runner)
        self.distcp_builder = DistcpPlanBuilder(self.translator.ledger, config.distcp.consolidation_level)
        self.issue_sink = issue_sink
        self.link_checker = link_checker

    def strategy_for(self, table_mirror: TableMirror) -> DataStrategy:
        return self.strategies[table_mirror.strategy or select_strategy_type(self.config, table_mirror)]

    # =========================================================================
    # Build
    # =========================================================================

    def build(self, db_mirror: DBMirror, table_mirror: TableMirror) -> ReturnStatus:
        """Generate the table's SQL plan and register its distcp translations.

        Failures are recorded on the table and reflected in its phase state;
        nothing is raised.
        """
        if table_mirror.phase_state == PhaseState.ERROR:
            return ReturnStatus.SKIPPED

        start_time = time.perf_counter()
        table_mirror.set_phase_state(PhaseState.CALCULATING_SQL)
        table_mirror.strategy = select_strategy_type(self.config, table_mirror)

        try:
            built = self.strategies[table_mirror.strategy].build(db_mirror, table_mirror)
            status = ReturnStatus.SUCCESS if built else ReturnStatus.ERROR
            if status == ReturnStatus.SUCCESS and self.config.distcp.enabled:
                status = self._register_distcp(db_mirror, table_mirror)
        except MirrorError as e:
            status = self._fatal(db_mirror, table_mirror, e)
        except Exception as e:
            logger.exception(f"Unexpected failure building {db_mirror.name}.{table_mirror.name}")
            status = self._fatal(db_mirror, table_mirror, e)
        finally:
            table_mirror.stage_duration["build"] = time.perf_counter() - start_time

        if status == ReturnStatus.SUCCESS:
            table_mirror.set_phase_state(PhaseState.CALCULATED_SQL)
        elif status == ReturnStatus.INCOMPLETE:
            table_mirror.set_phase_state(PhaseState.CALCULATED_SQL_WARNING)
        else:
            table_mirror.set_phase_state(PhaseState.ERROR)
        return status

    def _fatal(self, db_mirror: DBMirror, table_mirror: TableMirror, error: Exception) -> ReturnStatus:
        logger.error(f"{db_mirror.name}.{table_mirror.name} failed: {error}")
        table_mirror.add_error(Environment.SOURCE, f"FAILURE (check logs): {error}")
        return ReturnStatus.FATAL

    def _default_target_location(self, db_mirror: DBMirror, table_mirror: TableMirror) -> Optional[str]:
        warehouse = self.translator.warehouses.find_warehouse_plan(db_mirror.name)
        if warehouse is None or not warehouse.external_directory:
            return None
        return (
            f"{self.translator.target_namespace()}{warehouse.external_directory}/"
            f"{db_mirror.resolved_name}.db/{table_mirror.name}"
        )

    def _register_distcp(self, db_mirror: DBMirror, table_mirror: TableMirror) -> ReturnStatus:
        config = self.config
        ledger = self.translator.ledger
        consolidate = config.distcp.consolidate_source_tables
        acid = DataStrategy.is_acid(table_mirror)
        downgrade = config.migrate_acid.downgrade

        source_location = ddl.get_location(table_mirror.environment_table(Environment.SOURCE).definition)
        if not source_location:
            table_mirror.add_issue(Environment.SOURCE, "No SOURCE location; nothing to copy with distcp")
            return ReturnStatus.SUCCESS
        target_location = (
            ddl.get_location(table_mirror.environment_table(Environment.TARGET).definition)
            or self._default_target_location(db_mirror, table_mirror)
        )
        if not target_location:
            raise MissingConfigurationError(
                f"{db_mirror.name}.{table_mirror.name}: no TARGET location and no warehouse plan for distcp"
            )
        transfer_location = ddl.get_location(table_mirror.environment_table(Environment.TRANSFER).definition)

        if config.transfer.intermediate_storage:
            staging = join_path(
                config.transfer.intermediate_storage,
                config.transfer.remote_working_directory,
                config.run_key,
                f"{db_mirror.name}.db",
                table_mirror.name,
            )
            if not acid:
                ledger.append(db_mirror.name, Environment.SOURCE, source_location, staging, 1, consolidate)
            # A SHADOW table reads the staged data in place of the final table.
            shadow_definition = table_mirror.environment_table(Environment.SHADOW).definition
            final_location = (shadow_definition and ddl.get_location(shadow_definition)) or target_location
            ledger.append(db_mirror.name, Environment.TARGET, staging, final_location, 1, consolidate)
            return ReturnStatus.SUCCESS

        if config.strategy == DataStrategyType.STORAGE_MIGRATION:
            ledger.append(db_mirror.name, Environment.SOURCE, source_location, target_location, 1, consolidate)
            if acid and not downgrade:
                table_mirror.add_issue(Environment.SOURCE, DISTCP_ACID_MESSAGE)
                return ReturnStatus.INCOMPLETE
            return ReturnStatus.SUCCESS

        if acid and not downgrade:
            table_mirror.add_error(Environment.TARGET, DISTCP_ACID_MESSAGE)
            return ReturnStatus.ERROR

        original = transfer_location if acid and transfer_location else source_location
        # Same environment the translator records under, so one copy per table.
        ledger.append(db_mirror.name, config.distcp_environment(), original, target_location, 1, consolidate)
        return ReturnStatus.SUCCESS

    # =========================================================================
    # Execute
    # =========================================================================

    def execute(self, db_mirror: DBMirror, table_mirror: TableMirror) -> ReturnStatus:
        """Apply the SQL generated by build. Only runs after a non-ERROR build."""
        if table_mirror.phase_state not in (PhaseState.CALCULATED_SQL, PhaseState.CALCULATED_SQL_WARNING):
            return ReturnStatus.SKIPPED
        if table_mirror.phase_state == PhaseState.CALCULATED_SQL_WARNING and not self.config.execute_on_warning:
            logger.info(f"{db_mirror.name}.{table_mirror.name}: held at {table_mirror.phase_state.value} for review")
            return ReturnStatus.SKIPPED

        start_time = time.perf_counter()
        table_mirror.set_phase_state(PhaseState.APPLYING_SQL)
        try:
            applied = self.strategy_for(table_mirror).execute(db_mirror, table_mirror)
            status = ReturnStatus.SUCCESS if applied else ReturnStatus.ERROR
        except MirrorError as e:
            status = self._fatal(db_mirror, table_mirror, e)
        except Exception as e:
            logger.exception(f"Unexpected failure applying {db_mirror.name}.{table_mirror.name}")
            status = self._fatal(db_mirror, table_mirror, e)
        finally:
            table_mirror.stage_duration["execute"] = time.perf_counter() - start_time

        table_mirror.set_phase_state(PhaseState.PROCESSED if status == ReturnStatus.SUCCESS else PhaseState.ERROR)
        return status

    # =========================================================================
    # Run
    # =========================================================================

    def migrate_table(self, ref: TableRef) -> TableResult:
        """Build then execute one table; the unit of work submitted to the pool."""
        db_mirror, table_mirror = ref.db_mirror, ref.table_mirror
        start_time = time.perf_counter()

        status = self.build(db_mirror, table_mirror)
        if status in (ReturnStatus.SUCCESS, ReturnStatus.INCOMPLETE):
            execute_status = self.execute(db_mirror, table_mirror)
            if execute_status != ReturnStatus.SKIPPED:
                status = execute_status

        error = None
        if table_mirror.phase_state == PhaseState.ERROR:
            errors = table_mirror.errors
            error = errors[0][1] if errors else "Unknown error"

        return TableResult(
            database=db_mirror.name,
            table=table_mirror.name,
            phase=table_mirror.phase_state,
            status=status,
            error=error,
            duration_seconds=time.perf_counter() - start_time,
        )

    def _worker_failure(self, ref: TableRef, error: Exception) -> TableResult:
        table_mirror = ref.table_mirror
        self._fatal(ref.db_mirror, table_mirror, error)
        if can_transition(table_mirror.phase_state, PhaseState.ERROR):
            table_mirror.set_phase_state(PhaseState.ERROR)
        return TableResult(
            database=ref.db_mirror.name,
            table=table_mirror.name,
            phase=table_mirror.phase_state,
            status=ReturnStatus.FATAL,
            error=f"FAILURE (check logs): {error}",
        )

    def setup_database(self, db_mirror: DBMirror) -> bool:
        """Build and apply database DDL. Returns False when it failed."""
        try:
            self.database_builder.build(db_mirror)
            if self.database_builder.execute(db_mirror):
                return True
        except MirrorError as e:
            logger.error(f"Database {db_mirror.name} setup failed: {e}")
            db_mirror.issues.append(f"FAILURE (check logs): {e}")
        return False

    def check_links(self) -> None:
        """Verify the configured namespaces are reachable.

        Raises:
            ConnectivityError: If any location fails its link test.
        """
        if self.link_checker is None:
            return
        locations = [self.config.source_namespace, self.config.transfer.intermediate_storage]
        try:
            locations.append(self.config.resolve_target_namespace())
        except MissingConfigurationError:
            logger.debug("No target namespace to link test")
        locations = sorted({loc for loc in locations if loc})
        failed = [loc for loc, ok in self.link_checker(locations).items() if not ok]
        if failed:
            raise ConnectivityError(f"Link test failed for: {', '.join(failed)}")

    def run(self, db_mirrors: Iterable[DBMirror]) -> MigrationReport:
        """Migrate every table of the given databases.

        Each database's DDL is applied before any of its tables is submitted.
        Distcp plans are built once every table has finished.
        """
        db_mirrors = list(db_mirrors)
        self.check_links()

        refs: list[TableRef] = []
        for db_mirror in db_mirrors:
            database_ready = self.setup_database(db_mirror)
            for table_mirror in db_mirror.tables.values():
                if not database_ready and table_mirror.phase_state != PhaseState.ERROR:
                    table_mirror.add_error(Environment.TARGET, f"Database {db_mirror.name} setup failed")
                    table_mirror.set_phase_state(PhaseState.ERROR)
                refs.append(TableRef(db_mirror, table_mirror))

        raw_results = run_parallel(self.migrate_table, refs, max_workers=self.config.concurrency)
        results = [
            result if isinstance(result, TableResult) else self._worker_failure(ref, result)
            for ref, result in zip(refs, raw_results)
        ]

        distcp_plans = {}
        if self.config.distcp.enabled:
            for db_mirror in db_mirrors:
                plans = self.distcp_builder.build_plans(db_mirror.name)
                if plans:
                    distcp_plans[db_mirror.name] = plans

        if self.issue_sink is not None:
            for ref in refs:
                label = str(ref)
                for environment, message in ref.table_mirror.issues:
                    self.issue_sink.record(environment, label, message)
                for environment, message in ref.table_mirror.errors:
                    self.issue_sink.record(environment, label, message, error=True)

        summary = create_summary(results)
        logger.info(str(summary))
        return MigrationReport(results=results, summary=summary, distcp_plans=distcp_plans)


def migrate(
    config: MirrorConfig,
    scanner: CatalogScanner,
    databases: list[str],
    connections: Optional[ConnectionProvider] = None,
    glm: Optional[GlobalLocationMap] = None,
    warehouses: Optional[WarehousePlanRegistry] = None,
    auto_glm: bool = False,
    issue_sink: Optional[IssueSink] = None,
    link_checker: Optional[Callable[[list[str]], dict[str, bool]]] = None,
) -> MigrationReport:
    """Scan, plan and (unless dry-run) apply a migration for the given databases.

    Args:
        config: Run configuration.
        scanner: Catalog the SOURCE/TARGET metadata is read from.
        databases: SOURCE database names in scope.
        connections: Connection provider; required when ``config.dry_run`` is False.
        glm: User supplied Global Location Map.
        warehouses: Warehouse plans per database.
        auto_glm: Derive GLM entries from the scanned locations and warehouse plans.
        issue_sink: Receives table issues and errors after the run.
        link_checker: Reachability check for the configured namespaces.

    Returns:
        MigrationReport with per-table results, a summary and distcp plans.

    Example:
        >>> config = MirrorConfig.from_env()
        >>> report = migrate(config, GlueCatalogScanner(), ["sales"])
        >>> print(report.summary)
    """
    config.validate()
    collector = MetadataCollector(scanner, config)
    db_mirrors = collector.collect(databases)

    glm = glm if glm is not None else GlobalLocationMap()
    warehouses = warehouses or WarehousePlanRegistry(default=config.default_warehouse)
    if auto_glm:
        glm.build_from_sources(
            collector.index,
            warehouses,
            conversions=config.conversions_possible,
            resolve_db=config.resolve_database_name,
            strict=config.strict_locations,
            source_namespace=config.source_namespace,
        )

    translator = NamespaceTranslator(config, glm, warehouses)
    orchestrator = TransferOrchestrator(
        config, translator, connections=connections, issue_sink=issue_sink, link_checker=link_checker
    )
    return orchestrator.run(db_mirrors)
