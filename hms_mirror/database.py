"""Database-level DDL, applied before any of the database's tables."""

import logging

from hms_mirror import sql
from hms_mirror.config import MirrorConfig
from hms_mirror.connections import SqlRunner
from hms_mirror.models import DataStrategyType, DBMirror, Environment
from hms_mirror.warehouse import WarehousePlanRegistry

logger = logging.getLogger(__name__)

DB_LOCATION = "LOCATION"
DB_MANAGED_LOCATION = "MANAGEDLOCATION"


class DatabaseBuilder:
    """Builds and applies CREATE/ALTER DATABASE statements.

    STORAGE_MIGRATION repoints the SOURCE database at its new warehouse
    roots; every other strategy creates the database on TARGET. DUMP writes
    the TARGET statements into the SOURCE script without applying them.
    """

    def __init__(self, config: MirrorConfig, warehouses: WarehousePlanRegistry, runner: SqlRunner):
        self.config = config
        self.warehouses = warehouses
        self.runner = runner

    def environment(self) -> Environment:
        if self.config.strategy in (DataStrategyType.STORAGE_MIGRATION, DataStrategyType.DUMP):
            return Environment.SOURCE
        return Environment.TARGET

    def build(self, db_mirror: DBMirror) -> None:
        """Populate ``db_mirror.sql`` and its target location properties.

        Raises:
            MissingConfigurationError: If a warehouse plan exists but no target
                namespace can be resolved.
        """
        environment = self.environment()
        warehouse = self.warehouses.find_warehouse_plan(db_mirror.name)
        location = managed_location = None
        if warehouse is not None and warehouse.is_complete:
            namespace = self.config.resolve_target_namespace()
            location = f"{namespace}{warehouse.external_directory}/{db_mirror.resolved_name}.db"
            managed_location = f"{namespace}{warehouse.managed_directory}/{db_mirror.resolved_name}.db"
            db_mirror.set_property(Environment.TARGET, DB_LOCATION, location)
            db_mirror.set_property(Environment.TARGET, DB_MANAGED_LOCATION, managed_location)

        if self.config.strategy == DataStrategyType.STORAGE_MIGRATION:
            if location is None:
                db_mirror.issues.append("No warehouse plan; database locations left unchanged")
                return
            db_mirror.add_sql(environment, "Moving database location", sql.ALTER_DB_LOCATION.format(
                db=db_mirror.name, location=location
            ))
            db_mirror.add_sql(environment, "Moving database managed location", sql.ALTER_DB_MNGD_LOCATION.format(
                db=db_mirror.name, location=managed_location
            ))
            return

        statement = sql.CREATE_DB.format(db=db_mirror.resolved_name)
        if location:
            statement += f'\nLOCATION "{location}"\nMANAGEDLOCATION "{managed_location}"'
        db_mirror.add_sql(environment, "Creating database", statement)
        logger.debug(f"{db_mirror.name}: database DDL for {environment.value}")

    def execute(self, db_mirror: DBMirror) -> bool:
        if self.config.strategy == DataStrategyType.DUMP:
            return True
        return self.runner.run_database_sql(db_mirror, self.environment())
