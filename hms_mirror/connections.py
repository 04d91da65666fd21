"""Connections to the SOURCE and TARGET HiveServer2 endpoints, and SQL execution."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional, Protocol, runtime_checkable

from sqlalchemy.pool import QueuePool

from hms_mirror.errors import ConnectivityError
from hms_mirror.models import DBMirror, Environment, SqlPair, TableMirror

logger = logging.getLogger(__name__)


@runtime_checkable
class ConnectionProvider(Protocol):
    """Protocol for acquiring DB-API connections per environment."""

    def acquire(self, environment: Environment) -> Any:
        """Return an open connection to the environment's HiveServer2.

        The caller closes it. Raises ConnectivityError on failure.
        """
        ...

    def acquire_metastore_direct(self, environment: Environment) -> Any:
        """Return an open connection to the environment's metastore database."""
        ...


def pool_size_for(concurrency: int) -> int:
    """One connection per worker."""
    return max(concurrency, 1)


class PooledConnectionProvider:
    """ConnectionProvider backed by one SQLAlchemy QueuePool per endpoint.

    Args:
        creators: Callables returning a new DB-API connection, per environment.
        metastore_creators: Same for direct metastore database access.
        concurrency: Number of workers sharing the pools.
        timeout: Seconds to wait for a free connection.
    """

    def __init__(
        self,
        creators: dict[Environment, Callable[[], Any]],
        metastore_creators: Optional[dict[Environment, Callable[[], Any]]] = None,
        concurrency: int = 4,
        timeout: float = 30.0,
    ):
        self._creators = dict(creators)
        self._metastore_creators = dict(metastore_creators or {})
        self._pool_size = pool_size_for(concurrency)
        self._timeout = timeout
        self._pools: dict[tuple[str, Environment], QueuePool] = {}
        self._lock = threading.Lock()

    def _pool(self, kind: str, environment: Environment, creators: dict[Environment, Callable[[], Any]]) -> QueuePool:
        with self._lock:
            key = (kind, environment)
            if key not in self._pools:
                creator = creators.get(environment)
                if creator is None:
                    raise ConnectivityError(f"No {kind} connection configured for {environment.value}")
                self._pools[key] = QueuePool(
                    creator,
                    pool_size=self._pool_size,
                    max_overflow=0,
                    timeout=self._timeout,
                )
            return self._pools[key]

    def _connect(self, kind: str, environment: Environment, creators: dict[Environment, Callable[[], Any]]) -> Any:
        pool = self._pool(kind, environment, creators)
        try:
            return pool.connect()
        except Exception as e:
            raise ConnectivityError(f"Unable to acquire {kind} connection for {environment.value}: {e}") from e

    def acquire(self, environment: Environment) -> Any:
        return self._connect("hs2", environment, self._creators)

    def acquire_metastore_direct(self, environment: Environment) -> Any:
        return self._connect("metastore", environment, self._metastore_creators)

    def close(self) -> None:
        with self._lock:
            for pool in self._pools.values():
                pool.dispose()
            self._pools.clear()


class SqlRunner:
    """Runs SQL plans against an environment, or logs them in dry-run mode.

    Statement failures are recorded on the owning table or database and
    reported as False. Failing to acquire a connection raises
    ConnectivityError.
    """

    def __init__(self, connections: Optional[ConnectionProvider], dry_run: bool = True):
        self.connections = connections
        self.dry_run = dry_run

    def _run(self, label: str, environment: Environment, statements: list[SqlPair], record_error: Callable[[str], None]) -> bool:
        if not statements:
            return True
        if self.dry_run:
            for pair in statements:
                logger.info(f"[dry-run] {label} on {environment.value} would run ({pair.description}): {pair.statement}")
            return True
        if self.connections is None:
            raise ConnectivityError(f"No connection provider configured to run SQL for {label}")

        conn = self.connections.acquire(environment)
        try:
            cursor = conn.cursor()
            try:
                for pair in statements:
                    logger.debug(f"{label} on {environment.value}: {pair.statement}")
                    try:
                        cursor.execute(pair.statement)
                    except Exception as e:
                        message = f"{pair.description}: {e}"
                        logger.error(f"{label} on {environment.value} failed. {message}")
                        record_error(message)
                        return False
            finally:
                cursor.close()
        finally:
            conn.close()
        return True

    def run_table_sql(
        self, table_mirror: TableMirror, environment: Environment, statements: Optional[list[SqlPair]] = None
    ) -> bool:
        if statements is None:
            statements = table_mirror.environment_table(environment).sql
        return self._run(
            table_mirror.name,
            environment,
            statements,
            lambda message: table_mirror.add_error(environment, message),
        )

    def run_database_sql(self, db_mirror: DBMirror, environment: Environment) -> bool:
        return self._run(
            db_mirror.name,
            environment,
            db_mirror.sql.get(environment, []),
            lambda message: db_mirror.issues.append(f"{environment.value}: {message}"),
        )
