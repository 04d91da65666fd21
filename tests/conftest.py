"""Pytest configuration and fixtures for hms_mirror tests."""

import threading
from typing import Callable, Optional
from unittest.mock import MagicMock

import pytest

from hms_mirror.models import DBMirror, Environment, TableMirror

SOURCE_NS = "hdfs://source:8020"
TARGET_NS = "hdfs://target:8020"


def build_definition(
    name: str,
    location: Optional[str] = None,
    external: bool = True,
    acid: bool = False,
    partition_columns: tuple[str, ...] = (),
) -> list[str]:
    """SHOW CREATE TABLE style lines for a two-column table."""
    lines = [
        f"CREATE {'EXTERNAL ' if external else ''}TABLE `{name}`(",
        "  `id` bigint,",
        "  `value` string)",
    ]
    if partition_columns:
        columns = [f"  `{c}` string" for c in partition_columns]
        lines.append("PARTITIONED BY (")
        lines.extend([c + "," for c in columns[:-1]] + [columns[-1] + ")"])
    lines.extend([
        "ROW FORMAT SERDE",
        "  'org.apache.hadoop.hive.ql.io.orc.OrcSerde'",
    ])
    if location:
        lines.extend(["LOCATION", f"  '{location}'"])
    lines.append("TBLPROPERTIES (")
    if acid:
        lines.extend(["  'bucketing_version'='2',", "  'transactional'='true')"])
    else:
        lines.append("  'bucketing_version'='2')")
    return lines


@pytest.fixture
def make_definition() -> Callable[..., list[str]]:
    return build_definition


@pytest.fixture
def make_table() -> Callable[..., TableMirror]:
    """Factory for a TableMirror with a SOURCE definition."""

    def _make_table(
        name: str = "t1",
        location: Optional[str] = f"{SOURCE_NS}/warehouse/db.db/t1",
        external: bool = True,
        acid: bool = False,
        partitions: Optional[dict[str, str]] = None,
    ) -> TableMirror:
        table = TableMirror(name)
        source = table.environment_table(Environment.SOURCE)
        source.exists = True
        source.definition = build_definition(
            name,
            location,
            external=external,
            acid=acid,
            partition_columns=("dt",) if partitions is not None else (),
        )
        source.partitions = dict(partitions or {})
        return table

    return _make_table


@pytest.fixture
def db_mirror() -> DBMirror:
    return DBMirror("db")


class RecordingConnectionProvider:
    """ConnectionProvider whose connections record every executed statement."""

    def __init__(self, fail_on: Optional[str] = None):
        self.executed: list[tuple[Environment, str]] = []
        self.acquired: list[Environment] = []
        self.fail_on = fail_on
        self._lock = threading.Lock()

    def acquire(self, environment: Environment):
        with self._lock:
            self.acquired.append(environment)
        conn = MagicMock()

        def execute(statement):
            if self.fail_on and self.fail_on in statement:
                raise RuntimeError(f"statement failed: {self.fail_on}")
            with self._lock:
                self.executed.append((environment, statement))

        conn.cursor.return_value.execute.side_effect = execute
        return conn

    def acquire_metastore_direct(self, environment: Environment):
        return self.acquire(environment)

    def statements(self, environment: Environment) -> list[str]:
        return [s for env, s in self.executed if env == environment]


@pytest.fixture
def connections() -> RecordingConnectionProvider:
    return RecordingConnectionProvider()


class FakeScanner:
    """In-memory CatalogScanner."""

    def __init__(self, tables=None, partitions=None, fail_on=None):
        self.tables = tables or {}  # (env, db, table) -> definition
        self.partitions = partitions or {}  # (env, db, table) -> {spec: location}
        self.fail_on = fail_on
        self.definition_calls = []

    def list_tables(self, environment, database):
        return sorted(t for env, db, t in self.tables if env == environment and db == database)

    def fetch_definition(self, environment, database, table):
        self.definition_calls.append((environment, database, table))
        if table == self.fail_on:
            raise RuntimeError("metastore unavailable")
        return list(self.tables.get((environment, database, table), []))

    def fetch_partitions(self, environment, database, table):
        return dict(self.partitions.get((environment, database, table), {}))
