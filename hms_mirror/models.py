"""Data models for hms_mirror package."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple, Optional

from hms_mirror.errors import PhaseTransitionError
from hms_mirror.namespace import reduce_url_by


class Environment(str, Enum):
    """Role a table definition plays in a migration."""

    SOURCE = "SOURCE"
    TARGET = "TARGET"
    TRANSFER = "TRANSFER"  # SOURCE-side intermediate copy
    SHADOW = "SHADOW"  # TARGET-side table over the source data


class TableType(str, Enum):
    EXTERNAL = "EXTERNAL_TABLE"
    MANAGED = "MANAGED_TABLE"


class DataStrategyType(str, Enum):
    SCHEMA_ONLY = "SCHEMA_ONLY"
    SQL = "SQL"
    EXPORT_IMPORT = "EXPORT_IMPORT"
    HYBRID = "HYBRID"
    STORAGE_MIGRATION = "STORAGE_MIGRATION"
    LINKED = "LINKED"
    COMMON = "COMMON"
    DUMP = "DUMP"
    CONVERT_LINKED = "CONVERT_LINKED"
    ACID_DOWNGRADE_INPLACE = "ACID_DOWNGRADE_INPLACE"

    @property
    def is_copy(self) -> bool:
        """True for strategies that place data at a new location."""
        return self not in (DataStrategyType.LINKED, DataStrategyType.COMMON)


class DataFlow(str, Enum):
    PULL = "PULL"
    PUSH = "PUSH"


class ReturnStatus(str, Enum):
    SUCCESS = "SUCCESS"
    INCOMPLETE = "INCOMPLETE"
    ERROR = "ERROR"
    FATAL = "FATAL"
    SKIPPED = "SKIPPED"


class PhaseState(str, Enum):
    INIT = "INIT"
    CALCULATING_SQL = "CALCULATING_SQL"
    CALCULATED_SQL = "CALCULATED_SQL"
    CALCULATED_SQL_WARNING = "CALCULATED_SQL_WARNING"
    APPLYING_SQL = "APPLYING_SQL"
    PROCESSED = "PROCESSED"
    ERROR = "ERROR"


_PHASE_TRANSITIONS: dict[PhaseState, frozenset[PhaseState]] = {
    PhaseState.INIT: frozenset({PhaseState.CALCULATING_SQL, PhaseState.ERROR}),
    PhaseState.CALCULATING_SQL: frozenset({
        PhaseState.CALCULATED_SQL,
        PhaseState.CALCULATED_SQL_WARNING,
        PhaseState.ERROR,
    }),
    PhaseState.CALCULATED_SQL: frozenset({PhaseState.APPLYING_SQL, PhaseState.ERROR}),
    PhaseState.CALCULATED_SQL_WARNING: frozenset({PhaseState.APPLYING_SQL, PhaseState.ERROR}),
    PhaseState.APPLYING_SQL: frozenset({PhaseState.PROCESSED, PhaseState.ERROR}),
    PhaseState.PROCESSED: frozenset(),
    PhaseState.ERROR: frozenset(),
}


def can_transition(current: PhaseState, new: PhaseState) -> bool:
    """Check whether ``current -> new`` moves a table forward."""
    return new in _PHASE_TRANSITIONS[current]


@dataclass
class Warehouse:
    """External and managed warehouse roots for a database (namespace-less paths)."""

    external_directory: Optional[str] = None
    managed_directory: Optional[str] = None
    source: str = "PLAN"  # PLAN or GLOBAL

    @property
    def is_complete(self) -> bool:
        return bool(self.external_directory) and bool(self.managed_directory)

    def root_for(self, table_type: TableType) -> Optional[str]:
        if table_type == TableType.EXTERNAL:
            return self.external_directory
        return self.managed_directory


@dataclass(frozen=True)
class TranslationLevel:
    """A single original -> target location pair recorded for distcp planning.

    ``level`` is the depth of the location below its table root (1 for the
    table itself, partition depth + 1 for partitions). The adjusted paths
    are both sides raised to the table directory, or to its parent when
    tables are consolidated.
    """

    database: str
    environment: Environment
    original: str
    target: str
    level: int = 1
    consolidate_tables: bool = False

    @property
    def _reduction(self) -> int:
        return max(self.level - 1, 0) + (1 if self.consolidate_tables else 0)

    @property
    def adjusted_original(self) -> str:
        return reduce_url_by(self.original, self._reduction)

    @property
    def adjusted_target(self) -> str:
        return reduce_url_by(self.target, self._reduction)


class SqlPair(NamedTuple):
    """A described SQL statement."""

    description: str
    statement: str


@dataclass
class EnvironmentTable:
    """A table as it exists (or will exist) in one environment."""

    name: str
    exists: bool = False
    definition: list[str] = field(default_factory=list)
    partitions: dict[str, str] = field(default_factory=dict)  # spec -> location
    sql: list[SqlPair] = field(default_factory=list)
    cleanup_sql: list[SqlPair] = field(default_factory=list)
    issues: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    statistics: dict[str, object] = field(default_factory=dict)

    def add_sql(self, description: str, statement: str) -> None:
        self.sql.append(SqlPair(description, statement))

    def add_cleanup_sql(self, description: str, statement: str) -> None:
        self.cleanup_sql.append(SqlPair(description, statement))


@dataclass
class TableMirror:
    """Per-table migration state shared by the build and execute phases.

    A TableMirror is owned by exactly one worker at a time; it is not
    thread-safe.
    """

    name: str
    strategy: Optional[DataStrategyType] = None
    phase_state: PhaseState = PhaseState.INIT
    phase_history: list[PhaseState] = field(default_factory=list)
    environments: dict[Environment, EnvironmentTable] = field(default_factory=dict)
    remapped: bool = False
    steps: list[str] = field(default_factory=list)
    stage_duration: dict[str, float] = field(default_factory=dict)

    def environment_table(self, environment: Environment) -> EnvironmentTable:
        """Return the table for an environment, creating an empty one on demand."""
        if environment not in self.environments:
            self.environments[environment] = EnvironmentTable(name=self.name)
        return self.environments[environment]

    def set_phase_state(self, new_state: PhaseState) -> None:
        """Advance the phase state.

        Raises:
            PhaseTransitionError: If the move would regress the table.
        """
        if new_state == self.phase_state == PhaseState.ERROR:
            return
        if not can_transition(self.phase_state, new_state):
            raise PhaseTransitionError(
                f"{self.name}: illegal phase transition {self.phase_state.value} -> {new_state.value}"
            )
        self.phase_state = new_state
        self.phase_history.append(new_state)

    def add_issue(self, environment: Environment, message: str) -> None:
        self.environment_table(environment).issues.append(message)

    def add_error(self, environment: Environment, message: str) -> None:
        self.environment_table(environment).errors.append(message)

    def add_step(self, step: str) -> None:
        self.steps.append(step)

    @property
    def issues(self) -> list[tuple[Environment, str]]:
        return [(env, msg) for env, et in self.environments.items() for msg in et.issues]

    @property
    def errors(self) -> list[tuple[Environment, str]]:
        return [(env, msg) for env, et in self.environments.items() for msg in et.errors]

    @property
    def is_partitioned(self) -> bool:
        from hms_mirror.ddl import is_partitioned

        source = self.environments.get(Environment.SOURCE)
        if source is None:
            return False
        return bool(source.partitions) or is_partitioned(source.definition)


@dataclass
class DBMirror:
    """A database and the tables being migrated with it."""

    name: str
    resolved_name: Optional[str] = None  # target-side name after rename/prefix
    properties: dict[Environment, dict[str, str]] = field(default_factory=dict)
    sql: dict[Environment, list[SqlPair]] = field(default_factory=dict)
    issues: list[str] = field(default_factory=list)
    tables: dict[str, TableMirror] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.resolved_name is None:
            self.resolved_name = self.name

    def add_table(self, table: TableMirror) -> TableMirror:
        self.tables[table.name] = table
        return table

    def add_sql(self, environment: Environment, description: str, statement: str) -> None:
        self.sql.setdefault(environment, []).append(SqlPair(description, statement))

    def set_property(self, environment: Environment, key: str, value: str) -> None:
        self.properties.setdefault(environment, {})[key] = value

    def get_property(self, environment: Environment, key: str) -> Optional[str]:
        return self.properties.get(environment, {}).get(key)


@dataclass
class TableResult:
    """Result of running one table through build and execute."""

    database: str
    table: str
    phase: PhaseState
    status: ReturnStatus
    error: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.phase == PhaseState.PROCESSED or (
            self.status == ReturnStatus.SUCCESS and self.phase != PhaseState.ERROR
        )

    def __str__(self) -> str:
        status = self.phase.value if self.error is None else f"{self.phase.value} {self.error}"
        return f"{self.database}.{self.table}: {status}"


@dataclass(eq=False)
class TableRef:
    """A table paired with its database, as submitted to a worker pool."""

    db_mirror: DBMirror
    table_mirror: TableMirror

    def __str__(self) -> str:
        return f"{self.db_mirror.name}.{self.table_mirror.name}"
