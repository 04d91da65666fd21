"""Global Location Map (GLM): precedence-ordered path prefix remapping."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Optional

from hms_mirror.errors import LocationMismatchError
from hms_mirror.models import TableType
from hms_mirror.namespace import reduce_url_by, strip_namespace
from hms_mirror.warehouse import SourceLocationIndex, WarehousePlanRegistry

logger = logging.getLogger(__name__)


@dataclass
class GlobalLocationMapEntry:
    """Target roots for one source prefix, keyed by table type."""

    source_prefix: str
    targets: dict[TableType, str] = field(default_factory=dict)


@dataclass(frozen=True)
class GlmResult:
    """Outcome of a GLM lookup. ``mapped`` is False when no entry applied."""

    original_dir: str
    mapped_dir: str
    mapped: bool


@dataclass
class GlmBuildResult:
    """Summary of an auto-derivation pass."""

    entries: int = 0
    errors: list[LocationMismatchError] = field(default_factory=list)


def _sort_key(prefix: str) -> tuple[int, str]:
    return (-len(prefix), prefix)


class GlobalLocationMap:
    """Ordered prefix -> target-root map.

    Entries are kept in descending prefix length, then natural string order;
    the first prefix that literally prefixes a path wins. User entries
    override auto-derived ones for the same prefix and table type.
    """

    def __init__(self) -> None:
        self._user: dict[str, dict[TableType, str]] = {}
        self._auto: dict[str, dict[TableType, str]] = {}
        self._lock = threading.Lock()
        self._ordered: Optional[list[GlobalLocationMapEntry]] = None

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def add(self, source_prefix: str, target: str, table_type: Optional[TableType] = None) -> None:
        """Map ``source_prefix`` to ``target``.

        Args:
            source_prefix: Namespace-less path prefix on the source side.
            target: Namespace-less target root.
            table_type: Table type the mapping applies to. None maps both.
        """
        types = [table_type] if table_type else [TableType.EXTERNAL, TableType.MANAGED]
        with self._lock:
            entry = self._user.setdefault(source_prefix, {})
            for t in types:
                entry[t] = target
            self._ordered = None

    def remove(self, source_prefix: str, table_type: Optional[TableType] = None) -> None:
        with self._lock:
            for store in (self._user, self._auto):
                if source_prefix not in store:
                    continue
                if table_type is None:
                    del store[source_prefix]
                else:
                    store[source_prefix].pop(table_type, None)
                    if not store[source_prefix]:
                        del store[source_prefix]
            self._ordered = None

    def clear_auto(self) -> None:
        with self._lock:
            self._auto.clear()
            self._ordered = None

    def _add_auto(self, source_prefix: str, table_type: TableType, target: str) -> None:
        with self._lock:
            self._auto.setdefault(source_prefix, {})[table_type] = target
            self._ordered = None

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    @property
    def entries(self) -> list[GlobalLocationMapEntry]:
        """Effective entries in precedence order."""
        with self._lock:
            if self._ordered is None:
                merged: dict[str, dict[TableType, str]] = {}
                for store in (self._auto, self._user):
                    for prefix, targets in store.items():
                        merged.setdefault(prefix, {}).update(targets)
                self._ordered = [
                    GlobalLocationMapEntry(prefix, dict(merged[prefix]))
                    for prefix in sorted(merged, key=_sort_key)
                ]
            return list(self._ordered)

    def __len__(self) -> int:
        return len(self.entries)

    def resolve(self, relative_path: str, is_external: bool) -> GlmResult:
        """Remap a namespace-less path through the first matching entry.

        An entry whose prefix matches but has no target for the table type is
        skipped, and the search continues with the next entry.
        """
        table_type = TableType.EXTERNAL if is_external else TableType.MANAGED
        for entry in self.entries:
            if not relative_path.startswith(entry.source_prefix):
                continue
            target = entry.targets.get(table_type)
            if target is None:
                continue
            mapped = target + relative_path[len(entry.source_prefix):]
            logger.debug(f"GLM {relative_path} -> {mapped} ({entry.source_prefix})")
            return GlmResult(relative_path, mapped, True)
        return GlmResult(relative_path, relative_path, False)

    # -------------------------------------------------------------------------
    # Auto-derivation
    # -------------------------------------------------------------------------

    def build_from_sources(
        self,
        index: SourceLocationIndex,
        registry: WarehousePlanRegistry,
        consolidation_level: int = 0,
        conversions: bool = False,
        resolve_db: Optional[Callable[[str], str]] = None,
        strict: bool = False,
        source_namespace: Optional[str] = None,
    ) -> GlmBuildResult:
        """Derive entries that move observed locations under their warehouse roots.

        Args:
            index: Locations observed on the source cluster.
            registry: Warehouse plans; only databases with a plan are mapped.
            consolidation_level: Extra levels trimmed from each observed location.
            conversions: Managed tables may become external on the target, so
                managed locations also get an external target.
            resolve_db: Maps a source database name to its target name.
            strict: Report observed locations outside ``source_namespace``.
            source_namespace: Namespace the observed locations should carry.

        Returns:
            GlmBuildResult with the number of derived entries and any
            LocationMismatchError raised for individual locations.
        """
        self.clear_auto()
        result = GlmBuildResult()
        resolve_db = resolve_db or (lambda name: name)

        for database, warehouse in sorted(registry.plans.items()):
            db_dir = f"{resolve_db(database)}.db"
            ext_root = f"{warehouse.external_directory}/{db_dir}"
            mngd_root = f"{warehouse.managed_directory}/{db_dir}"

            for table_type, locations in index.locations(database).items():
                for location in sorted(locations):
                    if strict and source_namespace and not location.startswith(source_namespace):
                        error = LocationMismatchError(
                            f"Location {location} in {database} is not in the source namespace {source_namespace}",
                            location=location,
                        )
                        logger.error(str(error))
                        result.errors.append(error)
                        continue

                    reduced = reduce_url_by(strip_namespace(location), consolidation_level)
                    if table_type == TableType.EXTERNAL:
                        if not reduced.startswith(ext_root):
                            self._add_auto(reduced, TableType.EXTERNAL, ext_root)
                            result.entries += 1
                    elif not reduced.startswith(mngd_root):
                        self._add_auto(reduced, TableType.MANAGED, mngd_root)
                        if conversions:
                            self._add_auto(reduced, TableType.EXTERNAL, ext_root)
                        result.entries += 1

        logger.info(f"Derived {result.entries} GLM entries ({len(result.errors)} rejected)")
        return result

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict[str, dict[str, str]]:
        return {
            entry.source_prefix: {t.value: target for t, target in entry.targets.items()}
            for entry in self.entries
        }

    @classmethod
    def from_dict(cls, data: dict[str, dict[str, str]]) -> GlobalLocationMap:
        glm = cls()
        for prefix, targets in data.items():
            for type_name, target in targets.items():
                glm.add(prefix, target, TableType(type_name))
        return glm

    def save(self, path: str, region: str = "us-east-1") -> str:
        """Write the effective map as JSON to a local path or S3."""
        from hms_mirror.s3 import is_s3_path, write_to_s3

        content = json.dumps(self.to_dict(), indent=2, sort_keys=True)
        if is_s3_path(path):
            return write_to_s3(content, path, region=region)
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
        return path

    @classmethod
    def load(cls, path: str, region: str = "us-east-1") -> GlobalLocationMap:
        from hms_mirror.s3 import is_s3_path, read_from_s3

        if is_s3_path(path):
            content = read_from_s3(path, region=region)
        else:
            with open(path, encoding="utf-8") as f:
                content = f.read()
        return cls.from_dict(json.loads(content))
