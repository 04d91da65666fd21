"""Append-only record of location translations, consumed by distcp planning."""

import logging
import threading

from hms_mirror.models import Environment, TranslationLevel

logger = logging.getLogger(__name__)


class TranslationLedger:
    """Per-database, per-environment list of TranslationLevel records.

    Appends from concurrent table workers are serialized by a single lock.
    Readers take a snapshot; records are never removed during a run.
    """

    def __init__(self) -> None:
        self._records: dict[tuple[str, Environment], list[TranslationLevel]] = {}
        self._lock = threading.Lock()

    def append(
        self,
        database: str,
        environment: Environment,
        original: str,
        target: str,
        level: int = 1,
        consolidate_tables: bool = False,
    ) -> TranslationLevel:
        record = TranslationLevel(database, environment, original, target, level, consolidate_tables)
        with self._lock:
            self._records.setdefault((database, environment), []).append(record)
        logger.debug(f"Ledger {database}/{environment.value}: {original} -> {target} (level {level})")
        return record

    def records(self, database: str, environment: Environment) -> list[TranslationLevel]:
        with self._lock:
            return list(self._records.get((database, environment), []))

    def environments(self, database: str) -> list[Environment]:
        with self._lock:
            return [env for (db, env), recs in self._records.items() if db == database and recs]

    def __len__(self) -> int:
        with self._lock:
            return sum(len(recs) for recs in self._records.values())
