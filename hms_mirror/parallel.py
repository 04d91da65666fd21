"""Worker pool and run summaries for hms_mirror."""

import logging
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, TypeVar

from hms_mirror.models import PhaseState, TableResult

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

# Phases that count as a clean finish. CALCULATED_SQL is a dry run or a
# build-only run: the SQL was produced and nothing was refused.
_FINISHED = (PhaseState.PROCESSED, PhaseState.CALCULATED_SQL)


@dataclass
class MigrationSummary:
    """Per-phase tally of a migration run.

    ``phases`` counts tables by the phase they ended in. Tables held at
    CALCULATED_SQL_WARNING are reported separately from failures so that
    they can be reviewed and re-run with ``execute_on_warning``.
    """

    phases: Counter = field(default_factory=Counter)
    total_duration_seconds: float = 0.0
    held_tables: list[str] = field(default_factory=list)
    failed_tables: list[tuple[str, str]] = field(default_factory=list)  # (db.table, error)

    @property
    def total_tables(self) -> int:
        return sum(self.phases.values())

    @property
    def processed(self) -> int:
        return sum(self.phases[phase] for phase in _FINISHED)

    @property
    def warnings(self) -> int:
        return self.phases[PhaseState.CALCULATED_SQL_WARNING]

    @property
    def failed(self) -> int:
        return self.phases[PhaseState.ERROR]

    @property
    def success_rate(self) -> float:
        """Share of tables that finished cleanly, as a percentage."""
        if not self.total_tables:
            return 0.0
        return self.processed * 100 / self.total_tables

    def __str__(self) -> str:
        rule = "-" * 60
        lines = [
            "",
            rule,
            f"MIGRATION SUMMARY ({self.total_tables} tables, {self.total_duration_seconds:.2f}s)",
            rule,
        ]
        for phase, count in sorted(self.phases.items(), key=lambda kv: kv[0].value):
            lines.append(f"{phase.value:<24}{count:>6}")
        lines.append(f"Success rate: {self.success_rate:.1f}%")

        if self.held_tables:
            lines.append("\nHeld for review:")
            lines.extend(f"  * {name}" for name in self.held_tables)
        if self.failed_tables:
            lines.append("\nFailed tables:")
            lines.extend(f"  * {name}: {error}" for name, error in self.failed_tables)

        lines.append(rule)
        return "\n".join(lines)


def log_progress(completed: int, total: int, current_item: str) -> None:
    """Default progress callback for run_parallel()."""
    logger.info(f"[{completed}/{total}] Completed: {current_item}")


def run_parallel(
    func: Callable[[T], R],
    items: list[T],
    max_workers: int = 4,
    progress_callback: Optional[Callable[[int, int, str], None]] = None,
) -> list[R | Exception]:
    """Apply ``func`` to every item on a bounded thread pool.

    The work is I/O bound (HiveServer2, metastore and catalog calls), so
    threads are enough. Returning means every future has completed, which
    is the join point callers rely on before building distcp plans.

    Args:
        func: Called once per item.
        items: Work items. Their ``str()`` is used for progress messages.
        max_workers: Pool size.
        progress_callback: ``callback(completed, total, description)``.
            Defaults to log_progress().

    Returns:
        One entry per item, in the order the items were given. An item whose
        call raised gets the Exception in its slot.
    """
    if not items:
        return []

    callback = progress_callback or log_progress
    results: list[Any] = [None] * len(items)

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {executor.submit(func, item): index for index, item in enumerate(items)}
        for completed, future in enumerate(as_completed(futures), start=1):
            index = futures[future]
            try:
                results[index] = future.result()
                description = str(items[index])
            except Exception as e:
                results[index] = e
                description = f"{items[index]} (FAILED: {e})"
            callback(completed, len(items), description)

    return results


def create_summary(results: list[TableResult]) -> MigrationSummary:
    """Tally TableResults by final phase."""
    summary = MigrationSummary()
    for result in results:
        name = f"{result.database}.{result.table}"
        summary.phases[result.phase] += 1
        summary.total_duration_seconds += result.duration_seconds
        if result.phase == PhaseState.CALCULATED_SQL_WARNING:
            summary.held_tables.append(name)
        elif result.phase == PhaseState.ERROR:
            summary.failed_tables.append((name, result.error or "Unknown error"))
        elif result.phase not in _FINISHED:
            logger.debug(f"{name} ended in {result.phase.value}")
    return summary
