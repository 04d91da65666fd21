"""Distcp work plans built from the translation ledger.

Plans are built once every table of a run has finished its build phase.
"""

import logging
import os
from dataclasses import dataclass, field

from hms_mirror.ledger import TranslationLedger
from hms_mirror.models import Environment
from hms_mirror.namespace import reduce_url_by

logger = logging.getLogger(__name__)


def build_distcp_list(
    ledger: TranslationLedger,
    database: str,
    environment: Environment,
    consolidation_level: int,
) -> dict[str, set[str]]:
    """Group the ledger's source directories by consolidated target directory.

    Args:
        ledger: Ledger populated during the build phase.
        database: Source database name.
        environment: Environment whose records are planned.
        consolidation_level: Segments trimmed from each adjusted target.

    Returns:
        Mapping of reduced target directory to the adjusted source
        directories copied into it, both in sorted order.

    Example:
        Sources /a/b/t1 and /a/b/t2 translated in place, at level 1:
        {"/a/b": {"/a/b/t1", "/a/b/t2"}}
    """
    location_map: dict[str, str] = {}
    for record in ledger.records(database, environment):
        location_map[record.adjusted_original] = record.adjusted_target

    reverse_map: dict[str, set[str]] = {}
    for original, target in sorted(location_map.items()):
        reduced_target = reduce_url_by(target, consolidation_level)
        reverse_map.setdefault(reduced_target, set()).add(original)

    return dict(sorted(reverse_map.items()))


@dataclass
class DistcpPlan:
    """Distcp jobs for one database and environment."""

    database: str
    environment: Environment
    consolidation_level: int
    jobs: dict[str, set[str]] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.jobs)

    def _list_name(self, index: int) -> str:
        return f"{self.database}_{self.environment.value}_distcp_source_{index}.txt"

    def source_lists(self) -> dict[str, str]:
        """One source-list file per target, named by position."""
        return {
            self._list_name(i): "\n".join(sorted(sources)) + "\n"
            for i, sources in enumerate(self.jobs.values())
        }

    def script(self, list_directory: str) -> str:
        """Shell script running one ``hadoop distcp -f`` per target."""
        lines = [
            "#!/usr/bin/env sh",
            f"# {self.database} distcp plan ({self.environment.value})",
            "",
        ]
        for i, target in enumerate(self.jobs):
            source_list = f"{list_directory.rstrip('/')}/{self._list_name(i)}"
            lines.append(f'echo "Copying into {target}"')
            lines.append(f"hadoop distcp -f {source_list} {target}")
        return "\n".join(lines) + "\n"


class DistcpPlanBuilder:
    """Builds DistcpPlans for each environment a database has records in."""

    def __init__(self, ledger: TranslationLedger, consolidation_level: int = 1):
        self.ledger = ledger
        self.consolidation_level = consolidation_level

    def build(self, database: str, environment: Environment) -> DistcpPlan:
        jobs = build_distcp_list(self.ledger, database, environment, self.consolidation_level)
        return DistcpPlan(database, environment, self.consolidation_level, jobs)

    def build_plans(self, database: str) -> dict[Environment, DistcpPlan]:
        plans = {}
        for environment in self.ledger.environments(database):
            plan = self.build(database, environment)
            if plan.jobs:
                plans[environment] = plan
                logger.info(f"{database}: {len(plan)} distcp jobs for {environment.value}")
        return plans


def write_distcp_plan(plan: DistcpPlan, base_path: str, region: str = "us-east-1") -> list[str]:
    """Write a plan's source lists and script under ``base_path`` (local or S3).

    Returns:
        Paths written.
    """
    from hms_mirror.s3 import is_s3_path, write_to_s3

    files = dict(plan.source_lists())
    files[f"{plan.database}_{plan.environment.value}_distcp_script.sh"] = plan.script(base_path)

    written = []
    for name, content in files.items():
        path = f"{base_path.rstrip('/')}/{name}"
        if is_s3_path(base_path):
            write_to_s3(content, path, region=region, content_type="text/plain")
        else:
            os.makedirs(base_path, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                f.write(content)
        written.append(path)
    return written
