"""Unit tests for distcp planning."""

from unittest.mock import patch

from hms_mirror.distcp import DistcpPlanBuilder, build_distcp_list, write_distcp_plan
from hms_mirror.ledger import TranslationLedger
from hms_mirror.models import Environment


def ledger_with(*pairs, level=1, consolidate_tables=False):
    ledger = TranslationLedger()
    for original, target in pairs:
        ledger.append("db", Environment.SOURCE, original, target, level, consolidate_tables)
    return ledger


class TestBuildDistcpList:
    def test_sibling_tables_share_a_job(self):
        ledger = ledger_with(("/a/b/t1", "/a/b/t1"), ("/a/b/t2", "/a/b/t2"))
        assert build_distcp_list(ledger, "db", Environment.SOURCE, 1) == {"/a/b": {"/a/b/t1", "/a/b/t2"}}

    def test_level_zero_keeps_one_job_per_table(self):
        ledger = ledger_with(("hdfs://s/a/t1", "hdfs://t/x/t1"), ("hdfs://s/a/t2", "hdfs://t/x/t2"))
        assert build_distcp_list(ledger, "db", Environment.SOURCE, 0) == {
            "hdfs://t/x/t1": {"hdfs://s/a/t1"},
            "hdfs://t/x/t2": {"hdfs://s/a/t2"},
        }

    def test_partitions_collapse_to_table(self):
        ledger = ledger_with(
            ("/a/t1/dt=1", "/b/t1/dt=1"),
            ("/a/t1/dt=2", "/b/t1/dt=2"),
            level=2,
        )
        assert build_distcp_list(ledger, "db", Environment.SOURCE, 1) == {"/b": {"/a/t1"}}

    def test_duplicate_registrations_collapse(self):
        ledger = ledger_with(("/a/t1", "/b/t1"), ("/a/t1", "/b/t1"))
        assert build_distcp_list(ledger, "db", Environment.SOURCE, 0) == {"/b/t1": {"/a/t1"}}

    def test_other_environment_empty(self):
        ledger = ledger_with(("/a/t1", "/b/t1"))
        assert build_distcp_list(ledger, "db", Environment.TARGET, 1) == {}


class TestDistcpPlan:
    def _plan(self):
        ledger = ledger_with(("/a/b/t1", "/c/b/t1"), ("/a/b/t2", "/c/b/t2"))
        return DistcpPlanBuilder(ledger, consolidation_level=1).build_plans("db")[Environment.SOURCE]

    def test_build_plans_only_for_recorded_environments(self):
        ledger = ledger_with(("/a/t1", "/b/t1"))
        assert list(DistcpPlanBuilder(ledger).build_plans("db")) == [Environment.SOURCE]
        assert DistcpPlanBuilder(ledger).build_plans("other") == {}

    def test_source_lists(self):
        plan = self._plan()
        assert plan.source_lists() == {"db_SOURCE_distcp_source_0.txt": "/a/b/t1\n/a/b/t2\n"}

    def test_script(self):
        script = self._plan().script("/tmp/plans/")
        assert "hadoop distcp -f /tmp/plans/db_SOURCE_distcp_source_0.txt /c/b" in script
        assert script.startswith("#!/usr/bin/env sh")

    def test_write_local(self, tmp_path):
        written = write_distcp_plan(self._plan(), str(tmp_path))
        assert len(written) == 2
        assert (tmp_path / "db_SOURCE_distcp_source_0.txt").read_text() == "/a/b/t1\n/a/b/t2\n"
        assert (tmp_path / "db_SOURCE_distcp_script.sh").exists()

    @patch("hms_mirror.s3.write_to_s3")
    def test_write_s3(self, mock_write):
        written = write_distcp_plan(self._plan(), "s3://bucket/plans")
        assert written == [
            "s3://bucket/plans/db_SOURCE_distcp_source_0.txt",
            "s3://bucket/plans/db_SOURCE_distcp_script.sh",
        ]
        assert mock_write.call_count == 2
