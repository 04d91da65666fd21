"""Unit tests for parallel execution and run summaries."""

import time
from collections import Counter
from unittest.mock import MagicMock

from hms_mirror.models import PhaseState, ReturnStatus, TableResult
from hms_mirror.parallel import MigrationSummary, create_summary, run_parallel


class TestRunParallel:
    def test_results_in_submission_order(self):
        def work(x):
            time.sleep(0.01 * (3 - x))
            return x * 2

        assert run_parallel(work, [0, 1, 2], max_workers=3) == [0, 2, 4]

    def test_empty(self):
        assert run_parallel(lambda x: x, []) == []

    def test_exceptions_returned_in_place(self):
        def work(x):
            if x == 2:
                raise ValueError("bad item")
            return x

        results = run_parallel(work, [1, 2, 3])

        assert results[0] == 1
        assert isinstance(results[1], ValueError)
        assert str(results[1]) == "bad item"
        assert results[2] == 3

    def test_progress_callback(self):
        callback = MagicMock()
        run_parallel(lambda x: x, ["a", "b"], progress_callback=callback)
        assert callback.call_count == 2
        assert sorted(c.args[0] for c in callback.call_args_list) == [1, 2]
        assert {c.args[1] for c in callback.call_args_list} == {2}

    def test_failed_item_described(self):
        def work(x):
            raise RuntimeError("down")

        callback = MagicMock()
        run_parallel(work, ["db.t1"], progress_callback=callback)
        callback.assert_called_once_with(1, 1, "db.t1 (FAILED: down)")


class TestCreateSummary:
    def test_counts(self):
        results = [
            TableResult("db", "t1", PhaseState.PROCESSED, ReturnStatus.SUCCESS, duration_seconds=1.0),
            TableResult("db", "t2", PhaseState.CALCULATED_SQL_WARNING, ReturnStatus.INCOMPLETE, duration_seconds=0.5),
            TableResult("db", "t3", PhaseState.ERROR, ReturnStatus.FATAL, error="boom"),
            TableResult("db", "t4", PhaseState.CALCULATED_SQL, ReturnStatus.SUCCESS),
            TableResult("db", "t5", PhaseState.ERROR, ReturnStatus.ERROR),
        ]

        summary = create_summary(results)

        assert summary.total_tables == 5
        assert summary.processed == 2
        assert summary.warnings == 1
        assert summary.failed == 2
        assert summary.total_duration_seconds == 1.5
        assert summary.held_tables == ["db.t2"]
        assert summary.failed_tables == [("db.t3", "boom"), ("db.t5", "Unknown error")]

    def test_str(self):
        summary = MigrationSummary(
            phases=Counter({PhaseState.PROCESSED: 1, PhaseState.ERROR: 1}),
            total_duration_seconds=3.0,
            failed_tables=[("db.t2", "boom")],
        )
        text = str(summary)
        assert "MIGRATION SUMMARY (2 tables, 3.00s)" in text
        assert "Success rate: 50.0%" in text
        assert "db.t2: boom" in text

    def test_empty_success_rate(self):
        assert MigrationSummary().success_rate == 0.0
