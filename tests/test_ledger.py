"""Unit tests for TranslationLedger."""

from hms_mirror.ledger import TranslationLedger
from hms_mirror.models import Environment
from hms_mirror.parallel import run_parallel


class TestTranslationLedger:
    def test_records_are_grouped(self):
        ledger = TranslationLedger()
        ledger.append("db", Environment.SOURCE, "/a/t1", "/b/t1")
        ledger.append("db", Environment.TARGET, "/a/t2", "/b/t2")
        ledger.append("other", Environment.SOURCE, "/a/t3", "/b/t3")

        assert [r.original for r in ledger.records("db", Environment.SOURCE)] == ["/a/t1"]
        assert ledger.environments("db") == [Environment.SOURCE, Environment.TARGET]
        assert ledger.records("db", Environment.TRANSFER) == []
        assert len(ledger) == 3

    def test_records_returns_snapshot(self):
        ledger = TranslationLedger()
        ledger.append("db", Environment.SOURCE, "/a/t1", "/b/t1")
        snapshot = ledger.records("db", Environment.SOURCE)
        ledger.append("db", Environment.SOURCE, "/a/t2", "/b/t2")
        assert len(snapshot) == 1

    def test_concurrent_appends_are_not_lost(self):
        ledger = TranslationLedger()

        def append_many(worker):
            for i in range(200):
                ledger.append("db", Environment.SOURCE, f"/a/{worker}/t{i}", f"/b/{worker}/t{i}")
            return worker

        results = run_parallel(append_many, list(range(8)), max_workers=8)

        assert sorted(results) == list(range(8))
        assert len(ledger) == 1600
        assert len({r.original for r in ledger.records("db", Environment.SOURCE)}) == 1600
