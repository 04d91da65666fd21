"""Unit tests for warehouse plans and the source location index."""

import pytest

from hms_mirror.errors import MissingConfigurationError
from hms_mirror.models import TableType, Warehouse
from hms_mirror.warehouse import SourceLocationIndex, WarehousePlanRegistry


class TestWarehousePlanRegistry:
    """Tests for WarehousePlanRegistry."""

    def test_add_and_get(self):
        registry = WarehousePlanRegistry()
        assert registry.add_warehouse_plan("db", "/wh/ext/", "/wh/mgd") is None
        plan = registry.get_warehouse_plan("db")
        assert plan.external_directory == "/wh/ext"
        assert plan.managed_directory == "/wh/mgd"

    def test_replace_returns_previous(self):
        registry = WarehousePlanRegistry()
        registry.add_warehouse_plan("db", "/a", "/b")
        previous = registry.add_warehouse_plan("db", "/c", "/d")
        assert previous.external_directory == "/a"

    def test_rejects_equal_directories(self):
        with pytest.raises(ValueError):
            WarehousePlanRegistry().add_warehouse_plan("db", "/wh", "/wh/")

    def test_rejects_blank(self):
        with pytest.raises(ValueError):
            WarehousePlanRegistry().add_warehouse_plan("db", "", "/wh")

    def test_falls_back_to_default(self):
        registry = WarehousePlanRegistry(default=Warehouse("/g/ext", "/g/mgd", source="GLOBAL"))
        assert registry.get_warehouse_plan("other").source == "GLOBAL"

    def test_missing_plan(self):
        registry = WarehousePlanRegistry()
        assert registry.find_warehouse_plan("db") is None
        with pytest.raises(MissingConfigurationError):
            registry.get_warehouse_plan("db")

    def test_remove(self):
        registry = WarehousePlanRegistry()
        registry.add_warehouse_plan("db", "/a", "/b")
        registry.remove_warehouse_plan("db")
        assert registry.plans == {}


class TestSourceLocationIndex:
    """Tests for SourceLocationIndex."""

    def test_table_locations_reduced_by_base(self):
        index = SourceLocationIndex(consolidation_level_base=1)
        index.add_table_source("db", "t1", TableType.EXTERNAL, "hdfs://ns/data/db/t1")
        index.add_table_source("db", "t2", TableType.EXTERNAL, "hdfs://ns/data/db/t2")
        assert index.locations("db") == {TableType.EXTERNAL: {"hdfs://ns/data/db": {"t1", "t2"}}}

    def test_partition_under_table_is_ignored(self):
        index = SourceLocationIndex()
        index.add_partition_source(
            "db", "t1", TableType.EXTERNAL, "dt=1", "hdfs://ns/data/t1", "hdfs://ns/data/t1/dt=1"
        )
        assert index.locations("db") == {}

    def test_partition_elsewhere_reduced_by_depth(self):
        index = SourceLocationIndex()
        index.add_partition_source(
            "db", "t1", TableType.MANAGED, "dt=1/hr=2", "hdfs://ns/data/t1", "hdfs://ns/other/t1/dt=1/hr=2"
        )
        assert index.locations("db") == {TableType.MANAGED: {"hdfs://ns/other": {"t1"}}}

    def test_partition_level_mismatch(self):
        index = SourceLocationIndex(partition_level_mismatch=True)
        index.add_partition_source(
            "db", "t1", TableType.EXTERNAL, "dt=1/hr=2", "hdfs://ns/data/t1", "hdfs://ns/other/p1"
        )
        assert index.locations("db") == {TableType.EXTERNAL: {"hdfs://ns/other": {"t1"}}}

    def test_databases(self):
        index = SourceLocationIndex()
        index.add_table_source("b", "t", TableType.EXTERNAL, "/x/t")
        index.add_table_source("a", "t", TableType.EXTERNAL, "/y/t")
        assert index.databases == ["a", "b"]
