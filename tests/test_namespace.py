"""Unit tests for namespace helpers."""

import pytest

from hms_mirror.namespace import get_namespace, join_path, reduce_url_by, replace_namespace, strip_namespace


class TestGetNamespace:
    """Tests for get_namespace()."""

    def test_with_port(self):
        assert get_namespace("hdfs://ns1:8020/warehouse/t1") == "hdfs://ns1:8020"

    def test_empty_authority(self):
        assert get_namespace("hdfs:///warehouse/t1") == "hdfs://"

    def test_object_store(self):
        assert get_namespace("s3a://bucket/warehouse") == "s3a://bucket"

    def test_no_namespace(self):
        assert get_namespace("/warehouse/t1") is None
        assert get_namespace("") is None
        assert get_namespace(None) is None


class TestStripNamespace:
    """Tests for strip_namespace()."""

    def test_strips(self):
        assert strip_namespace("hdfs://ns/user/hive") == "/user/hive"

    def test_authority_is_first_segment(self):
        assert strip_namespace("hdfs://user/hive/warehouse") == "/hive/warehouse"

    def test_relative_unchanged(self):
        assert strip_namespace("user/x") == "user/x"
        assert strip_namespace("/user/x") == "/user/x"


class TestReplaceNamespace:
    def test_swaps(self):
        assert replace_namespace("hdfs://old:8020/data/t1", "s3a://bucket") == "s3a://bucket/data/t1"

    def test_trailing_slash_on_new_namespace(self):
        assert replace_namespace("hdfs://old/data", "hdfs://new/") == "hdfs://new/data"


class TestReduceUrlBy:
    """Tests for reduce_url_by()."""

    def test_one_level(self):
        assert reduce_url_by("/a/b/t1", 1) == "/a/b"

    def test_keeps_namespace(self):
        assert reduce_url_by("hdfs://ns/a/b/t1/dt=1", 2) == "hdfs://ns/a/b"

    def test_zero_level_drops_trailing_slash(self):
        assert reduce_url_by("hdfs://ns/a/b/", 0) == "hdfs://ns/a/b"

    def test_past_root(self):
        assert reduce_url_by("/a", 5) == "/"
        assert reduce_url_by("hdfs://ns/a", 3) == "hdfs://ns"

    def test_none(self):
        assert reduce_url_by(None, 1) is None

    def test_negative_level(self):
        with pytest.raises(ValueError):
            reduce_url_by("/a/b", -1)


class TestJoinPath:
    def test_joins(self):
        assert join_path("hdfs://ns/", "/wh/ext/", "db.db", "t1") == "hdfs://ns/wh/ext/db.db/t1"

    def test_single(self):
        assert join_path("hdfs://ns/") == "hdfs://ns"
