"""Tests for hms_mirror.s3 module."""

from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from hms_mirror.s3 import check_links, location_exists, parse_s3_path, read_from_s3, write_to_s3


class TestParseS3Path:
    @pytest.mark.parametrize("path, expected", [
        ("s3://bucket/a/b", ("bucket", "a/b")),
        ("s3a://bucket/a", ("bucket", "a")),
        ("s3n://bucket", ("bucket", "")),
    ])
    def test_valid(self, path, expected):
        assert parse_s3_path(path) == expected

    @pytest.mark.parametrize("path", ["hdfs://ns/a", "s3://", "/local/path"])
    def test_invalid(self, path):
        with pytest.raises(ValueError):
            parse_s3_path(path)


class TestLocationExists:
    """Tests for location_exists()."""

    @patch("hms_mirror.s3.get_s3_client")
    def test_prefix_with_objects(self, mock_client):
        mock_client.return_value.list_objects_v2.return_value = {"KeyCount": 1}

        assert location_exists("s3a://bucket/warehouse")

        mock_client.return_value.list_objects_v2.assert_called_once_with(
            Bucket="bucket", Prefix="warehouse/", MaxKeys=1
        )

    @patch("hms_mirror.s3.get_s3_client")
    def test_empty_prefix(self, mock_client):
        mock_client.return_value.list_objects_v2.return_value = {"KeyCount": 0}
        assert not location_exists("s3://bucket/missing/")

    @patch("hms_mirror.s3.get_s3_client")
    def test_bucket_root(self, mock_client):
        mock_client.return_value.list_objects_v2.return_value = {"KeyCount": 0}
        assert location_exists("s3://bucket")

    @patch("hms_mirror.s3.get_s3_client")
    def test_access_denied(self, mock_client):
        mock_client.return_value.list_objects_v2.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "ListObjectsV2"
        )
        assert not location_exists("s3://bucket/warehouse")


class TestCheckLinks:
    @patch("hms_mirror.s3.location_exists")
    def test_non_s3_locations_unreachable(self, mock_exists):
        mock_exists.return_value = True

        results = check_links(["s3a://bucket/wh", "hdfs://ns:8020"])

        assert results == {"s3a://bucket/wh": True, "hdfs://ns:8020": False}
        mock_exists.assert_called_once_with("s3a://bucket/wh", region="us-east-1")


class TestReadWrite:
    @patch("hms_mirror.s3.get_s3_client")
    def test_write(self, mock_client):
        assert write_to_s3("hello", "s3://bucket/plans/a.txt", content_type="text/plain") == "s3://bucket/plans/a.txt"
        mock_client.return_value.put_object.assert_called_once_with(
            Bucket="bucket", Key="plans/a.txt", Body=b"hello", ContentType="text/plain"
        )

    @patch("hms_mirror.s3.get_s3_client")
    def test_read(self, mock_client):
        body = MagicMock()
        body.read.return_value = b'{"a": 1}'
        mock_client.return_value.get_object.return_value = {"Body": body}

        assert read_from_s3("s3://bucket/glm.json") == '{"a": 1}'
        mock_client.return_value.get_object.assert_called_once_with(Bucket="bucket", Key="glm.json")
