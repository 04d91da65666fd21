"""Tests for hms_mirror.glue module."""

from unittest.mock import patch

from hms_mirror import ddl
from hms_mirror.glue import get_glue_partitions, glue_partition_spec, glue_table_to_definition, list_glue_tables


def glue_table(**overrides):
    table = {
        "Name": "events",
        "TableType": "EXTERNAL_TABLE",
        "StorageDescriptor": {
            "Columns": [{"Name": "id", "Type": "bigint"}, {"Name": "payload", "Type": "string"}],
            "Location": "s3://bucket/events/",
            "InputFormat": "org.apache.hadoop.hive.ql.io.parquet.MapredParquetInputFormat",
            "OutputFormat": "org.apache.hadoop.hive.ql.io.parquet.MapredParquetOutputFormat",
            "SerdeInfo": {"SerializationLibrary": "org.apache.hadoop.hive.ql.io.parquet.serde.ParquetHiveSerDe"},
        },
        "PartitionKeys": [{"Name": "dt", "Type": "string"}],
        "Parameters": {"classification": "parquet"},
    }
    table.update(overrides)
    return table


class TestGlueTableToDefinition:
    """Rendered definitions are readable by the ddl helpers."""

    def test_external_partitioned(self):
        definition = glue_table_to_definition(glue_table())

        assert definition[0] == "CREATE EXTERNAL TABLE `events`("
        assert ddl.is_external(definition)
        assert ddl.partition_columns(definition) == ["dt"]
        assert ddl.get_location(definition) == "s3://bucket/events"
        assert ddl.get_table_property(definition, "classification") == "parquet"

    def test_managed_acid(self):
        definition = glue_table_to_definition(
            glue_table(TableType="MANAGED_TABLE", PartitionKeys=[], Parameters={"transactional": "true"})
        )
        assert ddl.is_acid(definition)
        assert not ddl.is_partitioned(definition)

    def test_view(self):
        definition = glue_table_to_definition(
            glue_table(TableType="VIRTUAL_VIEW", ViewOriginalText="SELECT id FROM events")
        )
        assert ddl.is_view(definition)
        assert ddl.get_location(definition) is None


class TestGlueHelpers:
    def test_partition_spec(self):
        keys = [{"Name": "year"}, {"Name": "month"}]
        assert glue_partition_spec(keys, ["2024", "01"]) == "year=2024/month=01"

    @patch("hms_mirror.glue.get_glue_client")
    def test_partitions_paginated_with_catalog(self, mock_client):
        paginator = mock_client.return_value.get_paginator.return_value
        paginator.paginate.return_value = [
            {"Partitions": [{"Values": ["1"]}]},
            {"Partitions": [{"Values": ["2"]}]},
        ]

        partitions = get_glue_partitions("db", "t1", catalog_id="123")

        assert [p["Values"] for p in partitions] == [["1"], ["2"]]
        paginator.paginate.assert_called_once_with(DatabaseName="db", TableName="t1", CatalogId="123")

    @patch("hms_mirror.glue.get_glue_client")
    def test_list_tables_filtered(self, mock_client):
        paginator = mock_client.return_value.get_paginator.return_value
        paginator.paginate.return_value = [{"TableList": [{"Name": "sales_b"}, {"Name": "tmp"}, {"Name": "sales_a"}]}]

        assert list_glue_tables("db", pattern="sales_*") == ["sales_a", "sales_b"]
