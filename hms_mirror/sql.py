"""HiveQL templates and small statement builders."""

from typing import Optional

USE = "USE `{db}`"
CREATE_DB = "CREATE DATABASE IF NOT EXISTS `{db}`"
ALTER_DB_LOCATION = 'ALTER DATABASE `{db}` SET LOCATION "{location}"'
ALTER_DB_MNGD_LOCATION = 'ALTER DATABASE `{db}` SET MANAGEDLOCATION "{location}"'

DROP_TABLE = "DROP TABLE IF EXISTS `{db}`.`{table}`"
RENAME_TABLE = "ALTER TABLE `{db}`.`{table}` RENAME TO `{db}`.`{new_table}`"
ALTER_TABLE_LOCATION = 'ALTER TABLE `{db}`.`{table}` SET LOCATION "{location}"'
ALTER_PARTITION_LOCATION = 'ALTER TABLE `{db}`.`{table}` PARTITION ({partition}) SET LOCATION "{location}"'
MSCK_REPAIR_TABLE = "MSCK REPAIR TABLE `{db}`.`{table}`"

EXPORT_TABLE = "EXPORT TABLE `{db}`.`{table}` TO \"{location}\""
IMPORT_TABLE = "IMPORT TABLE `{db}`.`{table}` FROM \"{location}\""
IMPORT_EXTERNAL_TABLE = "IMPORT EXTERNAL TABLE `{db}`.`{table}` FROM \"{location}\" LOCATION \"{target}\""

INSERT_OVERWRITE = "FROM `{src_db}`.`{src_table}` INSERT OVERWRITE TABLE `{db}`.`{table}` SELECT *"
INSERT_OVERWRITE_PARTITIONED = (
    "FROM `{src_db}`.`{src_table}` INSERT OVERWRITE TABLE `{db}`.`{table}` PARTITION ({partitions}) SELECT *"
)

SET_DYNAMIC_PARTITIONS = "SET hive.exec.dynamic.partition.mode=nonstrict"


def quote_partition_spec(spec: str) -> str:
    """Turn ``a=1/b=x`` into ``a="1", b="x"``."""
    parts = []
    for element in spec.split("/"):
        key, _, value = element.partition("=")
        parts.append(f'`{key}`="{value}"')
    return ", ".join(parts)


def build_partition_add_statement(db: str, table: str, partitions: dict[str, str]) -> Optional[str]:
    """One ``ALTER TABLE ... ADD IF NOT EXISTS`` covering all partitions.

    Returns:
        The statement, or None when there are no partitions.
    """
    if not partitions:
        return None
    clauses = [
        f'PARTITION ({quote_partition_spec(spec)}) LOCATION "{location}"'
        for spec, location in sorted(partitions.items())
    ]
    return f"ALTER TABLE `{db}`.`{table}` ADD IF NOT EXISTS\n" + "\n".join(clauses)


def create_statement(definition: list[str]) -> str:
    return "\n".join(definition)
