"""Helpers over table definitions as returned by ``SHOW CREATE TABLE``.

A definition is a list of lines. Functions here never mutate their input;
those that change a definition return a new list.
"""

import re
from typing import Optional

from hms_mirror.models import TableType

PROPERTY_PATTERN = re.compile(r"'([^']*)'\s*=\s*'([^']*)'")
TABLE_NAME_PATTERN = re.compile(r"^(CREATE\s+(?:EXTERNAL\s+)?(?:TABLE|VIEW)\s+)(`[^`]+`|\S+?)(\s*\(|\s*$)", re.IGNORECASE)

TRANSACTIONAL = "transactional"
TRANSACTIONAL_PROPERTIES = "transactional_properties"
EXTERNAL_PURGE = "external.table.purge"
DOWNGRADED_FROM_ACID = "hms-mirror_Downgraded_ACID"


def _first_line(definition: list[str]) -> str:
    return definition[0].strip().upper() if definition else ""


def is_view(definition: list[str]) -> bool:
    return _first_line(definition).startswith("CREATE VIEW")


def is_external(definition: list[str]) -> bool:
    return _first_line(definition).startswith("CREATE EXTERNAL TABLE")


def is_managed(definition: list[str]) -> bool:
    return _first_line(definition).startswith("CREATE TABLE")


def is_acid(definition: list[str]) -> bool:
    """Managed tables flagged ``'transactional'='true'``."""
    if not is_managed(definition):
        return False
    return get_table_property(definition, TRANSACTIONAL, "false").lower() == "true"


def is_partitioned(definition: list[str]) -> bool:
    return any(line.strip().upper().startswith("PARTITIONED BY") for line in definition)


def get_table_type(definition: list[str]) -> TableType:
    return TableType.EXTERNAL if is_external(definition) else TableType.MANAGED


def get_location(definition: list[str]) -> Optional[str]:
    """Return the LOCATION clause of a definition, unquoted."""
    for i, line in enumerate(definition):
        stripped = line.strip()
        if stripped.upper() == "LOCATION" and i + 1 < len(definition):
            return definition[i + 1].strip().strip("'\"")
        if stripped.upper().startswith("LOCATION "):
            return stripped[len("LOCATION "):].strip().strip("'\"")
    return None


def update_location(definition: list[str], location: str) -> list[str]:
    """Set the LOCATION clause, adding one ahead of TBLPROPERTIES when absent."""
    result = remove_location(definition)
    insert_at = _properties_index(result)
    if insert_at is None:
        insert_at = len(result)
    result[insert_at:insert_at] = ["LOCATION", f"  '{location}'"]
    return result


def remove_location(definition: list[str]) -> list[str]:
    result: list[str] = []
    skip_next = False
    for line in definition:
        stripped = line.strip().upper()
        if skip_next:
            skip_next = False
            continue
        if stripped == "LOCATION":
            skip_next = True
            continue
        if stripped.startswith("LOCATION "):
            continue
        result.append(line)
    return result


def change_table_name(definition: list[str], database: str, table: str) -> list[str]:
    """Point the CREATE line at ``database.table``."""
    if not definition:
        return []
    match = TABLE_NAME_PATTERN.match(definition[0].strip())
    if not match:
        raise ValueError(f"Unrecognized table definition: {definition[0]}")
    first = f"{match.group(1)}`{database}`.`{table}`{match.group(3)}"
    return [first] + list(definition[1:])


# =============================================================================
# Table properties
# =============================================================================


def _properties_index(definition: list[str]) -> Optional[int]:
    for i, line in enumerate(definition):
        if line.strip().upper().startswith("TBLPROPERTIES"):
            return i
    return None


def get_table_properties(definition: list[str]) -> dict[str, str]:
    index = _properties_index(definition)
    if index is None:
        return {}
    return dict(PROPERTY_PATTERN.findall("\n".join(definition[index:])))


def get_table_property(definition: list[str], key: str, default: Optional[str] = None) -> Optional[str]:
    return get_table_properties(definition).get(key, default)


def _with_properties(definition: list[str], properties: dict[str, str]) -> list[str]:
    index = _properties_index(definition)
    head = list(definition if index is None else definition[:index])
    if not properties:
        return head
    items = [f"  '{k}'='{v}'" for k, v in properties.items()]
    return head + ["TBLPROPERTIES ("] + [line + "," for line in items[:-1]] + [items[-1] + ")"]


def set_table_property(definition: list[str], key: str, value: str) -> list[str]:
    properties = get_table_properties(definition)
    properties[key] = value
    return _with_properties(definition, properties)


def remove_table_property(definition: list[str], key: str) -> list[str]:
    properties = get_table_properties(definition)
    if key not in properties:
        return list(definition)
    del properties[key]
    return _with_properties(definition, properties)


def make_external(definition: list[str], purge: bool = True) -> list[str]:
    """Convert a managed definition to an external one.

    Transactional flags are dropped. When ``purge`` is set the external
    table owns its data (``external.table.purge``); otherwise ownership is
    explicitly removed.
    """
    result = list(definition)
    if is_managed(result):
        first = result[0]
        pos = first.upper().find("CREATE TABLE")
        result[0] = first[:pos] + "CREATE EXTERNAL TABLE" + first[pos + len("CREATE TABLE"):]
        if get_table_property(result, TRANSACTIONAL, "false").lower() == "true":
            result = set_table_property(result, DOWNGRADED_FROM_ACID, "true")
    result = remove_table_property(result, TRANSACTIONAL)
    result = remove_table_property(result, TRANSACTIONAL_PROPERTIES)
    if purge:
        return set_table_property(result, EXTERNAL_PURGE, "true")
    return remove_table_property(result, EXTERNAL_PURGE)


def has_purge(definition: list[str]) -> bool:
    return get_table_property(definition, EXTERNAL_PURGE, "false").lower() == "true"


def partition_columns(definition: list[str]) -> list[str]:
    """Column names from the PARTITIONED BY clause."""
    text = "\n".join(definition)
    match = re.search(r"PARTITIONED BY\s*\(", text, re.IGNORECASE)
    if not match:
        return []

    # Split on top-level commas only; decimal(10,2) and struct<a:int,b:int> nest.
    columns = []
    depth = 0
    current = ""
    for char in text[match.end():]:
        if char in "(<":
            depth += 1
        elif char in ")>":
            if depth == 0 and char == ")":
                break
            depth -= 1
        elif char == "," and depth == 0:
            columns.append(current)
            current = ""
            continue
        current += char
    columns.append(current)

    names = []
    for column in columns:
        tokens = column.split()
        if tokens:
            names.append(tokens[0].strip("`"))
    return names
