"""
Local tabular dump reader and cell parsing helpers.

Local dumps use a three-row header: a row of column-index markers, a row of
column names, then a row of column types. Rows are returned as plain dicts
keyed by column name, so every consumer treats local and remote rows alike.
"""

import csv
import logging
import re
from pathlib import Path
from typing import Any

logger = logging.getLogger("xivdata")

RawRecord = dict[str, str]

_INT_PREFIX_RE = re.compile(r"^\s*([+-]?\d+)")
_TRUE_VALUES = frozenset({"true", "1"})


def load_local_table(path: Path) -> list[RawRecord]:
    """
    Read a local dump table.

    The first row (column indices) is skipped, the second row supplies the
    column names and records start at the third row. A column-type row
    (first cell not an integer, e.g. ``int32``) at that position is dropped.
    Short rows are padded with empty strings.

    Args:
        path: Path to the ``.csv`` table

    Returns:
        List of records; empty when the file does not exist
    """
    if not path.exists():
        logger.warning(f"Table not found: {path}")
        return []

    records: list[RawRecord] = []
    with open(path, "r", encoding="utf-8-sig", newline="") as f:
        reader = csv.reader(f)
        if next(reader, None) is None:
            return []
        headers = next(reader, None)
        if headers is None:
            return []

        for row in reader:
            if not records and row and not _INT_PREFIX_RE.match(row[0]):
                continue
            records.append(
                {header: (row[i] if i < len(row) else "") for i, header in enumerate(headers)}
            )

    logger.debug(f"Loaded {len(records)} rows from {path.name}")
    return records


def parse_int(value: str | int | None, default: int = 0) -> int:
    """Parse the leading integer of a cell, falling back to ``default``.

    Mirrors how the dumps are usually read: ``"12"`` -> 12, ``"1.5"`` -> 1,
    ``""`` or ``"True"`` -> default.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    match = _INT_PREFIX_RE.match(str(value))
    if not match:
        return default
    return int(match.group(1))


def parse_bool(value: str | None) -> bool:
    """``"True"`` / ``"1"`` are true, anything else is false."""
    if not value:
        return False
    return value.strip().lower() in _TRUE_VALUES


def row_id(row: RawRecord) -> int:
    """Row key: the ``#`` column, or ``key`` on tables exported that way."""
    return parse_int(row.get("#") or row.get("key"))


def first_value(row: RawRecord, *columns: str) -> str:
    """Return the first non-empty value among alternative column names."""
    for column in columns:
        value = row.get(column)
        if value:
            return value
    return ""


def as_mapping(document: Any) -> dict:
    """The document if it is an id-keyed object, else an empty one."""
    return document if isinstance(document, dict) else {}
