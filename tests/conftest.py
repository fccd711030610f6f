"""
Pytest configuration and fixtures for xivdata tests.
"""

import csv
import sys
from pathlib import Path
import pytest

# Add src directory to Python path to allow importing xivdata
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))


def write_dump_table(path: Path, headers: list[str], rows: list[list]) -> Path:
    """Write a table in the local dump layout: index row, name row, type row, data."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(["key"] + [str(i) for i in range(len(headers) - 1)])
        writer.writerow(headers)
        writer.writerow(["int32"] + ["str"] * (len(headers) - 1))
        for row in rows:
            writer.writerow(row)
    return path


@pytest.fixture
def write_table():
    """Fixture form of ``write_dump_table``."""
    return write_dump_table
