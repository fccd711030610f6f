"""
Columnar search index.

The index is ``{categories, fields, items}`` where every entry in ``items``
is a positional row whose columns are named by ``fields``. Rows are built in
two passes: the item columns first, then the multilingual name columns,
which are joined on the row's item id once those names are available.
"""

import logging
from enum import Enum
from typing import Any, Iterable

from .models import Category, CompactIndex, Item, MultilingualName

logger = logging.getLogger("xivdata")

# Column order of the item part of a row
INDEX_FIELDS: tuple[str, ...] = (
    "id",
    "name",
    "icon",
    "item_level",
    "equip_level",
    "rarity",
    "category_id",
    "category_name",
    "can_be_hq",
    "stack_size",
    "is_untradable",
    "is_craftable",
    "is_gatherable",
    "patch",
)
TEXT_FIELDS = frozenset({"name", "category_name", "patch"})
LOCALE_FIELDS: tuple[str, ...] = ("en", "ja", "cn")


def scalarize(value: Any, text: bool = False) -> Any:
    """Booleans become 0/1; absent values become ``""`` (text) or 0."""
    if value is None:
        return "" if text else 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, Enum):
        return value.value
    return value


def index_field_names() -> list[str]:
    """Published column names, camelCase, item columns then locale columns."""
    fields = [Item.model_fields[name].alias or name for name in INDEX_FIELDS]
    return fields + list(LOCALE_FIELDS)


def build_index_rows(items: Iterable[Item]) -> list[list[Any]]:
    """One row per item in iteration order, item columns only."""
    return [
        [scalarize(getattr(item, name), text=name in TEXT_FIELDS) for name in INDEX_FIELDS]
        for item in items
    ]


def append_multilingual(rows: list[list[Any]], names: dict[int, MultilingualName]) -> list[list[Any]]:
    """
    Append the locale columns to each row, looked up by the row's item id
    (column 0). Rows without names get empty strings.
    """
    merged = []
    for row in rows:
        entry = names.get(row[0])
        merged.append(row + [
            (getattr(entry, locale) or "") if entry else ""
            for locale in LOCALE_FIELDS
        ])
    return merged


def used_categories(items: Iterable[Item], categories: dict[int, Category]) -> list[Category]:
    """Categories referenced by at least one item, sorted by name."""
    used_ids = {item.category_id for item in items}
    return sorted(
        (category for category_id, category in categories.items() if category_id in used_ids),
        key=lambda category: category.name,
    )


def build_compact_index(
    items: dict[int, Item],
    categories: list[Category],
    names: dict[int, MultilingualName] | None = None,
) -> CompactIndex:
    """Assemble the full index from the item table and the multilingual names."""
    rows = append_multilingual(build_index_rows(items.values()), names or {})
    index = CompactIndex(categories=categories, fields=index_field_names(), items=rows)
    logger.info(f"Generated compact index with {len(rows)} items and {len(index.field_names)} fields")
    return index
