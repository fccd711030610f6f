"""
Reference tables: id -> descriptive record lookups built from one pass over
their source rows, plus the locale-fallback resolvers that sit on top of
them.
"""

import logging
import re
from collections.abc import Mapping
from typing import Any, Callable, Generic, Iterable, Iterator, NamedTuple, TypeVar

from . import labels
from .models import Category, CraftType, GatheringType
from .tables import RawRecord, as_mapping, parse_bool, parse_int, row_id

logger = logging.getLogger("xivdata")

V = TypeVar("V")

_HEX_TAG_RE = re.compile(r"<hex:[^>]+>")
_DASH_VARIANTS_RE = re.compile(r"[–—]")


# =============================================================================
# Reference Table
# =============================================================================

class ReferenceTable(Mapping, Generic[V]):
    """
    Read-only id-keyed lookup.

    Entries with a key below ``min_key`` or an empty value are dropped while
    building; a later entry for the same key replaces an earlier one.
    """

    def __init__(self, entries: Iterable[tuple[int, V]] = (), name: str = "", min_key: int = 1):
        self.name = name
        self._data: dict[int, V] = {}
        for key, value in entries:
            if key >= min_key and value:
                self._data[key] = value

    @classmethod
    def from_rows(
        cls,
        rows: Iterable[RawRecord],
        value_fn: Callable[[RawRecord], V],
        name: str = "",
        min_key: int = 1,
    ) -> "ReferenceTable[V]":
        """Build a table keyed by each row's id with ``value_fn(row)`` as value."""
        table = cls(((row_id(row), value_fn(row)) for row in rows), name=name, min_key=min_key)
        if name:
            logger.info(f"Loaded {len(table)} {name}")
        return table

    def __getitem__(self, key: int) -> V:
        return self._data[key]

    def __iter__(self) -> Iterator[int]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"ReferenceTable({self.name or 'unnamed'}, {len(self)} entries)"


class JobInfo(NamedTuple):
    abbreviation: str
    name: str


class RecipeLevel(NamedTuple):
    """Base values of a recipe level, before per-recipe factors."""
    class_job_level: int
    stars: int
    suggested_craftsmanship: int
    difficulty: int
    quality: int
    durability: int


# =============================================================================
# Table Builders
# =============================================================================

def build_name_table(rows: Iterable[RawRecord], column: str = "Name", name: str = "") -> ReferenceTable[str]:
    """Generic id -> trimmed text column table."""
    return ReferenceTable.from_rows(rows, lambda row: (row.get(column) or "").strip(), name=name)


def build_categories(rows: Iterable[RawRecord]) -> ReferenceTable[Category]:
    def _category(row: RawRecord) -> Category | None:
        name = (row.get("Name") or "").strip()
        return Category(id=row_id(row), name=name) if name else None

    return ReferenceTable.from_rows(rows, _category, name="item categories")


def build_base_params(rows: Iterable[RawRecord]) -> ReferenceTable[str]:
    """Stat id -> stat name, with inline ``<hex:...>`` markup removed."""
    return ReferenceTable.from_rows(
        rows,
        lambda row: _HEX_TAG_RE.sub("", row.get("Name") or "").strip(),
        name="base params",
    )


def build_class_jobs(rows: Iterable[RawRecord]) -> ReferenceTable[JobInfo]:
    return ReferenceTable.from_rows(
        rows,
        lambda row: JobInfo(row.get("Abbreviation") or "", row.get("Name") or ""),
        name="class jobs",
    )


def build_job_categories(rows: Iterable[RawRecord], class_jobs: ReferenceTable[JobInfo]) -> ReferenceTable[str]:
    """
    Job category id -> space separated abbreviations of its member jobs.

    A job belongs to a category when the category row has ``True`` under the
    job's abbreviation column.
    """
    abbreviations = [job.abbreviation for job in class_jobs.values() if job.abbreviation]

    def _members(row: RawRecord) -> str:
        return " ".join(abbr for abbr in abbreviations if parse_bool(row.get(abbr)))

    return ReferenceTable.from_rows(rows, _members, name="job categories")


def build_craft_types(rows: Iterable[RawRecord]) -> ReferenceTable[CraftType]:
    # Craft type 0 is a real discipline
    def _craft_type(row: RawRecord) -> CraftType | None:
        name = row.get("Name") or ""
        return CraftType(id=row_id(row), name=name) if name else None

    return ReferenceTable.from_rows(rows, _craft_type, name="craft types", min_key=0)


def build_gathering_types(rows: Iterable[RawRecord]) -> ReferenceTable[GatheringType]:
    def _gathering_type(row: RawRecord) -> GatheringType | None:
        name = row.get("Name") or ""
        return GatheringType(id=row_id(row), name=name) if name else None

    return ReferenceTable.from_rows(rows, _gathering_type, name="gathering types", min_key=0)


def build_recipe_levels(rows: Iterable[RawRecord]) -> ReferenceTable[RecipeLevel]:
    return ReferenceTable.from_rows(
        rows,
        lambda row: RecipeLevel(
            class_job_level=parse_int(row.get("ClassJobLevel")),
            stars=parse_int(row.get("Stars")),
            suggested_craftsmanship=parse_int(row.get("SuggestedCraftsmanship")),
            difficulty=parse_int(row.get("Difficulty")),
            quality=parse_int(row.get("Quality")),
            durability=parse_int(row.get("Durability")),
        ),
        name="recipe levels",
    )


def build_secret_recipe_books(rows: Iterable[RawRecord]) -> ReferenceTable[int]:
    """Secret recipe book id -> item id of the book."""
    return ReferenceTable.from_rows(
        rows, lambda row: parse_int(row.get("Item")), name="secret recipe books"
    )


def build_patch_labels(item_patch: dict | None, patch_names: dict | None) -> dict[int, str]:
    """Item id -> patch version label (e.g. ``"6.4"``)."""
    item_patch, patch_names = as_mapping(item_patch), as_mapping(patch_names)
    if not item_patch or not patch_names:
        return {}

    versions: dict[int, str] = {}
    for patch_id, info in patch_names.items():
        if isinstance(info, dict) and info.get("version"):
            versions[parse_int(patch_id)] = str(info["version"])
    logger.info(f"Loaded {len(versions)} patch versions")

    labels_by_item: dict[int, str] = {}
    for item_id, patch_id in item_patch.items():
        version = versions.get(parse_int(patch_id))
        if version:
            labels_by_item[parse_int(item_id)] = version
    return labels_by_item


# =============================================================================
# Locale Fallback Resolvers
# =============================================================================

class LocalizedNameResolver:
    """
    Resolve a name through an ordered locale chain.

    Order: local primary-locale table, then the remote document's ``ja``
    field, then its ``en`` field, then the default.
    """

    def __init__(self, local: Mapping[int, str], remote: dict[str, Any] | None, default: str = ""):
        self.local = local
        self.remote = as_mapping(remote)
        self.default = default

    def resolve(self, entry_id: int | None, default: str | None = None) -> str:
        fallback = self.default if default is None else default
        if not entry_id:
            return fallback
        name = self.local.get(entry_id)
        if name:
            return name
        entry = self.remote.get(str(entry_id))
        if isinstance(entry, dict):
            return entry.get("ja") or entry.get("en") or fallback
        return fallback


def normalize_english_name(name: str) -> str:
    """Lowercase and unify en/em dashes so duty names from different exports match."""
    return _DASH_VARIANTS_RE.sub("-", name.strip().lower())


def compound_key(content_type: int, content_id: int) -> str:
    return f"{content_type}-{content_id}"


class InstanceNameResolver:
    """
    Resolve duty (instance) names into the primary locale.

    Content ids are only unique per content type, so the primary lookup is the
    compound key ``"<content type>-<content id>"``. When that misses, the
    English name is normalized and matched against a table built by joining
    the English export to the local one on the same compound key; failing
    that, the English name itself, then a numbered placeholder.
    """

    def __init__(
        self,
        local_rows: Iterable[RawRecord],
        english_rows: Iterable[RawRecord],
        instances: dict[str, Any] | None,
    ):
        self.instances = as_mapping(instances)
        self.by_compound_key: dict[str, str] = {}
        for row in local_rows:
            content_id = parse_int(row.get("Content"))
            name = row.get("Name") or ""
            if content_id > 0 and name:
                key = compound_key(parse_int(row.get("ContentType")), content_id)
                self.by_compound_key[key] = name
        logger.info(f"Loaded {len(self.by_compound_key)} local instance names")

        self.by_english_name: dict[str, str] = {}
        for row in english_rows:
            english = (row.get("Name") or "").strip()
            key = compound_key(parse_int(row.get("ContentType")), parse_int(row.get("Content")))
            local_name = self.by_compound_key.get(key)
            if english and local_name:
                self.by_english_name[normalize_english_name(english)] = local_name
        logger.info(f"Built English to local mapping for {len(self.by_english_name)} instances")

    def content_type(self, instance_id: int) -> int:
        instance = self.instances.get(str(abs(instance_id)))
        if isinstance(instance, dict):
            return parse_int(instance.get("contentType"))
        return 0

    def resolve(self, instance_id: int) -> str:
        content_id = abs(instance_id)
        name = self.by_compound_key.get(compound_key(self.content_type(content_id), content_id))
        if name:
            return name

        instance = self.instances.get(str(content_id))
        english = instance.get("en") if isinstance(instance, dict) else None
        if english:
            return self.by_english_name.get(normalize_english_name(english), english)
        return labels.instance_placeholder(content_id)
