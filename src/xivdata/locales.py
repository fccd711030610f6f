"""
Auxiliary locale and lookup documents.

These are small id -> value maps consumed by the client for cross-locale
search and wiki links, plus the recipe level table the crafting simulator
reads.
"""

import logging
import re
from typing import Iterable

from .models import MultilingualName, RecipeLevelParams
from .tables import RawRecord, as_mapping, parse_int, row_id

logger = logging.getLogger("xivdata")

# Game-specific glyphs live in the Unicode private use area
_PRIVATE_USE_RE = re.compile(r"[\ue000-\uf8ff]")


def strip_private_use(text: str) -> str:
    return _PRIVATE_USE_RE.sub("", text).strip()


def build_quest_cn_names(rows: Iterable[RawRecord]) -> dict[int, str]:
    """Quest id -> Simplified Chinese quest name."""
    names: dict[int, str] = {}
    for row in rows:
        quest_id = row_id(row)
        name = strip_private_use(row.get("Name") or "")
        if quest_id > 0 and name:
            names[quest_id] = name
    logger.info(f"Processed {len(names)} CN quest names")
    return names


def build_instance_cn_names(local_rows: Iterable[RawRecord], cn_rows: Iterable[RawRecord]) -> dict[str, str]:
    """
    Primary-locale duty name -> Simplified Chinese duty name.

    Both exports are joined on the content finder row id.
    """
    cn_by_id: dict[int, str] = {}
    for row in cn_rows:
        content_id = row_id(row)
        name = strip_private_use(row.get("Name") or "")
        if content_id > 0 and name:
            cn_by_id[content_id] = name
    logger.info(f"Loaded {len(cn_by_id)} CN instance names")

    names: dict[str, str] = {}
    for row in local_rows:
        content_id = row_id(row)
        local_name = (row.get("Name") or "").strip()
        cn_name = cn_by_id.get(content_id)
        if content_id > 0 and local_name and cn_name:
            names[local_name] = cn_name
    logger.info(f"Processed {len(names)} instance name mappings")
    return names


def item_names(rows: Iterable[RawRecord]) -> dict[int, str]:
    """Item id -> trimmed ``Name`` (or ``Singular`` when ``Name`` is blank)."""
    names: dict[int, str] = {}
    for row in rows:
        item_id = row_id(row)
        name = (row.get("Name") or "").strip() or (row.get("Singular") or "").strip()
        if item_id > 0 and name:
            names[item_id] = name
    return names


def build_multilingual_names(
    en_rows: Iterable[RawRecord],
    ja_rows: Iterable[RawRecord],
    cn_rows: Iterable[RawRecord],
) -> dict[int, MultilingualName]:
    """Item id -> names in the secondary locales, for items with at least one."""
    en, ja, cn = item_names(en_rows), item_names(ja_rows), item_names(cn_rows)
    logger.info(f"Loaded {len(en)} EN, {len(ja)} JA and {len(cn)} CN item names")

    names: dict[int, MultilingualName] = {}
    for item_id in {**en, **ja, **cn}:
        names[item_id] = MultilingualName(en=en.get(item_id), ja=ja.get(item_id), cn=cn.get(item_id))
    logger.info(f"Processed {len(names)} items with multilingual names")
    return names


def build_recipe_level_params(rows: Iterable[RawRecord]) -> dict[int, RecipeLevelParams]:
    """Recipe level id -> simulator parameters; blank cells take the simulator defaults."""
    levels: dict[int, RecipeLevelParams] = {}
    for row in rows:
        level_id = parse_int(row.get("#") or row.get("key"), default=-1)
        if level_id < 0:
            continue
        levels[level_id] = RecipeLevelParams(
            id=level_id,
            class_job_level=parse_int(row.get("ClassJobLevel")),
            stars=parse_int(row.get("Stars")),
            suggested_craftsmanship=parse_int(row.get("SuggestedCraftsmanship")),
            difficulty=parse_int(row.get("Difficulty")),
            quality=parse_int(row.get("Quality")),
            progress_divider=parse_int(row.get("ProgressDivider"), default=50),
            quality_divider=parse_int(row.get("QualityDivider"), default=30),
            progress_modifier=parse_int(row.get("ProgressModifier"), default=100),
            quality_modifier=parse_int(row.get("QualityModifier"), default=100),
            durability=parse_int(row.get("Durability"), default=40),
            conditions_flag=parse_int(row.get("ConditionsFlag"), default=15),
        )
    logger.info(f"Processed {len(levels)} recipe level entries")
    return levels


def build_desynth_results(desynth: dict | None) -> dict[int, list[int]]:
    """Desynthesized item id -> item ids it can yield."""
    results: dict[int, list[int]] = {}
    for item_key, result_ids in as_mapping(desynth).items():
        item_id = parse_int(item_key)
        if item_id > 0 and isinstance(result_ids, list) and result_ids:
            results[item_id] = [parse_int(i) for i in result_ids]
    logger.info(f"Saved {len(results)} desynth result entries")
    return results
