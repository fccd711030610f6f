"""
Zone map metadata: map image path, scale and offsets per zone name, with the
aetherytes drawn on each map.
"""

import logging
from typing import Any

from .aggregate import MALFORMED_ROW_ERRORS, iter_entries, skip_row
from .models import MapAetheryte, ZoneMap
from .reference import ReferenceTable
from .tables import RawRecord, first_value, parse_int, row_id

logger = logging.getLogger("xivdata")

DEFAULT_MAP_ID = "default/00"


def map_image_path(map_id: str) -> str | None:
    """``"s1f1/00"`` -> ``"s1f1/s1f1.00"``; ``None`` for anything not shaped ``folder/index``."""
    parts = map_id.split("/")
    if len(parts) != 2:
        return None
    folder, index = parts
    return f"{folder}/{folder}.{index}"


def group_aetherytes_by_map(aetherytes: Any, place_names: ReferenceTable[str]) -> dict[int, list[MapAetheryte]]:
    """Aetherytes with a map and non-zero coordinates, grouped by map id."""
    by_map: dict[int, list[MapAetheryte]] = {}
    for aetheryte in iter_entries(aetherytes):
        if not isinstance(aetheryte, dict):
            continue
        map_id = parse_int(aetheryte.get("map"))
        x, y = aetheryte.get("x"), aetheryte.get("y")
        if not map_id or not x or not y:
            continue
        try:
            marker = MapAetheryte(
                id=parse_int(aetheryte.get("id")),
                x=x,
                y=y,
                type=parse_int(aetheryte.get("type")),
                name=place_names.get(parse_int(aetheryte.get("nameid")), ""),
            )
        except MALFORMED_ROW_ERRORS as e:
            skip_row("aetheryte", aetheryte.get("id"), e)
            continue
        by_map.setdefault(map_id, []).append(marker)
    logger.info(f"Mapped aetherytes to {len(by_map)} maps")
    return by_map


def build_zone_maps(
    map_rows: list[RawRecord],
    place_names: ReferenceTable[str],
    aetherytes: Any = None,
) -> dict[str, ZoneMap]:
    """
    Build zone name -> map info.

    The first map row for a zone wins. Rows without a place name, the
    default map and paths not shaped ``folder/index`` are skipped.

    Args:
        map_rows: Rows of the local Map table
        place_names: Place id -> primary-locale name
        aetherytes: Remote aetheryte document (list or id-keyed object)
    """
    aetherytes_by_map = group_aetherytes_by_map(aetherytes, place_names)

    zone_maps: dict[str, ZoneMap] = {}
    for row in map_rows:
        map_id = first_value(row, "Id", "6")
        if not map_id or map_id == DEFAULT_MAP_ID:
            continue

        zone_name = place_names.get(parse_int(first_value(row, "PlaceName", "11")))
        if not zone_name or zone_name in zone_maps:
            continue

        path = map_image_path(map_id)
        if path is None:
            continue

        numeric_id = row_id(row)
        zone_maps[zone_name] = ZoneMap(
            id=numeric_id,
            path=path,
            size_factor=parse_int(first_value(row, "SizeFactor", "7"), default=100),
            offset_x=parse_int(first_value(row, "Offset{X}", "8")),
            offset_y=parse_int(first_value(row, "Offset{Y}", "9")),
            aetherytes=aetherytes_by_map.get(numeric_id, []),
        )

    logger.info(f"Processed {len(zone_maps)} zone map mappings")
    return zone_maps
