"""
Gathering points, read from the GATHERED_BY source of the extracts document.
"""

import logging
from typing import Any

from . import labels
from .aggregate import MALFORMED_ROW_ERRORS, DataType, find_extract_source, skip_row
from .models import GatheringPoint, GatheringType
from .reference import LocalizedNameResolver, ReferenceTable
from .tables import as_mapping, parse_int

logger = logging.getLogger("xivdata")


def node_place_id(node: dict, maps: dict | None) -> int:
    """The node's zone, else the place of the map it sits on."""
    place_id = parse_int(node.get("zoneId"))
    if not place_id and node.get("map"):
        map_info = as_mapping(maps).get(str(node["map"]))
        if isinstance(map_info, dict):
            place_id = parse_int(map_info.get("placename_id"))
    return place_id


def build_gathering_points(
    extracts: dict | None,
    gathering_types: ReferenceTable[GatheringType],
    place_names: LocalizedNameResolver,
    maps: dict | None = None,
) -> dict[int, list[GatheringPoint]]:
    """
    Collect gathering nodes per item.

    Args:
        extracts: Teamcraft extracts document, keyed by item id
        gathering_types: Gathering type table
        place_names: Resolver for zone names
        maps: Teamcraft maps document, used when a node has no zone id

    Returns:
        Item id -> points, one per node id
    """
    points: dict[int, list[GatheringPoint]] = {}
    if not isinstance(extracts, dict):
        if extracts:
            logger.warning("Extracts document is not an object, no gathering points built")
        return points

    count = 0
    for item_key, entry in extracts.items():
        item_id = parse_int(item_key)
        source = find_extract_source(entry, DataType.GATHERED_BY)
        data: Any = source.get("data") if source else None
        if item_id <= 0 or not isinstance(data, dict) or not data.get("nodes"):
            continue

        type_id = parse_int(data.get("type"))
        gathering_type = gathering_types.get(type_id)
        nodes = data["nodes"] if isinstance(data["nodes"], list) else []
        item_points: list[GatheringPoint] = []
        seen: set[int] = set()

        for node in nodes:
            if not isinstance(node, dict):
                continue
            node_id = parse_int(node.get("id") or node.get("base"))
            if node_id in seen:
                continue
            seen.add(node_id)

            try:
                place_id = node_place_id(node, maps)
                spawns = node.get("spawns") or []
                item_points.append(GatheringPoint(
                    id=node_id,
                    item_id=item_id,
                    gathering_type=type_id,
                    gathering_type_name=gathering_type.name if gathering_type else "",
                    level=parse_int(node.get("level") or data.get("level")),
                    stars=str(data.get("stars_tooltip") or ""),
                    place_name_id=place_id,
                    place_name=place_names.resolve(place_id, default=labels.UNKNOWN_PLACE),
                    x=node.get("x") or 0,
                    y=node.get("y") or 0,
                    map_id=node.get("map"),
                    radius=node.get("radius") or 0,
                    legendary=bool(node.get("legendary")),
                    ephemeral=bool(node.get("ephemeral")),
                    time_restriction=bool(node.get("limited") or spawns),
                    spawns=spawns,
                    duration=parse_int(node.get("duration")),
                    folklore=node.get("folklore") or None,
                    perception_req=data.get("perceptionReq") or None,
                ))
            except MALFORMED_ROW_ERRORS as e:
                skip_row("gathering node", node_id, e)
                continue
            count += 1

        if item_points:
            points[item_id] = item_points

    logger.info(f"Processed {count} gathering point entries for {len(points)} items")
    return points
