"""
Source aggregation: collects every "obtained via" fact for each item from
the independent feeds, then deduplicates and applies suppression.

Each ``add_*`` method reads one feed (or one group of feeds that only make
sense together). Callers skip a method when its feeds are absent, so a
missing upstream document disables only the kinds that depend on it.
"""

import logging
import math
from enum import IntEnum
from typing import Any, Iterable, NamedTuple

from pydantic import ValidationError

from . import labels
from .models import (
    DesynthSource,
    DropSource,
    GCShopSource,
    GilShopSource,
    InstanceSource,
    Item,
    QuestSource,
    SourceEntry,
    SpecialShopSource,
    Trade,
    TradeCurrency,
    TreasureSource,
    VendorLocation,
    VendorSource,
    VentureQuantity,
    VentureSource,
    VoyageSource,
)
from .reference import InstanceNameResolver, LocalizedNameResolver, ReferenceTable
from .tables import RawRecord, as_mapping, first_value, parse_int, row_id

logger = logging.getLogger("xivdata")

MAX_MOBS = 5
MAX_INSTANCES = 5
MAX_MAPS = 5
MAX_VOYAGES = 5
MAX_DESYNTH_ITEMS = 10
MAX_VENDORS = 3

SUBMARINE_VOYAGE = 1

# Raised by a feed entry of the wrong shape; that entry is skipped
MALFORMED_ROW_ERRORS = (ValidationError, AttributeError, TypeError)


class DataType(IntEnum):
    """Source type ids used by the extracts document."""
    CRAFTED_BY = 1
    TRADE_SOURCES = 2
    VENDORS = 3
    REDUCED_FROM = 4
    DESYNTHS = 5
    INSTANCES = 6
    GATHERED_BY = 7
    GARDENING = 8
    VOYAGES = 9
    DROPS = 10
    ALARMS = 11
    MASTERBOOKS = 12
    TREASURES = 13
    FATES = 14
    VENTURES = 15
    QUESTS = 19


# Inclusive currency item id ranges; the first match wins
CURRENCY_RANGES: list[tuple[int, int, str]] = [
    (28, 46, labels.TOMESTONE_EXCHANGE),
    (25, 27, labels.GC_SCRIP_EXCHANGE),
    (29, 29, labels.GOLD_SAUCER_EXCHANGE),
    (17833, 17840, labels.CRAFTERS_SCRIP_EXCHANGE),
]


def classify_currency(currency_item_id: int) -> str:
    for low, high, label in CURRENCY_RANGES:
        if low <= currency_item_id <= high:
            return label
    return labels.CURRENCY_EXCHANGE


def find_extract_source(entry: Any, data_type: DataType) -> dict | None:
    """First source of ``data_type`` in an extracts entry, if any."""
    if not isinstance(entry, dict):
        return None
    for source in entry.get("sources") or []:
        if isinstance(source, dict) and source.get("type") == data_type:
            return source
    return None


def iter_entries(document: Any) -> Iterable[Any]:
    """Values of a document published either as a list or as an id-keyed object."""
    if isinstance(document, dict):
        return document.values()
    if isinstance(document, list):
        return document
    return ()


# =============================================================================
# Nearest Landmark
# =============================================================================

class Landmark(NamedTuple):
    x: float
    y: float
    name_id: int


class LandmarkIndex:
    """Primary aetherytes grouped by zone, for nearest-neighbour lookups."""

    PRIMARY_TYPE = 0

    def __init__(self, aetherytes: Any):
        self._by_zone: dict[int, list[Landmark]] = {}
        for aetheryte in iter_entries(aetherytes):
            if not isinstance(aetheryte, dict):
                continue
            zone_id = parse_int(aetheryte.get("zoneid"))
            if aetheryte.get("type") != self.PRIMARY_TYPE or not zone_id:
                continue
            self._by_zone.setdefault(zone_id, []).append(
                Landmark(
                    x=aetheryte.get("x") or 0,
                    y=aetheryte.get("y") or 0,
                    name_id=parse_int(aetheryte.get("nameid")),
                )
            )

    def nearest(self, zone_id: int, x: float, y: float) -> Landmark | None:
        """Euclidean-nearest primary landmark in the zone; ``None`` if the zone has none."""
        candidates = self._by_zone.get(zone_id)
        if not candidates:
            return None
        return min(candidates, key=lambda lm: math.hypot(lm.x - x, lm.y - y))


class VendorLocator:
    """Turns an NPC reference from the extracts document into a ``VendorLocation``."""

    def __init__(
        self,
        npc_names: LocalizedNameResolver,
        place_names: LocalizedNameResolver,
        landmarks: LandmarkIndex,
    ):
        self.npc_names = npc_names
        self.place_names = place_names
        self.landmarks = landmarks

    def locate(self, npc_id: int, zone_id: int, coords: dict | None, price: int | None = None) -> VendorLocation | None:
        """Resolve names and the nearest aetheryte; ``None`` when the NPC has no name."""
        npc_name = self.npc_names.resolve(npc_id)
        if not npc_name:
            return None

        coords = coords or {}
        x, y = coords.get("x"), coords.get("y")
        aetheryte_name = ""
        if x and y:
            nearest = self.landmarks.nearest(zone_id, x, y)
            if nearest and nearest.name_id:
                aetheryte_name = self.place_names.resolve(nearest.name_id)

        return VendorLocation(
            npc_name=npc_name,
            price=price,
            zone_name=self.place_names.resolve(zone_id),
            x=x,
            y=y,
            aetheryte_name=aetheryte_name,
        )


# =============================================================================
# Dedup and Suppression
# =============================================================================

def dedup_key(entry: SourceEntry) -> tuple:
    """``(kind, price, currency, currency item id)``; absent parts are ``None``."""
    return (
        entry.type,
        getattr(entry, "price", None) or None,
        getattr(entry, "currency", None) or None,
        getattr(entry, "currency_item_id", None) or None,
    )


def finalize_sources(entries: list[SourceEntry]) -> list[SourceEntry]:
    """
    Apply suppression, then collapse entries sharing a dedup key.

    A vendor entry with at least one location supersedes every gilshop entry
    of the same item. No other kind suppresses another.
    """
    has_vendor = any(
        isinstance(entry, VendorSource) and entry.vendors for entry in entries
    )
    if has_vendor:
        entries = [entry for entry in entries if not isinstance(entry, GilShopSource)]

    seen: set[tuple] = set()
    result: list[SourceEntry] = []
    for entry in entries:
        key = dedup_key(entry)
        if key in seen:
            continue
        seen.add(key)
        result.append(entry)
    return result


def trade_currencies_key(item_id: int, currencies: list[TradeCurrency]) -> tuple:
    return item_id, tuple(sorted((c.id, c.amount) for c in currencies))


# =============================================================================
# Aggregator
# =============================================================================

class SourceAggregator:
    """
    Accumulates source entries per item and the reverse trade view per
    currency. Call ``build()`` once every feed has been added.
    """

    def __init__(self):
        self._sources: dict[int, list[SourceEntry]] = {}
        self._trades: dict[int, list[Trade]] = {}
        self._trade_keys: dict[int, set[tuple]] = {}

    # -------------------------------------------------------------------------
    # Accumulation helpers
    # -------------------------------------------------------------------------

    def add(self, item_id: int, entry: SourceEntry) -> None:
        self._sources.setdefault(item_id, []).append(entry)

    def entries(self, item_id: int) -> list[SourceEntry]:
        return self._sources.get(item_id, [])

    def has_kind(self, item_id: int, kind: str) -> bool:
        return any(entry.type == kind for entry in self._sources.get(item_id, []))

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._sources.values())

    # -------------------------------------------------------------------------
    # Local shop tables
    # -------------------------------------------------------------------------

    def add_gil_shops(self, rows: Iterable[RawRecord], prices: dict[int, int]) -> int:
        """Generic NPC shop listings; price is the item's mid price."""
        count = 0
        for row in rows:
            item_id = parse_int(row.get("Item"))
            if item_id <= 0:
                continue
            self.add(item_id, GilShopSource(price=prices.get(item_id, 0)))
            count += 1
        logger.info(f"Added {count} gil shop sources")
        return count

    def add_gc_shops(self, rows: Iterable[RawRecord]) -> int:
        count = 0
        for row in rows:
            item_id = parse_int(row.get("Item"))
            cost = parse_int(first_value(row, "Cost{GCSeals}", "CostGCSeals"))
            if item_id <= 0 or cost <= 0:
                continue
            self.add(item_id, GCShopSource(price=cost))
            count += 1
        logger.info(f"Added {count} grand company shop sources")
        return count

    # -------------------------------------------------------------------------
    # Teamcraft feeds
    # -------------------------------------------------------------------------

    def add_drops(self, drop_sources: dict, mobs: dict, bnpc_names: ReferenceTable[str]) -> int:
        """Mob drops; names from the local table, then the remote mob English name."""
        mobs = as_mapping(mobs)
        count = 0
        for item_key, mob_ids in drop_sources.items():
            item_id = parse_int(item_key)
            if item_id <= 0 or not isinstance(mob_ids, list) or not mob_ids:
                continue
            try:
                shown = [parse_int(mob_id) for mob_id in mob_ids[:MAX_MOBS]]
                names = []
                for mob_id in shown:
                    remote = mobs.get(str(mob_id))
                    english = remote.get("en") if isinstance(remote, dict) else None
                    names.append(bnpc_names.get(mob_id) or english or labels.mob_placeholder(mob_id))
                self.add(item_id, DropSource(mob_ids=shown, mob_names=names, total_mobs=len(mob_ids)))
            except MALFORMED_ROW_ERRORS as e:
                skip_row("drop", item_key, e)
                continue
            count += 1
        logger.info(f"Added {count} mob drop sources")
        return count

    def add_ventures(self, extracts: dict) -> int:
        count = 0
        for item_key, entry in extracts.items():
            item_id = parse_int(item_key)
            source = find_extract_source(entry, DataType.VENTURES)
            data = source.get("data") if source else None
            if item_id <= 0 or not isinstance(data, list) or not data:
                continue
            if self.has_kind(item_id, "venture"):
                continue

            try:
                first = data[0] if isinstance(data[0], dict) else {}
                quantities = [
                    VentureQuantity(
                        quantity=parse_int(q.get("quantity")),
                        stat=q.get("stat") or "perception",
                        value=q.get("value"),
                    )
                    for q in first.get("quantities") or []
                    if isinstance(q, dict)
                ]
                self.add(item_id, VentureSource(
                    venture_level=first.get("lvl"),
                    venture_quantities=quantities,
                    venture_category=first.get("category"),
                ))
            except MALFORMED_ROW_ERRORS as e:
                skip_row("venture", item_key, e)
                continue
            count += 1
        logger.info(f"Added {count} venture sources")
        return count

    def add_voyages(
        self,
        extracts: dict,
        submarine_names: ReferenceTable[str],
        airship_names: ReferenceTable[str],
    ) -> int:
        """Submarine/airship voyages; destination names prefer the local tables."""
        count = 0
        for item_key, entry in extracts.items():
            item_id = parse_int(item_key)
            source = find_extract_source(entry, DataType.VOYAGES)
            data = source.get("data") if source else None
            if item_id <= 0 or not isinstance(data, list) or not data:
                continue
            if self.has_kind(item_id, "voyage"):
                continue

            try:
                names = []
                for voyage in data[:MAX_VOYAGES]:
                    name = voyage.get("name") if isinstance(voyage, dict) else None
                    if not isinstance(name, dict):
                        names.append(labels.UNKNOWN_VOYAGE)
                        continue
                    voyage_id = parse_int(name.get("id"))
                    table = submarine_names if voyage.get("type") == SUBMARINE_VOYAGE else airship_names
                    names.append(table.get(voyage_id) or name.get("ja") or name.get("en") or labels.UNKNOWN_VOYAGE)
                self.add(item_id, VoyageSource(voyage_names=names, total_voyages=len(data)))
            except MALFORMED_ROW_ERRORS as e:
                skip_row("voyage", item_key, e)
                continue
            count += 1
        logger.info(f"Added {count} voyage sources")
        return count

    def add_desynths(self, extracts: dict) -> int:
        count = 0
        for item_key, entry in extracts.items():
            item_id = parse_int(item_key)
            source = find_extract_source(entry, DataType.DESYNTHS)
            data = source.get("data") if source else None
            if item_id <= 0 or not isinstance(data, list) or not data:
                continue
            if self.has_kind(item_id, "desynth"):
                continue
            try:
                self.add(item_id, DesynthSource(
                    desynth_item_ids=[parse_int(i) for i in data[:MAX_DESYNTH_ITEMS]],
                    total_desynth_items=len(data),
                ))
            except MALFORMED_ROW_ERRORS as e:
                skip_row("desynthesis", item_key, e)
                continue
            count += 1
        logger.info(f"Added {count} desynthesis sources")
        return count

    def add_vendors(self, extracts: dict, locator: VendorLocator) -> int:
        """Detailed NPC vendors with zone and nearest aetheryte."""
        count = 0
        for item_key, entry in extracts.items():
            item_id = parse_int(item_key)
            source = find_extract_source(entry, DataType.VENDORS)
            data = source.get("data") if source else None
            if item_id <= 0 or not isinstance(data, list) or not data:
                continue

            try:
                vendors = []
                for vendor in data[:MAX_VENDORS]:
                    if not isinstance(vendor, dict):
                        continue
                    location = locator.locate(
                        parse_int(vendor.get("npcId")),
                        parse_int(vendor.get("zoneId")),
                        vendor.get("coords"),
                        price=vendor.get("price"),
                    )
                    if location:
                        vendors.append(location)
                if not vendors or self.has_kind(item_id, "vendor"):
                    continue
                self.add(item_id, VendorSource(vendors=vendors))
            except MALFORMED_ROW_ERRORS as e:
                skip_row("vendor", item_key, e)
                continue
            count += 1
        logger.info(f"Added {count} vendor sources")
        return count

    def add_trades(self, extracts: dict, locator: VendorLocator) -> int:
        """
        Special shop trades.

        Each trade adds a specialshop entry priced in its primary currency to
        the received item, and a reverse row under every currency it costs.
        """
        count = 0
        for item_key, entry in extracts.items():
            item_id = parse_int(item_key)
            if item_id <= 0 or not isinstance(entry, dict):
                continue

            for source in entry.get("sources") or []:
                if not isinstance(source, dict) or source.get("type") != DataType.TRADE_SOURCES:
                    continue
                for shop in source.get("data") or []:
                    if not isinstance(shop, dict):
                        continue
                    try:
                        count += self._add_shop_trades(item_id, shop, locator)
                    except MALFORMED_ROW_ERRORS as e:
                        skip_row("special shop", item_key, e)

        logger.info(f"Added {count} special shop sources, trades for {len(self._trades)} currencies")
        return count

    def _add_shop_trades(self, item_id: int, shop: dict, locator: VendorLocator) -> int:
        added = 0
        for trade in shop.get("trades") or []:
            if not isinstance(trade, dict):
                continue
            received = next(
                (i for i in trade.get("items") or [] if isinstance(i, dict) and parse_int(i.get("id")) == item_id),
                None,
            )
            currencies = [c for c in trade.get("currencies") or [] if isinstance(c, dict)]
            if received is None or not currencies:
                continue

            primary_id = parse_int(currencies[0].get("id"))
            primary_amount = parse_int(currencies[0].get("amount"))
            if not primary_id or not primary_amount:
                continue

            already_listed = any(
                isinstance(e, SpecialShopSource)
                and e.currency_item_id == primary_id
                and e.price == primary_amount
                for e in self.entries(item_id)
            )
            if not already_listed:
                vendors = []
                for npc in shop.get("npcs") or []:
                    if not isinstance(npc, dict):
                        continue
                    location = locator.locate(
                        parse_int(npc.get("id")), parse_int(npc.get("zoneId")), npc.get("coords")
                    )
                    if location:
                        vendors.append(location)
                self.add(item_id, SpecialShopSource(
                    type_name=classify_currency(primary_id),
                    price=primary_amount,
                    currency_item_id=primary_id,
                    vendors=vendors or None,
                ))
                added += 1

            all_currencies = [
                TradeCurrency(id=parse_int(c.get("id")), amount=parse_int(c.get("amount")))
                for c in currencies
            ]
            self.add_reverse_trade(item_id, parse_int(received.get("amount"), default=1) or 1, all_currencies)
        return added

    def add_reverse_trade(self, item_id: int, amount: int, currencies: list[TradeCurrency]) -> None:
        """Record the trade under every currency it costs, once per (item, currency set)."""
        key = trade_currencies_key(item_id, currencies)
        for currency in currencies:
            if not currency.id:
                continue
            keys = self._trade_keys.setdefault(currency.id, set())
            if key in keys:
                continue
            keys.add(key)
            self._trades.setdefault(currency.id, []).append(
                Trade(item_id=item_id, amount=amount, currencies=currencies)
            )

    def add_instances(self, instance_sources: dict, resolver: InstanceNameResolver) -> int:
        """Duty drops; the type label follows the most prestigious content type."""
        count = 0
        for item_key, instance_ids in instance_sources.items():
            item_id = parse_int(item_key)
            if item_id <= 0 or not isinstance(instance_ids, list) or not instance_ids:
                continue
            if self.has_kind(item_id, "instance"):
                continue

            try:
                names: list[str] = []
                content_types: list[int] = []
                for instance_id in instance_ids[:MAX_INSTANCES]:
                    instance_id = parse_int(instance_id)
                    content_type = resolver.content_type(instance_id)
                    if content_type and content_type not in content_types:
                        content_types.append(content_type)
                    names.append(resolver.resolve(instance_id))

                type_name = labels.INSTANCE
                for content_type, label in labels.INSTANCE_BY_CONTENT_TYPE.items():
                    if content_type in content_types:
                        type_name = label
                        break

                self.add(item_id, InstanceSource(
                    type_name=type_name,
                    instance_names=names,
                    instance_content_types=content_types,
                    total_instances=len(instance_ids),
                ))
            except MALFORMED_ROW_ERRORS as e:
                skip_row("instance", item_key, e)
                continue
            count += 1
        logger.info(f"Added {count} instance sources")
        return count

    def add_treasures(self, loot_sources: dict, items: dict[int, Item]) -> int:
        """Treasure map loot; map names come from the already built item table."""
        count = 0
        for item_key, map_ids in loot_sources.items():
            item_id = parse_int(item_key)
            if item_id <= 0 or not isinstance(map_ids, list):
                continue
            if self.has_kind(item_id, "treasure"):
                continue
            try:
                names = []
                for map_id in map_ids[:MAX_MAPS]:
                    map_item = items.get(parse_int(map_id))
                    names.append(map_item.name if map_item else labels.map_placeholder(map_id))
                self.add(item_id, TreasureSource(map_names=names, total_maps=len(map_ids)))
            except MALFORMED_ROW_ERRORS as e:
                skip_row("treasure map", item_key, e)
                continue
            count += 1
        logger.info(f"Added {count} treasure map sources")
        return count

    def add_quest_rewards(self, quests: dict, quest_names: ReferenceTable[str]) -> int:
        """One quest source per rewarded item, from the first quest that rewards it."""
        count = 0
        for quest_key, quest in quests.items():
            if not isinstance(quest, dict) or not isinstance(quest.get("rewards"), list):
                continue
            quest_id = parse_int(quest_key)
            for reward in quest["rewards"]:
                item_id = parse_int(reward.get("id")) if isinstance(reward, dict) else 0
                if item_id <= 0 or self.has_kind(item_id, "quest"):
                    continue
                try:
                    self.add(item_id, QuestSource(
                        quest_id=quest_id,
                        quest_name=quest_names.get(quest_id) or _remote_quest_name(quest, quest_key),
                    ))
                except MALFORMED_ROW_ERRORS as e:
                    skip_row("quest reward", quest_key, e)
                    continue
                count += 1
        logger.info(f"Added {count} quest reward sources")
        return count

    def add_quest_sources(self, quest_sources: dict, quests: dict) -> int:
        """Fill in quest sources for items the reward pass did not cover."""
        quests = as_mapping(quests)
        count = 0
        for item_key, quest_ids in quest_sources.items():
            item_id = parse_int(item_key)
            if item_id <= 0 or not isinstance(quest_ids, list) or not quest_ids:
                continue
            if self.has_kind(item_id, "quest"):
                continue
            try:
                quest_key = str(quest_ids[0])
                quest = quests.get(quest_key)
                self.add(item_id, QuestSource(
                    quest_id=parse_int(quest_key),
                    quest_name=_remote_quest_name(quest, quest_key) if isinstance(quest, dict) else "",
                ))
            except MALFORMED_ROW_ERRORS as e:
                skip_row("quest", item_key, e)
                continue
            count += 1
        logger.info(f"Added {count} quest list sources")
        return count

    # -------------------------------------------------------------------------
    # Output
    # -------------------------------------------------------------------------

    def build(self) -> dict[int, list[SourceEntry]]:
        """Deduplicated, suppressed sources per item."""
        return {item_id: finalize_sources(entries) for item_id, entries in self._sources.items()}

    def trades(self) -> dict[int, list[Trade]]:
        return {currency_id: list(trades) for currency_id, trades in self._trades.items()}


def _remote_quest_name(quest: dict, quest_key: Any) -> str:
    name = quest.get("name")
    if isinstance(name, dict):
        return name.get("ja") or name.get("en") or labels.quest_placeholder(quest_key)
    return ""


def build_item_prices(rows: Iterable[RawRecord]) -> dict[int, int]:
    """Item id -> mid price, for the generic gil shop listings."""
    prices: dict[int, int] = {}
    for row in rows:
        item_id = row_id(row)
        price = parse_int(first_value(row, "Price{Mid}", "PriceMid"))
        if item_id > 0 and price > 0:
            prices[item_id] = price
    return prices


def skip_row(label: str, key: Any, error: Exception) -> None:
    logger.debug(f"Skipping malformed {label} entry {key}: {error}")


def safe_add(label: str, fn, *args) -> int:
    """
    Run one ``add_*`` step, logging and skipping it when the feed as a whole
    has the wrong shape. Malformed entries are skipped inside the step.
    """
    try:
        return fn(*args)
    except MALFORMED_ROW_ERRORS as e:
        logger.warning(f"Skipping {label} sources, feed data is malformed: {e}")
        return 0
