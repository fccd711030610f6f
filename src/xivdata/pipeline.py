"""
Build pipeline: runs the phases in order and writes the JSON artifacts.

Each phase loads the local tables it needs, fetches its remote feeds in one
bounded fan-out, then folds everything into its output synchronously. Feeds
and tables are memoized for the run, so a phase reuses what an earlier one
already fetched.
"""

import json
import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import httpx

from .aggregate import (
    MALFORMED_ROW_ERRORS,
    LandmarkIndex,
    SourceAggregator,
    VendorLocator,
    build_item_prices,
    safe_add,
)
from .compact import build_compact_index, used_categories
from .config import BuildSettings, DataRepoNotFoundError
from .derive import ItemContext, build_food_effects, build_item, derive_recipe, link_food_actions
from .gathering import build_gathering_points
from .locales import (
    build_desynth_results,
    build_instance_cn_names,
    build_multilingual_names,
    build_quest_cn_names,
    build_recipe_level_params,
)
from .models import (
    Category,
    DesynthResultsDocument,
    GatheringDocument,
    Item,
    ItemsDocument,
    MultilingualName,
    Recipe,
    RecipesDocument,
    SourcesDocument,
    ZoneMapsDocument,
)
from .reference import (
    InstanceNameResolver,
    LocalizedNameResolver,
    ReferenceTable,
    build_base_params,
    build_categories,
    build_class_jobs,
    build_craft_types,
    build_gathering_types,
    build_job_categories,
    build_name_table,
    build_patch_labels,
    build_recipe_levels,
    build_secret_recipe_books,
)
from .remote import fetch_documents
from .tables import RawRecord, first_value, load_local_table, parse_int, row_id
from .zonemaps import build_zone_maps

logger = logging.getLogger("xivdata")

SOURCE_FEEDS = (
    "drop_sources",
    "mobs",
    "desynth",
    "instance_sources",
    "instances",
    "loot_sources",
    "quest_sources",
    "quests",
    "extracts",
    "npcs",
    "places",
    "aetherytes",
    "en_content_finder",
)


def write_document(path: Path, data: Any) -> None:
    """Write one artifact as compact UTF-8 JSON."""
    path.write_text(
        json.dumps(data, ensure_ascii=False, separators=(",", ":")), encoding="utf-8"
    )
    logger.info(f"Wrote {path.name} ({path.stat().st_size / 1024:.1f} KB)")


@dataclass
class BuildSummary:
    """Counts of what one run produced."""
    items: int = 0
    recipes: int = 0
    gathering_points: int = 0
    sources: int = 0
    trades: int = 0
    zone_maps: int = 0
    quest_cn_names: int = 0
    instance_cn_names: int = 0
    multilingual_names: int = 0
    recipe_levels: int = 0

    def to_dict(self) -> dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def __str__(self) -> str:
        non_empty = {k: v for k, v in self.to_dict().items() if v > 0}
        if not non_empty:
            return "empty"
        return ", ".join(f"{v} {k.replace('_', ' ')}" for k, v in non_empty.items())


class BuildPipeline:
    """
    One-shot batch build of every artifact.

    Args:
        settings: Paths and fetch limits
        client: HTTP client to use; when omitted one is created for the run
    """

    def __init__(self, settings: BuildSettings, client: httpx.AsyncClient | None = None):
        self.settings = settings
        self._client = client
        self._documents: dict[str, Any] = {}
        self._tables: dict[str, list[RawRecord]] = {}
        self._place_names: ReferenceTable[str] | None = None

        self.items: dict[int, Item] = {}
        self.categories: list[Category] = []
        self.multilingual_names: dict[int, MultilingualName] = {}
        self.summary = BuildSummary()

    # =========================================================================
    # Run
    # =========================================================================

    async def run(self) -> BuildSummary:
        """
        Run every phase and write the artifacts.

        Raises:
            DataRepoNotFoundError: If ``<data_dir>/csv`` does not exist
        """
        if not self.settings.csv_dir.is_dir():
            raise DataRepoNotFoundError(
                f"Local data repository not found at {self.settings.data_dir} "
                "(set DATA_REPO_PATH or pass --data-dir)"
            )

        logger.info(f"Data source: {self.settings.data_dir}")
        logger.info(f"Output path: {self.settings.output_dir}")
        self.settings.output_dir.mkdir(parents=True, exist_ok=True)

        if self._client is not None:
            await self._run_phases()
        else:
            async with httpx.AsyncClient(
                timeout=self.settings.fetch_timeout, follow_redirects=True
            ) as client:
                self._client = client
                try:
                    await self._run_phases()
                finally:
                    self._client = None

        logger.info(f"Data processing complete: {self.summary}")
        return self.summary

    async def _run_phases(self) -> None:
        await self.build_items()
        self.build_recipes()
        await self.build_gathering()
        await self.build_sources()
        await self.build_zone_maps()
        await self.build_quest_cn_names()
        await self.build_instance_cn_names()
        await self.build_multilingual_names()
        self.build_index()
        await self.build_recipe_levels()

    # =========================================================================
    # Inputs
    # =========================================================================

    def _table(self, name: str) -> list[RawRecord]:
        if name not in self._tables:
            self._tables[name] = load_local_table(self.settings.table_path(name))
        return self._tables[name]

    async def _fetch(self, *names: str) -> dict[str, Any]:
        """Fetch the feeds not fetched yet in one fan-out; return all requested."""
        missing = [n for n in names if n not in self._documents]
        if missing:
            logger.info(f"Fetching {len(missing)} remote feeds: {', '.join(missing)}")
            self._documents.update(
                await fetch_documents(self._client, missing, self.settings.fetch_concurrency)
            )
        return {n: self._documents[n] for n in names}

    def _output(self, filename: str) -> Path:
        return self.settings.output_dir / filename

    @property
    def place_names(self) -> ReferenceTable[str]:
        if self._place_names is None:
            self._place_names = build_name_table(self._table("PlaceName"), name="place names")
        return self._place_names

    # =========================================================================
    # Phases
    # =========================================================================

    async def build_items(self) -> None:
        logger.info("Processing items...")
        docs = await self._fetch("item_patch", "patch_names")

        base_params = build_base_params(self._table("BaseParam"))
        class_jobs = build_class_jobs(self._table("ClassJob"))
        food_effects = build_food_effects(self._table("ItemFood"), base_params)
        categories = build_categories(self._table("ItemUICategory"))

        ctx = ItemContext(
            categories=categories,
            base_params=base_params,
            class_jobs=class_jobs,
            job_categories=build_job_categories(self._table("ClassJobCategory"), class_jobs),
            food_effects=food_effects,
            food_by_action=link_food_actions(self._table("ItemAction"), food_effects),
            craftable={
                parse_int(first_value(row, "Item{Result}", "ItemResult"))
                for row in self._table("Recipe")
                if row_id(row) > 0
            } - {0},
            gatherable={parse_int(row.get("Item")) for row in self._table("GatheringItem")} - {0},
            patches=build_patch_labels(docs["item_patch"], docs["patch_names"]),
        )

        for row in self._table("Item"):
            item = build_item(row, ctx)
            if item is not None:
                self.items[item.id] = item

        self.categories = used_categories(self.items.values(), dict(categories))
        write_document(
            self._output("items.json"),
            ItemsDocument(items=self.items, categories=self.categories).to_json(),
        )

        with_equip = sum(1 for item in self.items.values() if item.equip_stats)
        with_food = sum(1 for item in self.items.values() if item.food_effects)
        logger.info(
            f"Processed {len(self.items)} items ({with_equip} with equipment stats, "
            f"{with_food} with food effects), {len(self.categories)} categories"
        )
        self.summary.items = len(self.items)

    def build_recipes(self) -> None:
        logger.info("Processing recipes...")
        craft_types = build_craft_types(self._table("CraftType"))
        recipe_levels = build_recipe_levels(self._table("RecipeLevelTable"))
        books = build_secret_recipe_books(self._table("SecretRecipeBook"))

        recipes: dict[int, list[Recipe]] = {}
        count = 0
        for row in self._table("Recipe"):
            recipe = derive_recipe(row, craft_types, recipe_levels, books)
            if recipe is None:
                continue
            recipes.setdefault(recipe.item_id, []).append(recipe)
            count += 1

        write_document(
            self._output("recipes.json"),
            RecipesDocument(recipes=recipes, craft_types=list(craft_types.values())).to_json(),
        )
        with_books = sum(1 for group in recipes.values() for r in group if r.secret_recipe_book)
        logger.info(f"Processed {count} recipes ({with_books} with master books)")
        self.summary.recipes = count

    async def build_gathering(self) -> None:
        logger.info("Processing gathering points from extracts...")
        docs = await self._fetch("extracts", "places", "maps")
        gathering_types = build_gathering_types(self._table("GatheringType"))
        places = LocalizedNameResolver(self.place_names, docs["places"])

        try:
            points = build_gathering_points(docs["extracts"], gathering_types, places, docs["maps"])
        except MALFORMED_ROW_ERRORS as e:
            logger.warning(f"Skipping gathering points, feed data is malformed: {e}")
            points = {}
        write_document(
            self._output("gathering.json"),
            GatheringDocument(points=points, gathering_types=list(gathering_types.values())).to_json(),
        )
        self.summary.gathering_points = sum(len(p) for p in points.values())

    async def build_sources(self) -> None:
        logger.info("Processing item sources...")
        docs = await self._fetch(*SOURCE_FEEDS)
        extracts = docs["extracts"]
        aggregator = SourceAggregator()

        prices = build_item_prices(self._table("Item"))
        safe_add("gil shop", aggregator.add_gil_shops, self._table("GilShopItem"), prices)
        safe_add("grand company shop", aggregator.add_gc_shops, self._table("GCScripShopItem"))

        if docs["drop_sources"]:
            mob_names = ReferenceTable.from_rows(
                self._table("BNpcName"),
                lambda row: (row.get("Singular") or row.get("Name") or "").strip(),
                name="mob names",
            )
            safe_add("drop", aggregator.add_drops, docs["drop_sources"], docs["mobs"] or {}, mob_names)

        if extracts:
            safe_add("venture", aggregator.add_ventures, extracts)
            safe_add(
                "voyage",
                aggregator.add_voyages,
                extracts,
                build_name_table(self._table("SubmarineExploration"), column="Destination", name="submarine destinations"),
                build_name_table(self._table("AirshipExplorationPoint"), name="airship destinations"),
            )
            safe_add("desynthesis", aggregator.add_desynths, extracts)

            locator = VendorLocator(
                npc_names=LocalizedNameResolver(
                    build_name_table(self._table("ENpcResident"), column="Singular", name="NPC names"),
                    docs["npcs"],
                ),
                place_names=LocalizedNameResolver(self.place_names, docs["places"]),
                landmarks=LandmarkIndex(docs["aetherytes"]),
            )
            safe_add("vendor", aggregator.add_vendors, extracts, locator)
            safe_add("special shop", aggregator.add_trades, extracts, locator)

        if docs["instance_sources"]:
            resolver = InstanceNameResolver(
                self._table("ContentFinderCondition"), docs["en_content_finder"], docs["instances"]
            )
            safe_add("instance", aggregator.add_instances, docs["instance_sources"], resolver)

        if docs["loot_sources"]:
            safe_add("treasure map", aggregator.add_treasures, docs["loot_sources"], self.items)

        if docs["quests"]:
            quest_names = build_name_table(self._table("Quest"), name="quest names")
            safe_add("quest reward", aggregator.add_quest_rewards, docs["quests"], quest_names)
            if docs["quest_sources"]:
                safe_add("quest", aggregator.add_quest_sources, docs["quest_sources"], docs["quests"])

        sources = aggregator.build()
        trades = aggregator.trades()
        write_document(self._output("sources.json"), SourcesDocument(sources=sources).to_json())
        write_document(
            self._output("trades.json"),
            {str(currency_id): [t.to_json() for t in rows] for currency_id, rows in trades.items()},
        )
        self.summary.sources = sum(len(entries) for entries in sources.values())
        self.summary.trades = sum(len(rows) for rows in trades.values())
        logger.info(f"Processed {self.summary.sources} sources for {len(sources)} items")

        if docs["desynth"]:
            results = build_desynth_results(docs["desynth"])
            write_document(
                self._output("desynth-results.json"),
                DesynthResultsDocument(results=results).to_json(),
            )

    async def build_zone_maps(self) -> None:
        logger.info("Processing map data...")
        docs = await self._fetch("aetherytes")
        zone_maps = build_zone_maps(self._table("Map"), self.place_names, docs["aetherytes"])
        write_document(self._output("zone-maps.json"), ZoneMapsDocument(maps=zone_maps).to_json())
        self.summary.zone_maps = len(zone_maps)

    async def build_quest_cn_names(self) -> None:
        docs = await self._fetch("cn_quests")
        if not docs["cn_quests"]:
            logger.warning("CN quest export unavailable, skipping quest-cn-names.json")
            return
        names = build_quest_cn_names(docs["cn_quests"])
        write_document(self._output("quest-cn-names.json"), {str(k): v for k, v in names.items()})
        self.summary.quest_cn_names = len(names)

    async def build_instance_cn_names(self) -> None:
        docs = await self._fetch("cn_content_finder")
        if not docs["cn_content_finder"]:
            logger.warning("CN duty export unavailable, skipping instance-cn-names.json")
            return
        names = build_instance_cn_names(self._table("ContentFinderCondition"), docs["cn_content_finder"])
        write_document(self._output("instance-cn-names.json"), names)
        self.summary.instance_cn_names = len(names)

    async def build_multilingual_names(self) -> None:
        logger.info("Processing multilingual item names...")
        docs = await self._fetch("items_en", "items_ja", "items_cn")
        self.multilingual_names = build_multilingual_names(
            docs["items_en"], docs["items_ja"], docs["items_cn"]
        )
        write_document(
            self._output("item-names-multi.json"),
            {str(k): v.to_json() for k, v in self.multilingual_names.items()},
        )
        self.summary.multilingual_names = len(self.multilingual_names)

    def build_index(self) -> None:
        index = build_compact_index(self.items, self.categories, self.multilingual_names)
        write_document(self._output("items-index.json"), index.to_json())

    async def build_recipe_levels(self) -> None:
        logger.info("Processing recipe level table...")
        docs = await self._fetch("recipe_level_table")
        if not docs["recipe_level_table"]:
            logger.warning("Recipe level table unavailable, skipping recipe-levels.json")
            return
        levels = build_recipe_level_params(docs["recipe_level_table"])
        write_document(
            self._output("recipe-levels.json"),
            {str(k): v.model_dump(mode="json") for k, v in levels.items()},
        )
        self.summary.recipe_levels = len(levels)
