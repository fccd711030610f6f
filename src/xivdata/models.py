"""
Data models for the generated item search artifacts.

Every model serializes with camelCase aliases so the written documents keep
the field names the browser client reads (``itemLevel``, ``canBeHq``, ...).
Optional fields default to ``None`` and are dropped on output, which keeps
"absent" distinct from a legitimately computed zero.
"""

from enum import IntEnum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from . import labels


# =============================================================================
# Enums and Base Models
# =============================================================================

class Rarity(IntEnum):
    """Item rarity tiers as stored in the item table."""
    COMMON = 1
    UNCOMMON = 2
    RARE = 3
    RELIC = 4
    AETHERIAL = 7


class CamelModel(BaseModel):
    """Base model that reads snake_case and writes camelCase."""
    model_config = {"alias_generator": to_camel, "populate_by_name": True}

    def to_json(self) -> dict[str, Any]:
        """Dump to a JSON-ready dict with aliases, omitting unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Category(CamelModel):
    """Item UI category."""
    id: int
    name: str


class CraftType(CamelModel):
    """Crafting discipline (Carpenter, Blacksmith, ...)."""
    id: int
    name: str


class GatheringType(CamelModel):
    """Gathering discipline (Mining, Logging, ...)."""
    id: int
    name: str


# =============================================================================
# Item Models
# =============================================================================

class ItemStat(CamelModel):
    """A single base parameter bonus on a piece of equipment."""
    id: int
    name: str
    value: int


class EquipStats(CamelModel):
    """Equipment block, attached only to items with equip-relevant fields."""
    stats: list[ItemStat] = Field(default_factory=list)
    hq_stats: list[ItemStat] | None = Field(default=None, description="Only present when the item can be HQ")
    physical_damage: int | None = None
    magic_damage: int | None = None
    delay: int | None = Field(default=None, description="Weapon delay in milliseconds")
    auto_attack: float | None = None
    physical_defense: int | None = None
    magic_defense: int | None = None
    block_rate: int | None = None
    block_strength: int | None = None
    class_job_category_name: str | None = Field(default=None, description='Space separated job abbreviations, e.g. "GLA PLD"')
    repair_class_id: int | None = None
    repair_class_name: str | None = None
    materia_slots: int | None = None
    is_advanced_melding_permitted: bool | None = None
    dye_count: int | None = None
    is_unique: bool | None = None


class FoodBonus(CamelModel):
    """One stat bonus slot of a food or medicine."""
    param_id: int
    param_name: str
    is_relative: bool = Field(description="True = percentage of the base stat, False = flat value")
    value: int
    max: int
    value_hq: int
    max_hq: int


class FoodEffect(CamelModel):
    """Food/medicine effect table."""
    exp_bonus: int = 0
    bonuses: list[FoodBonus] = Field(default_factory=list, max_length=3)


class Item(CamelModel):
    """An item record as published in the items document."""
    id: int = Field(gt=0)
    name: str = Field(min_length=1)
    description: str = ""
    icon: int = 0
    item_level: int = 1
    equip_level: int = 0
    rarity: Rarity = Rarity.COMMON
    category_id: int = 0
    category_name: str = labels.UNKNOWN_CATEGORY
    can_be_hq: bool = False
    stack_size: int = 1
    is_untradable: bool = False
    class_job_category: int | None = None
    is_craftable: bool = False
    is_gatherable: bool = False
    patch: str | None = None
    equip_stats: EquipStats | None = None
    food_effects: FoodEffect | None = None


# =============================================================================
# Recipe Models
# =============================================================================

class Ingredient(CamelModel):
    item_id: int
    amount: int


class Recipe(CamelModel):
    """A crafting recipe; difficulty/quality/durability are already scaled."""
    id: int
    item_id: int
    craft_type: int
    craft_type_name: str = ""
    recipe_level: int
    stars: int = 0
    ingredients: list[Ingredient] = Field(max_length=10)
    result_amount: int = 1
    required_craftsmanship: int | None = None
    required_control: int | None = None
    class_job_level: int | None = None
    difficulty: int | None = None
    quality: int | None = None
    durability: int | None = None
    secret_recipe_book: int | None = Field(default=None, description="Item id of the required master recipe book")
    material_quality_factor: int | None = None


class RecipeLevelParams(BaseModel):
    """Recipe level row in the snake_case shape the crafting simulator expects."""
    id: int
    class_job_level: int = 0
    stars: int = 0
    suggested_craftsmanship: int = 0
    suggested_control: int | None = None
    difficulty: int = 0
    quality: int = 0
    progress_divider: int = 50
    quality_divider: int = 30
    progress_modifier: int = 100
    quality_modifier: int = 100
    durability: int = 40
    conditions_flag: int = 15


# =============================================================================
# Gathering Models
# =============================================================================

class GatheringPoint(CamelModel):
    """A gathering node that yields a given item."""
    id: int = Field(description="Node id")
    item_id: int
    gathering_type: int
    gathering_type_name: str = ""
    level: int = 0
    stars: str = ""
    place_name_id: int = 0
    place_name: str = labels.UNKNOWN_PLACE
    x: float = 0
    y: float = 0
    map_id: int | None = None
    radius: float = 0
    legendary: bool = False
    ephemeral: bool = False
    time_restriction: bool = False
    spawns: list[int] = Field(default_factory=list)
    duration: int = 0
    folklore: int | None = None
    perception_req: int | None = None


# =============================================================================
# Source Models
# =============================================================================

class VendorLocation(CamelModel):
    """An NPC selling an item, with its nearest aetheryte."""
    npc_name: str
    price: int | None = None
    zone_name: str = ""
    x: float | None = None
    y: float | None = None
    aetheryte_name: str = ""


class VentureQuantity(CamelModel):
    quantity: int
    stat: str = "perception"
    value: int | None = None


class GilShopSource(CamelModel):
    type: Literal["gilshop"] = "gilshop"
    type_name: str = labels.GILSHOP
    price: int = 0
    currency: Literal["gil"] = "gil"


class GCShopSource(CamelModel):
    type: Literal["gcshop"] = "gcshop"
    type_name: str = labels.GCSHOP
    price: int
    currency: Literal["gc_seals"] = "gc_seals"


class SpecialShopSource(CamelModel):
    type: Literal["specialshop"] = "specialshop"
    type_name: str = labels.CURRENCY_EXCHANGE
    price: int
    currency_item_id: int
    currency: Literal["item"] = "item"
    vendors: list[VendorLocation] | None = None


class VendorSource(CamelModel):
    type: Literal["vendor"] = "vendor"
    type_name: str = labels.VENDOR
    vendors: list[VendorLocation] = Field(default_factory=list)


class DropSource(CamelModel):
    type: Literal["drop"] = "drop"
    type_name: str = labels.DROP
    mob_ids: list[int]
    mob_names: list[str]
    total_mobs: int


class InstanceSource(CamelModel):
    type: Literal["instance"] = "instance"
    type_name: str = labels.INSTANCE
    instance_names: list[str]
    instance_content_types: list[int] = Field(default_factory=list)
    total_instances: int


class TreasureSource(CamelModel):
    type: Literal["treasure"] = "treasure"
    type_name: str = labels.TREASURE
    map_names: list[str]
    total_maps: int


class QuestSource(CamelModel):
    type: Literal["quest"] = "quest"
    type_name: str = labels.QUEST
    quest_id: int
    quest_name: str = ""


class VentureSource(CamelModel):
    type: Literal["venture"] = "venture"
    type_name: str = labels.VENTURE
    venture_level: int | None = None
    venture_quantities: list[VentureQuantity] = Field(default_factory=list)
    venture_category: int | None = None


class VoyageSource(CamelModel):
    type: Literal["voyage"] = "voyage"
    type_name: str = labels.VOYAGE
    voyage_names: list[str]
    total_voyages: int


class DesynthSource(CamelModel):
    type: Literal["desynth"] = "desynth"
    type_name: str = labels.DESYNTH
    desynth_item_ids: list[int]
    total_desynth_items: int


SourceEntry = Annotated[
    Union[
        VendorSource,
        GilShopSource,
        GCShopSource,
        SpecialShopSource,
        DropSource,
        InstanceSource,
        TreasureSource,
        QuestSource,
        VentureSource,
        VoyageSource,
        DesynthSource,
    ],
    Field(discriminator="type"),
]


class TradeCurrency(CamelModel):
    id: int
    amount: int


class Trade(CamelModel):
    """Reverse view of a special shop trade, keyed under each currency it costs."""
    item_id: int
    amount: int = 1
    currencies: list[TradeCurrency]


# =============================================================================
# Map and Locale Models
# =============================================================================

class MapAetheryte(CamelModel):
    id: int
    x: float
    y: float
    type: int = Field(default=0, description="0 = main aetheryte, 1 = aethernet shard")
    name: str = ""


class ZoneMap(CamelModel):
    id: int
    path: str
    size_factor: int = 100
    offset_x: int = 0
    offset_y: int = 0
    aetherytes: list[MapAetheryte] = Field(default_factory=list)


class MultilingualName(CamelModel):
    """Item name in the non-primary locales."""
    en: str | None = None
    ja: str | None = None
    cn: str | None = None


# =============================================================================
# Documents
# =============================================================================

class ItemsDocument(CamelModel):
    items: dict[int, Item] = Field(default_factory=dict)
    categories: list[Category] = Field(default_factory=list)


class RecipesDocument(CamelModel):
    recipes: dict[int, list[Recipe]] = Field(default_factory=dict)
    craft_types: list[CraftType] = Field(default_factory=list)


class GatheringDocument(CamelModel):
    points: dict[int, list[GatheringPoint]] = Field(default_factory=dict)
    gathering_types: list[GatheringType] = Field(default_factory=list)


class SourcesDocument(CamelModel):
    sources: dict[int, list[SourceEntry]] = Field(default_factory=dict)


class ZoneMapsDocument(CamelModel):
    maps: dict[str, ZoneMap] = Field(default_factory=dict)


class DesynthResultsDocument(CamelModel):
    results: dict[int, list[int]] = Field(default_factory=dict)


class CompactIndex(CamelModel):
    """Columnar item index: one positional row per item, column names in ``fields``."""
    categories: list[Category] = Field(default_factory=list)
    field_names: list[str] = Field(default_factory=list, alias="fields")
    items: list[list[Any]] = Field(default_factory=list)
