"""
Derived per-entity fields: equipment stat blocks, food/medicine bonus tables,
and recipe numbers scaled from the shared recipe level table.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable

from . import labels
from .models import (
    Category,
    CraftType,
    EquipStats,
    FoodBonus,
    FoodEffect,
    Ingredient,
    Item,
    ItemStat,
    Rarity,
    Recipe,
)
from .reference import JobInfo, RecipeLevel, ReferenceTable
from .tables import RawRecord, first_value, parse_bool, parse_int, row_id

logger = logging.getLogger("xivdata")

BASE_STAT_SLOTS = 6
FOOD_BONUS_SLOTS = 3
INGREDIENT_SLOTS = 10

# ItemAction types whose Data[1] points at an ItemFood row
FOOD_ACTION_TYPES = frozenset({844, 845, 846})

DEFAULT_FACTOR = 100
DEFAULT_MATERIAL_QUALITY_FACTOR = 0


# =============================================================================
# Equipment
# =============================================================================

def stat_name(base_params: ReferenceTable[str], param_id: int) -> str:
    return base_params.get(param_id) or labels.stat_placeholder(param_id)


def collect_stats(
    row: RawRecord,
    base_params: ReferenceTable[str],
    id_column: str = "BaseParam",
    value_column: str = "BaseParamValue",
    suffix: str = "",
) -> list[ItemStat]:
    """Collect ``(param, value)`` slots where both parse to a positive number."""
    stats: list[ItemStat] = []
    for i in range(BASE_STAT_SLOTS):
        param_id = parse_int(row.get(f"{id_column}{suffix}[{i}]"))
        value = parse_int(row.get(f"{value_column}{suffix}[{i}]"))
        if param_id > 0 and value > 0:
            stats.append(ItemStat(id=param_id, name=stat_name(base_params, param_id), value=value))
    return stats


def auto_attack_rating(physical_damage: int, magic_damage: int, delay_ms: int) -> float | None:
    """Auto-attack = max(damage) / 3 * delay(s), to two decimals."""
    damage = max(physical_damage, magic_damage)
    if delay_ms <= 0 or damage <= 0:
        return None
    return round(damage / 3 * delay_ms / 1000, 2)


def derive_equip_stats(
    row: RawRecord,
    can_be_hq: bool,
    base_params: ReferenceTable[str],
    job_categories: ReferenceTable[str] | None = None,
    class_jobs: ReferenceTable[JobInfo] | None = None,
) -> EquipStats | None:
    """
    Build the equipment block for an item row.

    Returns ``None`` unless damage, defense, a base stat, materia slots or a
    job category is present.
    """
    physical_damage = parse_int(first_value(row, "Damage{Phys}", "DamagePhys"))
    magic_damage = parse_int(first_value(row, "Damage{Mag}", "DamageMag"))
    delay = parse_int(row.get("Delay<ms>"))
    physical_defense = parse_int(first_value(row, "Defense{Phys}", "DefensePhys"))
    magic_defense = parse_int(first_value(row, "Defense{Mag}", "DefenseMag"))
    materia_slots = parse_int(row.get("MateriaSlotCount"))
    job_category_id = parse_int(row.get("ClassJobCategory"))

    stats = collect_stats(row, base_params)

    has_equip_fields = (
        physical_damage > 0 or magic_damage > 0
        or physical_defense > 0 or magic_defense > 0
        or bool(stats) or materia_slots > 0 or job_category_id > 0
    )
    if not has_equip_fields:
        return None

    equip = EquipStats(stats=stats)

    if physical_damage > 0:
        equip.physical_damage = physical_damage
    if magic_damage > 0:
        equip.magic_damage = magic_damage
    if delay > 0:
        equip.delay = delay
        equip.auto_attack = auto_attack_rating(physical_damage, magic_damage, delay)

    if physical_defense > 0:
        equip.physical_defense = physical_defense
    if magic_defense > 0:
        equip.magic_defense = magic_defense
    block_rate = parse_int(row.get("BlockRate"))
    if block_rate > 0:
        equip.block_rate = block_rate
    block_strength = parse_int(row.get("Block"))
    if block_strength > 0:
        equip.block_strength = block_strength

    hq_stats = collect_stats(row, base_params, suffix="{Special}")
    if hq_stats and can_be_hq:
        equip.hq_stats = hq_stats

    if job_category_id > 0 and job_categories is not None and job_category_id in job_categories:
        equip.class_job_category_name = job_categories[job_category_id]

    repair_class_id = parse_int(first_value(row, "ClassJob{Repair}", "ClassJobRepair"))
    if repair_class_id > 0 and class_jobs is not None and repair_class_id in class_jobs:
        equip.repair_class_id = repair_class_id
        equip.repair_class_name = class_jobs[repair_class_id].abbreviation

    if materia_slots > 0:
        equip.materia_slots = materia_slots
    if parse_bool(row.get("IsAdvancedMeldingPermitted")):
        equip.is_advanced_melding_permitted = True
    dye_count = parse_int(row.get("DyeCount"))
    if dye_count > 0:
        equip.dye_count = dye_count
    if parse_bool(row.get("IsUnique")):
        equip.is_unique = True

    return equip


# =============================================================================
# Food and Medicine
# =============================================================================

def build_food_effects(rows: Iterable[RawRecord], base_params: ReferenceTable[str]) -> dict[int, FoodEffect]:
    """
    ItemFood id -> food effect.

    A bonus slot is kept when its stat id is set and either the NQ or the HQ
    value is positive; a row yields an effect when it has an EXP bonus or at
    least one kept slot.
    """
    effects: dict[int, FoodEffect] = {}
    for row in rows:
        food_id = row_id(row)
        if food_id < 0:
            continue

        bonuses: list[FoodBonus] = []
        for i in range(FOOD_BONUS_SLOTS):
            param_id = parse_int(row.get(f"BaseParam[{i}]"))
            if param_id <= 0:
                continue
            value = parse_int(row.get(f"Value[{i}]"))
            value_hq = parse_int(row.get(f"Value{{HQ}}[{i}]"))
            if value <= 0 and value_hq <= 0:
                continue
            bonuses.append(FoodBonus(
                param_id=param_id,
                param_name=stat_name(base_params, param_id),
                is_relative=parse_bool(row.get(f"IsRelative[{i}]")),
                value=value,
                max=parse_int(row.get(f"Max[{i}]")),
                value_hq=value_hq,
                max_hq=parse_int(row.get(f"Max{{HQ}}[{i}]")),
            ))

        exp_bonus = parse_int(row.get("EXPBonus%"))
        if exp_bonus > 0 or bonuses:
            effects[food_id] = FoodEffect(exp_bonus=exp_bonus, bonuses=bonuses)

    logger.info(f"Loaded {len(effects)} food effects")
    return effects


def link_food_actions(rows: Iterable[RawRecord], food_effects: dict[int, FoodEffect]) -> dict[int, int]:
    """ItemAction id -> ItemFood id, for food and medicine actions only."""
    links: dict[int, int] = {}
    for row in rows:
        if parse_int(row.get("Type")) not in FOOD_ACTION_TYPES:
            continue
        food_id = parse_int(row.get("Data[1]"))
        if food_id > 0 and food_id in food_effects:
            links[row_id(row)] = food_id
    logger.info(f"Linked {len(links)} item actions to food effects")
    return links


def effective_food_bonus(bonus: FoodBonus, base_value: int, hq: bool = False) -> int:
    """
    Stat gained from a food bonus slot for a given base stat value.

    Relative slots give ``floor(base * percent / 100)`` capped at the slot
    max; flat slots give the value itself and ignore the max.
    """
    value = bonus.value_hq if hq else bonus.value
    cap = bonus.max_hq if hq else bonus.max
    if bonus.is_relative:
        return min(base_value * value // 100, cap)
    return value


# =============================================================================
# Recipes
# =============================================================================

def scale_recipe_value(base: int, factor: int) -> int:
    """``floor(base * factor / 100)``."""
    return base * factor // 100


def derive_recipe(
    row: RawRecord,
    craft_types: ReferenceTable[CraftType],
    recipe_levels: ReferenceTable[RecipeLevel],
    secret_recipe_books: ReferenceTable[int],
) -> Recipe | None:
    """
    Build a recipe from its row.

    Returns ``None`` for rows without a positive id/result item or without
    any ingredient. Difficulty, quality and durability stay unset when the
    recipe level cannot be resolved.
    """
    recipe_id = row_id(row)
    item_id = parse_int(first_value(row, "Item{Result}", "ItemResult"))
    if recipe_id <= 0 or item_id <= 0:
        return None

    ingredients: list[Ingredient] = []
    for i in range(INGREDIENT_SLOTS):
        ingredient_id = parse_int(first_value(row, f"Item{{Ingredient}}[{i}]", f"ItemIngredient[{i}]"))
        amount = parse_int(first_value(row, f"Amount{{Ingredient}}[{i}]", f"AmountIngredient[{i}]"))
        if ingredient_id > 0 and amount > 0:
            ingredients.append(Ingredient(item_id=ingredient_id, amount=amount))
    if not ingredients:
        return None

    craft_type_id = parse_int(row.get("CraftType"))
    craft_type = craft_types.get(craft_type_id)
    level_id = parse_int(first_value(row, "RecipeLevelTable", "RecipeLevel"), default=1)
    level = recipe_levels.get(level_id)
    book_id = parse_int(row.get("SecretRecipeBook"))

    recipe = Recipe(
        id=recipe_id,
        item_id=item_id,
        craft_type=craft_type_id,
        craft_type_name=craft_type.name if craft_type else "",
        recipe_level=level_id,
        stars=(level.stars if level and level.stars else parse_int(row.get("Stars"))),
        ingredients=ingredients,
        result_amount=parse_int(first_value(row, "Amount{Result}", "AmountResult"), default=1),
        required_craftsmanship=parse_int(row.get("RequiredCraftsmanship")) or None,
        required_control=parse_int(row.get("RequiredControl")) or None,
        secret_recipe_book=secret_recipe_books.get(book_id) if book_id > 0 else None,
    )

    material_quality_factor = parse_int(
        row.get("MaterialQualityFactor"), default=DEFAULT_MATERIAL_QUALITY_FACTOR
    )
    if material_quality_factor > 0:
        recipe.material_quality_factor = material_quality_factor

    if level is not None:
        recipe.class_job_level = level.class_job_level or None
        recipe.difficulty = scale_recipe_value(
            level.difficulty, parse_int(row.get("DifficultyFactor"), default=DEFAULT_FACTOR)
        )
        recipe.quality = scale_recipe_value(
            level.quality, parse_int(row.get("QualityFactor"), default=DEFAULT_FACTOR)
        )
        recipe.durability = scale_recipe_value(
            level.durability, parse_int(row.get("DurabilityFactor"), default=DEFAULT_FACTOR)
        )

    return recipe


# =============================================================================
# Items
# =============================================================================

@dataclass
class ItemContext:
    """Reference data needed to turn an item row into an ``Item``."""
    categories: ReferenceTable[Category]
    base_params: ReferenceTable[str]
    class_jobs: ReferenceTable[JobInfo] | None = None
    job_categories: ReferenceTable[str] | None = None
    food_effects: dict[int, FoodEffect] = field(default_factory=dict)
    food_by_action: dict[int, int] = field(default_factory=dict)
    craftable: set[int] = field(default_factory=set)
    gatherable: set[int] = field(default_factory=set)
    patches: dict[int, str] = field(default_factory=dict)


def parse_rarity(value: str | None) -> Rarity:
    try:
        return Rarity(parse_int(value, default=1))
    except ValueError:
        return Rarity.COMMON


def build_item(row: RawRecord, ctx: ItemContext) -> Item | None:
    """Build an item, or ``None`` for rows with a non-positive id or no name."""
    item_id = row_id(row)
    name = (row.get("Name") or "").strip()
    if item_id <= 0 or not name:
        return None

    category_id = parse_int(row.get("ItemUICategory"))
    category = ctx.categories.get(category_id)
    can_be_hq = parse_bool(row.get("CanBeHq"))

    item = Item(
        id=item_id,
        name=name,
        description=(row.get("Description") or "").strip(),
        icon=parse_int(row.get("Icon")),
        item_level=parse_int(first_value(row, "Level{Item}", "LevelItem"), default=1),
        equip_level=parse_int(first_value(row, "Level{Equip}", "LevelEquip")),
        rarity=parse_rarity(row.get("Rarity")),
        category_id=category_id,
        category_name=category.name if category else labels.UNKNOWN_CATEGORY,
        can_be_hq=can_be_hq,
        stack_size=parse_int(row.get("StackSize"), default=1),
        is_untradable=parse_bool(row.get("IsUntradable")),
        class_job_category=parse_int(row.get("ClassJobCategory")) or None,
        is_craftable=item_id in ctx.craftable,
        is_gatherable=item_id in ctx.gatherable,
        patch=ctx.patches.get(item_id),
    )

    item.equip_stats = derive_equip_stats(
        row, can_be_hq, ctx.base_params, ctx.job_categories, ctx.class_jobs
    )

    action_id = parse_int(row.get("ItemAction"))
    food_id = ctx.food_by_action.get(action_id) if action_id > 0 else None
    if food_id is not None:
        item.food_effects = ctx.food_effects.get(food_id)

    return item
