"""
Display labels and placeholders written into the artifacts.

The client renders these strings as-is, so they are in the primary
(Traditional Chinese) locale.
"""

UNKNOWN_CATEGORY = "其他"
UNKNOWN_PLACE = "未知地點"
UNKNOWN_VOYAGE = "未知航點"

# Source type names
GILSHOP = "NPC商店"
VENDOR = "NPC商店"
GCSHOP = "軍票商店"
DROP = "怪物掉落"
VENTURE = "雇員探險"
VOYAGE = "遠航探索"
DESYNTH = "分解"
TREASURE = "藏寶圖"
QUEST = "任務獎勵"

# Instance type names, by content type
INSTANCE = "副本掉落"
INSTANCE_BY_CONTENT_TYPE: dict[int, str] = {
    28: "絕境戰",
    5: "大型任務",
    4: "討伐戰",
    2: "迷宮挑戰",
}

# Currency exchange names
CURRENCY_EXCHANGE = "兌換"
TOMESTONE_EXCHANGE = "神典石兌換"
GC_SCRIP_EXCHANGE = "軍票兌換"
GOLD_SAUCER_EXCHANGE = "金碟幣兌換"
CRAFTERS_SCRIP_EXCHANGE = "工票兌換"


def stat_placeholder(param_id: int) -> str:
    return f"屬性{param_id}"


def mob_placeholder(mob_id: int) -> str:
    return f"怪物 #{mob_id}"


def instance_placeholder(instance_id: int) -> str:
    return f"副本 #{instance_id}"


def map_placeholder(map_id: int) -> str:
    return f"地圖 #{map_id}"


def quest_placeholder(quest_id: int | str) -> str:
    return f"任務 #{quest_id}"
