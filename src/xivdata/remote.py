"""
Remote feed fetching for the community datasets.

Two upstream projects are read:

- Teamcraft JSON documents (drop/instance/quest sources, extracts, NPCs,
  places, aetherytes, ...)
- Datamining CSV exports (multilingual item names, CN quest and duty names,
  recipe level table)

Every public fetch fails soft: a network error, non-2xx status or decode
error is logged and turned into ``None`` (JSON) or ``[]`` (CSV). There is no
retry; a missing feed only disables the features that read it.
"""

import asyncio
import csv
import logging
import re
from typing import Any, Iterable, Literal, NamedTuple

import httpx

from .tables import RawRecord

logger = logging.getLogger("xivdata")


# =============================================================================
# Configuration
# =============================================================================

TEAMCRAFT_JSON_BASE = (
    "https://raw.githubusercontent.com/ffxiv-teamcraft/ffxiv-teamcraft/staging/libs/data/src/lib"
)
DATAMINING_EN_BASE = "https://raw.githubusercontent.com/xivapi/ffxiv-datamining/master/csv/en"
DATAMINING_JA_BASE = "https://raw.githubusercontent.com/xivapi/ffxiv-datamining/master/csv/ja"
DATAMINING_CN_BASE = "https://raw.githubusercontent.com/thewakingsands/ffxiv-datamining-cn/master"

DEFAULT_TIMEOUT = 60.0
DEFAULT_CONCURRENCY = 8


class Feed(NamedTuple):
    """A remote document and how to decode it."""
    url: str
    format: Literal["json", "csv"] = "json"


def _teamcraft(name: str) -> Feed:
    return Feed(f"{TEAMCRAFT_JSON_BASE}/json/{name}.json")


FEEDS: dict[str, Feed] = {
    "drop_sources": _teamcraft("drop-sources"),
    "mobs": _teamcraft("mobs"),
    "venture_sources": _teamcraft("venture-sources"),
    "desynth": _teamcraft("desynth"),
    "instance_sources": _teamcraft("instance-sources"),
    "instances": _teamcraft("instances"),
    "loot_sources": _teamcraft("loot-sources"),
    "quest_sources": _teamcraft("quest-sources"),
    "quests": _teamcraft("quests"),
    "item_patch": _teamcraft("item-patch"),
    "patch_names": _teamcraft("patch-names"),
    "npcs": _teamcraft("npcs"),
    "places": _teamcraft("places"),
    "aetherytes": _teamcraft("aetherytes"),
    "voyage_sources": _teamcraft("voyage-sources"),
    "maps": _teamcraft("maps"),
    "extracts": Feed(f"{TEAMCRAFT_JSON_BASE}/extracts/extracts.json"),
    "cn_quests": Feed(f"{DATAMINING_CN_BASE}/Quest.csv", "csv"),
    "cn_content_finder": Feed(f"{DATAMINING_CN_BASE}/ContentFinderCondition.csv", "csv"),
    "en_content_finder": Feed(f"{DATAMINING_EN_BASE}/ContentFinderCondition.csv", "csv"),
    "items_en": Feed(f"{DATAMINING_EN_BASE}/Item.csv", "csv"),
    "items_ja": Feed(f"{DATAMINING_JA_BASE}/Item.csv", "csv"),
    "items_cn": Feed(f"{DATAMINING_CN_BASE}/Item.csv", "csv"),
    "recipe_level_table": Feed(f"{DATAMINING_EN_BASE}/RecipeLevelTable.csv", "csv"),
}


class RemoteFetchError(Exception):
    """Error fetching a remote feed."""
    pass


# =============================================================================
# CSV Layout Detection and Parsing
# =============================================================================

class CsvLayout(NamedTuple):
    """Where the column names and the first data row sit in a CSV export."""
    header_row_index: int
    data_start_index: int


# Index row, name row, type row, then data
INDEXED_LAYOUT = CsvLayout(header_row_index=1, data_start_index=3)
# Column names on the first line, data right after
DIRECT_LAYOUT = CsvLayout(header_row_index=0, data_start_index=1)

_INDEX_CELL_RE = re.compile(r"^[\d,]+$")
# Data lines start with a whole-number row id; anything else continues a quoted field
_DATA_LINE_RE = re.compile(r"^\d+,")


def detect_csv_layout(first_line: str) -> CsvLayout:
    """
    Pick the header convention of a CSV export from its first line.

    Exports that start with a column-index row (``key,0,1,2,...``) put the
    names on the second line and the types on the third. Everything else is
    treated as a plain header line.
    """
    line = first_line.lstrip("\ufeff").strip()
    first_cell = line.split(",", 1)[0].strip('"')
    if line.startswith("key,") or _INDEX_CELL_RE.match(first_cell):
        return INDEXED_LAYOUT
    return DIRECT_LAYOUT


def split_csv_line(line: str) -> list[str]:
    """Split one CSV line on commas, honouring double-quoted fields."""
    if not line:
        return []
    return next(csv.reader([line]), [])


def parse_csv_text(text: str) -> list[RawRecord]:
    """Parse a remote CSV export into records keyed by column name."""
    lines = text.splitlines()
    if len(lines) < 2:
        return []

    layout = detect_csv_layout(lines[0])
    if len(lines) <= layout.header_row_index:
        return []

    headers = [h.strip().strip('"') for h in split_csv_line(lines[layout.header_row_index].lstrip("\ufeff"))]

    records: list[RawRecord] = []
    for line in lines[layout.data_start_index:]:
        if not _DATA_LINE_RE.match(line):
            continue
        values = split_csv_line(line)
        records.append(
            {header: (values[i] if i < len(values) else "") for i, header in enumerate(headers)}
        )
    return records


# =============================================================================
# HTTP Fetch
# =============================================================================

async def _get(client: httpx.AsyncClient, url: str) -> httpx.Response:
    """
    Issue a single GET.

    Raises:
        RemoteFetchError: On a transport error or a non-2xx status
    """
    try:
        response = await client.get(url)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise RemoteFetchError(f"HTTP {e.response.status_code} for {url}") from e
    except httpx.HTTPError as e:
        raise RemoteFetchError(f"Request failed for {url}: {e}") from e
    return response


async def fetch_remote_json(client: httpx.AsyncClient, url: str) -> Any | None:
    """Fetch and decode a JSON document; ``None`` on any failure."""
    try:
        response = await _get(client, url)
        return response.json()
    except RemoteFetchError as e:
        logger.warning(f"Failed to fetch {url}: {e}")
    except ValueError as e:
        logger.warning(f"Invalid JSON from {url}: {e}")
    return None


async def fetch_remote_csv(client: httpx.AsyncClient, url: str) -> list[RawRecord]:
    """Fetch and parse a CSV export; ``[]`` on any failure."""
    try:
        response = await _get(client, url)
        records = parse_csv_text(response.text)
    except RemoteFetchError as e:
        logger.warning(f"Failed to fetch CSV {url}: {e}")
        return []
    except (ValueError, csv.Error) as e:
        logger.warning(f"Invalid CSV from {url}: {e}")
        return []

    logger.debug(f"Fetched {len(records)} rows from {url}")
    return records


async def fetch_feed(client: httpx.AsyncClient, feed: Feed) -> Any:
    """Fetch one feed according to its format."""
    if feed.format == "csv":
        return await fetch_remote_csv(client, feed.url)
    return await fetch_remote_json(client, feed.url)


async def fetch_documents(
    client: httpx.AsyncClient,
    names: Iterable[str],
    concurrency: int = DEFAULT_CONCURRENCY,
    feeds: dict[str, Feed] | None = None,
) -> dict[str, Any]:
    """
    Fetch a set of independent feeds concurrently and join.

    Args:
        client: Shared HTTP client
        names: Feed names to fetch (keys of ``feeds``)
        concurrency: Maximum requests in flight
        feeds: Feed registry, defaults to ``FEEDS``

    Returns:
        Mapping of feed name to decoded document; failed JSON feeds map to
        ``None`` and failed CSV feeds to ``[]``
    """
    registry = FEEDS if feeds is None else feeds
    names = list(names)
    semaphore = asyncio.Semaphore(concurrency)

    async def _fetch_one(name: str) -> Any:
        async with semaphore:
            return await fetch_feed(client, registry[name])

    results = await asyncio.gather(*(_fetch_one(n) for n in names), return_exceptions=True)

    documents: dict[str, Any] = {}
    for name, result in zip(names, results):
        if isinstance(result, Exception):
            logger.warning(f"Fetch task for {name} failed: {result}")
            result = [] if registry[name].format == "csv" else None
        documents[name] = result
    return documents
