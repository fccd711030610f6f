"""
Tests for the build pipeline and the command line entry point.

Runs the whole pipeline against a small local dump written to ``tmp_path``
and a mocked HTTP client serving a handful of remote feeds. Feeds the mock
does not know answer 404, which exercises the fail-soft paths.
"""

import asyncio
import json
import httpx
import pytest
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

from xivdata.config import BuildSettings, DataRepoNotFoundError, load_settings
from xivdata.main import main, parse_args
from xivdata.pipeline import BuildPipeline, BuildSummary, write_document


def run_async(coro):
    """Helper to run async code in sync tests."""
    return asyncio.run(coro)


# =============================================================================
# Sample Data
# =============================================================================

SAMPLE_TABLES = {
    "Item": (
        ["#", "Name", "Icon", "Level{Item}", "ItemUICategory", "CanBeHq", "StackSize", "Price{Mid}"],
        [
            [5, "火之碎晶", 20001, 1, 59, "False", 9999, 4],
            [1601, "青銅劍", 30001, 15, 1, "True", 1, 120],
            [7, "", 0, 1, 59, "False", 1, 0],
        ],
    ),
    "ItemUICategory": (["#", "Name"], [[1, "單手劍"], [59, "素材"], [60, "未使用"]]),
    "Recipe": (
        ["#", "CraftType", "RecipeLevelTable", "Item{Result}", "Amount{Result}",
         "Item{Ingredient}[0]", "Amount{Ingredient}[0]"],
        [[1, 0, 5, 1601, 1, 5, 3]],
    ),
    "CraftType": (["#", "Name"], [[0, "木工"], [1, "鍛造"]]),
    "RecipeLevelTable": (
        ["#", "ClassJobLevel", "Stars", "Difficulty", "Quality", "Durability"],
        [[5, 5, 0, 50, 200, 60]],
    ),
    "GilShopItem": (["#", "Item"], [["262144.0", 5], ["262144.1", 1601]]),
    "PlaceName": (["#", "Name"], [[128, "利姆薩·羅敏薩上層甲板"]]),
    "Map": (
        ["#", "Id", "PlaceName", "SizeFactor", "Offset{X}", "Offset{Y}"],
        [[1, "default/00", 0, 100, 0, 0], [11, "s1t1/00", 128, 200, 0, 0]],
    ),
    "ContentFinderCondition": (["#", "ContentType", "Content", "Name"], [[4, 2, 1, "托托·拉克千獄"]]),
}

SAMPLE_EXTRACTS = {
    "5": {
        "sources": [
            {
                "type": 3,
                "data": [{"npcId": 1001, "zoneId": 128, "coords": {"x": 11.0, "y": 10.0}, "price": 4}],
            },
        ],
    },
}

SAMPLE_FEEDS = {
    "/json/item-patch.json": {"5": 1, "1601": 1},
    "/json/patch-names.json": {"1": {"version": "2.0"}},
    "/extracts/extracts.json": SAMPLE_EXTRACTS,
    "/json/npcs.json": {"1001": {"ja": "ベンダー"}},
    "csv/en/Item.csv": "key,0\n#,Name\nint32,str\n5,Fire Shard\n1601,Bronze Gladius\n",
    "csv/ja/Item.csv": "key,0\n#,Name\nint32,str\n5,ファイアシャード\n",
    "ffxiv-datamining-cn/master/Quest.csv": "key,0\n#,Name\nint32,str\n65536,第一次\n",
    "ffxiv-datamining-cn/master/ContentFinderCondition.csv": "key,0\n#,Name\nint32,str\n4,托托·拉克千狱\n",
    "csv/en/RecipeLevelTable.csv": "#,ClassJobLevel,Stars,Difficulty,Quality,Durability\n5,5,0,50,200,60\n",
}


def _mock_response(payload) -> MagicMock:
    if isinstance(payload, str):
        return MagicMock(status_code=200, text=payload, raise_for_status=MagicMock())
    return MagicMock(
        status_code=200,
        json=MagicMock(return_value=payload),
        raise_for_status=MagicMock(),
    )


def _build_mock_client(url_responses: dict) -> AsyncMock:
    """Mock httpx.AsyncClient answering URLs by substring, 404 otherwise."""
    mock_client = AsyncMock()

    def get_side_effect(url: str):
        for pattern, payload in url_responses.items():
            if pattern in url:
                return _mock_response(payload)
        mock_resp = MagicMock(status_code=404)

        def raise_status():
            raise httpx.HTTPStatusError(
                "404 Not Found", request=MagicMock(), response=mock_resp
            )

        mock_resp.raise_for_status = raise_status
        return mock_resp

    mock_client.get = AsyncMock(side_effect=get_side_effect)
    return mock_client


def _write_dump(data_dir: Path, write_table) -> None:
    for name, (headers, rows) in SAMPLE_TABLES.items():
        write_table(data_dir / "csv" / f"{name}.csv", headers, rows)


def _read(path: Path):
    return json.loads(path.read_text(encoding="utf-8"))


@pytest.fixture
def settings(tmp_path, write_table):
    data_dir = tmp_path / "datamining"
    _write_dump(data_dir, write_table)
    return BuildSettings(data_dir=data_dir, output_dir=tmp_path / "out")


@pytest.fixture
def built(settings):
    """Run the pipeline once and return (settings, summary, client)."""
    client = _build_mock_client(SAMPLE_FEEDS)
    summary = run_async(BuildPipeline(settings, client=client).run())
    return settings, summary, client


# =============================================================================
# Pipeline
# =============================================================================

class TestBuildPipeline:
    """End-to-end pipeline run."""

    def test_writes_every_artifact(self, built):
        settings, _, _ = built
        written = {p.name for p in settings.output_dir.iterdir()}

        assert written == {
            "items.json",
            "recipes.json",
            "gathering.json",
            "sources.json",
            "trades.json",
            "zone-maps.json",
            "quest-cn-names.json",
            "instance-cn-names.json",
            "item-names-multi.json",
            "items-index.json",
            "recipe-levels.json",
        }

    def test_summary(self, built):
        _, summary, _ = built

        assert summary.items == 2
        assert summary.recipes == 1
        assert summary.gathering_points == 0
        assert summary.zone_maps == 1
        assert summary.multilingual_names == 2
        assert summary.recipe_levels == 1

    def test_items_document(self, built):
        settings, _, _ = built
        data = _read(settings.output_dir / "items.json")

        assert set(data["items"]) == {"5", "1601"}
        gladius = data["items"]["1601"]
        assert gladius["categoryName"] == "單手劍"
        assert gladius["isCraftable"] is True
        assert gladius["patch"] == "2.0"
        assert {c["id"] for c in data["categories"]} == {1, 59}

    def test_recipe_scaled_from_level(self, built):
        settings, _, _ = built
        recipe = _read(settings.output_dir / "recipes.json")["recipes"]["1601"][0]

        assert recipe["craftTypeName"] == "木工"
        assert recipe["classJobLevel"] == 5
        assert recipe["difficulty"] == 50
        assert recipe["ingredients"] == [{"itemId": 5, "amount": 3}]

    def test_vendor_replaces_gil_shop(self, built):
        settings, _, _ = built
        sources = _read(settings.output_dir / "sources.json")["sources"]

        assert [s["type"] for s in sources["5"]] == ["vendor"]
        vendor = sources["5"][0]["vendors"][0]
        assert vendor["npcName"] == "ベンダー"
        assert vendor["zoneName"] == "利姆薩·羅敏薩上層甲板"
        assert [s["type"] for s in sources["1601"]] == ["gilshop"]
        assert sources["1601"][0]["price"] == 120

    def test_locale_documents(self, built):
        settings, _, _ = built
        out = settings.output_dir

        assert _read(out / "quest-cn-names.json") == {"65536": "第一次"}
        assert _read(out / "instance-cn-names.json") == {"托托·拉克千獄": "托托·拉克千狱"}
        assert _read(out / "item-names-multi.json")["5"] == {"en": "Fire Shard", "ja": "ファイアシャード"}
        levels = _read(out / "recipe-levels.json")
        assert levels["5"]["durability"] == 60
        assert levels["5"]["progress_divider"] == 50

    def test_index_matches_items(self, built):
        settings, _, _ = built
        index = _read(settings.output_dir / "items-index.json")
        items = _read(settings.output_dir / "items.json")["items"]

        assert index["fields"][-3:] == ["en", "ja", "cn"]
        assert {str(row[0]) for row in index["items"]} == set(items)
        gladius = next(row for row in index["items"] if row[0] == 1601)
        assert gladius[-3:] == ["Bronze Gladius", "", ""]

    def test_zone_maps(self, built):
        settings, _, _ = built
        maps = _read(settings.output_dir / "zone-maps.json")["maps"]

        assert maps == {
            "利姆薩·羅敏薩上層甲板": {
                "id": 11, "path": "s1t1/s1t1.00", "sizeFactor": 200,
                "offsetX": 0, "offsetY": 0, "aetherytes": [],
            },
        }

    def test_feeds_fetched_once(self, built):
        _, _, client = built
        urls = [call.args[0] for call in client.get.call_args_list]

        assert len(urls) == len(set(urls))

    def test_missing_feeds_skip_optional_documents(self, settings):
        client = _build_mock_client({})
        summary = run_async(BuildPipeline(settings, client=client).run())
        written = {p.name for p in settings.output_dir.iterdir()}

        assert "quest-cn-names.json" not in written
        assert "instance-cn-names.json" not in written
        assert "recipe-levels.json" not in written
        assert "desynth-results.json" not in written
        assert summary.items == 2
        sources = _read(settings.output_dir / "sources.json")["sources"]
        assert [s["type"] for s in sources["5"]] == ["gilshop"]

    def test_wrong_shaped_feeds_do_not_abort(self, settings):
        feeds = {
            **SAMPLE_FEEDS,
            "/extracts/extracts.json": [{"sources": []}],
            "/json/maps.json": [1, 2],
            "/json/item-patch.json": ["5", "1601"],
            "/json/npcs.json": [1001],
        }
        summary = run_async(BuildPipeline(settings, client=_build_mock_client(feeds)).run())
        out = settings.output_dir

        assert _read(out / "gathering.json")["points"] == {}
        assert summary.items == 2
        assert "patch" not in _read(out / "items.json")["items"]["1601"]
        sources = _read(out / "sources.json")["sources"]
        assert [s["type"] for s in sources["5"]] == ["gilshop"]
        assert (out / "items-index.json").exists()

    def test_missing_data_repo(self, tmp_path):
        settings = BuildSettings(data_dir=tmp_path / "missing", output_dir=tmp_path / "out")
        with pytest.raises(DataRepoNotFoundError):
            run_async(BuildPipeline(settings, client=_build_mock_client({})).run())
        assert not (tmp_path / "out").exists()


class TestBuildSummary:
    """Test the run summary."""

    def test_str(self):
        assert str(BuildSummary()) == "empty"
        assert str(BuildSummary(items=3, zone_maps=1)) == "3 items, 1 zone maps"

    def test_to_dict(self):
        assert BuildSummary(recipes=2).to_dict()["recipes"] == 2


class TestWriteDocument:
    """Test artifact serialization."""

    def test_compact_utf8(self, tmp_path):
        path = tmp_path / "doc.json"
        write_document(path, {"name": "青銅劍", "ids": [1, 2]})

        assert path.read_text(encoding="utf-8") == '{"name":"青銅劍","ids":[1,2]}'


# =============================================================================
# Configuration and CLI
# =============================================================================

class TestLoadSettings:
    """Test settings resolution."""

    def test_environment(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("DATA_REPO_PATH", str(tmp_path / "dump"))
        monkeypatch.setenv("XIVDATA_OUTPUT_DIR", str(tmp_path / "public"))
        monkeypatch.setenv("XIVDATA_FETCH_CONCURRENCY", "2")

        settings = load_settings()

        assert settings.data_dir == tmp_path / "dump"
        assert settings.csv_dir == tmp_path / "dump" / "csv"
        assert settings.output_dir == tmp_path / "public"
        assert settings.fetch_concurrency == 2

    def test_arguments_win(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("DATA_REPO_PATH", str(tmp_path / "dump"))

        settings = load_settings(data_dir=tmp_path / "other")

        assert settings.data_dir == tmp_path / "other"
        assert settings.table_path("Item") == tmp_path / "other" / "csv" / "Item.csv"


class TestMain:
    """Test the command line entry point."""

    def test_parse_args(self):
        args = parse_args(["--data-dir", "dump", "-v"])
        assert args.data_dir == Path("dump")
        assert args.output_dir is None
        assert args.verbose is True

    def test_missing_data_repo_exits(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        with pytest.raises(SystemExit) as exc_info:
            main(["--data-dir", str(tmp_path / "missing"), "--output-dir", str(tmp_path / "out")])
        assert exc_info.value.code == 1

    def test_invalid_setting_exits(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("XIVDATA_FETCH_CONCURRENCY", "many")
        with pytest.raises(SystemExit) as exc_info:
            main(["--data-dir", str(tmp_path), "--output-dir", str(tmp_path / "out")])
        assert exc_info.value.code == 1
        assert not (tmp_path / "out").exists()
