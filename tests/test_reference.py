"""
Tests for reference tables and locale fallback resolvers.
"""

from xivdata.reference import (
    InstanceNameResolver,
    JobInfo,
    LocalizedNameResolver,
    ReferenceTable,
    build_base_params,
    build_categories,
    build_craft_types,
    build_job_categories,
    build_patch_labels,
    build_recipe_levels,
    build_secret_recipe_books,
    compound_key,
    normalize_english_name,
)


# =============================================================================
# Sample Rows
# =============================================================================

SAMPLE_CLASS_JOB_ROWS = [
    {"#": "1", "Abbreviation": "GLA", "Name": "劍術師"},
    {"#": "19", "Abbreviation": "PLD", "Name": "騎士"},
    {"#": "8", "Abbreviation": "CRP", "Name": "刻木匠"},
]

SAMPLE_LOCAL_CFC_ROWS = [
    {"#": "1", "Content": "5", "ContentType": "2", "Name": "托托·拉克千獄"},
    {"#": "2", "Content": "5", "ContentType": "4", "Name": "伊弗利特討伐戰"},
]

SAMPLE_ENGLISH_CFC_ROWS = [
    {"#": "1", "Content": "5", "ContentType": "2", "Name": "The Thousand Maws of Toto–Rak"},
    {"#": "2", "Content": "5", "ContentType": "4", "Name": "The Bowl of Embers"},
]

SAMPLE_INSTANCES = {
    "5": {"en": "The Thousand Maws of Toto-Rak", "contentType": 2},
    "77": {"en": "The Bowl Of Embers", "contentType": 9},
    "88": {"en": "Unmapped Duty", "contentType": 3},
    "99": {"contentType": 3},
}


# =============================================================================
# Test: ReferenceTable
# =============================================================================

class TestReferenceTable:
    """Test the id-keyed lookup invariants."""

    def test_drops_non_positive_keys(self):
        table = ReferenceTable([(0, "zero"), (-1, "neg"), (3, "three")])
        assert dict(table) == {3: "three"}

    def test_drops_empty_values(self):
        table = ReferenceTable([(1, ""), (2, None), (3, "ok")])
        assert list(table) == [3]

    def test_min_key_zero_keeps_zero(self):
        table = ReferenceTable([(0, "zero")], min_key=0)
        assert table[0] == "zero"

    def test_later_entry_wins(self):
        table = ReferenceTable([(1, "a"), (1, "b")])
        assert table[1] == "b"

    def test_mapping_protocol(self):
        table = ReferenceTable([(1, "a")], name="things")
        assert 1 in table
        assert table.get(2) is None
        assert len(table) == 1
        assert "things" in repr(table)

    def test_from_rows(self):
        rows = [{"#": "1", "Name": " a "}, {"#": "x", "Name": "b"}]
        table = ReferenceTable.from_rows(rows, lambda row: row["Name"].strip())
        assert dict(table) == {1: "a"}


# =============================================================================
# Test: Table Builders
# =============================================================================

class TestTableBuilders:
    """Test the concrete reference kinds."""

    def test_categories(self):
        table = build_categories([{"#": "1", "Name": "單手劍"}, {"#": "2", "Name": ""}])
        assert table[1].name == "單手劍"
        assert 2 not in table

    def test_base_params_strip_hex_markup(self):
        table = build_base_params([{"#": "1", "Name": "<hex:02101D01>力量<hex:03>"}])
        assert table[1] == "力量"

    def test_job_categories_membership(self):
        class_jobs = ReferenceTable.from_rows(
            SAMPLE_CLASS_JOB_ROWS, lambda row: JobInfo(row["Abbreviation"], row["Name"])
        )
        rows = [
            {"#": "38", "GLA": "True", "PLD": "True", "CRP": "False"},
            {"#": "39", "GLA": "False", "PLD": "False", "CRP": "False"},
        ]
        table = build_job_categories(rows, class_jobs)

        assert table[38] == "GLA PLD"
        assert 39 not in table

    def test_craft_type_zero_is_kept(self):
        table = build_craft_types([{"#": "0", "Name": "刻木匠"}, {"#": "1", "Name": "鍛鐵匠"}])
        assert table[0].name == "刻木匠"
        assert len(table) == 2

    def test_recipe_levels(self):
        table = build_recipe_levels([{
            "#": "100", "ClassJobLevel": "50", "Stars": "1",
            "SuggestedCraftsmanship": "300", "Difficulty": "1000", "Quality": "4000", "Durability": "80",
        }])
        level = table[100]
        assert level.class_job_level == 50
        assert level.difficulty == 1000
        assert level.durability == 80

    def test_secret_recipe_books(self):
        table = build_secret_recipe_books([{"#": "3", "Item": "12345"}, {"#": "4", "Item": "0"}])
        assert table[3] == 12345
        assert 4 not in table

    def test_patch_labels(self):
        labels = build_patch_labels({"1": 2, "5": 99}, {"2": {"version": "6.4"}})
        assert labels == {1: "6.4"}

    def test_patch_labels_missing_documents(self):
        assert build_patch_labels(None, {"2": {"version": "6.4"}}) == {}
        assert build_patch_labels({"1": 2}, None) == {}


# =============================================================================
# Test: Locale Resolvers
# =============================================================================

class TestLocalizedNameResolver:
    """Test the local -> ja -> en -> placeholder chain."""

    REMOTE = {
        "10": {"ja": "リムサ", "en": "Limsa"},
        "11": {"en": "Gridania"},
        "12": {},
    }

    def test_local_first(self):
        resolver = LocalizedNameResolver({10: "利姆薩"}, self.REMOTE, default="?")
        assert resolver.resolve(10) == "利姆薩"

    def test_remote_ja_then_en(self):
        resolver = LocalizedNameResolver({}, self.REMOTE, default="?")
        assert resolver.resolve(10) == "リムサ"
        assert resolver.resolve(11) == "Gridania"

    def test_placeholder(self):
        resolver = LocalizedNameResolver({}, self.REMOTE, default="?")
        assert resolver.resolve(12) == "?"
        assert resolver.resolve(13) == "?"
        assert resolver.resolve(0) == "?"
        assert resolver.resolve(13, default="none") == "none"

    def test_missing_remote_document(self):
        resolver = LocalizedNameResolver({}, None)
        assert resolver.resolve(10) == ""


class TestInstanceNameResolver:
    """Test compound key resolution of duty names."""

    def _resolver(self):
        return InstanceNameResolver(SAMPLE_LOCAL_CFC_ROWS, SAMPLE_ENGLISH_CFC_ROWS, SAMPLE_INSTANCES)

    def test_compound_key(self):
        assert compound_key(2, 5) == "2-5"

    def test_normalize_english_name(self):
        assert normalize_english_name(" Toto–Rak—X ") == "toto-rak-x"

    def test_compound_key_takes_precedence(self):
        resolver = self._resolver()
        assert resolver.by_compound_key["2-5"] == "托托·拉克千獄"
        assert resolver.by_compound_key["4-5"] == "伊弗利特討伐戰"
        assert resolver.resolve(5) == "托托·拉克千獄"

    def test_english_name_fallback(self):
        # "9-77" misses; the normalized English name maps to the local name
        assert self._resolver().resolve(77) == "伊弗利特討伐戰"

    def test_raw_english_fallback(self):
        assert self._resolver().resolve(88) == "Unmapped Duty"

    def test_placeholder(self):
        resolver = self._resolver()
        assert resolver.resolve(99) == "副本 #99"
        assert resolver.resolve(1234) == "副本 #1234"

    def test_negative_ids_use_absolute_value(self):
        assert self._resolver().resolve(-5) == "托托·拉克千獄"

    def test_content_type(self):
        resolver = self._resolver()
        assert resolver.content_type(5) == 2
        assert resolver.content_type(1234) == 0
