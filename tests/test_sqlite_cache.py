"""Tests for SQLiteCache (SQLite + sqlite-vec).

Tests cover:
    - Schema creation, in-memory and on-disk databases, reopening
    - Record round-trip through the records and embeddings tables
    - Replacing keys without leaking embedding rows
    - Dimension checks on write and query
    - KNN search with tag pre-filtering (exact membership, no substring hits)
    - Tag clearing, prefix clearing, and LIKE wildcard escaping
"""

from pathlib import Path

import pytest

pytest.importorskip("sqlite_vec")

from embedstore.cache import Record, SQLiteCache  # noqa: E402
from embedstore.core.exceptions import DimensionMismatchError  # noqa: E402
from shared_mocks import PREFIX, make_record  # noqa: E402

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def sqlite_cache():
    cache = SQLiteCache(PREFIX, embedding_length=2)
    yield cache
    cache.close()


def _count(cache: SQLiteCache, table: str) -> int:
    return cache.conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]


# ============================================================================
# Storage
# ============================================================================


class TestSQLiteStorage:
    """Tests for the table layout and point operations."""

    def test_defaults(self, sqlite_cache: SQLiteCache):
        assert sqlite_cache.filename == ":memory:"
        assert sqlite_cache.embedding_length == 2
        assert sqlite_cache.size() == 0

    def test_round_trip(self, sqlite_cache: SQLiteCache):
        record = make_record("foo", [0.25, 0.5], tags=["b", "a"], source="https://example.com/x")
        sqlite_cache.set("k", record)

        loaded = sqlite_cache.get("k")
        assert isinstance(loaded, Record)
        assert loaded.text == "foo"
        assert loaded.embedding == [0.25, 0.5]
        assert loaded.norm == pytest.approx(record.norm)
        assert loaded.source == "https://example.com/x"
        assert loaded.tags == ["a", "b"]

    def test_accepts_dicts(self, sqlite_cache: SQLiteCache):
        sqlite_cache.set("k", {"text": "foo", "embedding": [1, 0], "norm": 1.0})
        assert sqlite_cache.get("k").embedding == [1.0, 0.0]

    def test_missing(self, sqlite_cache: SQLiteCache):
        assert sqlite_cache.get("nope") is None
        assert not sqlite_cache.exists("nope")
        assert sqlite_cache.delete("nope") is False

    def test_replace_does_not_leak_embeddings(self, sqlite_cache: SQLiteCache):
        sqlite_cache.set("k", make_record("foo", [0.1, 0.2]))
        sqlite_cache.set("k", make_record("bar", [0.3, 0.4]))

        assert sqlite_cache.get("k").text == "bar"
        assert _count(sqlite_cache, "records") == 1
        assert _count(sqlite_cache, "embeddings") == 1

    def test_delete_removes_embedding_row(self, sqlite_cache: SQLiteCache):
        sqlite_cache.set("k", make_record("foo", [0.1, 0.2]))
        assert sqlite_cache.delete("k") is True
        assert _count(sqlite_cache, "records") == 0
        assert _count(sqlite_cache, "embeddings") == 0

    def test_wrong_embedding_length_rejected(self, sqlite_cache: SQLiteCache):
        with pytest.raises(DimensionMismatchError):
            sqlite_cache.set("k", make_record("foo", [0.1, 0.2, 0.3]))
        assert _count(sqlite_cache, "records") == 0
        assert _count(sqlite_cache, "embeddings") == 0

    def test_failed_write_rolls_back(self, sqlite_cache: SQLiteCache, monkeypatch):
        sqlite_cache.set("k", make_record("old", [0.1, 0.2]))

        def boom(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr("embedstore.cache.sqlite_cache.json.dumps", boom)
        with pytest.raises(RuntimeError):
            sqlite_cache.set("k", make_record("new", [0.3, 0.4]))
        monkeypatch.undo()

        assert sqlite_cache.get("k").text == "old"
        assert _count(sqlite_cache, "embeddings") == 1

    def test_on_disk_database_persists(self, tmp_path: Path):
        filename = tmp_path / "nested" / "store.db"
        with SQLiteCache(PREFIX, embedding_length=2, filename=filename) as cache:
            cache.set("k", make_record("foo", [0.1, 0.2], tags=["t"]))
        assert filename.exists()

        with SQLiteCache(PREFIX, embedding_length=2, filename=filename) as reopened:
            assert reopened.get("k").tags == ["t"]
            assert reopened.size() == 1

    def test_close_is_idempotent(self):
        cache = SQLiteCache(PREFIX, embedding_length=2)
        cache.close()
        cache.close()

    def test_debug_logs_query_plans(self):
        with SQLiteCache(PREFIX, embedding_length=2, debug=True) as cache:
            cache.set("k", make_record("foo", [0.1, 0.2]))
            assert cache.get("k").text == "foo"


# ============================================================================
# Prefix scoped operations
# ============================================================================


class TestSQLitePrefixes:
    def test_size_each_and_clear_scoped_to_prefix(self, sqlite_cache: SQLiteCache):
        sqlite_cache.set("a", make_record("a", [0.1, 0.2]))
        sqlite_cache.prefix = "Documents-other-"
        sqlite_cache.set("b", make_record("b", [0.1, 0.2]))

        assert sqlite_cache.size() == 1
        assert [key for key, _ in sqlite_cache.each()] == ["Documents-other-b"]
        assert len(list(sqlite_cache.full_each())) == 2
        assert sqlite_cache.collections("Documents-") == {"other", "test"}

        sqlite_cache.clear()
        assert sqlite_cache.size() == 0
        sqlite_cache.prefix = PREFIX
        assert sqlite_cache.size() == 1
        assert _count(sqlite_cache, "embeddings") == 1

    def test_like_wildcards_are_literal(self, sqlite_cache: SQLiteCache):
        sqlite_cache.prefix = "Documents-a_b-"
        sqlite_cache.set("k", make_record("x", [0.1, 0.2]))
        sqlite_cache.prefix = "Documents-axb-"
        sqlite_cache.set("k", make_record("y", [0.1, 0.2]))
        sqlite_cache.prefix = "Documents-a%-"
        sqlite_cache.set("k", make_record("z", [0.1, 0.2]))

        sqlite_cache.prefix = "Documents-a_b-"
        assert sqlite_cache.size() == 1
        sqlite_cache.prefix = "Documents-a%-"
        sqlite_cache.clear()
        sqlite_cache.prefix = "Documents-axb-"
        assert sqlite_cache.size() == 1

    def test_tags_aggregated_with_sources(self, sqlite_cache: SQLiteCache):
        sqlite_cache.set("a", make_record("a", [0.1, 0.2], tags=["x", "y"], source="one.txt"))
        sqlite_cache.set("b", make_record("b", [0.1, 0.2], tags=["y", "z"]))

        tags = sqlite_cache.tags()
        assert tags.to_list() == ["x", "y", "z"]
        assert {tag.value: tag.source for tag in tags}["x"] == "one.txt"


# ============================================================================
# Search
# ============================================================================


class TestSQLiteSearch:
    """Tests for KNN search via sqlite-vec."""

    @pytest.fixture(autouse=True)
    def _populate(self, sqlite_cache: SQLiteCache, sample_records):
        for key, record in sample_records.items():
            sqlite_cache.set(key, record)

    def test_ranking(self, sqlite_cache: SQLiteCache):
        results = sqlite_cache.find_records([1.0, 0.1])
        assert [r.text for r in results] == ["east", "northeast", "north"]
        assert results[0].key == "k-east"
        assert results[0].similarity == pytest.approx(0.995, abs=1e-3)

    def test_identical_needle_scores_one(self, sqlite_cache: SQLiteCache):
        results = sqlite_cache.find_records([0.0, 1.0])
        assert results[0].text == "north"
        assert results[0].similarity == pytest.approx(1.0, abs=1e-5)

    def test_max_records(self, sqlite_cache: SQLiteCache):
        assert len(sqlite_cache.find_records([1.0, 0.0], max_records=2)) == 2
        assert sqlite_cache.find_records([1.0, 0.0], max_records=0) == []

    def test_tag_filter(self, sqlite_cache: SQLiteCache):
        results = sqlite_cache.find_records([1.0, 0.0], tags=["diagonal"])
        assert [r.text for r in results] == ["northeast"]

    def test_tag_filter_is_exact(self, sqlite_cache: SQLiteCache):
        sqlite_cache.set("k-abc", make_record("abc", [1.0, 0.0], tags=["abc"]))
        assert [r.text for r in sqlite_cache.find_records([1.0, 0.0], tags=["a"])] == []
        assert [r.text for r in sqlite_cache.find_records([1.0, 0.0], tags=["abc"])] == ["abc"]

    def test_unknown_tag(self, sqlite_cache: SQLiteCache):
        assert sqlite_cache.find_records([1.0, 0.0], tags=["missing"]) == []

    def test_other_collections_excluded(self, sqlite_cache: SQLiteCache):
        sqlite_cache.prefix = "Documents-other-"
        sqlite_cache.set("k", make_record("elsewhere", [1.0, 0.0], tags=["compass"]))
        assert [r.text for r in sqlite_cache.find_records([1.0, 0.0])] == ["elsewhere"]
        sqlite_cache.prefix = PREFIX
        texts = [r.text for r in sqlite_cache.find_records([1.0, 0.0], tags=["compass"])]
        assert "elsewhere" not in texts

    def test_needle_length_checked(self, sqlite_cache: SQLiteCache):
        with pytest.raises(DimensionMismatchError):
            sqlite_cache.find_records([1.0, 0.0, 0.0])

    def test_zero_needle(self, sqlite_cache: SQLiteCache):
        results = sqlite_cache.find_records([0.0, 0.0])
        assert sorted(r.key for r in results) == ["k-east", "k-north", "k-northeast"]
        assert all(r.similarity == 0.0 for r in results)
        assert all(len(r.embedding) == 2 for r in results)

    def test_zero_stored_vector(self, sqlite_cache: SQLiteCache):
        sqlite_cache.set("k-zero", make_record("zero", [0.0, 0.0], tags=["compass"]))
        results = sqlite_cache.find_records([1.0, 0.0])
        assert [r.text for r in results] == ["east", "northeast", "north", "zero"]
        assert results[-1].similarity == 0.0
        assert results[-1].embedding == [0.0, 0.0]
        assert isinstance(results[-1].similarity, float)

    def test_zero_stored_vector_outside_knn_limit(self, sqlite_cache: SQLiteCache):
        for i in range(3):
            sqlite_cache.set(f"k-zero-{i}", make_record(f"zero-{i}", [0.0, 0.0], tags=["compass"]))
        results = sqlite_cache.find_records([0.0, 1.0], tags=["compass"], max_records=2)
        assert [r.text for r in results] == ["north", "east"]

    def test_find_records_for_tags(self, sqlite_cache: SQLiteCache):
        rows = sqlite_cache.find_records_for_tags(["compass"])
        assert sorted(row[1] for row in rows) == ["east", "north"]
        assert len(sqlite_cache.find_records_for_tags(None)) == 3

    def test_clear_for_tags(self, sqlite_cache: SQLiteCache):
        sqlite_cache.clear(tags=["compass"])
        assert sqlite_cache.size() == 1
        assert sqlite_cache.exists("k-northeast")
        assert _count(sqlite_cache, "embeddings") == 1
