"""Tests for persisted tab data stores."""

import pytest

from gridstream.core.cache import JsonStaleDataStore, MemoryStaleDataStore
from gridstream.core.exceptions import InputError
from gridstream.core.models import ColumnSort, TabDataCache
from tests.fakes import COLUMNS


def _cache():
    return TabDataCache(
        schema=list(COLUMNS),
        rows=[[1, "a"], [2, "b"]],
        row_offset=10,
        estimated_row_count=500,
        sort=[ColumnSort(column="name", order="desc")],
    )


@pytest.mark.unit
class TestJsonStaleDataStore:
    def test_save_and_load(self, temp_dir):
        store = JsonStaleDataStore(temp_dir)
        store.save("tab-1", _cache())
        loaded = store.load("tab-1")
        assert loaded is not None
        assert loaded.schema_ == list(COLUMNS)
        assert loaded.rows == [[1, "a"], [2, "b"]]
        assert loaded.available_row_count == 12
        assert loaded.sort[0].order == "desc"

    def test_missing_tab(self, temp_dir):
        assert JsonStaleDataStore(temp_dir).load("nope") is None

    def test_unreadable_file_is_discarded(self, temp_dir):
        store = JsonStaleDataStore(temp_dir)
        store.path_for("broken").write_text("{not json")
        assert store.load("broken") is None

    def test_delete(self, temp_dir):
        store = JsonStaleDataStore(temp_dir)
        store.save("tab-1", _cache())
        assert store.delete("tab-1")
        assert not store.delete("tab-1")
        assert store.load("tab-1") is None

    def test_tab_ids_map_to_distinct_files(self, temp_dir):
        store = JsonStaleDataStore(temp_dir)
        assert store.path_for("a/b") != store.path_for("a_b")
        assert store.path_for("a/b").parent == temp_dir

    def test_empty_tab_id(self, temp_dir):
        with pytest.raises(InputError):
            JsonStaleDataStore(temp_dir).path_for("")

    def test_creates_directory(self, temp_dir):
        store = JsonStaleDataStore(temp_dir / "nested" / "tabs")
        store.save("t", _cache())
        assert store.load("t") is not None


@pytest.mark.unit
class TestMemoryStaleDataStore:
    def test_round_trip_and_delete(self):
        store = MemoryStaleDataStore()
        assert store.load("t") is None
        store.save("t", _cache())
        assert store.load("t").real_row_count is None
        assert store.delete("t")
        assert not store.delete("t")
