# tests/test_search.py
"""
Tests for SearchIndex: ranked, read-only search over command statistics.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from modeshell import db as modeshell_db
from modeshell.search import SearchIndex, SearchResult
from modeshell.store import SQLiteStore


@pytest.fixture(autouse=True)
def data_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    data = tmp_path / "data_home"
    data.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("MODESHELL_DATA_HOME", str(data))
    return data


@pytest.fixture
def store(tmp_path: Path) -> SQLiteStore:
    path = tmp_path / "history.db"
    modeshell_db.ensure_schema(path)
    return SQLiteStore(path)


@pytest.fixture
def index(store: SQLiteStore) -> SearchIndex:
    return SearchIndex(store)


class RecordingStore:
    """Captures which store query the index issued."""

    def __init__(self):
        self.calls: list[tuple] = []

    def list_command_stats(self, limit: int = 50, sort_field: str = "last_used"):
        self.calls.append(("list", limit, sort_field))
        return []

    def search_command_stats(self, term: str, limit: int = 20):
        self.calls.append(("search", term, limit))
        return [{"command": "git log", "exec_count": 2, "last_used": "t"}]


# ----------------------------------------------------------------
# Query shapes
# ----------------------------------------------------------------


def test_blank_query_returns_nothing(index: SearchIndex, store: SQLiteStore) -> None:
    store.upsert_command_stat("ls")

    assert index.search("") == []
    assert index.search("   ") == []


def test_wildcard_lists_everything_newest_first(
    index: SearchIndex, store: SQLiteStore
) -> None:
    store.upsert_command_stat("ls")
    store.upsert_command_stat("pwd")
    store.upsert_command_stat("ls")

    results = index.search("**")

    assert [r.command for r in results] == ["ls", "pwd"]
    assert results[0].exec_count == 2


def test_wildcard_uses_list_all_limit() -> None:
    fake = RecordingStore()
    SearchIndex(fake).search("**")  # type: ignore[arg-type]
    assert fake.calls == [("list", 100, "last_used")]


def test_substring_uses_result_limit() -> None:
    fake = RecordingStore()
    results = SearchIndex(fake).search("  git ")  # type: ignore[arg-type]

    assert fake.calls == [("search", "git", 20)]
    assert results == [SearchResult("git log", 2, "t")]


def test_limits_come_from_config() -> None:
    fake = RecordingStore()
    index = SearchIndex(  # type: ignore[arg-type]
        fake, {"wildcard": "*", "list_all_limit": 5, "result_limit": 3}
    )

    index.search("*")
    index.search("x")

    assert fake.calls == [("list", 5, "last_used"), ("search", "x", 3)]


def test_substring_is_case_insensitive_and_ranked(
    index: SearchIndex, store: SQLiteStore
) -> None:
    store.upsert_command_stat("docker ps")
    store.upsert_command_stat("Docker images")
    store.upsert_command_stat("Docker images")
    store.upsert_command_stat("ls")

    results = index.search("DOCKER")

    assert [r.command for r in results] == ["Docker images", "docker ps"]


def test_no_match(index: SearchIndex, store: SQLiteStore) -> None:
    store.upsert_command_stat("ls")
    assert index.search("zzz") == []


def test_result_label_shows_count() -> None:
    assert SearchResult("git status", 3).label == "git status (3×)"


# ----------------------------------------------------------------
# Delete / count
# ----------------------------------------------------------------


def test_delete_removes_exact_command(index: SearchIndex, store: SQLiteStore) -> None:
    store.upsert_command_stat("ls")
    store.upsert_command_stat("ls -la")

    assert index.delete("ls") is True
    assert [r.command for r in index.search("ls")] == ["ls -la"]
    assert index.count() == 1


def test_delete_missing_leaves_count(index: SearchIndex, store: SQLiteStore) -> None:
    store.upsert_command_stat("ls")

    assert index.delete("nope") is False
    assert index.count() == 1
