"""Summary: Tests for SQLite storage layer.

Importance: Ensures persistence behaves as expected for credentials, tasks, and caches.
Alternatives: Rely on manual testing for storage operations.
"""

from __future__ import annotations

from pathlib import Path

from taskdeck.storage.sqlite_store import SqliteStore


def _store(tmp_path: Path) -> SqliteStore:
    store = SqliteStore(str(tmp_path / "test.db"))
    store.initialize()
    return store


def test_store_round_trips_json_values(tmp_path: Path) -> None:
    """Summary: Verify values of different JSON shapes are stored and read back.

    Importance: Tasks are lists of objects while fetch timestamps are plain numbers.
    Alternatives: Store every value as text.
    """

    store = _store(tmp_path)
    store.set("tasks", [{"id": "1", "title": "Hello"}])
    store.set("smart_suggestions_last_fetch", 1700000000.5)
    store.set("userSettings", {"jiraEnabled": True})

    assert store.get("tasks") == [{"id": "1", "title": "Hello"}]
    assert store.get("smart_suggestions_last_fetch") == 1700000000.5
    assert store.get("userSettings") == {"jiraEnabled": True}


def test_store_get_returns_default_for_missing_key(tmp_path: Path) -> None:
    store = _store(tmp_path)
    assert store.get("missing") is None
    assert store.get("missing", []) == []


def test_store_set_replaces_existing_value(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.set("google_access_token", "old")
    store.set("google_access_token", "new")
    assert store.get("google_access_token") == "new"


def test_store_delete_reports_existence(tmp_path: Path) -> None:
    """Summary: Verify deletion reports whether the key existed and leaves other keys alone.

    Importance: Disconnecting a provider removes only that provider's keys.
    Alternatives: Clear the whole store on disconnect.
    """

    store = _store(tmp_path)
    store.set("slack_access_token", "a")
    store.set("slack_refresh_token", "b")

    assert store.delete("slack_access_token") is True
    assert store.delete("slack_access_token") is False
    assert store.get("slack_access_token") is None
    assert store.get("slack_refresh_token") == "b"


def test_store_survives_reopen(tmp_path: Path) -> None:
    _store(tmp_path).set("dismissed_suggestions", ["email_1"])
    assert _store(tmp_path).get("dismissed_suggestions") == ["email_1"]
