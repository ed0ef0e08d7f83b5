"""Summary: Tests for the suggestion cache and suggestion actions.

Importance: The cache decides how often every provider is hit.
Alternatives: Rely on provider-side rate limits.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from taskdeck.models import Suggestion
from taskdeck.services import (
    CACHE_KEY,
    DISMISSED_KEY,
    LAST_FETCH_KEY,
    SuggestionCache,
    SuggestionService,
    TaskService,
)
from taskdeck.storage.sqlite_store import SqliteStore


class CountingFetch:
    """Summary: Fetch stub that counts calls and returns a fixed batch."""

    def __init__(self, suggestions: list[Suggestion]) -> None:
        self.suggestions = suggestions
        self.calls = 0

    async def __call__(self) -> list[Suggestion]:
        self.calls += 1
        return list(self.suggestions)


class FakeClock:
    def __init__(self, now: float) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _suggestion(suggestion_id: str = "email_1", score: int = 90) -> Suggestion:
    return Suggestion(
        id=suggestion_id,
        title="Reply to email from Jane: Budget",
        source="email",
        source_id=suggestion_id.split("_", 1)[1],
        priority="high",
        score=score,
        context="From Jane",
    )


def _store(tmp_path: Path) -> SqliteStore:
    store = SqliteStore(str(tmp_path / "cache.db"))
    store.initialize()
    return store


def test_cache_returns_identical_results_within_ttl(tmp_path: Path) -> None:
    """Summary: Verify repeated reads inside the TTL do not refetch.

    Importance: Opening the feed twice must not hit every provider twice.
    Alternatives: Cache for a shorter period.
    """

    fetch = CountingFetch([_suggestion()])
    clock = FakeClock(1_000_000.0)
    cache = SuggestionCache(store=_store(tmp_path), fetch=fetch, clock=clock)

    first = asyncio.run(cache.get())
    clock.now += 3600
    second = asyncio.run(cache.get())

    assert first == second
    assert fetch.calls == 1


def test_cache_refetches_after_ttl(tmp_path: Path) -> None:
    fetch = CountingFetch([_suggestion()])
    clock = FakeClock(1_000_000.0)
    cache = SuggestionCache(store=_store(tmp_path), fetch=fetch, clock=clock)

    asyncio.run(cache.get())
    clock.now += 24 * 3600 + 1
    asyncio.run(cache.get())

    assert fetch.calls == 2


def test_cache_never_serves_an_empty_batch(tmp_path: Path) -> None:
    """Summary: Verify an empty cached batch is treated as stale.

    Importance: A feed that came back empty is retried on the next read.
    Alternatives: Cache empty results for the full TTL.
    """

    fetch = CountingFetch([])
    cache = SuggestionCache(store=_store(tmp_path), fetch=fetch, clock=FakeClock(10.0))

    asyncio.run(cache.get())
    asyncio.run(cache.get())

    assert fetch.calls == 2


def test_force_refresh_bypasses_ttl_and_persists(tmp_path: Path) -> None:
    store = _store(tmp_path)
    fetch = CountingFetch([_suggestion()])
    cache = SuggestionCache(store=store, fetch=fetch, clock=FakeClock(500.0))

    asyncio.run(cache.get())
    asyncio.run(cache.get(force_refresh=True))

    assert fetch.calls == 2
    assert store.get(CACHE_KEY)[0]["id"] == "email_1"
    assert store.get(LAST_FETCH_KEY) == 500.0


def test_dismiss_records_id_and_refreshes(tmp_path: Path) -> None:
    """Summary: Verify dismissing persists the id and forces a refetch.

    Importance: A dismissed suggestion must not be shown again from the cache.
    Alternatives: Filter dismissed ids only on read.
    """

    store = _store(tmp_path)
    fetch = CountingFetch([_suggestion()])
    cache = SuggestionCache(store=store, fetch=fetch, clock=FakeClock(0.0))
    service = SuggestionService(store=store, tasks=TaskService(store=store), cache=cache)

    asyncio.run(cache.get())
    asyncio.run(service.dismiss("email_1"))
    asyncio.run(service.dismiss("email_1"))

    assert store.get(DISMISSED_KEY) == ["email_1"]
    assert fetch.calls == 3


def test_accept_creates_task_from_cached_suggestion(tmp_path: Path) -> None:
    store = _store(tmp_path)
    tasks = TaskService(store=store)
    cache = SuggestionCache(store=store, fetch=CountingFetch([_suggestion()]), clock=FakeClock(0.0))
    service = SuggestionService(store=store, tasks=tasks, cache=cache)

    asyncio.run(cache.get())
    task = asyncio.run(service.accept("email_1"))

    assert task.title == "Reply to email from Jane: Budget"
    assert task.source == "email"
    assert task.source_id == "1"
    assert task.priority == "high"
    assert [item.id for item in tasks.list_tasks()] == [task.id]
    assert "email_1" in service.dismissed_ids()


def test_accept_unknown_suggestion_raises(tmp_path: Path) -> None:
    store = _store(tmp_path)
    cache = SuggestionCache(store=store, fetch=CountingFetch([]), clock=FakeClock(0.0))
    service = SuggestionService(store=store, tasks=TaskService(store=store), cache=cache)

    with pytest.raises(ValueError):
        asyncio.run(service.accept("missing"))
