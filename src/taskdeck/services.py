"""Summary: Core application services for TaskDeck.

Importance: Persists credentials, tasks, and the suggestion cache through the key-value store.
Alternatives: Build a full service layer with a dependency injection framework.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from taskdeck.models import (
    PRIORITIES,
    SLACK,
    TASK_SOURCES,
    CredentialRecord,
    LinkedItem,
    Suggestion,
    SuggestionCacheEntry,
    Task,
    TaskTag,
)
from taskdeck.storage.sqlite_store import SqliteStore
from taskdeck.token_codec import TokenCodec


logger = logging.getLogger(__name__)

TASKS_KEY = "tasks"
CACHE_KEY = "smart_suggestions_cache"
LAST_FETCH_KEY = "smart_suggestions_last_fetch"
DISMISSED_KEY = "dismissed_suggestions"
SETTINGS_KEY = "userSettings"
SLACK_BOT_TOKEN_KEY = "slack_bot_token"
SLACK_TEAM_URL_KEY = "slack_team_url"

UPDATABLE_TASK_FIELDS = (
    "title",
    "completed",
    "priority",
    "due_date",
    "deadline",
    "context",
    "description",
    "tags",
    "linked_items",
)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class TokenService:
    """Summary: Stores OAuth tokens with basic obfuscation.

    Importance: Single place that knows the per-provider key layout in the store.
    Alternatives: Use a secrets manager or encrypted database.
    """

    store: SqliteStore
    codec: TokenCodec

    def load(self, provider: str) -> CredentialRecord | None:
        """Summary: Load a provider's credential record.

        Importance: Returns a record when either token exists so a lone refresh token can still be used.
        Alternatives: Raise when no access token is stored.
        """

        access_token = self._decoded(f"{provider}_access_token") or ""
        refresh_token = self._decoded(f"{provider}_refresh_token")
        if not access_token and not refresh_token:
            return None
        bot_token = self._decoded(SLACK_BOT_TOKEN_KEY) if provider == SLACK else None
        team_url = self.store.get(SLACK_TEAM_URL_KEY) if provider == SLACK else None
        return CredentialRecord(
            provider=provider,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=self.store.get(f"{provider}_expires_at"),
            bot_token=bot_token,
            team_url=team_url,
        )

    def save(self, record: CredentialRecord) -> None:
        """Summary: Persist a credential record.

        Importance: Absent refresh tokens and expiries leave the stored values untouched.
        Alternatives: Overwrite every key on each save.
        """

        self.store.set(f"{record.provider}_access_token", self.codec.encode(record.access_token))
        if record.refresh_token:
            self.store.set(f"{record.provider}_refresh_token", self.codec.encode(record.refresh_token))
        if record.expires_at:
            self.store.set(f"{record.provider}_expires_at", record.expires_at)
        if record.bot_token:
            self.store.set(SLACK_BOT_TOKEN_KEY, self.codec.encode(record.bot_token))
            self.store.set(SLACK_TEAM_URL_KEY, record.team_url)
        logger.info("Stored OAuth tokens for %s.", record.provider)

    def clear(self, provider: str) -> None:
        for suffix in ("access_token", "refresh_token", "expires_at"):
            self.store.delete(f"{provider}_{suffix}")
        if provider == SLACK:
            self.store.delete(SLACK_BOT_TOKEN_KEY)
            self.store.delete(SLACK_TEAM_URL_KEY)
        logger.info("Cleared OAuth tokens for %s.", provider)

    def bot_token(self) -> str | None:
        return self._decoded(SLACK_BOT_TOKEN_KEY)

    def _decoded(self, key: str) -> str | None:
        value = self.store.get(key)
        if not value:
            return None
        return self.codec.decode(value)


@dataclass(frozen=True)
class TaskService:
    """Summary: Manages the local task list.

    Importance: Tasks are the output of manual entry, accepted suggestions, and inbound mentions.
    Alternatives: Sync tasks to an external task manager.
    """

    store: SqliteStore

    def list_tasks(self) -> list[Task]:
        return [Task.from_dict(item) for item in self.store.get(TASKS_KEY, [])]

    def add_task(
        self,
        title: str,
        priority: str = "medium",
        source: str = "manual",
        source_id: str | None = None,
        due_date: str | None = None,
        context: str | None = None,
        description: str | None = None,
    ) -> Task:
        """Summary: Create a task at the front of the list.

        Importance: Newest manual tasks show first.
        Alternatives: Append and sort in the UI.
        """

        if not title.strip():
            raise ValueError("Task title is required")
        _validate_task_fields(priority, source)
        now = utc_now_iso()
        task = Task(
            id=str(uuid.uuid4()),
            title=title.strip(),
            source=source,
            priority=priority,
            created_at=now,
            updated_at=now,
            source_id=source_id,
            due_date=due_date,
            context=context,
            description=description,
        )
        self._write([task, *self.list_tasks()])
        logger.info("Added %s task %s.", source, task.id)
        return task

    def append_task(self, task: Task) -> Task:
        """Summary: Append a fully built task to the end of the list.

        Importance: Inbound mentions keep arrival order.
        Alternatives: Insert at the front like manual tasks.
        """

        _validate_task_fields(task.priority, task.source)
        self._write([*self.list_tasks(), task])
        logger.info("Appended %s task %s.", task.source, task.id)
        return task

    def update_task(self, task_id: str, changes: dict[str, Any]) -> Task:
        """Summary: Merge changes into a task and refresh updated_at.

        Importance: Partial updates keep untouched fields.
        Alternatives: Replace whole task records.
        """

        unknown = set(changes) - set(UPDATABLE_TASK_FIELDS)
        if unknown:
            raise ValueError(f"Unknown task fields: {', '.join(sorted(unknown))}")
        tasks = self.list_tasks()
        for index, task in enumerate(tasks):
            if task.id != task_id:
                continue
            values = dict(changes)
            if "tags" in values:
                values["tags"] = tuple(_as_tag(tag) for tag in values["tags"] or [])
            if "linked_items" in values:
                values["linked_items"] = tuple(_as_link(item) for item in values["linked_items"] or [])
            updated = replace(task, **values, updated_at=utc_now_iso())
            _validate_task_fields(updated.priority, updated.source)
            tasks[index] = updated
            self._write(tasks)
            logger.info("Updated task %s.", task_id)
            return updated
        raise ValueError(f"Task {task_id} not found")

    def delete_task(self, task_id: str) -> bool:
        tasks = self.list_tasks()
        remaining = [task for task in tasks if task.id != task_id]
        if len(remaining) == len(tasks):
            return False
        self._write(remaining)
        logger.info("Deleted task %s.", task_id)
        return True

    def _write(self, tasks: list[Task]) -> None:
        self.store.set(TASKS_KEY, [task.to_dict() for task in tasks])


@dataclass
class SuggestionCache:
    """Summary: Day-long cache around the suggestion fan-out.

    Importance: Avoids hitting every provider each time the feed is shown.
    Alternatives: Cache per provider with separate TTLs.
    """

    store: SqliteStore
    fetch: Callable[[], Awaitable[list[Suggestion]]]
    ttl_hours: float = 24.0
    clock: Callable[[], float] = field(default=time.time)

    async def get(self, force_refresh: bool = False) -> list[Suggestion]:
        """Summary: Return cached suggestions while fresh, otherwise refetch.

        Importance: An empty cache is never considered fresh.
        Alternatives: Serve stale data and refresh in the background.
        """

        entry = self.entry()
        if not force_refresh and entry.is_fresh(self.clock(), self.ttl_hours * 3600):
            logger.info("Returning %s cached suggestions.", len(entry.suggestions))
            return entry.suggestions
        return await self.force_refresh()

    async def force_refresh(self) -> list[Suggestion]:
        suggestions = await self.fetch()
        self.store.set(CACHE_KEY, [suggestion.to_dict() for suggestion in suggestions])
        self.store.set(LAST_FETCH_KEY, self.clock())
        logger.info("Cached %s fresh suggestions.", len(suggestions))
        return suggestions

    def entry(self) -> SuggestionCacheEntry:
        return SuggestionCacheEntry(
            suggestions=[Suggestion.from_dict(item) for item in self.store.get(CACHE_KEY, [])],
            fetched_at=float(self.store.get(LAST_FETCH_KEY, 0) or 0),
        )


@dataclass(frozen=True)
class SuggestionService:
    """Summary: Dismisses and accepts suggestions.

    Importance: Acting on a suggestion refreshes the feed so it does not reappear.
    Alternatives: Let the UI hide acted-on suggestions locally.
    """

    store: SqliteStore
    tasks: TaskService
    cache: SuggestionCache

    def dismissed_ids(self) -> list[str]:
        return list(self.store.get(DISMISSED_KEY, []))

    async def dismiss(self, suggestion_id: str) -> list[Suggestion]:
        dismissed = self.dismissed_ids()
        if suggestion_id not in dismissed:
            dismissed.append(suggestion_id)
            self.store.set(DISMISSED_KEY, dismissed)
        logger.info("Dismissed suggestion %s.", suggestion_id)
        return await self.cache.force_refresh()

    async def accept(self, suggestion_id: str) -> Task:
        """Summary: Turn a cached suggestion into a task.

        Importance: The accepted id is dismissed so the feed does not offer it again.
        Alternatives: Keep accepted suggestions visible until their source changes.
        """

        suggestion = next(
            (item for item in self.cache.entry().suggestions if item.id == suggestion_id), None
        )
        if suggestion is None:
            raise ValueError(f"Suggestion {suggestion_id} not found")
        task = self.tasks.add_task(
            title=suggestion.title,
            priority=suggestion.priority,
            source=suggestion.source,
            source_id=suggestion.source_id,
            due_date=suggestion.due_date,
            context=suggestion.context,
        )
        await self.dismiss(suggestion_id)
        return task


def _validate_task_fields(priority: str, source: str) -> None:
    if priority not in PRIORITIES:
        raise ValueError(f"Unknown priority: {priority}")
    if source not in TASK_SOURCES:
        raise ValueError(f"Unknown task source: {source}")


def _as_tag(value: TaskTag | dict[str, Any]) -> TaskTag:
    return value if isinstance(value, TaskTag) else TaskTag(**value)


def _as_link(value: LinkedItem | dict[str, Any]) -> LinkedItem:
    return value if isinstance(value, LinkedItem) else LinkedItem(**value)
