"""Summary: Domain model dataclasses for TaskDeck.

Importance: Defines the core entities shared across services, clients, and storage.
Alternatives: Use Pydantic models or ORM classes directly.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from typing import Any


GOOGLE = "google"
SLACK = "slack"
ZOOM = "zoom"
JIRA = "jira"
CONFLUENCE = "confluence"

OAUTH_PROVIDERS = (GOOGLE, SLACK, ZOOM)
PROVIDERS = (GOOGLE, SLACK, ZOOM, JIRA, CONFLUENCE)

PRIORITIES = ("low", "medium", "high")
TASK_SOURCES = ("manual", "calendar", "email", "slack")
SUGGESTION_SOURCES = ("calendar", "email", "slack")


@dataclass(frozen=True)
class CredentialRecord:
    """Summary: Token set for one provider.

    Importance: Single representation of a session credential for storage and clients.
    Alternatives: Pass raw token dictionaries between layers.
    """

    provider: str
    access_token: str
    refresh_token: str | None = None
    expires_at: float | None = None
    bot_token: str | None = None
    team_url: str | None = None

    @property
    def is_connected(self) -> bool:
        """Summary: True when a non-empty access token is present."""

        return bool(self.access_token)

    def merged_with(self, previous: "CredentialRecord | None") -> "CredentialRecord":
        """Summary: Keep the previous refresh token when a refresh omits it.

        Importance: Google and Zoom refresh responses often drop the refresh token.
        Alternatives: Force re-authentication whenever the refresh token is missing.
        """

        if previous is None or self.refresh_token:
            return self
        return replace(self, refresh_token=previous.refresh_token)


@dataclass(frozen=True)
class Suggestion:
    """Summary: A ranked recommendation to act on an external item.

    Importance: Unit of the smart suggestions feed.
    Alternatives: Return raw provider payloads and rank in the UI.
    """

    id: str
    title: str
    source: str
    source_id: str
    priority: str
    score: int
    context: str | None = None
    due_date: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(payload: dict[str, Any]) -> "Suggestion":
        return Suggestion(
            id=payload["id"],
            title=payload["title"],
            source=payload["source"],
            source_id=payload["source_id"],
            priority=payload["priority"],
            score=payload["score"],
            context=payload.get("context"),
            due_date=payload.get("due_date"),
        )


@dataclass(frozen=True)
class TaskTag:
    label: str
    color: str


@dataclass(frozen=True)
class LinkedItem:
    """Summary: A link from a task to an external artifact (chat message, ticket, page)."""

    id: str
    type: str
    title: str
    url: str | None = None


@dataclass(frozen=True)
class Task:
    """Summary: Represents a local task.

    Importance: The task list is the main output of suggestions and inbound mentions.
    Alternatives: Store tasks as free-form notes.
    """

    id: str
    title: str
    source: str
    priority: str
    created_at: str
    updated_at: str
    completed: bool = False
    source_id: str | None = None
    due_date: str | None = None
    deadline: str | None = None
    context: str | None = None
    description: str | None = None
    tags: tuple[TaskTag, ...] = ()
    linked_items: tuple[LinkedItem, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["tags"] = [asdict(tag) for tag in self.tags]
        payload["linked_items"] = [asdict(item) for item in self.linked_items]
        return payload

    @staticmethod
    def from_dict(payload: dict[str, Any]) -> "Task":
        """Summary: Rebuild a task from its stored JSON form."""

        return Task(
            id=payload["id"],
            title=payload["title"],
            source=payload.get("source", "manual"),
            priority=payload.get("priority", "medium"),
            created_at=payload["created_at"],
            updated_at=payload.get("updated_at") or payload["created_at"],
            completed=bool(payload.get("completed", False)),
            source_id=payload.get("source_id"),
            due_date=payload.get("due_date"),
            deadline=payload.get("deadline"),
            context=payload.get("context"),
            description=payload.get("description"),
            tags=tuple(TaskTag(**tag) for tag in payload.get("tags") or []),
            linked_items=tuple(LinkedItem(**item) for item in payload.get("linked_items") or []),
        )


@dataclass(frozen=True)
class CalendarEvent:
    id: str
    title: str
    start: str
    end: str
    description: str | None = None
    location: str | None = None


@dataclass(frozen=True)
class EmailMessage:
    """Summary: Email metadata needed for ranking."""

    id: str
    subject: str
    sender: str
    snippet: str
    date: str
    is_unread: bool = False
    is_starred: bool = False


@dataclass(frozen=True)
class ChatMessage:
    """Summary: A chat message surfaced as a mention, DM, thread reply, or saved item.

    Importance: Timestamps are Unix-epoch seconds as decimal strings, as chat APIs return them.
    Alternatives: Convert timestamps to datetimes at ingestion.
    """

    id: str
    type: str
    text: str
    timestamp: str
    user_name: str | None = None
    channel_name: str | None = None
    channel: str | None = None
    permalink: str | None = None


@dataclass(frozen=True)
class PendingInboundItem:
    """Summary: A remotely queued chat mention awaiting local processing.

    Importance: Input of the inbound poller; owned by the relay until acknowledged.
    Alternatives: Push items over a websocket instead of polling.
    """

    id: str
    title: str
    channel: str
    message_ts: str
    thread_ts: str
    user: str
    team_id: str
    description: str | None = None
    should_create_jira: bool = False
    should_create_confluence: bool = False
    assignee_name: str | None = None
    assignee_email: str | None = None

    @staticmethod
    def from_payload(payload: dict[str, Any]) -> "PendingInboundItem":
        """Summary: Parse the relay's camelCase JSON into an item.

        Importance: Keeps the wire format out of the poller logic.
        Alternatives: Use a Pydantic model with field aliases.
        """

        message_ts = str(payload.get("messageTs") or "")
        return PendingInboundItem(
            id=str(payload["id"]),
            title=payload.get("title") or "Untitled",
            channel=payload.get("channel") or "",
            message_ts=message_ts,
            thread_ts=str(payload.get("threadTs") or message_ts),
            user=payload.get("user") or "",
            team_id=payload.get("teamId") or "",
            description=payload.get("description") or None,
            should_create_jira=bool(payload.get("shouldCreateJira", False)),
            should_create_confluence=bool(payload.get("shouldCreateConfluence", False)),
            assignee_name=payload.get("assigneeName"),
            assignee_email=payload.get("assigneeEmail"),
        )


@dataclass(frozen=True)
class TicketRequest:
    summary: str
    description: str | None = None
    assignee_name: str | None = None
    assignee_email: str | None = None


@dataclass(frozen=True)
class TicketResult:
    key: str
    url: str


@dataclass(frozen=True)
class PageRequest:
    title: str
    body: str | None = None


@dataclass(frozen=True)
class PageResult:
    id: str
    url: str


@dataclass(frozen=True)
class MeetingRequest:
    """Summary: Parameters for creating a video meeting."""

    topic: str
    start_time: str | None = None
    duration_minutes: int = 30
    agenda: str | None = None


@dataclass(frozen=True)
class MeetingResult:
    id: str
    join_url: str
    topic: str


@dataclass(frozen=True)
class SuggestionCacheEntry:
    """Summary: The cached suggestion batch and the time it was fetched (epoch seconds)."""

    suggestions: list[Suggestion] = field(default_factory=list)
    fetched_at: float = 0.0

    def is_fresh(self, now: float, ttl_seconds: float) -> bool:
        return bool(self.suggestions) and (now - self.fetched_at) < ttl_seconds
