"""Summary: Session coordinator for OAuth-backed providers.

Importance: Owns one client per connected provider and applies a single refresh-and-retry policy.
Alternatives: Let each provider client refresh itself on failure.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Generic, TypeVar

from taskdeck.calendar import CalendarClient
from taskdeck.chat import ChatClient
from taskdeck.email import MailClient
from taskdeck.errors import NotConnectedError, is_unauthorized
from taskdeck.models import (
    CONFLUENCE,
    GOOGLE,
    JIRA,
    OAUTH_PROVIDERS,
    SLACK,
    ZOOM,
    CalendarEvent,
    ChatMessage,
    CredentialRecord,
    EmailMessage,
    MeetingRequest,
    MeetingResult,
    Suggestion,
)
from taskdeck.oauth import TokenClient
from taskdeck.services import DISMISSED_KEY, TokenService
from taskdeck.storage.sqlite_store import SqliteStore
from taskdeck.suggestions import SuggestionEngine
from taskdeck.zoom import MeetingClient


logger = logging.getLogger(__name__)

REQUIRED_GOOGLE_SCOPE_VERSION = 3
SCOPE_VERSION_KEY = "google_oauth_scope_version"
GMAIL_FETCH_LIMIT = 20

T = TypeVar("T")
C = TypeVar("C", bound=TokenClient)


@dataclass(frozen=True)
class ClientFactories:
    """Summary: Constructors for fresh provider clients.

    Importance: Connect and initialize always build new clients, and tests inject fakes here.
    Alternatives: Reuse long-lived client singletons.
    """

    calendar: Callable[[], CalendarClient]
    mail: Callable[[], MailClient]
    chat: Callable[[], ChatClient]
    meetings: Callable[[], MeetingClient]


@dataclass
class SessionState:
    """Summary: In-memory provider clients plus the providers that need re-authorization.

    Importance: The coordinator owns this value instead of module-level client handles.
    Alternatives: Store clients as module globals.
    """

    calendar: CalendarClient | None = None
    mail: MailClient | None = None
    chat: ChatClient | None = None
    meetings: MeetingClient | None = None
    needs_reauth: set[str] = field(default_factory=set)

    def clients_for(self, provider: str) -> list[TokenClient]:
        """Summary: Every client that shares the provider's credential."""

        if provider == GOOGLE:
            candidates: list[TokenClient | None] = [self.calendar, self.mail]
        elif provider == SLACK:
            candidates = [self.chat]
        elif provider == ZOOM:
            candidates = [self.meetings]
        else:
            raise ValueError(f"Unknown OAuth provider: {provider}")
        return [client for client in candidates if client is not None]

    def drop(self, provider: str) -> None:
        if provider == GOOGLE:
            self.calendar = None
            self.mail = None
        elif provider == SLACK:
            self.chat = None
        elif provider == ZOOM:
            self.meetings = None
        self.needs_reauth.discard(provider)


@dataclass(frozen=True)
class SourceResult(Generic[T]):
    """Summary: Outcome of one source fetch in the suggestion fan-out.

    Importance: Makes the per-source failure explicit before it is mapped to an empty list.
    Alternatives: Catch and default to empty lists inline.
    """

    source: str
    value: list[T] = field(default_factory=list)
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def or_empty(self) -> list[T]:
        return self.value if self.ok else []


class SessionCoordinator:
    """Summary: Mediates provider sessions, token persistence, and retries.

    Importance: Single place that knows whether each provider has a usable session.
    Alternatives: Scatter connection checks across API handlers.
    """

    def __init__(
        self,
        tokens: TokenService,
        store: SqliteStore,
        factories: ClientFactories,
        engine: SuggestionEngine | None = None,
        min_score: int = 0,
    ) -> None:
        self._tokens = tokens
        self._store = store
        self._factories = factories
        self._engine = engine or SuggestionEngine()
        self._min_score = min_score
        self._state = SessionState()
        self._refresh_locks = {provider: asyncio.Lock() for provider in OAUTH_PROVIDERS}

    @property
    def state(self) -> SessionState:
        return self._state

    async def initialize(self) -> None:
        """Summary: Build clients for every provider with stored tokens.

        Importance: Providers without tokens stay unconfigured without raising.
        Alternatives: Connect lazily on first use.
        """

        google = self._tokens.load(GOOGLE)
        if not self._google_scope_is_current():
            google = None
        elif google is not None and not google.access_token and google.refresh_token:
            google = await self._refresh_on_startup(google)
        if google is not None and google.is_connected:
            self._install(GOOGLE, google)

        for provider in (SLACK, ZOOM):
            record = self._tokens.load(provider)
            if record is not None and record.is_connected:
                self._install(provider, record)
        logger.info(
            "Session initialized: %s",
            ", ".join(f"{provider}={self.is_connected(provider)}" for provider in OAUTH_PROVIDERS),
        )

    async def connect(self, provider: str, code: str) -> CredentialRecord:
        """Summary: Exchange an authorization code and hot-swap the provider's clients.

        Importance: Reconnecting always replaces clients, never merges with old state.
        Alternatives: Reuse the existing client and only swap tokens.
        """

        if provider in (JIRA, CONFLUENCE):
            raise ValueError(f"{provider} uses API tokens; configure it in settings instead")
        clients = self._new_clients(provider)
        try:
            record = await clients[0].exchange_code_for_tokens(code)
        except Exception:
            await _close_clients(clients)
            raise
        self._tokens.save(record)
        if provider == GOOGLE:
            self._store.set(SCOPE_VERSION_KEY, REQUIRED_GOOGLE_SCOPE_VERSION)
        previous = self._state.clients_for(provider)
        self._install(provider, record, clients)
        await _close_clients(previous)
        logger.info("Connected %s.", provider)
        return record

    async def disconnect(self, provider: str) -> None:
        if provider not in OAUTH_PROVIDERS:
            raise ValueError(f"Unknown OAuth provider: {provider}")
        previous = self._state.clients_for(provider)
        self._tokens.clear(provider)
        self._state.drop(provider)
        await _close_clients(previous)
        logger.info("Disconnected %s.", provider)

    async def aclose(self) -> None:
        """Summary: Close every installed provider client.

        Importance: Each client owns an HTTP connection pool that must be released on shutdown.
        Alternatives: Share one pool across providers and close it once.
        """

        for provider in OAUTH_PROVIDERS:
            await _close_clients(self._state.clients_for(provider))

    def is_connected(self, provider: str) -> bool:
        clients = self._state.clients_for(provider)
        return bool(clients) and clients[0].tokens is not None and clients[0].tokens.is_connected

    def needs_reauth(self, provider: str) -> bool:
        return provider in self._state.needs_reauth

    async def sync_calendar(self) -> list[CalendarEvent]:
        client = self._require(GOOGLE, self._state.calendar)
        return await self._call_with_refresh(GOOGLE, client, lambda c: c.list_today_events())

    async def sync_gmail(self) -> list[EmailMessage]:
        client = self._require(GOOGLE, self._state.mail)
        return await self._call_with_refresh(
            GOOGLE, client, lambda c: c.list_important_emails(GMAIL_FETCH_LIMIT)
        )

    async def sync_slack(self) -> list[ChatMessage]:
        client = self._require(SLACK, self._state.chat)
        return await self._call_with_refresh(SLACK, client, lambda c: c.list_important_messages())

    async def create_zoom_meeting(self, request: MeetingRequest) -> MeetingResult:
        client = self._require(ZOOM, self._state.meetings)
        return await self._call_with_refresh(ZOOM, client, lambda c: c.create_meeting(request))

    async def refresh(self, provider: str, stale_token: str | None = None) -> CredentialRecord | None:
        """Summary: Refresh a provider's tokens and update every client that shares them.

        Importance: A per-provider lock single-flights refreshes; a waiter whose token was
        already rotated reuses the new one.
        Alternatives: Let concurrent callers refresh independently.
        """

        clients = self._state.clients_for(provider)
        if not clients:
            raise NotConnectedError(provider)
        async with self._refresh_locks[provider]:
            current = clients[0].tokens
            if stale_token is not None and current is not None and current.access_token != stale_token:
                logger.info("Tokens for %s were already refreshed.", provider)
                return current
            try:
                refreshed = await clients[0].refresh_tokens()
            except Exception:
                self._state.needs_reauth.add(provider)
                raise
            if refreshed is None:
                self._state.needs_reauth.add(provider)
                logger.warning("Refresh for %s returned no tokens.", provider)
                return None
            record = refreshed.merged_with(current)
            self._tokens.save(record)
            for client in self._state.clients_for(provider):
                client.set_tokens(record)
            self._state.needs_reauth.discard(provider)
            logger.info("Refreshed tokens for %s.", provider)
            return record

    async def get_smart_suggestions(self, now: datetime | None = None) -> list[Suggestion]:
        """Summary: Fetch every source concurrently and rank the combined signals.

        Importance: A failing or unconnected source contributes an empty list instead of
        failing the whole feed.
        Alternatives: Fail the feed when any source fails.
        """

        calendar, mail, chat = await asyncio.gather(
            _capture("calendar", self.sync_calendar),
            _capture("email", self.sync_gmail),
            _capture("slack", self.sync_slack),
        )
        suggestions = self._engine.generate(
            calendar.or_empty(),
            mail.or_empty(),
            chat.or_empty(),
            now or datetime.now().astimezone(),
        )
        dismissed = set(self._store.get(DISMISSED_KEY, []))
        return [
            suggestion
            for suggestion in suggestions
            if suggestion.id not in dismissed and suggestion.score >= self._min_score
        ]

    async def _call_with_refresh(self, provider: str, client: C, call: Callable[[C], Awaitable[T]]) -> T:
        """Summary: Run a provider call with one refresh-and-retry on authorization errors.

        Importance: The retry's own error propagates; a failed refresh re-raises the original error.
        Alternatives: Retry with exponential backoff.
        """

        stale_token = client.tokens.access_token if client.tokens else None
        try:
            return await call(client)
        except Exception as exc:
            if not is_unauthorized(exc):
                raise
            original = exc
        logger.info("%s rejected the access token; refreshing once.", provider)
        try:
            refreshed = await self.refresh(provider, stale_token=stale_token)
        except Exception:
            logger.warning("Token refresh for %s failed.", provider, exc_info=True)
            refreshed = None
        if refreshed is None:
            raise original
        try:
            return await call(client)
        except Exception as exc:
            if is_unauthorized(exc):
                self._state.needs_reauth.add(provider)
            raise

    def _google_scope_is_current(self) -> bool:
        """Summary: Clear Google tokens granted under an older scope set.

        Importance: New scopes need a fresh consent, so stale tokens are dropped.
        Alternatives: Request incremental authorization.
        """

        stored_version = int(self._store.get(SCOPE_VERSION_KEY, 1) or 1)
        if stored_version < REQUIRED_GOOGLE_SCOPE_VERSION:
            logger.info(
                "Google scope version %s is older than %s; clearing tokens.",
                stored_version,
                REQUIRED_GOOGLE_SCOPE_VERSION,
            )
            self._tokens.clear(GOOGLE)
            return False
        return True

    async def _refresh_on_startup(self, record: CredentialRecord) -> CredentialRecord | None:
        client = self._factories.calendar()
        client.set_tokens(record)
        try:
            refreshed = await client.refresh_tokens()
        except Exception:
            logger.warning("Failed to refresh Google tokens during initialization.", exc_info=True)
            return record
        finally:
            await client.aclose()
        if refreshed is None:
            return record
        merged = refreshed.merged_with(record)
        self._tokens.save(merged)
        return merged

    def _new_clients(self, provider: str) -> list[TokenClient]:
        if provider == GOOGLE:
            return [self._factories.calendar(), self._factories.mail()]
        if provider == SLACK:
            return [self._factories.chat()]
        if provider == ZOOM:
            return [self._factories.meetings()]
        raise ValueError(f"Unknown provider: {provider}")

    def _install(
        self, provider: str, record: CredentialRecord, clients: list[TokenClient] | None = None
    ) -> None:
        clients = clients or self._new_clients(provider)
        for client in clients:
            client.set_tokens(record)
        if provider == GOOGLE:
            self._state.calendar, self._state.mail = clients
        elif provider == SLACK:
            self._state.chat = clients[0]
        else:
            self._state.meetings = clients[0]
        self._state.needs_reauth.discard(provider)

    @staticmethod
    def _require(provider: str, client: C | None) -> C:
        if client is None:
            raise NotConnectedError(provider)
        return client


async def _capture(source: str, fetch: Callable[[], Awaitable[list[T]]]) -> SourceResult[T]:
    try:
        return SourceResult(source=source, value=await fetch())
    except NotConnectedError as exc:
        logger.debug("Skipping %s suggestions: %s", source, exc)
        return SourceResult(source=source, error=exc)
    except Exception as exc:
        logger.warning("Failed to fetch %s for suggestions: %s", source, exc)
        return SourceResult(source=source, error=exc)


async def _close_clients(clients: list[TokenClient]) -> None:
    for client in clients:
        try:
            await client.aclose()
        except Exception:
            logger.warning("Failed to close %s client.", type(client).__name__, exc_info=True)
