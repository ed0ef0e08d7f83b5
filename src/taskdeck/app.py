"""Summary: Application factory wiring core services.

Importance: Centralizes dependency creation for the CLI and API layers.
Alternatives: Instantiate services manually in each entrypoint.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from taskdeck.atlassian import AtlassianClient, ConfluenceClient, JiraClient
from taskdeck.calendar import GoogleCalendarClient
from taskdeck.chat import SlackClient
from taskdeck.config import UNCONFIGURED, AppConfig, AtlassianConfig, AtlassianUnconfigured
from taskdeck.email import GmailClient
from taskdeck.inbound import InboundPoller, InboxRelayClient
from taskdeck.models import CONFLUENCE, GOOGLE, JIRA, OAUTH_PROVIDERS, SLACK, ZOOM, Task
from taskdeck.oauth import OAuthSettings
from taskdeck.services import (
    SETTINGS_KEY,
    SuggestionCache,
    SuggestionService,
    TaskService,
    TokenService,
)
from taskdeck.session import ClientFactories, SessionCoordinator
from taskdeck.storage.sqlite_store import SqliteStore
from taskdeck.token_codec import TokenCodec
from taskdeck.zoom import ZoomClient


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppServices:
    """Summary: Container for initialized services.

    Importance: Simplifies passing dependencies into the CLI and API handlers.
    Alternatives: Use global singletons or dependency injection frameworks.
    """

    config: AppConfig
    store: SqliteStore
    tokens: TokenService
    tasks: TaskService
    coordinator: SessionCoordinator
    cache: SuggestionCache
    suggestions: SuggestionService

    def user_settings(self) -> dict[str, Any]:
        return dict(self.store.get(SETTINGS_KEY, {}) or {})

    def update_user_settings(self, changes: Mapping[str, Any]) -> dict[str, Any]:
        """Summary: Merge changes into the stored user settings.

        Importance: Jira and Confluence credentials live here rather than in OAuth tokens.
        Alternatives: Keep Atlassian credentials in environment variables only.
        """

        settings = {**self.user_settings(), **dict(changes)}
        self.store.set(SETTINGS_KEY, settings)
        logger.info("Updated user settings: %s", ", ".join(sorted(changes)))
        return settings

    def atlassian_config(self) -> AtlassianConfig | AtlassianUnconfigured:
        try:
            return AtlassianConfig.from_settings(self.user_settings())
        except ValueError as exc:
            logger.warning("Ignoring invalid Atlassian settings: %s", exc)
            return UNCONFIGURED


def oauth_settings(config: AppConfig, provider: str) -> OAuthSettings:
    """Summary: Select the OAuth client credentials for a provider."""

    if provider == GOOGLE:
        return OAuthSettings(
            config.google_client_id,
            config.google_client_secret,
            config.oauth_redirect_uri,
            config.google_token_url,
        )
    if provider == SLACK:
        return OAuthSettings(
            config.slack_client_id,
            config.slack_client_secret,
            config.oauth_redirect_uri,
            config.slack_token_url,
        )
    if provider == ZOOM:
        return OAuthSettings(
            config.zoom_client_id,
            config.zoom_client_secret,
            config.oauth_redirect_uri,
            config.zoom_token_url,
        )
    raise ValueError(f"Unknown OAuth provider: {provider}")


def build_client_factories(config: AppConfig) -> ClientFactories:
    """Summary: Build constructors for real provider clients.

    Importance: Every connect and initialize gets fresh clients with the configured timeout.
    Alternatives: Share one HTTP client across all providers.
    """

    timeout = config.http_timeout_seconds
    return ClientFactories(
        calendar=lambda: GoogleCalendarClient(oauth_settings(config, GOOGLE), timeout=timeout),
        mail=lambda: GmailClient(oauth_settings(config, GOOGLE), timeout=timeout),
        chat=lambda: SlackClient(oauth_settings(config, SLACK), timeout=timeout),
        meetings=lambda: ZoomClient(oauth_settings(config, ZOOM), timeout=timeout),
    )


def build_services(config: AppConfig, factories: ClientFactories | None = None) -> AppServices:
    """Summary: Build service instances from configuration.

    Importance: Ensures consistent wiring across entrypoints.
    Alternatives: Instantiate services manually in each entrypoint.
    """

    store = SqliteStore(config.db_path)
    store.initialize()
    tokens = TokenService(store=store, codec=TokenCodec(config.token_secret))
    tasks = TaskService(store=store)
    coordinator = SessionCoordinator(
        tokens=tokens,
        store=store,
        factories=factories or build_client_factories(config),
        min_score=config.suggestion_min_score,
    )
    cache = SuggestionCache(
        store=store,
        fetch=coordinator.get_smart_suggestions,
        ttl_hours=config.suggestion_ttl_hours,
    )
    return AppServices(
        config=config,
        store=store,
        tokens=tokens,
        tasks=tasks,
        coordinator=coordinator,
        cache=cache,
        suggestions=SuggestionService(store=store, tasks=tasks, cache=cache),
    )


def build_poller(services: AppServices, relay: InboxRelayClient | None = None) -> InboundPoller:
    """Summary: Wire the inbound poller to local tasks and Atlassian handlers.

    Importance: Jira runs only when enabled in user settings; Confluence runs whenever
    Atlassian credentials exist.
    Alternatives: Always register both handlers and fail inside them.
    """

    config = services.config
    settings = services.user_settings()
    atlassian = services.atlassian_config()
    on_ticket = None
    on_page = None
    owned: list[AtlassianClient] = []
    if isinstance(atlassian, AtlassianConfig):
        if settings.get("jiraEnabled"):
            jira = JiraClient(
                atlassian,
                project_key=settings.get("jiraDefaultProject") or config.jira_default_project,
                issue_type=config.jira_default_issue_type,
                timeout=config.http_timeout_seconds,
            )
            on_ticket = jira.create_issue
            owned.append(jira)
        confluence = ConfluenceClient(
            atlassian,
            space_key=settings.get("confluenceDefaultSpace") or config.confluence_default_space,
            timeout=config.http_timeout_seconds,
        )
        on_page = confluence.create_page
        owned.append(confluence)

    async def save_task(task: Task) -> None:
        services.tasks.append_task(task)

    async def close_handlers() -> None:
        for client in owned:
            await client.aclose()

    return InboundPoller(
        relay=relay or InboxRelayClient(config.relay_base_url, timeout=config.http_timeout_seconds),
        on_task=save_task,
        bot_token=services.tokens.bot_token,
        on_ticket=on_ticket,
        on_page=on_page,
        interval_seconds=config.poll_interval_seconds,
        on_close=close_handlers,
    )


def integration_status(services: AppServices) -> list[dict[str, Any]]:
    """Summary: Report connection state for every integration.

    Importance: Surfaces providers that need the user to reconnect.
    Alternatives: Probe each provider with a live request.
    """

    coordinator = services.coordinator
    status = [
        {
            "provider": provider,
            "connected": coordinator.is_connected(provider),
            "needs_reauth": coordinator.needs_reauth(provider),
        }
        for provider in OAUTH_PROVIDERS
    ]
    configured = services.atlassian_config().is_configured
    status.append(
        {
            "provider": JIRA,
            "connected": configured and bool(services.user_settings().get("jiraEnabled")),
            "needs_reauth": False,
        }
    )
    status.append({"provider": CONFLUENCE, "connected": configured, "needs_reauth": False})
    return status
