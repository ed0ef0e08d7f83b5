"""Summary: FastAPI service exposing TaskDeck workflows.

Importance: Gives the desktop shell and scripts one local HTTP surface.
Alternatives: Use the CLI only or expose services over IPC.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime, timedelta
from typing import Any, AsyncIterator

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from taskdeck.app import AppServices, build_poller, build_services, integration_status, oauth_settings
from taskdeck.config import AppConfig, AtlassianConfig
from taskdeck.errors import NotConnectedError, ProviderError
from taskdeck.inbound import InboundPoller
from taskdeck.models import OAUTH_PROVIDERS, PRIORITIES, MeetingRequest
from taskdeck.oauth import build_authorization_url, create_state_token


logger = logging.getLogger(__name__)

OAUTH_STATE_TTL = timedelta(minutes=10)

# request field -> stored userSettings key
SETTINGS_FIELDS = {
    "jira_enabled": "jiraEnabled",
    "jira_domain": "jiraDomain",
    "jira_email": "jiraEmail",
    "jira_api_token": "jiraApiToken",
    "jira_default_project": "jiraDefaultProject",
    "confluence_default_space": "confluenceDefaultSpace",
}


class ConnectRequest(BaseModel):
    """Summary: Request payload for completing an OAuth connection.

    Importance: Carries the authorization code returned by the provider callback.
    Alternatives: Receive the code on a browser redirect endpoint.
    """

    code: str = Field(min_length=1)
    state: str | None = None


class SettingsUpdateRequest(BaseModel):
    """Summary: Request payload for Jira and Confluence settings.

    Importance: Atlassian products use API tokens instead of OAuth.
    Alternatives: Read Atlassian credentials from environment variables only.
    """

    jira_enabled: bool | None = None
    jira_domain: str | None = None
    jira_email: str | None = None
    jira_api_token: str | None = None
    jira_default_project: str | None = None
    confluence_default_space: str | None = None


class TaskCreateRequest(BaseModel):
    """Summary: Request payload for creating a manual task."""

    title: str = Field(min_length=1)
    priority: str = "medium"
    due_date: str | None = None
    context: str | None = None
    description: str | None = None


class TaskUpdateRequest(BaseModel):
    """Summary: Partial update for a task.

    Importance: Only fields present in the payload are changed.
    Alternatives: Require the full task on every update.
    """

    title: str | None = None
    completed: bool | None = None
    priority: str | None = None
    due_date: str | None = None
    deadline: str | None = None
    context: str | None = None
    description: str | None = None
    tags: list[dict[str, str]] | None = None
    linked_items: list[dict[str, str | None]] | None = None


class MeetingCreateRequest(BaseModel):
    """Summary: Request payload for scheduling a video meeting."""

    topic: str = Field(min_length=1)
    start_time: str | None = None
    duration_minutes: int = Field(default=30, ge=1, le=1440)
    agenda: str | None = None


def create_app(config: AppConfig, services: AppServices | None = None) -> FastAPI:
    """Summary: Create the FastAPI application.

    Importance: Provisions API routes with shared services; sessions are initialized and
    the inbound poller started when the app starts.
    Alternatives: Instantiate services globally outside the factory.
    """

    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    services = services or build_services(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await services.coordinator.initialize()
        if config.relay_base_url:
            await _start_poller()
        yield
        await _stop_poller()
        await services.coordinator.aclose()

    app = FastAPI(title="TaskDeck API", version="0.1.0", lifespan=lifespan)
    app.state.services = services
    app.state.oauth_states = {}
    app.state.poller = None

    async def _start_poller() -> None:
        poller = build_poller(services)
        app.state.poller = poller
        await poller.start()

    async def _stop_poller() -> None:
        poller: InboundPoller | None = app.state.poller
        if poller is not None:
            await poller.aclose()
            app.state.poller = None

    def _register_state(provider: str, state: str) -> None:
        """Summary: Register an OAuth state token.

        Importance: Enables basic validation of OAuth callbacks.
        Alternatives: Store state in a database or signed cookies.
        """

        app.state.oauth_states[state] = {"provider": provider, "created_at": datetime.utcnow()}

    def _validate_state(provider: str, state: str) -> None:
        record = app.state.oauth_states.pop(state, None)
        if not record or record["provider"] != provider:
            raise HTTPException(status_code=400, detail="Invalid OAuth state")
        if datetime.utcnow() - record["created_at"] > OAUTH_STATE_TTL:
            raise HTTPException(status_code=400, detail="OAuth state expired")

    def _require_oauth_provider(provider: str) -> None:
        if provider not in OAUTH_PROVIDERS:
            raise HTTPException(status_code=404, detail=f"Unknown OAuth provider: {provider}")

    def require_api_key(x_api_key: str | None = Header(default=None)) -> None:
        """Summary: Enforce API key authentication when configured.

        Importance: Adds a minimal security layer for local and private deployments.
        Alternatives: Use OAuth or session-based authentication.
        """

        if not config.api_key:
            return
        if x_api_key != config.api_key:
            raise HTTPException(status_code=401, detail="Invalid API key")

    @app.exception_handler(NotConnectedError)
    async def not_connected_handler(request: Request, exc: NotConnectedError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc), "provider": exc.provider})

    @app.exception_handler(ProviderError)
    async def provider_error_handler(request: Request, exc: ProviderError) -> JSONResponse:
        logger.warning("Provider call failed: %s", exc)
        return JSONResponse(
            status_code=502,
            content={
                "detail": str(exc),
                "provider": exc.provider,
                "needs_reauth": services.coordinator.needs_reauth(exc.provider),
            },
        )

    @app.get("/health")
    def health() -> dict[str, str]:
        """Summary: Report API health status.

        Importance: Supports local monitoring and readiness checks.
        Alternatives: Use a process manager health check only.
        """

        return {"status": "ok"}

    @app.get("/integrations", dependencies=[Depends(require_api_key)])
    def list_integrations() -> list[dict[str, Any]]:
        return integration_status(services)

    @app.get("/integrations/{provider}/authorize", dependencies=[Depends(require_api_key)])
    def authorize(provider: str) -> dict[str, str]:
        """Summary: Return the provider's OAuth consent URL and its state token.

        Importance: The desktop shell opens this URL and posts the code back to connect.
        Alternatives: Redirect the browser from the API directly.
        """

        _require_oauth_provider(provider)
        state = create_state_token()
        try:
            url = build_authorization_url(provider, oauth_settings(config, provider), state)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        _register_state(provider, state)
        return {"url": url, "state": state}

    @app.post("/integrations/{provider}/connect", dependencies=[Depends(require_api_key)])
    async def connect(provider: str, request: ConnectRequest) -> dict[str, Any]:
        """Summary: Exchange an authorization code and activate the provider.

        Importance: Replaces any existing session for the provider.
        Alternatives: Require a restart after connecting.
        """

        _require_oauth_provider(provider)
        if request.state is not None:
            _validate_state(provider, request.state)
        try:
            await services.coordinator.connect(provider, request.code)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"provider": provider, "connected": services.coordinator.is_connected(provider)}

    @app.delete("/integrations/{provider}", dependencies=[Depends(require_api_key)])
    async def disconnect(provider: str) -> dict[str, Any]:
        _require_oauth_provider(provider)
        await services.coordinator.disconnect(provider)
        return {"provider": provider, "connected": False}

    @app.get("/settings", dependencies=[Depends(require_api_key)])
    def get_settings() -> dict[str, Any]:
        """Summary: Return user settings with the Atlassian API token masked."""

        settings = services.user_settings()
        if settings.get("jiraApiToken"):
            settings["jiraApiToken"] = "********"
        return settings

    @app.put("/settings", dependencies=[Depends(require_api_key)])
    async def update_settings(request: SettingsUpdateRequest) -> dict[str, Any]:
        """Summary: Update Atlassian settings and rewire the inbound poller.

        Importance: Invalid domains are rejected before anything is stored.
        Alternatives: Apply settings on the next restart only.
        """

        changes = {
            SETTINGS_FIELDS[name]: value
            for name, value in request.model_dump(exclude_unset=True).items()
        }
        try:
            AtlassianConfig.from_settings({**services.user_settings(), **changes})
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        services.update_user_settings(changes)
        if app.state.poller is not None:
            await _stop_poller()
            await _start_poller()
        return get_settings()

    @app.get("/sync/calendar", dependencies=[Depends(require_api_key)])
    async def sync_calendar() -> list[dict[str, Any]]:
        return [asdict(event) for event in await services.coordinator.sync_calendar()]

    @app.get("/sync/gmail", dependencies=[Depends(require_api_key)])
    async def sync_gmail() -> list[dict[str, Any]]:
        return [asdict(email) for email in await services.coordinator.sync_gmail()]

    @app.get("/sync/slack", dependencies=[Depends(require_api_key)])
    async def sync_slack() -> list[dict[str, Any]]:
        return [asdict(message) for message in await services.coordinator.sync_slack()]

    @app.post("/meetings", dependencies=[Depends(require_api_key)])
    async def create_meeting(request: MeetingCreateRequest) -> dict[str, str]:
        meeting = await services.coordinator.create_zoom_meeting(
            MeetingRequest(
                topic=request.topic,
                start_time=request.start_time,
                duration_minutes=request.duration_minutes,
                agenda=request.agenda,
            )
        )
        return asdict(meeting)

    @app.get("/suggestions", dependencies=[Depends(require_api_key)])
    async def list_suggestions(force_refresh: bool = False) -> list[dict[str, Any]]:
        """Summary: Return the ranked suggestion feed.

        Importance: Served from the day-long cache unless a refresh is forced.
        Alternatives: Always recompute suggestions.
        """

        suggestions = await services.cache.get(force_refresh=force_refresh)
        return [suggestion.to_dict() for suggestion in suggestions]

    @app.post("/suggestions/refresh", dependencies=[Depends(require_api_key)])
    async def refresh_suggestions() -> list[dict[str, Any]]:
        return [suggestion.to_dict() for suggestion in await services.cache.force_refresh()]

    @app.post("/suggestions/{suggestion_id}/dismiss", dependencies=[Depends(require_api_key)])
    async def dismiss_suggestion(suggestion_id: str) -> list[dict[str, Any]]:
        suggestions = await services.suggestions.dismiss(suggestion_id)
        return [suggestion.to_dict() for suggestion in suggestions]

    @app.post("/suggestions/{suggestion_id}/accept", dependencies=[Depends(require_api_key)])
    async def accept_suggestion(suggestion_id: str) -> dict[str, Any]:
        """Summary: Turn a cached suggestion into a task.

        Importance: The suggestion is dismissed so it does not come back.
        Alternatives: Let clients create the task and dismiss separately.
        """

        try:
            task = await services.suggestions.accept(suggestion_id)
        except ValueError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return task.to_dict()

    @app.get("/tasks", dependencies=[Depends(require_api_key)])
    def list_tasks(include_completed: bool = True) -> list[dict[str, Any]]:
        tasks = services.tasks.list_tasks()
        if not include_completed:
            tasks = [task for task in tasks if not task.completed]
        return [task.to_dict() for task in tasks]

    @app.post("/tasks", dependencies=[Depends(require_api_key)])
    def create_task(request: TaskCreateRequest) -> dict[str, Any]:
        if request.priority not in PRIORITIES:
            raise HTTPException(status_code=400, detail=f"Unknown priority: {request.priority}")
        try:
            task = services.tasks.add_task(
                title=request.title,
                priority=request.priority,
                due_date=request.due_date,
                context=request.context,
                description=request.description,
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return task.to_dict()

    @app.patch("/tasks/{task_id}", dependencies=[Depends(require_api_key)])
    def update_task(task_id: str, request: TaskUpdateRequest) -> dict[str, Any]:
        changes = request.model_dump(exclude_unset=True)
        if not any(task.id == task_id for task in services.tasks.list_tasks()):
            raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
        try:
            task = services.tasks.update_task(task_id, changes)
        except (TypeError, ValueError) as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return task.to_dict()

    @app.delete("/tasks/{task_id}", dependencies=[Depends(require_api_key)])
    def delete_task(task_id: str) -> dict[str, str]:
        if not services.tasks.delete_task(task_id):
            raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
        return {"status": "deleted"}

    @app.post("/inbound/poll", dependencies=[Depends(require_api_key)])
    async def poll_inbound() -> dict[str, int]:
        """Summary: Run one inbound poll cycle on demand.

        Importance: Lets users pull new mentions without waiting for the timer.
        Alternatives: Only poll on the timer.
        """

        poller: InboundPoller | None = app.state.poller
        if poller is None:
            raise HTTPException(status_code=400, detail="Inbound relay is not configured")
        return {"acknowledged": await poller.poll_once()}

    return app
