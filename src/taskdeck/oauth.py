"""Summary: OAuth token plumbing shared by provider clients.

Importance: Gives every provider the same set_tokens, code exchange, and refresh contract.
Alternatives: Use provider SDKs for OAuth flows.
"""

from __future__ import annotations

import base64
import logging
import secrets
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx

from taskdeck.errors import NotConnectedError, ProviderError, raise_for_response
from taskdeck.models import GOOGLE, SLACK, ZOOM, CredentialRecord


logger = logging.getLogger(__name__)

GOOGLE_SCOPES = (
    "https://www.googleapis.com/auth/calendar.readonly "
    "https://www.googleapis.com/auth/gmail.readonly "
    "https://www.googleapis.com/auth/contacts.readonly"
)
SLACK_BOT_SCOPES = "app_mentions:read,chat:write,reactions:write"
SLACK_USER_SCOPES = (
    "channels:read,channels:history,groups:read,groups:history,mpim:history,"
    "im:read,im:history,users:read,stars:read,search:read"
)
ZOOM_SCOPES = "meeting:write meeting:read user:read"
SLACK_AUTH_ERRORS = ("invalid_auth", "not_authed", "token_expired", "token_revoked", "account_inactive")


@dataclass(frozen=True)
class OAuthSettings:
    """Summary: Client credentials and token endpoint for one OAuth provider.

    Importance: Keeps token URLs configurable for local and cloud deployments.
    Alternatives: Hardcode token URLs in each client.
    """

    client_id: str
    client_secret: str
    redirect_uri: str
    token_url: str


class TokenClient(ABC):
    """Summary: Token contract every provider client satisfies.

    Importance: Lets the session coordinator inject, exchange, and refresh tokens uniformly.
    Alternatives: Special-case each provider inside the coordinator.
    """

    @abstractmethod
    def set_tokens(self, record: CredentialRecord) -> None:
        """Summary: Replace the tokens used for subsequent calls."""

    @property
    @abstractmethod
    def tokens(self) -> CredentialRecord | None:
        """Summary: Return the tokens currently in use, if any."""

    @abstractmethod
    async def exchange_code_for_tokens(self, code: str) -> CredentialRecord:
        """Summary: Exchange an authorization code for a credential record."""

    @abstractmethod
    async def refresh_tokens(self) -> CredentialRecord | None:
        """Summary: Obtain fresh tokens, or None when the provider cannot refresh."""

    async def aclose(self) -> None:
        """Summary: Release the client's network resources; clients without any keep this no-op."""


class OAuthClient(TokenClient):
    """Summary: httpx-backed implementation of the token contract.

    Importance: Centralizes token requests and authenticated JSON calls for REST providers.
    Alternatives: Duplicate request code in every provider client.
    """

    provider = ""

    def __init__(
        self,
        settings: OAuthSettings,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._settings = settings
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)
        self._tokens: CredentialRecord | None = None

    def set_tokens(self, record: CredentialRecord) -> None:
        self._tokens = record

    @property
    def tokens(self) -> CredentialRecord | None:
        return self._tokens

    async def exchange_code_for_tokens(self, code: str) -> CredentialRecord:
        """Summary: Exchange an authorization code for tokens.

        Importance: Completes OAuth flows by retrieving access and refresh tokens.
        Alternatives: Delegate the exchange to an external callback service.
        """

        _ensure_oauth_config(self._settings, self.provider)
        payload = await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self._settings.redirect_uri,
            }
        )
        return self._record_from_payload(payload)

    async def refresh_tokens(self) -> CredentialRecord | None:
        """Summary: Refresh the access token using the stored refresh token.

        Importance: Keeps sessions alive without asking the user to reconnect.
        Alternatives: Force re-authentication when access tokens expire.
        """

        if self._tokens is None or not self._tokens.refresh_token:
            logger.info("No refresh token available for %s.", self.provider)
            return None
        payload = await self._token_request(
            {"grant_type": "refresh_token", "refresh_token": self._tokens.refresh_token}
        )
        return self._record_from_payload(payload).merged_with(self._tokens)

    async def aclose(self) -> None:
        await self._http_client.aclose()

    async def _token_request(self, form: dict[str, str]) -> dict[str, Any]:
        """Summary: Post a form-encoded token request with client credentials in the body."""

        data = {
            "client_id": self._settings.client_id,
            "client_secret": self._settings.client_secret,
            **form,
        }
        response = await self._http_client.post(
            self._settings.token_url,
            data=data,
            headers={"Accept": "application/json"},
        )
        raise_for_response(self.provider, response)
        return response.json()

    def _record_from_payload(self, payload: dict[str, Any]) -> CredentialRecord:
        """Summary: Normalize a token response into a credential record.

        Importance: Converts relative expiry into an absolute epoch timestamp for storage.
        Alternatives: Store the raw provider response.
        """

        access_token = payload.get("access_token")
        if not access_token:
            raise ProviderError(self.provider, None, "Token response is missing access_token")
        return CredentialRecord(
            provider=self.provider,
            access_token=access_token,
            refresh_token=payload.get("refresh_token"),
            expires_at=_expires_at(payload.get("expires_in")),
        )

    def _auth_headers(self) -> dict[str, str]:
        if self._tokens is None or not self._tokens.access_token:
            raise NotConnectedError(self.provider)
        return {"Authorization": f"Bearer {self._tokens.access_token}"}

    async def _get_json(self, url: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        response = await self._http_client.get(url, params=params, headers=self._auth_headers())
        raise_for_response(self.provider, response)
        return response.json()

    async def _post_json(self, url: str, body: dict[str, Any]) -> dict[str, Any]:
        response = await self._http_client.post(url, json=body, headers=self._auth_headers())
        raise_for_response(self.provider, response)
        return response.json()


class GoogleOAuthClient(OAuthClient):
    """Summary: Google token handling shared by the Calendar and Gmail clients."""

    provider = GOOGLE


class SlackOAuthClient(OAuthClient):
    """Summary: Slack token handling.

    Importance: Slack reports failures in an ``ok: false`` body and returns bot tokens alongside user tokens.
    Alternatives: Use the Slack SDK.
    """

    provider = SLACK

    async def _token_request(self, form: dict[str, str]) -> dict[str, Any]:
        payload = await super()._token_request(form)
        raise_for_slack_payload(payload)
        return payload

    def _record_from_payload(self, payload: dict[str, Any]) -> CredentialRecord:
        record = super()._record_from_payload(payload)
        team = payload.get("team") if isinstance(payload.get("team"), dict) else {}
        return CredentialRecord(
            provider=record.provider,
            access_token=record.access_token,
            refresh_token=record.refresh_token,
            expires_at=record.expires_at,
            bot_token=record.access_token if payload.get("bot_user_id") else None,
            team_url=team.get("url"),
        )


class ZoomOAuthClient(OAuthClient):
    """Summary: Zoom token handling, which authenticates the client with HTTP Basic auth."""

    provider = ZOOM

    async def _token_request(self, form: dict[str, str]) -> dict[str, Any]:
        credentials = f"{self._settings.client_id}:{self._settings.client_secret}"
        auth_header = base64.b64encode(credentials.encode("utf-8")).decode("utf-8")
        response = await self._http_client.post(
            self._settings.token_url,
            params=form,
            headers={
                "Authorization": f"Basic {auth_header}",
                "Content-Type": "application/x-www-form-urlencoded",
            },
        )
        raise_for_response(self.provider, response)
        return response.json()


def create_state_token() -> str:
    """Summary: Generate a CSRF state token.

    Importance: Protects OAuth flows from CSRF attacks.
    Alternatives: Encode the provider name in a signed state value.
    """

    return secrets.token_urlsafe(24)


def build_authorization_url(provider: str, settings: OAuthSettings, state: str) -> str:
    """Summary: Build the consent URL a user opens to connect a provider.

    Importance: Google asks for offline access so a refresh token is issued; Slack requests
    bot scopes for thread replies plus user scopes for search and history.
    Alternatives: Hand users provider-specific URLs from documentation.
    """

    _ensure_oauth_config(settings, provider)
    if provider == GOOGLE:
        url = "https://accounts.google.com/o/oauth2/v2/auth"
        params = {
            "client_id": settings.client_id,
            "redirect_uri": settings.redirect_uri,
            "response_type": "code",
            "access_type": "offline",
            "prompt": "consent",
            "scope": GOOGLE_SCOPES,
            "state": state,
        }
    elif provider == SLACK:
        url = "https://slack.com/oauth/v2/authorize"
        params = {
            "client_id": settings.client_id,
            "redirect_uri": settings.redirect_uri,
            "scope": SLACK_BOT_SCOPES,
            "user_scope": SLACK_USER_SCOPES,
            "state": state,
        }
    elif provider == ZOOM:
        url = "https://zoom.us/oauth/authorize"
        params = {
            "client_id": settings.client_id,
            "redirect_uri": settings.redirect_uri,
            "response_type": "code",
            "scope": ZOOM_SCOPES,
            "state": state,
        }
    else:
        raise ValueError(f"Unknown OAuth provider: {provider}")
    return str(httpx.URL(url, params=params))


def raise_for_slack_payload(payload: dict[str, Any]) -> None:
    """Summary: Translate Slack's ``ok: false`` responses into ProviderError.

    Importance: Slack answers HTTP 200 for auth failures, so the 401 must be synthesized.
    Alternatives: Let callers inspect ``ok`` themselves.
    """

    if payload.get("ok", True):
        return
    error = str(payload.get("error") or "unknown_error")
    status = 401 if error in SLACK_AUTH_ERRORS else 400
    raise ProviderError(SLACK, status, error)


def _ensure_oauth_config(settings: OAuthSettings, provider: str) -> None:
    """Summary: Validate that OAuth credentials exist.

    Importance: Prevents confusing token exchange errors when credentials are missing.
    Alternatives: Allow requests to fail at the provider endpoint.
    """

    if not settings.client_id or not settings.client_secret:
        raise ValueError(f"Missing OAuth client credentials for {provider}")


def _expires_at(expires_in: Any) -> float | None:
    if isinstance(expires_in, bool) or not isinstance(expires_in, (int, float)):
        return None
    return time.time() + float(expires_in)
