"""Summary: Jira and Confluence Cloud clients authenticated with API tokens.

Importance: Create tickets and pages on behalf of inbound chat requests.
Alternatives: Use the atlassian-python-api package.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import httpx

from taskdeck.config import AtlassianConfig
from taskdeck.errors import ProviderError, raise_for_response
from taskdeck.models import CONFLUENCE, JIRA, PageRequest, PageResult, TicketRequest, TicketResult


logger = logging.getLogger(__name__)


class AtlassianClient:
    """Summary: Shared request plumbing for Atlassian Cloud REST APIs.

    Importance: Both products use HTTP Basic auth with the account email and an API token.
    Alternatives: Use OAuth 2.0 (3LO) apps.
    """

    provider = ""

    def __init__(
        self,
        config: AtlassianConfig,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._config = config
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._http_client.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        response = await self._http_client.request(
            method,
            url,
            auth=httpx.BasicAuth(self._config.email, self._config.api_token),
            headers={"Accept": "application/json"},
            **kwargs,
        )
        raise_for_response(self.provider, response)
        return response.json()


class JiraClient(AtlassianClient):
    """Summary: Creates Jira issues in a default project.

    Importance: Turns chat requests into tracked tickets.
    Alternatives: Post tickets through an automation webhook.
    """

    provider = JIRA

    def __init__(
        self,
        config: AtlassianConfig,
        project_key: str = "AMP",
        issue_type: str = "Task",
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        super().__init__(config, http_client=http_client, timeout=timeout)
        self._project_key = project_key
        self._issue_type = issue_type
        self._base_url = f"https://{config.domain}/rest/api/3"

    async def create_issue(self, request: TicketRequest) -> TicketResult:
        """Summary: Create an issue and return its key and browse URL.

        Importance: The description is wrapped in the Atlassian document format required by API v3.
        Alternatives: Use API v2 with plain-text descriptions.
        """

        fields: dict[str, Any] = {
            "project": {"key": self._project_key},
            "summary": request.summary,
            "issuetype": {"name": self._issue_type},
        }
        if request.description:
            fields["description"] = _adf_document(request.description)
        if request.assignee_email:
            account_id = await self._find_account_id(request.assignee_email)
            if account_id:
                fields["assignee"] = {"accountId": account_id}
        payload = await self._request("POST", f"{self._base_url}/issue", json={"fields": fields})
        key = payload.get("key")
        if not key:
            raise ProviderError(self.provider, None, "Issue response is missing key")
        logger.info("Created Jira issue %s.", key)
        return TicketResult(key=key, url=self.issue_url(key))

    def issue_url(self, key: str) -> str:
        return f"https://{self._config.domain}/browse/{key}"

    async def _find_account_id(self, email: str) -> str | None:
        try:
            matches = await self._request("GET", f"{self._base_url}/user/search", params={"query": email})
        except (httpx.HTTPError, ProviderError):
            logger.warning("Could not resolve Jira assignee %s.", email, exc_info=True)
            return None
        if not matches:
            return None
        return matches[0].get("accountId")


class ConfluenceClient(AtlassianClient):
    """Summary: Creates Confluence pages in a configured space."""

    provider = CONFLUENCE

    def __init__(
        self,
        config: AtlassianConfig,
        space_key: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        super().__init__(config, http_client=http_client, timeout=timeout)
        self._space_key = space_key
        self._base_url = f"https://{config.domain}/wiki/api/v2"

    async def create_page(self, request: PageRequest) -> PageResult:
        """Summary: Create a page from a title and markdown-ish body.

        Importance: Page-only chat requests end here without creating a local task.
        Alternatives: Create pages through a template blueprint.
        """

        if not self._space_key:
            raise ValueError("Confluence space is not configured")
        space_id = await self._space_id(self._space_key)
        payload = await self._request(
            "POST",
            f"{self._base_url}/pages",
            json={
                "spaceId": space_id,
                "status": "current",
                "title": request.title,
                "body": {"representation": "storage", "value": to_storage_format(request.body or "")},
            },
        )
        page_id = str(payload["id"])
        logger.info("Created Confluence page %s.", page_id)
        return PageResult(id=page_id, url=self.page_url(page_id))

    def page_url(self, page_id: str) -> str:
        return f"https://{self._config.domain}/wiki/pages/{page_id}"

    async def _space_id(self, space_key: str) -> str:
        payload = await self._request("GET", f"{self._base_url}/spaces", params={"keys": space_key})
        results = payload.get("results") or []
        if not results:
            raise ValueError(f'Space with key "{space_key}" not found')
        return str(results[0]["id"])


def to_storage_format(text: str) -> str:
    """Summary: Convert light markdown to Confluence storage XHTML.

    Importance: Handles bold, italics, paragraphs, and line breaks only.
    Alternatives: Use a full markdown renderer.
    """

    html = re.sub(r"\*\*(.*?)\*\*", r"<strong>\1</strong>", text)
    html = re.sub(r"\*(.*?)\*", r"<em>\1</em>", html)
    html = html.replace("\n\n", "</p><p>").replace("\n", "<br/>")
    return f"<p>{html}</p>"


def _adf_document(text: str) -> dict[str, Any]:
    return {
        "type": "doc",
        "version": 1,
        "content": [{"type": "paragraph", "content": [{"type": "text", "text": text}]}],
    }
