"""Summary: Chat client interface and the Slack Web API implementation.

Importance: Supplies mentions, direct messages, and saved items to the suggestion pipeline.
Alternatives: Use the slack_sdk package.
"""

from __future__ import annotations

import asyncio
from abc import abstractmethod
from typing import Any

import httpx

from taskdeck.models import ChatMessage
from taskdeck.oauth import OAuthSettings, SlackOAuthClient, TokenClient, raise_for_slack_payload


SLACK_API_BASE_URL = "https://slack.com/api"
IMPORTANT_MESSAGE_LIMIT = 20


class ChatClient(TokenClient):
    """Summary: Abstract interface for chat reads.

    Importance: Lets the coordinator and tests swap the real API for fakes.
    Alternatives: Call the Slack client directly from the coordinator.
    """

    @abstractmethod
    async def list_important_messages(self) -> list[ChatMessage]:
        """Summary: Return recent mentions, direct messages, and saved items."""


class SlackClient(SlackOAuthClient, ChatClient):
    """Summary: Reads Slack activity through Web API methods.

    Importance: Raises a 401 ProviderError for revoked or expired tokens so the coordinator can refresh.
    Alternatives: Poll the Events API instead.
    """

    def __init__(
        self,
        settings: OAuthSettings,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        base_url: str = SLACK_API_BASE_URL,
    ) -> None:
        super().__init__(settings, http_client=http_client, timeout=timeout)
        self._base_url = base_url.rstrip("/")

    async def list_important_messages(self) -> list[ChatMessage]:
        """Summary: Combine mentions, DMs, and saved items, newest first.

        Importance: A message can be both a mention and saved, so results are deduplicated by id.
        Alternatives: Return each list separately and merge in the UI.
        """

        mentions, direct, saved = await asyncio.gather(
            self.list_mentions(10),
            self.list_direct_messages(10),
            self.list_saved_items(10),
        )
        unique: dict[str, ChatMessage] = {}
        for message in [*mentions, *direct, *saved]:
            unique.setdefault(message.id, message)
        ordered = sorted(unique.values(), key=lambda message: float(message.timestamp or 0), reverse=True)
        return ordered[:IMPORTANT_MESSAGE_LIMIT]

    async def list_mentions(self, limit: int = 20) -> list[ChatMessage]:
        identity = await self._call("auth.test")
        payload = await self._call(
            "search.messages",
            {
                "query": f"<@{identity.get('user_id', '')}>",
                "sort": "timestamp",
                "sort_dir": "desc",
                "count": limit,
            },
        )
        matches = (payload.get("messages") or {}).get("matches") or []
        return [_parse_message(match, "mention") for match in matches]

    async def list_direct_messages(self, limit: int = 20) -> list[ChatMessage]:
        """Summary: Fetch the latest messages from the first few direct-message conversations."""

        conversations = await self._call(
            "conversations.list", {"types": "im", "limit": 10, "exclude_archived": "true"}
        )
        messages: list[ChatMessage] = []
        for channel in conversations.get("channels") or []:
            channel_id = channel.get("id")
            if not channel_id:
                continue
            history = await self._call("conversations.history", {"channel": channel_id, "limit": 5})
            for item in history.get("messages") or []:
                messages.append(_parse_message({**item, "channel": {"id": channel_id}}, "dm"))
        return messages[:limit]

    async def list_saved_items(self, limit: int = 20) -> list[ChatMessage]:
        payload = await self._call("stars.list", {"limit": limit})
        items = [item for item in payload.get("items") or [] if item.get("type") == "message"]
        return [
            _parse_message({**item.get("message", {}), "channel": item.get("channel")}, "saved")
            for item in items
        ]

    async def _call(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        payload = await self._get_json(f"{self._base_url}/{method}", params=params)
        raise_for_slack_payload(payload)
        return payload


def _parse_message(message: dict[str, Any], kind: str) -> ChatMessage:
    """Summary: Normalize a Slack message payload into a ChatMessage.

    Importance: Slack nests channel info as either an id string or an object.
    Alternatives: Keep raw payloads and parse at ranking time.
    """

    channel = message.get("channel")
    if isinstance(channel, dict):
        channel_id = channel.get("id") or ""
        channel_name = channel.get("name")
    else:
        channel_id = channel or ""
        channel_name = None
    timestamp = str(message.get("ts") or "")
    return ChatMessage(
        id=f"{channel_id}_{timestamp}",
        type=kind,
        text=message.get("text") or "",
        timestamp=timestamp,
        user_name=message.get("username") or message.get("user"),
        channel_name=channel_name,
        channel=channel_id or None,
        permalink=message.get("permalink"),
    )
