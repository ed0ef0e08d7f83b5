"""Summary: Mail client interface and the Gmail implementation.

Importance: Supplies unread and starred mail to the suggestion pipeline.
Alternatives: Read mail over IMAP.
"""

from __future__ import annotations

import asyncio
import time
from abc import abstractmethod
from typing import Any

import httpx

from taskdeck.models import EmailMessage
from taskdeck.oauth import GoogleOAuthClient, OAuthSettings, TokenClient


GMAIL_BASE_URL = "https://gmail.googleapis.com/gmail/v1"
IMPORTANT_WINDOW_SECONDS = 2 * 24 * 3600


class MailClient(TokenClient):
    """Summary: Abstract interface for mailbox reads.

    Importance: Standardizes retrieval for the coordinator and test fakes.
    Alternatives: Use provider-specific classes directly in the coordinator.
    """

    @abstractmethod
    async def list_important_emails(self, limit: int = 20) -> list[EmailMessage]:
        """Summary: Return recent unread or starred inbox messages."""


class GmailClient(GoogleOAuthClient, MailClient):
    """Summary: Reads Gmail messages via the REST API using OAuth tokens.

    Importance: Shares the Google credential with the calendar client.
    Alternatives: Use IMAP with app passwords.
    """

    def __init__(
        self,
        settings: OAuthSettings,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        base_url: str = GMAIL_BASE_URL,
    ) -> None:
        super().__init__(settings, http_client=http_client, timeout=timeout)
        self._base_url = base_url.rstrip("/")

    async def list_important_emails(self, limit: int = 20) -> list[EmailMessage]:
        """Summary: Fetch unread or starred inbox mail from the last 48 hours.

        Importance: Keeps the suggestion feed focused on mail that still needs attention.
        Alternatives: Fetch the whole inbox and filter locally.
        """

        after = int(time.time()) - IMPORTANT_WINDOW_SECONDS
        listing = await self._get_json(
            f"{self._base_url}/users/me/messages",
            params={"q": f"(is:unread OR is:starred) in:inbox after:{after}", "maxResults": limit},
        )
        message_ids = [item["id"] for item in listing.get("messages", []) if item.get("id")]
        details = await asyncio.gather(
            *(
                self._get_json(
                    f"{self._base_url}/users/me/messages/{message_id}",
                    params={"format": "metadata"},
                )
                for message_id in message_ids
            )
        )
        return [_parse_gmail_message(detail) for detail in details]


def _parse_gmail_message(message: dict[str, Any]) -> EmailMessage:
    """Summary: Parse a Gmail message payload into an EmailMessage.

    Importance: Unread and starred state come from labels, not headers.
    Alternatives: Store raw Gmail payloads and parse later.
    """

    payload = message.get("payload") or {}
    headers = {
        header.get("name", "").lower(): header.get("value", "")
        for header in payload.get("headers", [])
    }
    labels = message.get("labelIds") or []
    return EmailMessage(
        id=message["id"],
        subject=headers.get("subject", ""),
        sender=headers.get("from", ""),
        snippet=message.get("snippet", ""),
        date=headers.get("date", ""),
        is_unread="UNREAD" in labels,
        is_starred="STARRED" in labels,
    )
