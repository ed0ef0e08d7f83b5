"""Summary: Calendar client interface and the Google Calendar implementation.

Importance: Supplies upcoming events to the suggestion pipeline.
Alternatives: Read calendars from ICS exports instead of the API.
"""

from __future__ import annotations

from abc import abstractmethod
from datetime import datetime, time, timedelta
from typing import Any

import httpx

from taskdeck.models import CalendarEvent
from taskdeck.oauth import GoogleOAuthClient, OAuthSettings, TokenClient


GOOGLE_CALENDAR_BASE_URL = "https://www.googleapis.com/calendar/v3"


class CalendarClient(TokenClient):
    """Summary: Abstract interface for calendar reads.

    Importance: Lets the coordinator and tests swap the real API for fakes.
    Alternatives: Call the Google client directly from the coordinator.
    """

    @abstractmethod
    async def list_today_events(self) -> list[CalendarEvent]:
        """Summary: Return the events on the user's primary calendar for the current day."""


class GoogleCalendarClient(GoogleOAuthClient, CalendarClient):
    """Summary: Reads the primary Google calendar through the REST API.

    Importance: Provides today's meetings for join and prep suggestions.
    Alternatives: Use the google-api-python-client SDK.
    """

    def __init__(
        self,
        settings: OAuthSettings,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        base_url: str = GOOGLE_CALENDAR_BASE_URL,
    ) -> None:
        super().__init__(settings, http_client=http_client, timeout=timeout)
        self._base_url = base_url.rstrip("/")

    async def list_today_events(self) -> list[CalendarEvent]:
        """Summary: Fetch today's events, including ones that already started.

        Importance: The suggestion engine decides which events are still relevant.
        Alternatives: Query only events after the current time.
        """

        now = datetime.now().astimezone()
        start = datetime.combine(now.date(), time.min, tzinfo=now.tzinfo)
        end = start + timedelta(days=1)
        payload = await self._get_json(
            f"{self._base_url}/calendars/primary/events",
            params={
                "timeMin": start.isoformat(),
                "timeMax": end.isoformat(),
                "singleEvents": "true",
                "orderBy": "startTime",
            },
        )
        return [_parse_event(item) for item in payload.get("items", []) if item.get("id")]


def _parse_event(item: dict[str, Any]) -> CalendarEvent:
    """Summary: Convert a Google event resource into a CalendarEvent.

    Importance: All-day events only carry a date, which is kept as-is.
    Alternatives: Drop all-day events.
    """

    start = item.get("start") or {}
    end = item.get("end") or {}
    return CalendarEvent(
        id=item["id"],
        title=item.get("summary") or "Untitled Event",
        start=start.get("dateTime") or start.get("date") or "",
        end=end.get("dateTime") or end.get("date") or "",
        description=item.get("description"),
        location=item.get("location"),
    )
