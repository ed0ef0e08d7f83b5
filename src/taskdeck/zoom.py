"""Summary: Meeting client interface and the Zoom implementation.

Importance: Lets tasks and events spawn video meetings.
Alternatives: Generate Google Meet links through calendar events.
"""

from __future__ import annotations

from abc import abstractmethod

import httpx

from taskdeck.errors import ProviderError
from taskdeck.models import MeetingRequest, MeetingResult
from taskdeck.oauth import OAuthSettings, TokenClient, ZoomOAuthClient


ZOOM_API_BASE_URL = "https://api.zoom.us/v2"
SCHEDULED_MEETING = 2


class MeetingClient(TokenClient):
    """Summary: Abstract interface for creating meetings."""

    @abstractmethod
    async def create_meeting(self, request: MeetingRequest) -> MeetingResult:
        """Summary: Schedule a meeting and return its join link."""


class ZoomClient(ZoomOAuthClient, MeetingClient):
    """Summary: Schedules Zoom meetings for the authenticated user.

    Importance: Refresh is handled by the session coordinator, not inside create_meeting.
    Alternatives: Use Zoom server-to-server OAuth apps.
    """

    def __init__(
        self,
        settings: OAuthSettings,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        base_url: str = ZOOM_API_BASE_URL,
    ) -> None:
        super().__init__(settings, http_client=http_client, timeout=timeout)
        self._base_url = base_url.rstrip("/")

    async def create_meeting(self, request: MeetingRequest) -> MeetingResult:
        body = {
            "topic": request.topic,
            "type": SCHEDULED_MEETING,
            "duration": request.duration_minutes,
            "timezone": "UTC",
            "settings": {
                "host_video": True,
                "participant_video": True,
                "join_before_host": False,
                "mute_upon_entry": True,
            },
        }
        if request.start_time:
            body["start_time"] = request.start_time
        if request.agenda:
            body["agenda"] = request.agenda
        payload = await self._post_json(f"{self._base_url}/users/me/meetings", body)
        if "join_url" not in payload:
            raise ProviderError(self.provider, None, "Meeting response is missing join_url")
        return MeetingResult(
            id=str(payload.get("id", "")),
            join_url=payload["join_url"],
            topic=payload.get("topic") or request.topic,
        )
