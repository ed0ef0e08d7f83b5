"""Summary: Inbound chat-mention poller and its relay client.

Importance: Turns queued chat mentions into local tasks, Jira tickets, or Confluence pages.
Alternatives: Receive Slack events directly through a public webhook.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable

import httpx

from taskdeck.chat import SLACK_API_BASE_URL
from taskdeck.errors import ProviderError, raise_for_response
from taskdeck.models import (
    LinkedItem,
    PageRequest,
    PageResult,
    PendingInboundItem,
    Task,
    TicketRequest,
    TicketResult,
)
from taskdeck.oauth import raise_for_slack_payload
from taskdeck.services import utc_now_iso


logger = logging.getLogger(__name__)

RELAY = "relay"
IN_PROGRESS_REACTION = "eyes"
DONE_REACTION = "white_check_mark"
HANDLER_NOT_CONFIGURED = "Handler not configured"

TaskHandler = Callable[[Task], Awaitable[None]]
TicketHandler = Callable[[TicketRequest], Awaitable[TicketResult]]
PageHandler = Callable[[PageRequest], Awaitable[PageResult]]


class InboxRelayClient:
    """Summary: HTTP client for the pending-mentions relay and Slack reactions.

    Importance: Keeps the poll and acknowledge wire format out of the poller.
    Alternatives: Read pending items from a shared database.
    """

    def __init__(
        self,
        base_url: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        slack_api_url: str = SLACK_API_BASE_URL,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)
        self._slack_api_url = slack_api_url.rstrip("/")

    async def fetch_pending(self) -> list[PendingInboundItem]:
        """Summary: Fetch the batch of items awaiting processing.

        Importance: Malformed items are skipped so one bad payload cannot block the batch.
        Alternatives: Fail the whole batch on a malformed item.
        """

        response = await self._http_client.get(f"{self._base_url}/pending-tasks")
        raise_for_response(RELAY, response)
        payload = response.json()
        if not payload.get("success"):
            logger.warning("Relay reported failure: %s", payload.get("error"))
            return []
        items: list[PendingInboundItem] = []
        for raw in payload.get("tasks") or []:
            try:
                items.append(PendingInboundItem.from_payload(raw))
            except (KeyError, TypeError):
                logger.warning("Skipping malformed inbound item: %s", raw)
        return items

    async def acknowledge(self, item_id: str) -> None:
        response = await self._http_client.post(
            f"{self._base_url}/pending-tasks", json={"taskId": item_id}
        )
        raise_for_response(RELAY, response)

    async def reply(self, channel: str, thread_ts: str, text: str, bot_token: str) -> None:
        response = await self._http_client.post(
            f"{self._base_url}/reply",
            json={"channel": channel, "threadTs": thread_ts, "text": text, "botToken": bot_token},
        )
        raise_for_response(RELAY, response)
        payload = response.json()
        if not payload.get("success"):
            raise ProviderError(RELAY, None, str(payload.get("error") or "reply failed"))

    async def add_reaction(self, channel: str, timestamp: str, name: str, bot_token: str) -> None:
        await self._reaction("reactions.add", channel, timestamp, name, bot_token)

    async def remove_reaction(self, channel: str, timestamp: str, name: str, bot_token: str) -> None:
        await self._reaction("reactions.remove", channel, timestamp, name, bot_token)

    async def aclose(self) -> None:
        await self._http_client.aclose()

    async def _reaction(self, method: str, channel: str, timestamp: str, name: str, bot_token: str) -> None:
        response = await self._http_client.post(
            f"{self._slack_api_url}/{method}",
            json={"channel": channel, "timestamp": timestamp, "name": name},
            headers={"Authorization": f"Bearer {bot_token}"},
        )
        raise_for_response(RELAY, response)
        raise_for_slack_payload(response.json())


class InboundPoller:
    """Summary: Polls the relay on a timer and processes items one at a time.

    Importance: Overlapping ticks are skipped, and every remote call is logged rather than raised.
    Alternatives: Process items concurrently with a worker pool.
    """

    def __init__(
        self,
        relay: InboxRelayClient,
        on_task: TaskHandler,
        bot_token: Callable[[], str | None],
        on_ticket: TicketHandler | None = None,
        on_page: PageHandler | None = None,
        interval_seconds: float = 10.0,
        on_close: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self._relay = relay
        self._on_task = on_task
        self._bot_token = bot_token
        self._on_ticket = on_ticket
        self._on_page = on_page
        self._interval = interval_seconds
        self._on_close = on_close
        self._polling = False
        self._timer: asyncio.Task[None] | None = None
        self._cycles: set[asyncio.Task[int]] = set()

    @property
    def is_polling(self) -> bool:
        return self._polling

    @property
    def is_running(self) -> bool:
        return self._timer is not None

    async def start(self) -> None:
        """Summary: Schedule the timer, then poll once immediately."""

        if self._timer is not None:
            return
        logger.info("Starting inbound polling every %ss.", self._interval)
        self._timer = asyncio.create_task(self._tick_forever())
        await self.poll_once()

    async def stop(self) -> None:
        """Summary: Cancel the timer; cycles already in flight are left to finish."""

        if self._timer is None:
            return
        self._timer.cancel()
        try:
            await self._timer
        except asyncio.CancelledError:
            pass
        self._timer = None
        logger.info("Stopped inbound polling.")

    async def aclose(self) -> None:
        """Summary: Stop polling and release the relay and handler HTTP clients."""

        await self.stop()
        await self._relay.aclose()
        if self._on_close is not None:
            await self._on_close()

    async def wait_idle(self) -> None:
        if self._cycles:
            await asyncio.gather(*self._cycles, return_exceptions=True)

    async def poll_once(self) -> int:
        """Summary: Fetch and process one batch; returns the number of acknowledged items.

        Importance: Returns immediately without fetching while another cycle is running.
        Alternatives: Queue the extra cycle.
        """

        if self._polling:
            logger.debug("Inbound poll already in progress; skipping tick.")
            return 0
        self._polling = True
        try:
            try:
                items = await self._relay.fetch_pending()
            except Exception:
                logger.exception("Error polling pending inbound items.")
                return 0
            if items:
                logger.info("Found %s pending inbound item(s).", len(items))
            acknowledged = 0
            for item in items:
                await self.process_item(item)
                try:
                    await self._relay.acknowledge(item.id)
                    acknowledged += 1
                except Exception:
                    logger.exception("Failed to acknowledge inbound item %s.", item.id)
            return acknowledged
        finally:
            self._polling = False

    async def process_item(self, item: PendingInboundItem) -> None:
        """Summary: Create the page, ticket, and task an item asks for.

        Importance: A successful page short-circuits the item; ticket and page failures are
        written into the task description, and a failed task save is reported in the thread.
        Alternatives: Abort the item on the first downstream failure.
        """

        title = item.title
        description = item.description or ""
        logger.info(
            "Processing inbound item %s (jira=%s, confluence=%s).",
            item.id,
            item.should_create_jira,
            item.should_create_confluence,
        )

        if item.should_create_confluence:
            page, error = await self._create_page(item)
            if page is not None:
                await self._send_feedback(item, f"📄 Confluence page created: <{page.url}|{item.title}>")
                return
            description = f"Failed to create Confluence page: {error}\n\nOriginal context:\n{description}"

        ticket: TicketResult | None = None
        if item.should_create_jira and not item.should_create_confluence:
            ticket, error = await self._create_ticket(item)
            if ticket is not None:
                title = f"Validate Jira ticket: {ticket.key}"
                description = (
                    "Review and validate the Jira ticket that was created:\n\n"
                    f"{description}\n\nJira ticket: {ticket.url}"
                )
            else:
                description = f"Failed to create Jira ticket: {error}\n\nOriginal context:\n{description}"

        task = build_task(item, title, description, ticket)
        try:
            await self._on_task(task)
            message = f'✅ Task created: "{title}"'
        except Exception as exc:
            logger.exception("Failed to save task for inbound item %s.", item.id)
            message = f'⚠️ Failed to save task "{title}": {exc}'
        if ticket is not None:
            message += f"\n\n🎫 Jira ticket created: <{ticket.url}|{ticket.key}>"
        await self._send_feedback(item, message)

    async def _create_page(self, item: PendingInboundItem) -> tuple[PageResult | None, str]:
        if self._on_page is None:
            logger.error("Confluence page requested but no handler is configured.")
            return None, HANDLER_NOT_CONFIGURED
        try:
            return await self._on_page(PageRequest(title=item.title, body=item.description)), ""
        except Exception as exc:
            logger.exception("Failed to create Confluence page for %s.", item.id)
            return None, str(exc)

    async def _create_ticket(self, item: PendingInboundItem) -> tuple[TicketResult | None, str]:
        if self._on_ticket is None:
            logger.error("Jira ticket requested but no handler is configured.")
            return None, HANDLER_NOT_CONFIGURED
        request = TicketRequest(
            summary=item.title,
            description=item.description,
            assignee_name=item.assignee_name,
            assignee_email=item.assignee_email,
        )
        try:
            return await self._on_ticket(request), ""
        except Exception as exc:
            logger.exception("Failed to create Jira ticket for %s.", item.id)
            return None, str(exc)

    async def _send_feedback(self, item: PendingInboundItem, text: str) -> None:
        """Summary: Reply in the thread, then swap the in-progress reaction for done.

        Importance: Each call fails independently and never undoes the task.
        Alternatives: Skip reactions when the reply fails.
        """

        bot_token = self._bot_token()
        if not bot_token:
            logger.error("No Slack bot token found; skipping chat feedback for %s.", item.id)
            return
        await _logged(
            "send Slack reply", self._relay.reply(item.channel, item.thread_ts, text, bot_token)
        )
        await _logged(
            "remove reaction",
            self._relay.remove_reaction(item.channel, item.message_ts, IN_PROGRESS_REACTION, bot_token),
        )
        await _logged(
            "add reaction",
            self._relay.add_reaction(item.channel, item.message_ts, DONE_REACTION, bot_token),
        )

    async def _tick_forever(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            cycle = asyncio.create_task(self.poll_once())
            self._cycles.add(cycle)
            cycle.add_done_callback(self._cycles.discard)


def build_task(
    item: PendingInboundItem, title: str, description: str, ticket: TicketResult | None
) -> Task:
    """Summary: Build the local task for an inbound item.

    Importance: Always links back to the originating chat message.
    Alternatives: Store only the message text.
    """

    linked = [
        LinkedItem(
            id=f"slack_{item.channel}_{item.message_ts}",
            type="slack",
            title="Slack Message",
            url=slack_deep_link(item),
        )
    ]
    if ticket is not None:
        linked.append(LinkedItem(id=f"jira_{ticket.key}", type="jira", title=f"Jira: {ticket.key}", url=ticket.url))
    now = utc_now_iso()
    return Task(
        id=str(uuid.uuid4()),
        title=title,
        source="slack",
        priority="medium",
        created_at=now,
        updated_at=now,
        source_id=f"{item.channel}_{item.message_ts}",
        context=f"From Slack: {item.user}",
        description=description or None,
        linked_items=tuple(linked),
    )


def slack_deep_link(item: PendingInboundItem) -> str:
    message_id = "p" + item.message_ts.replace(".", "")
    return f"slack://channel?team={item.team_id}&id={item.channel}&message={message_id}"


async def _logged(action: str, call: Awaitable[Any]) -> None:
    try:
        await call
    except Exception:
        logger.exception("Failed to %s.", action)
