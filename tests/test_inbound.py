"""Summary: Tests for the inbound mention poller.

Importance: Validates ordering, short-circuits, and failure annotations of inbound items.
Alternatives: Replay recorded relay traffic against a live workspace.
"""

from __future__ import annotations

import asyncio
from typing import Any

from taskdeck.inbound import InboundPoller, build_task, slack_deep_link
from taskdeck.models import PageRequest, PageResult, PendingInboundItem, Task, TicketRequest, TicketResult


def _item(item_id: str = "item-1", **overrides: Any) -> PendingInboundItem:
    payload = {
        "id": item_id,
        "title": "Ship the report",
        "description": "Please ship the Q3 report",
        "channel": "C123",
        "messageTs": "1700000000.000100",
        "threadTs": "1700000000.000100",
        "user": "alex",
        "teamId": "T999",
    }
    payload.update(overrides)
    return PendingInboundItem.from_payload(payload)


class FakeRelay:
    """Summary: In-memory relay that records every call in order."""

    def __init__(self, batches: list[list[PendingInboundItem]] | None = None) -> None:
        self.batches = list(batches or [])
        self.log: list[tuple[str, ...]] = []
        self.fetch_calls = 0
        self.fetch_gate: asyncio.Event | None = None
        self.fetch_error: Exception | None = None
        self.ack_failures = 0
        self.reply_error: Exception | None = None

    async def fetch_pending(self) -> list[PendingInboundItem]:
        self.fetch_calls += 1
        if self.fetch_gate is not None:
            await self.fetch_gate.wait()
        if self.fetch_error is not None:
            raise self.fetch_error
        return self.batches.pop(0) if self.batches else []

    async def acknowledge(self, item_id: str) -> None:
        if self.ack_failures:
            self.ack_failures -= 1
            raise ConnectionError("relay unreachable")
        self.log.append(("ack", item_id))

    async def reply(self, channel: str, thread_ts: str, text: str, bot_token: str) -> None:
        if self.reply_error is not None:
            raise self.reply_error
        self.log.append(("reply", channel, thread_ts, text))

    async def add_reaction(self, channel: str, timestamp: str, name: str, bot_token: str) -> None:
        self.log.append(("add_reaction", name))

    async def remove_reaction(self, channel: str, timestamp: str, name: str, bot_token: str) -> None:
        self.log.append(("remove_reaction", name))

    async def aclose(self) -> None:
        self.log.append(("closed",))

    def replies(self) -> list[str]:
        return [entry[3] for entry in self.log if entry[0] == "reply"]


class Recorder:
    """Summary: Collects tasks, tickets, and pages the poller asks for."""

    def __init__(self) -> None:
        self.tasks: list[Task] = []
        self.tickets: list[TicketRequest] = []
        self.pages: list[PageRequest] = []
        self.task_failures = 0

    async def on_task(self, task: Task) -> None:
        if self.task_failures:
            self.task_failures -= 1
            raise RuntimeError("disk full")
        self.tasks.append(task)

    async def on_ticket(self, request: TicketRequest) -> TicketResult:
        self.tickets.append(request)
        return TicketResult(key="AMP-42", url="https://x/AMP-42")

    async def on_page(self, request: PageRequest) -> PageResult:
        self.pages.append(request)
        return PageResult(id="99", url="https://wiki.example/pages/99")


def _poller(relay: FakeRelay, recorder: Recorder, bot_token: str | None = "xoxb-bot", **handlers: Any) -> InboundPoller:
    return InboundPoller(
        relay=relay,
        on_task=recorder.on_task,
        bot_token=lambda: bot_token,
        on_ticket=handlers.get("on_ticket", recorder.on_ticket),
        on_page=handlers.get("on_page", recorder.on_page),
        interval_seconds=3600,
        on_close=handlers.get("on_close"),
    )


def test_jira_item_end_to_end() -> None:
    """Summary: Verify a Jira request becomes a validation task linked to chat and ticket.

    Importance: The local task reviews the ticket rather than duplicating it.
    Alternatives: Create a plain task and a separate ticket.
    """

    relay = FakeRelay([[_item(shouldCreateJira=True)]])
    recorder = Recorder()

    acknowledged = asyncio.run(_poller(relay, recorder).poll_once())

    assert acknowledged == 1
    assert len(recorder.tickets) == 1
    assert recorder.tickets[0].summary == "Ship the report"
    task = recorder.tasks[0]
    assert task.source == "slack"
    assert task.title == "Validate Jira ticket: AMP-42"
    assert task.description == (
        "Review and validate the Jira ticket that was created:\n\n"
        "Please ship the Q3 report\n\nJira ticket: https://x/AMP-42"
    )
    assert [link.type for link in task.linked_items] == ["slack", "jira"]
    assert task.linked_items[1].url == "https://x/AMP-42"
    assert relay.replies() == [
        '✅ Task created: "Validate Jira ticket: AMP-42"\n\n🎫 Jira ticket created: <https://x/AMP-42|AMP-42>'
    ]


def test_plain_item_creates_task_and_feedback_in_order() -> None:
    """Summary: Verify reply, reaction swap, and acknowledgement happen in that order.

    Importance: Chat-visible feedback must read naturally and precede the acknowledgement.
    Alternatives: Acknowledge before sending feedback.
    """

    relay = FakeRelay([[_item()]])
    recorder = Recorder()

    asyncio.run(_poller(relay, recorder).poll_once())

    task = recorder.tasks[0]
    assert task.title == "Ship the report"
    assert task.context == "From Slack: alex"
    assert task.source_id == "C123_1700000000.000100"
    assert task.priority == "medium"
    assert [entry[0] for entry in relay.log] == ["reply", "remove_reaction", "add_reaction", "ack"]
    assert relay.log[1] == ("remove_reaction", "eyes")
    assert relay.log[2] == ("add_reaction", "white_check_mark")
    assert relay.log[0][3] == '✅ Task created: "Ship the report"'


def test_confluence_success_short_circuits_item() -> None:
    """Summary: Verify a created page skips task and ticket creation.

    Importance: Page-only requests must not clutter the task list.
    Alternatives: Always create a follow-up task.
    """

    relay = FakeRelay([[_item(shouldCreateConfluence=True, shouldCreateJira=True)]])
    recorder = Recorder()

    acknowledged = asyncio.run(_poller(relay, recorder).poll_once())

    assert acknowledged == 1
    assert len(recorder.pages) == 1
    assert recorder.pages[0].body == "Please ship the Q3 report"
    assert recorder.tasks == []
    assert recorder.tickets == []
    assert relay.replies() == ["📄 Confluence page created: <https://wiki.example/pages/99|Ship the report>"]


def test_confluence_failure_falls_through_to_task() -> None:
    async def failing_page(request: PageRequest) -> PageResult:
        raise RuntimeError("space not found")

    relay = FakeRelay([[_item(shouldCreateConfluence=True)]])
    recorder = Recorder()

    asyncio.run(_poller(relay, recorder, on_page=failing_page).poll_once())

    task = recorder.tasks[0]
    assert task.title == "Ship the report"
    assert task.description == (
        "Failed to create Confluence page: space not found\n\nOriginal context:\nPlease ship the Q3 report"
    )
    assert [link.type for link in task.linked_items] == ["slack"]


def test_jira_failure_is_written_into_description() -> None:
    async def failing_ticket(request: TicketRequest) -> TicketResult:
        raise RuntimeError("project AMP does not exist")

    relay = FakeRelay([[_item(shouldCreateJira=True)]])
    recorder = Recorder()

    asyncio.run(_poller(relay, recorder, on_ticket=failing_ticket).poll_once())

    task = recorder.tasks[0]
    assert task.title == "Ship the report"
    assert task.description.startswith("Failed to create Jira ticket: project AMP does not exist")
    assert relay.replies() == ['✅ Task created: "Ship the report"']


def test_missing_ticket_handler_is_reported() -> None:
    relay = FakeRelay([[_item(shouldCreateJira=True)]])
    recorder = Recorder()

    asyncio.run(_poller(relay, recorder, on_ticket=None).poll_once())

    assert recorder.tasks[0].description == (
        "Failed to create Jira ticket: Handler not configured\n\nOriginal context:\nPlease ship the Q3 report"
    )


def test_missing_bot_token_skips_feedback_only() -> None:
    relay = FakeRelay([[_item()]])
    recorder = Recorder()

    acknowledged = asyncio.run(_poller(relay, recorder, bot_token=None).poll_once())

    assert acknowledged == 1
    assert len(recorder.tasks) == 1
    assert relay.log == [("ack", "item-1")]


def test_feedback_failure_does_not_block_acknowledgement() -> None:
    relay = FakeRelay([[_item()]])
    relay.reply_error = ConnectionError("chat down")
    recorder = Recorder()

    acknowledged = asyncio.run(_poller(relay, recorder).poll_once())

    assert acknowledged == 1
    assert [entry[0] for entry in relay.log] == ["remove_reaction", "add_reaction", "ack"]


def test_failed_acknowledgement_reprocesses_item() -> None:
    """Summary: Verify an unacknowledged item is processed again on the next cycle.

    Importance: Items are delivered at least once, so a lost ack yields a duplicate task.
    Alternatives: Deduplicate by remote item id.
    """

    item = _item(shouldCreateJira=True)
    relay = FakeRelay([[item], [item]])
    relay.ack_failures = 1
    recorder = Recorder()
    poller = _poller(relay, recorder)

    first = asyncio.run(poller.poll_once())
    second = asyncio.run(poller.poll_once())

    assert (first, second) == (0, 1)
    assert len(recorder.tasks) == 2
    assert len(recorder.tickets) == 2


def test_task_handler_failure_still_acknowledges_item() -> None:
    """Summary: Verify a failed task save is reported in the thread and the item is acknowledged.

    Importance: An item that is never acknowledged would create a new ticket on every cycle.
    Alternatives: Leave the item on the relay for redelivery.
    """

    relay = FakeRelay([[_item("a", shouldCreateJira=True)], [], []])
    recorder = Recorder()
    recorder.task_failures = 3
    poller = _poller(relay, recorder)

    acknowledged = [asyncio.run(poller.poll_once()) for _ in range(3)]

    assert acknowledged == [1, 0, 0]
    assert len(recorder.tickets) == 1
    assert recorder.tasks == []
    assert ("ack", "a") in relay.log
    assert relay.replies() == [
        '⚠️ Failed to save task "Validate Jira ticket: AMP-42": disk full'
        "\n\n🎫 Jira ticket created: <https://x/AMP-42|AMP-42>"
    ]
    assert [entry[0] for entry in relay.log] == ["reply", "remove_reaction", "add_reaction", "ack"]


def test_task_handler_failure_does_not_stop_later_items() -> None:
    relay = FakeRelay([[_item("a"), _item("b")]])
    recorder = Recorder()
    recorder.task_failures = 1

    acknowledged = asyncio.run(_poller(relay, recorder).poll_once())

    assert acknowledged == 2
    assert ("ack", "a") in relay.log
    assert ("ack", "b") in relay.log
    assert [task.title for task in recorder.tasks] == ["Ship the report"]


def test_aclose_stops_polling_and_releases_clients() -> None:
    relay = FakeRelay([[_item()]])
    closed: list[str] = []

    async def close_handlers() -> None:
        closed.append("handlers")

    poller = _poller(relay, Recorder(), on_close=close_handlers)

    async def scenario() -> None:
        await poller.start()
        await poller.aclose()

    asyncio.run(scenario())

    assert poller.is_running is False
    assert relay.log[-1] == ("closed",)
    assert closed == ["handlers"]


def test_fetch_failure_does_not_raise() -> None:
    relay = FakeRelay()
    relay.fetch_error = ConnectionError("relay down")
    poller = _poller(relay, Recorder())

    assert asyncio.run(poller.poll_once()) == 0
    assert poller.is_polling is False


def test_overlapping_poll_is_skipped() -> None:
    """Summary: Verify a poll started during another poll does not fetch.

    Importance: Slow relay calls must not stack up concurrent batches.
    Alternatives: Queue the extra cycle.
    """

    relay = FakeRelay([[_item()]])
    recorder = Recorder()
    poller = _poller(relay, recorder)

    async def scenario() -> tuple[int, int]:
        relay.fetch_gate = asyncio.Event()
        first = asyncio.create_task(poller.poll_once())
        await asyncio.sleep(0)
        assert poller.is_polling
        second = await poller.poll_once()
        relay.fetch_gate.set()
        return await first, second

    first, second = asyncio.run(scenario())

    assert (first, second) == (1, 0)
    assert relay.fetch_calls == 1


def test_start_polls_immediately_and_stop_cancels_timer() -> None:
    relay = FakeRelay([[_item()]])
    recorder = Recorder()
    poller = _poller(relay, recorder)

    async def scenario() -> None:
        await poller.start()
        assert poller.is_running
        await poller.stop()

    asyncio.run(scenario())

    assert poller.is_running is False
    assert relay.fetch_calls == 1
    assert len(recorder.tasks) == 1


def test_deep_link_points_at_message() -> None:
    item = _item()
    assert slack_deep_link(item) == "slack://channel?team=T999&id=C123&message=p1700000000000100"
    task = build_task(item, item.title, "", None)
    assert task.linked_items[0].id == "slack_C123_1700000000.000100"
    assert task.description is None
