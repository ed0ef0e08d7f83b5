"""Summary: Tests for the local task list.

Importance: Tasks are where suggestions and inbound mentions end up.
Alternatives: Validate tasks manually through the CLI.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from taskdeck.inbound import build_task
from taskdeck.models import LinkedItem, PendingInboundItem, TaskTag
from taskdeck.services import TASKS_KEY, TaskService
from taskdeck.storage.sqlite_store import SqliteStore


def _tasks(tmp_path: Path) -> TaskService:
    store = SqliteStore(str(tmp_path / "test.db"))
    store.initialize()
    return TaskService(store=store)


def test_add_task_prepends(tmp_path: Path) -> None:
    """Summary: Verify manual tasks are stored newest first.

    Importance: The list shows what the user just added at the top.
    Alternatives: Sort by creation time in the UI.
    """

    tasks = _tasks(tmp_path)
    first = tasks.add_task("Write summary")
    second = tasks.add_task("  Book travel  ", priority="high", due_date="2026-03-12")

    listed = tasks.list_tasks()
    assert [task.id for task in listed] == [second.id, first.id]
    assert listed[0].title == "Book travel"
    assert listed[0].priority == "high"
    assert listed[0].source == "manual"
    assert listed[0].created_at == listed[0].updated_at


def test_add_task_validates_input(tmp_path: Path) -> None:
    tasks = _tasks(tmp_path)
    with pytest.raises(ValueError):
        tasks.add_task("   ")
    with pytest.raises(ValueError):
        tasks.add_task("Title", priority="urgent")
    with pytest.raises(ValueError):
        tasks.add_task("Title", source="fax")


def test_append_task_keeps_arrival_order(tmp_path: Path) -> None:
    tasks = _tasks(tmp_path)
    manual = tasks.add_task("Manual")
    item = PendingInboundItem(
        id="p1", title="From chat", channel="C1", message_ts="1.2", thread_ts="1.2", user="alex", team_id="T1"
    )
    inbound = tasks.append_task(build_task(item, item.title, "", None))

    assert [task.id for task in tasks.list_tasks()] == [manual.id, inbound.id]
    stored = tasks.store.get(TASKS_KEY)[1]
    assert stored["linked_items"][0]["type"] == "slack"


def test_update_task_merges_fields(tmp_path: Path) -> None:
    """Summary: Verify partial updates keep untouched fields and convert nested values.

    Importance: The UI only sends the fields the user changed.
    Alternatives: Require full task replacement.
    """

    tasks = _tasks(tmp_path)
    task = tasks.add_task("Review deck", context="From Jane")

    updated = tasks.update_task(
        task.id,
        {
            "completed": True,
            "tags": [{"label": "q3", "color": "blue"}],
            "linked_items": [{"id": "jira_AMP-1", "type": "jira", "title": "Jira: AMP-1", "url": "https://x/AMP-1"}],
        },
    )

    assert updated.completed is True
    assert updated.context == "From Jane"
    assert updated.tags == (TaskTag(label="q3", color="blue"),)
    assert updated.linked_items == (
        LinkedItem(id="jira_AMP-1", type="jira", title="Jira: AMP-1", url="https://x/AMP-1"),
    )
    assert tasks.list_tasks()[0] == updated


def test_update_task_rejects_unknown_fields_and_ids(tmp_path: Path) -> None:
    tasks = _tasks(tmp_path)
    task = tasks.add_task("Review deck")
    with pytest.raises(ValueError):
        tasks.update_task(task.id, {"source": "email"})
    with pytest.raises(ValueError):
        tasks.update_task("missing", {"completed": True})


def test_delete_task(tmp_path: Path) -> None:
    tasks = _tasks(tmp_path)
    task = tasks.add_task("Review deck")
    assert tasks.delete_task(task.id) is True
    assert tasks.delete_task(task.id) is False
    assert tasks.list_tasks() == []
