"""Summary: Tests for the command-line interface.

Importance: Ensures local task commands work without the HTTP API.
Alternatives: Exercise the CLI manually.
"""

from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from taskdeck.cli import build_parser, run_cli


REPO_DEFAULTS = Path(__file__).resolve().parents[1] / "config" / "defaults.json"


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    (tmp_path / "config").mkdir()
    shutil.copy(REPO_DEFAULTS, tmp_path / "config" / "defaults.json")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("TASKDECK_DB_PATH", str(tmp_path / "cli.db"))
    return tmp_path


def test_parser_rejects_unknown_provider() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args(["connect", "jira", "code"])


def test_task_commands(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """Summary: Verify tasks can be added, completed, listed, and deleted from the CLI.

    Importance: Confirms the CLI shares storage with the other entry points.
    Alternatives: Only test the task service directly.
    """

    run_cli(["add-task", "Write summary", "--priority", "high"])
    task_id = capsys.readouterr().out.strip().removeprefix("Added task ").rstrip(".")

    run_cli(["complete-task", task_id])
    run_cli(["tasks"])
    listed = capsys.readouterr().out
    assert f"[x] {task_id}: Write summary (high, manual)" in listed

    run_cli(["tasks", "--open"])
    assert task_id not in capsys.readouterr().out

    run_cli(["delete-task", task_id])
    capsys.readouterr()
    run_cli(["tasks"])
    assert capsys.readouterr().out == ""


def test_poll_requires_relay(workspace: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TASKDECK_RELAY_URL", "")
    with pytest.raises(ValueError):
        run_cli(["poll", "--once"])
