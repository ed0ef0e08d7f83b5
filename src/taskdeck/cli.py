"""Summary: Command-line interface for TaskDeck.

Importance: Provides a local-first entry point for connecting providers, reviewing
suggestions, managing tasks, and running the inbound poller.
Alternatives: Drive everything through the HTTP API.
"""

from __future__ import annotations

import argparse
import asyncio
import logging

import uvicorn

from taskdeck.api import create_app
from taskdeck.app import AppServices, build_poller, build_services, integration_status, oauth_settings
from taskdeck.config import AppConfig
from taskdeck.models import OAUTH_PROVIDERS, PRIORITIES
from taskdeck.oauth import build_authorization_url, create_state_token


def build_parser() -> argparse.ArgumentParser:
    """Summary: Build the CLI argument parser.

    Importance: Defines supported commands for local operation.
    Alternatives: Use a CLI framework like Typer or Click.
    """

    parser = argparse.ArgumentParser(description="TaskDeck CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    authorize = subparsers.add_parser("authorize", help="Print a provider's OAuth consent URL")
    authorize.add_argument("provider", choices=OAUTH_PROVIDERS)

    connect = subparsers.add_parser("connect", help="Connect a provider with an authorization code")
    connect.add_argument("provider", choices=OAUTH_PROVIDERS)
    connect.add_argument("code", type=str)

    disconnect = subparsers.add_parser("disconnect", help="Disconnect a provider")
    disconnect.add_argument("provider", choices=OAUTH_PROVIDERS)

    subparsers.add_parser("status", help="Show integration status")

    suggestions = subparsers.add_parser("suggestions", help="Show smart suggestions")
    suggestions.add_argument("--force", action="store_true", help="Bypass the suggestion cache")

    dismiss = subparsers.add_parser("dismiss", help="Dismiss a suggestion")
    dismiss.add_argument("suggestion_id", type=str)

    accept = subparsers.add_parser("accept", help="Turn a suggestion into a task")
    accept.add_argument("suggestion_id", type=str)

    tasks = subparsers.add_parser("tasks", help="List tasks")
    tasks.add_argument("--open", action="store_true", help="Hide completed tasks")

    add_task = subparsers.add_parser("add-task", help="Add a manual task")
    add_task.add_argument("title", type=str)
    add_task.add_argument("--priority", choices=PRIORITIES, default="medium")
    add_task.add_argument("--due-date", type=str, default=None)

    complete = subparsers.add_parser("complete-task", help="Mark a task as completed")
    complete.add_argument("task_id", type=str)

    delete = subparsers.add_parser("delete-task", help="Delete a task")
    delete.add_argument("task_id", type=str)

    poll = subparsers.add_parser("poll", help="Poll the inbound relay for chat mentions")
    poll.add_argument("--once", action="store_true", help="Run a single poll cycle and exit")

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", type=str, default=None)
    serve.add_argument("--port", type=int, default=None)

    return parser


def run_cli(argv: list[str] | None = None) -> None:
    """Summary: Execute CLI commands based on arguments.

    Importance: Drives the workflows without the desktop shell.
    Alternatives: Invoke services via the HTTP API.
    """

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    parser = build_parser()
    args = parser.parse_args(argv)
    config = AppConfig.from_env()

    if args.command == "serve":
        uvicorn.run(
            create_app(config),
            host=args.host or config.api_host,
            port=args.port or config.api_port,
        )
        return

    if args.command == "authorize":
        state = create_state_token()
        print(build_authorization_url(args.provider, oauth_settings(config, args.provider), state))
        return

    services = build_services(config)

    if args.command == "add-task":
        task = services.tasks.add_task(args.title, priority=args.priority, due_date=args.due_date)
        print(f"Added task {task.id}.")
        return

    if args.command == "tasks":
        for task in services.tasks.list_tasks():
            if args.open and task.completed:
                continue
            mark = "x" if task.completed else " "
            print(f"[{mark}] {task.id}: {task.title} ({task.priority}, {task.source})")
        return

    if args.command == "complete-task":
        services.tasks.update_task(args.task_id, {"completed": True})
        print("Task completed.")
        return

    if args.command == "delete-task":
        if services.tasks.delete_task(args.task_id):
            print("Task deleted.")
        else:
            print(f"Task {args.task_id} not found.")
        return

    asyncio.run(_run_async(args, services))


async def _run_async(args: argparse.Namespace, services: AppServices) -> None:
    """Summary: Run commands that need live provider sessions, closing their clients afterwards."""

    await services.coordinator.initialize()
    try:
        await _run_command(args, services)
    finally:
        await services.coordinator.aclose()


async def _run_command(args: argparse.Namespace, services: AppServices) -> None:
    if args.command == "disconnect":
        await services.coordinator.disconnect(args.provider)
        print(f"Disconnected {args.provider}.")
        return

    if args.command == "connect":
        await services.coordinator.connect(args.provider, args.code)
        print(f"Connected {args.provider}.")
        return

    if args.command == "status":
        for item in integration_status(services):
            state = "connected" if item["connected"] else "not connected"
            if item["needs_reauth"]:
                state += " (reconnect required)"
            print(f"{item['provider']}: {state}")
        return

    if args.command == "suggestions":
        suggestions = await services.cache.get(force_refresh=args.force)
        if not suggestions:
            print("No suggestions.")
            return
        for suggestion in suggestions:
            print(f"{suggestion.score:>3} {suggestion.priority:<6} {suggestion.id}: {suggestion.title}")
        return

    if args.command == "dismiss":
        remaining = await services.suggestions.dismiss(args.suggestion_id)
        print(f"Dismissed. {len(remaining)} suggestion(s) remain.")
        return

    if args.command == "accept":
        task = await services.suggestions.accept(args.suggestion_id)
        print(f"Created task {task.id}: {task.title}")
        return

    if args.command == "poll":
        if not services.config.relay_base_url:
            raise ValueError("TASKDECK_RELAY_URL is not configured")
        poller = build_poller(services)
        try:
            if args.once:
                acknowledged = await poller.poll_once()
                print(f"Processed {acknowledged} inbound item(s).")
                return
            await poller.start()
            await asyncio.Event().wait()
        finally:
            await poller.aclose()


def main() -> None:
    run_cli()


if __name__ == "__main__":
    main()
