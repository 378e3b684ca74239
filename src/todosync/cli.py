#!/usr/bin/env python3
"""Command-line client for todosync.

This module provides CLI commands for managing tasks in the local database
and synchronizing them with the task server.
Uses only core/ modules.

Commands:
    list                    List tasks (optionally only pending/completed)
    show <id>               Show details of a specific task
    new <title>             Create a new task
    edit <id>               Edit an existing task
    toggle <id>             Flip a task between pending and completed
    delete <id>             Delete a task
    sync                    Push local changes, then pull from the server
    status                  Show pending changes and server reachability
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from todosync.core.config import Config
from todosync.core.database import Database
from todosync.core.errors import TodoSyncError
from todosync.core.models import Task, TaskPatch
from todosync.core.sync_client import PhaseResult, RemoteTaskStore, sync_now
from todosync.core.timestamp_utils import format_timestamp
from todosync.core.validation import ValidationError


def format_task(task: Task, format_type: str = "text") -> str:
    """Format a single task for display.

    Args:
        task: Task to format
        format_type: Output format (text or json)

    Returns:
        Formatted task string
    """
    if format_type == "json":
        return json.dumps(task.to_dict(), indent=2, ensure_ascii=False)

    lines = [
        f"ID: {task.id}",
        f"Title: {task.title}",
        f"Status: {'completed' if task.is_completed else 'pending'}",
        f"Created: {format_timestamp(task.created_at)}",
        f"Updated: {format_timestamp(task.updated_at)}",
        f"Synced: {'yes' if task.is_synced else 'no'}",
    ]
    if task.description:
        lines.append(f"\n{task.description}")
    return "\n".join(lines)


def format_task_line(task: Task) -> str:
    """Format a task as one list line: checkbox, sync marker, title, id."""
    check = "[x]" if task.is_completed else "[ ]"
    marker = " " if task.is_synced else "*"
    return f"{check}{marker} {task.title}  ({task.id})"


def cmd_list(db: Database, args: argparse.Namespace) -> int:
    """List tasks.

    Args:
        db: Database instance
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    tasks = db.list_tasks(args.filter)

    if args.format == "json":
        print(json.dumps([t.to_dict() for t in tasks], indent=2, ensure_ascii=False))
        return 0

    if not tasks:
        print("No tasks found.")
        return 0
    for task in tasks:
        print(format_task_line(task))
    pending = db.count_unsynced()
    if pending:
        print(f"\n* {pending} task(s) not yet synced")
    return 0


def cmd_show(db: Database, args: argparse.Namespace) -> int:
    """Show details of a specific task."""
    task = db.get_task(args.task_id)
    if task is None:
        print(f"Error: Task {args.task_id} not found", file=sys.stderr)
        return 1
    print(format_task(task, args.format))
    return 0


def cmd_new(db: Database, args: argparse.Namespace) -> int:
    """Create a new task."""
    task = db.create_task(args.title, description=args.description or "")
    if args.format == "json":
        print(format_task(task, "json"))
    else:
        print(f"Created task {task.id}")
    return 0


def cmd_edit(db: Database, args: argparse.Namespace) -> int:
    """Edit an existing task."""
    changes: Dict[str, Any] = {}
    if args.title is not None:
        changes["title"] = args.title
    if args.description is not None:
        changes["description"] = args.description
    if args.completed is not None:
        changes["is_completed"] = args.completed
    if not changes:
        print("Error: Nothing to change. Use --title, --description or --completed.", file=sys.stderr)
        return 1

    task = db.update_task(args.task_id, TaskPatch(**changes))
    if task is None:
        print(f"Error: Task {args.task_id} not found", file=sys.stderr)
        return 1
    if args.format == "json":
        print(format_task(task, "json"))
    else:
        print(f"Updated task {task.id}")
    return 0


def cmd_toggle(db: Database, args: argparse.Namespace) -> int:
    """Flip a task between pending and completed."""
    task = db.toggle_task(args.task_id)
    if task is None:
        print(f"Error: Task {args.task_id} not found", file=sys.stderr)
        return 1
    state = "completed" if task.is_completed else "pending"
    if args.format == "json":
        print(format_task(task, "json"))
    else:
        print(f"Task {task.id} marked as {state}")
    return 0


def cmd_delete(db: Database, args: argparse.Namespace) -> int:
    """Delete a task."""
    if not db.delete_task(args.task_id):
        print(f"Error: Task {args.task_id} not found", file=sys.stderr)
        return 1
    print(f"Deleted task {args.task_id}")
    return 0


def _phase_summary(phase: PhaseResult) -> Dict[str, Any]:
    return {
        "success": phase.success,
        "skipped": phase.skipped,
        "count": phase.count,
        "updated": phase.updated,
        "deleted": phase.deleted,
        "failed_deletes": phase.failed_deletes,
        "error": phase.error,
        "error_type": phase.error_type,
    }


def cmd_sync(db: Database, config: Config, args: argparse.Namespace) -> int:
    """Push local changes to the server, then pull the server's tasks.

    Args:
        db: Database instance
        config: Config instance
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, 1 if either phase failed)
    """
    if args.server:
        config.set_server_url(args.server)

    result = sync_now(db, config)

    if args.format == "json":
        print(json.dumps({
            "success": result.success,
            "push": _phase_summary(result.push),
            "pull": _phase_summary(result.pull),
        }, indent=2))
        return 0 if result.success else 1

    if result.push.success:
        if result.push.skipped:
            print("Push: nothing to send")
        else:
            print(
                f"Push: sent {result.push.count} task(s), server accepted {result.push.updated}"
                + (f", {result.push.deleted} delete(s)" if result.push.deleted else "")
            )
    else:
        print(f"Push: FAILED - {result.push.error}", file=sys.stderr)
    if result.push.failed_deletes:
        print(
            f"Push: {result.push.failed_deletes} delete(s) refused by the server, will retry",
            file=sys.stderr,
        )

    if result.pull.success:
        print(f"Pull: received {result.pull.count} task(s)")
    else:
        print(f"Pull: FAILED - {result.pull.error}", file=sys.stderr)

    return 0 if result.success else 1


def cmd_status(db: Database, config: Config, args: argparse.Namespace) -> int:
    """Show pending changes and whether the server is reachable."""
    pending = db.count_unsynced()
    deletes = len(db.pending_deletes())
    server_url = config.get_server_url()

    remote = RemoteTaskStore.from_config(config)
    try:
        health = remote.status()
        reachable, server_error = True, None
    except TodoSyncError as e:
        health, reachable, server_error = {}, False, str(e)
    finally:
        remote.close()

    if args.format == "json":
        print(json.dumps({
            "database_file": str(config.get_database_file()),
            "server_url": server_url,
            "server_reachable": reachable,
            "server_tasks": health.get("tasks"),
            "server_error": server_error,
            "unsynced_tasks": pending,
            "pending_deletes": deletes,
        }, indent=2))
        return 0

    print(f"Database: {config.get_database_file()}")
    print(f"Server: {server_url} ({'reachable' if reachable else 'unreachable'})")
    if server_error:
        print(f"  {server_error}")
    print(f"Unsynced tasks: {pending}")
    print(f"Pending deletes: {deletes}")
    return 0


def add_cli_subparser(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    """Add CLI subparser and its nested subcommands.

    Args:
        subparsers: Parent subparsers object to add CLI parser to
    """
    cli_parser = subparsers.add_parser(
        "cli",
        help="Command-line task client",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    cli_parser.add_argument(
        "--format",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)"
    )

    # Nested subcommands for CLI
    cli_subparsers = cli_parser.add_subparsers(dest="cli_command", help="CLI commands")

    # list command
    list_parser = cli_subparsers.add_parser("list", help="List tasks")
    list_parser.add_argument(
        "--filter",
        choices=["all", "pending", "completed"],
        default="all",
        help="Which tasks to list (default: all)"
    )

    # show command
    show_parser = cli_subparsers.add_parser("show", help="Show details of a specific task")
    show_parser.add_argument("task_id", help="Task ID")

    # new command
    new_parser = cli_subparsers.add_parser("new", help="Create a new task")
    new_parser.add_argument("title", help="Task title")
    new_parser.add_argument("--description", "-m", default="", help="Task description")

    # edit command
    edit_parser = cli_subparsers.add_parser("edit", help="Edit an existing task")
    edit_parser.add_argument("task_id", help="Task ID")
    edit_parser.add_argument("--title", default=None, help="New title")
    edit_parser.add_argument("--description", "-m", default=None, help="New description")
    completed_group = edit_parser.add_mutually_exclusive_group()
    completed_group.add_argument(
        "--completed", dest="completed", action="store_const", const=True, default=None,
        help="Mark as completed"
    )
    completed_group.add_argument(
        "--not-completed", dest="completed", action="store_const", const=False,
        help="Mark as pending"
    )

    # toggle command
    toggle_parser = cli_subparsers.add_parser("toggle", help="Flip completion state")
    toggle_parser.add_argument("task_id", help="Task ID")

    # delete command
    delete_parser = cli_subparsers.add_parser("delete", help="Delete a task")
    delete_parser.add_argument("task_id", help="Task ID")

    # sync command
    sync_parser = cli_subparsers.add_parser("sync", help="Synchronize with the task server")
    sync_parser.add_argument(
        "--server",
        default=None,
        help="Server URL to use and remember (default: server_url from config)"
    )

    # status command
    cli_subparsers.add_parser("status", help="Show sync status")


def run(config_dir: Optional[Path], args: argparse.Namespace) -> int:
    """Run CLI with given arguments.

    Args:
        config_dir: Custom configuration directory or None for default
        args: Parsed command-line arguments (should have cli_command attribute)

    Returns:
        Exit code (0 for success, 1 for error)
    """
    # Check if CLI command was provided
    if not hasattr(args, 'cli_command') or not args.cli_command:
        print("Error: No CLI command specified. Use --help for available commands.", file=sys.stderr)
        return 1

    # Initialize config and database
    try:
        config = Config(config_dir=config_dir)
        db = Database(config.get_database_file())
    except TodoSyncError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    # Execute command
    try:
        if args.cli_command == "list":
            return cmd_list(db, args)
        elif args.cli_command == "show":
            return cmd_show(db, args)
        elif args.cli_command == "new":
            return cmd_new(db, args)
        elif args.cli_command == "edit":
            return cmd_edit(db, args)
        elif args.cli_command == "toggle":
            return cmd_toggle(db, args)
        elif args.cli_command == "delete":
            return cmd_delete(db, args)
        elif args.cli_command == "sync":
            return cmd_sync(db, config, args)
        elif args.cli_command == "status":
            return cmd_status(db, config, args)
        else:
            print(f"Error: Unknown command '{args.cli_command}'", file=sys.stderr)
            return 1
    except ValidationError as e:
        print(f"Error: Invalid {e.field} - {e.message}", file=sys.stderr)
        return 1
    except TodoSyncError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        db.close()
