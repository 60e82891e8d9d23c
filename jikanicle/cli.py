"""Command-line interface for jikanicle.

This module provides the CLI interface for managing tasks using argparse.
It supports the following commands:
- add: Create a new task
- list: List all tasks or filter them
- show: Show one task in detail
- start / done / cancel: Change the status of a task
- delete: Delete a task
"""

import argparse
import asyncio
import logging
import os
import sys
from dataclasses import replace
from typing import List, Optional

from jikanicle.array_repository import DEFAULT_ARRAY_FILE_NAME, JsonArrayTaskRepository
from jikanicle.commands import delete_task, modify_task
from jikanicle.config import AppConfig, load_config
from jikanicle.factories import create_task
from jikanicle.log import setup_logging
from jikanicle.models import Category, Priority, Status, Task
from jikanicle.repository import FileTaskRepository, TaskFilter, TaskRepository
from jikanicle.serialization import format_timestamp
from jikanicle.storage import FileSystemAdapter, LocalFileSystemAdapter
from jikanicle.validation import as_utc, format_field_errors

STATUS_ICONS = {
    Status.NOT_STARTED: " ",
    Status.IN_PROGRESS: ">",
    Status.COMPLETED: "✓",
    Status.CANCELLED: "-",
}


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="jikanicle",
        description="Terminal task manager"
    )
    parser.add_argument("--data-dir", help="Directory holding task data (overrides config)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Add command
    add_parser = subparsers.add_parser("add", help="Add a new task")
    add_parser.add_argument("name", help="Task name")
    add_parser.add_argument(
        "--category",
        choices=[c.value for c in Category],
        default=Category.OTHER.value,
        help="Task category (default: OTHER)"
    )
    add_parser.add_argument(
        "--priority",
        choices=[p.value for p in Priority],
        default=Priority.MEDIUM.value,
        help="Task priority (default: MEDIUM)"
    )
    add_parser.add_argument("--estimate", type=float, default=0, help="Estimated minutes")
    add_parser.add_argument("--description", default="", help="Task description")
    add_parser.add_argument("--tag", action="append", default=[], help="Tag (repeatable)")

    # List command
    list_parser = subparsers.add_parser("list", help="List tasks")
    list_parser.add_argument(
        "--status",
        action="append",
        choices=[s.value for s in Status],
        help="Only tasks with this status (repeatable)"
    )
    list_parser.add_argument("--category", choices=[c.value for c in Category], help="Only this category")
    list_parser.add_argument("--tag", action="append", help="Only tasks with any of these tags")
    list_parser.add_argument("--search", help="Case-insensitive text search")

    for name, help_text in (
        ("show", "Show a task"),
        ("start", "Mark a task as in progress"),
        ("done", "Mark a task as completed"),
        ("cancel", "Cancel a task"),
        ("delete", "Delete a task"),
    ):
        id_parser = subparsers.add_parser(name, help=help_text)
        id_parser.add_argument("id", help="Task ID")

    return parser


def build_repository(config: AppConfig, fs: FileSystemAdapter) -> TaskRepository:
    """Create the repository selected by the configuration."""
    if config.storage == "array":
        return JsonArrayTaskRepository(fs, os.path.join(config.data_dir, DEFAULT_ARRAY_FILE_NAME))
    return FileTaskRepository(fs, config.data_dir, file_extension=config.file_extension)


def format_task_line(task: Task) -> str:
    return (
        f"[{STATUS_ICONS[task.status]}] {task.id} {task.name} "
        f"[{task.priority.value}] ({task.status.value})"
    )


def print_error(message: str) -> int:
    print(f"Error: {message}", file=sys.stderr)
    return 1


async def cmd_add(args: argparse.Namespace, repo: TaskRepository, fs: FileSystemAdapter) -> int:
    """Handle the 'add' command.

    Args:
        args: Parsed command-line arguments
        repo: TaskRepository instance
        fs: Adapter backing the repository

    Returns:
        Exit code (0 for success, 1 for error)
    """
    created = create_task(
        name=args.name,
        estimated_duration=args.estimate,
        category=args.category,
        priority=args.priority,
        description=args.description,
        tags=args.tag,
    )
    if created.is_err():
        return print_error(format_field_errors(created.error))

    saved = await repo.save(created.value)
    if saved.is_err():
        return print_error(saved.error.message)

    task = saved.value
    print(f"Task added: {task.id} {task.name} [{task.priority.value}]")
    return 0


async def cmd_list(args: argparse.Namespace, repo: TaskRepository, fs: FileSystemAdapter) -> int:
    """Handle the 'list' command."""
    task_filter = TaskFilter(
        status=[Status(s) for s in args.status] if args.status else None,
        category=Category(args.category) if args.category else None,
        tags=args.tag,
        text_search=args.search,
    )
    found = await repo.find_all(task_filter)
    if found.is_err():
        return print_error(found.error.message)

    tasks = sorted(found.value, key=lambda t: as_utc(t.created_at))
    if not tasks:
        print("No tasks found.")
        return 0

    for task in tasks:
        print(format_task_line(task))
    return 0


async def cmd_show(args: argparse.Namespace, repo: TaskRepository, fs: FileSystemAdapter) -> int:
    """Handle the 'show' command."""
    found = await repo.find_by_id(args.id)
    if found.is_err():
        return print_error(found.error.message)

    task = found.value
    print(format_task_line(task))
    print(f"  Category:  {task.category.value}")
    print(f"  Estimate:  {task.estimated_duration:g} min")
    if task.description:
        print(f"  Notes:     {task.description}")
    if task.tags:
        print(f"  Tags:      {', '.join(task.tags)}")
    print(f"  Created:   {format_timestamp(task.created_at)}")
    print(f"  Updated:   {format_timestamp(task.updated_at)}")
    if task.completed_at is not None:
        print(f"  Completed: {format_timestamp(task.completed_at)}")
    return 0


async def _change_status(
    args: argparse.Namespace, repo: TaskRepository, fs: FileSystemAdapter, status: Status
) -> int:
    modified = await modify_task(args.id, {"status": status}, repo, fs)
    if modified.is_err():
        return print_error(modified.error.message)

    task = modified.value
    print(f"Task {task.id} is now {task.status.value}: {task.name}")
    return 0


async def cmd_start(args: argparse.Namespace, repo: TaskRepository, fs: FileSystemAdapter) -> int:
    return await _change_status(args, repo, fs, Status.IN_PROGRESS)


async def cmd_done(args: argparse.Namespace, repo: TaskRepository, fs: FileSystemAdapter) -> int:
    return await _change_status(args, repo, fs, Status.COMPLETED)


async def cmd_cancel(args: argparse.Namespace, repo: TaskRepository, fs: FileSystemAdapter) -> int:
    return await _change_status(args, repo, fs, Status.CANCELLED)


async def cmd_delete(args: argparse.Namespace, repo: TaskRepository, fs: FileSystemAdapter) -> int:
    """Handle the 'delete' command."""
    deleted = await delete_task(args.id, repo)
    if deleted.is_err():
        return print_error(deleted.error.message)

    print(f"Task {args.id} deleted.")
    return 0


COMMANDS = {
    "add": cmd_add,
    "list": cmd_list,
    "show": cmd_show,
    "start": cmd_start,
    "done": cmd_done,
    "cancel": cmd_cancel,
    "delete": cmd_delete,
}


async def run_command(args: argparse.Namespace, config: AppConfig) -> int:
    fs = LocalFileSystemAdapter()
    repo = build_repository(config, fs)
    handler = COMMANDS[args.command]
    return await handler(args, repo, fs)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI.

    Args:
        argv: Command-line arguments. If None, uses sys.argv[1:]

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    if args.command not in COMMANDS:
        return print_error(f"Unknown command '{args.command}'")

    loaded = load_config()
    if loaded.is_err():
        return print_error(loaded.error.message)
    config = loaded.value
    if args.data_dir:
        config = replace(config, data_dir=args.data_dir)

    setup_logging(logging.DEBUG if args.verbose else config.log_level)
    return asyncio.run(run_command(args, config))


if __name__ == "__main__":
    sys.exit(main())
