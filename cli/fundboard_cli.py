"""Command-line client for managing Fundboard projects."""

from __future__ import annotations

import argparse
import asyncio
import logging
import math
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

from fundboard.config import Settings
from fundboard.exceptions import ProjectNotFoundError
from fundboard.schemas.project import PendingFile, ProjectCreate, ProjectUpdate
from fundboard.services.datetime_service import format_ms
from fundboard.services.document_sync import build_engine

if TYPE_CHECKING:
    import httpx

    from fundboard.schemas.project import Project
    from fundboard.services.document_sync import MutationResult


def build_settings(args: argparse.Namespace) -> Settings:
    """Layer command-line flags over environment settings.

    The token is used for this invocation only and is never written to disk.
    """
    overrides: dict[str, Any] = {}
    if args.owner:
        overrides["github_owner"] = args.owner
    if args.repo:
        overrides["github_repo"] = args.repo
    if args.branch:
        overrides["github_branch"] = args.branch
    if args.token:
        overrides["github_token"] = args.token
    if args.cache_dir:
        overrides["cache_dir"] = Path(args.cache_dir)
    return Settings(**overrides)


def read_pending_file(path: str) -> PendingFile:
    """Load an image from disk as a pending upload."""
    image_path = Path(path)
    return PendingFile(filename=image_path.name, content=image_path.read_bytes())


def print_projects(projects: list[Project]) -> None:
    if not projects:
        print("No projects yet.")
        return
    for p in projects:
        print(f"{p.id}  {p.title}")
        print(f"    Target: {p.target}  Collected: {p.collected}")
        print(f"    Updated: {format_ms(p.updated_at)}")
        if p.image:
            print(f"    Image: {p.image}")


def _report(result: MutationResult) -> int:
    print(f"Status: {result.status}")
    if result.changed and not result.persisted:
        return 1
    return 0


async def run(
    args: argparse.Namespace,
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    """Execute one command against a fresh session. Returns the exit code."""
    engine = build_engine(settings, transport=transport)
    try:
        load_status = await engine.load()
        if args.command == "list":
            print(f"Storage: {engine.mode}. {load_status}")
            print_projects(engine.projects)
            return 0

        image = read_pending_file(args.image) if getattr(args, "image", None) else None
        if args.command == "add":
            data = ProjectCreate(
                title=args.title,
                target=args.target,
                description=args.description,
                collected=args.collected,
            )
            result = await engine.add(data, image)
            if result.project is not None:
                print(f"Added {result.project.id}")
        elif args.command == "update":
            changes = ProjectUpdate(
                title=args.title,
                target=args.target,
                description=args.description,
                collected=args.collected,
            )
            result = await engine.update(args.id, changes, image)
        else:
            result = await engine.delete(args.id, confirmed=args.yes)
        return _report(result)
    finally:
        await engine.aclose()


def _amount(value: str) -> int | float:
    number = float(value)
    if not math.isfinite(number) or number < 0:
        msg = f"amount must be a finite number >= 0, got {value}"
        raise argparse.ArgumentTypeError(msg)
    return int(number) if number.is_integer() else number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fundboard",
        description="Manage fundraising projects stored in a git-hosted repository",
    )
    parser.add_argument("--owner", help="Repository owner (user or organization)")
    parser.add_argument("--repo", help="Repository name")
    parser.add_argument("--branch", help="Branch (default: main)")
    parser.add_argument("--token", help="Personal access token (not saved)")
    parser.add_argument("--cache-dir", help="Local cache directory")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("list", help="List projects")

    add = subparsers.add_parser("add", help="Add a project")
    add.add_argument("--title", required=True)
    add.add_argument("--target", required=True)
    add.add_argument("--description", required=True)
    add.add_argument("--collected", type=_amount, default=0)
    add.add_argument("--image", help="Image file to upload")

    update = subparsers.add_parser("update", help="Update a project")
    update.add_argument("id")
    update.add_argument("--title")
    update.add_argument("--target")
    update.add_argument("--description")
    update.add_argument("--collected", type=_amount)
    update.add_argument("--image", help="Replacement image file to upload")

    delete = subparsers.add_parser("delete", help="Delete a project")
    delete.add_argument("id")
    delete.add_argument("--yes", "-y", action="store_true", help="Confirm deletion")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)

    settings = build_settings(args)
    try:
        code = asyncio.run(run(args, settings))
    except ProjectNotFoundError as exc:
        print(f"Error: {exc}")
        sys.exit(1)
    except (ValueError, OSError) as exc:
        print(f"Error: {exc}")
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
