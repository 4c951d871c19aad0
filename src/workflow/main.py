"""CLI entry point for the publishing workflow.

Usage:
    python -m src.workflow.main init-db
    python -m src.workflow.main publish --org acme --publishing-id <id>
    python -m src.workflow.main publish --org acme --publishing-id <id> --draft
    python -m src.workflow.main retry --org acme --publishing-id <id>
    python -m src.workflow.main unpublish --org acme --publishing-id <id>
    python -m src.workflow.main delete --org acme --publishing-id <id> [--forget]
    python -m src.workflow.main cancel --org acme --publishing-id <id>

    # Durable tasks: enqueue, then run a worker
    python -m src.workflow.main enqueue --org acme --publishing-id <id> --operation publish
    python -m src.workflow.main worker --max-tasks 10

    python -m src.workflow.main recover --org acme --stale-minutes 15
    python -m src.workflow.main validate-links --org acme --site-id <site> --file post.html --strict
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Callable

from src.common.config import settings
from src.common.database import init_db
from src.common.logging import setup_logging
from src.link_validator import ContentIndex, LinkValidator, generate_report

from .models import TaskOperation
from .orchestrator import PublishingOrchestrator, respond
from .permissions import Principal
from .store import SQLiteWorkflowStore, WorkflowStore, get_store
from .tasks import PublishWorker, TaskQueue

logger = logging.getLogger(__name__)


def _print_summary(title: str, status: int, body: dict[str, Any]) -> None:
    """Print a human-readable summary of one command's outcome."""
    outcome = "OK" if status < 400 else f"FAILED ({status})"
    print(f"\n{'=' * 60}")
    print(f"  {title} - {outcome}")
    print(f"{'=' * 60}")
    if status >= 400:
        print(f"  Code:     {body.get('code')}")
        print(f"  Message:  {body.get('message')}")
        if body.get("step"):
            print(f"  Step:     {body['step']}")
    else:
        result = body.get("result")
        if isinstance(result, dict):
            for key, value in result.items():
                if isinstance(value, (dict, list)):
                    continue
                print(f"  {key + ':':<20} {value}")
        elif isinstance(result, list):
            print(f"  Records:  {len(result)}")
            for row in result:
                print(f"    - {row.get('publishing_id')}  {row.get('status')}  {row.get('error_code') or ''}")
    print()


def _principal(args: argparse.Namespace) -> Principal:
    return Principal(user_id=args.user, org_id=args.org, role=args.role)


def _store(args: argparse.Namespace) -> WorkflowStore:
    if args.db:
        return SQLiteWorkflowStore(args.db)
    return get_store()


def _run(title: str, action: Callable[[], Any]) -> int:
    status, body = respond(action)
    _print_summary(title, status, body)
    return 0 if status < 400 else 1


def _add_identity(sub: argparse.ArgumentParser, record: bool = True) -> None:
    sub.add_argument("--org", type=str, required=True, help="Organization id")
    sub.add_argument("--user", type=str, default="cli", help="Acting user id (default: cli)")
    sub.add_argument("--role", type=str, default="admin", help="Acting role (default: admin)")
    if record:
        sub.add_argument("--publishing-id", type=str, required=True, help="Platform publishing record id")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Content Ops — publishing workflow")
    parser.add_argument("--db", type=str, default=None, help="SQLite database path (overrides settings)")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init-db", help="Create the SQLite tables")

    for name, help_text in (
        ("publish", "Publish a pending record"),
        ("republish", "Push changes to a published or unpublished record"),
        ("retry", "Reset a failed record and publish it again"),
    ):
        sub = commands.add_parser(name, help=help_text)
        _add_identity(sub)
        sub.add_argument("--draft", action="store_true", help="Save the item as a draft")
        sub.add_argument("--strict", action="store_true", default=None, help="Block on wrong-site links")

    _add_identity(commands.add_parser("unpublish", help="Turn the remote item back into a draft"))

    sub = commands.add_parser("delete", help="Delete the remote item")
    _add_identity(sub)
    sub.add_argument("--forget", action="store_true", help="Also delete the local record")

    _add_identity(commands.add_parser("cancel", help="Cancel a pending record"))

    sub = commands.add_parser("enqueue", help="Queue a durable publish task")
    _add_identity(sub)
    sub.add_argument(
        "--operation",
        type=str,
        choices=[op.value for op in TaskOperation],
        default=TaskOperation.PUBLISH.value,
    )
    sub.add_argument("--draft", action="store_true", help="Save the item as a draft")

    sub = commands.add_parser("worker", help="Run the publish task worker")
    sub.add_argument("--max-tasks", type=int, default=None, help="Stop after this many tasks")
    sub.add_argument("--poll-seconds", type=float, default=None, help="Idle poll interval")

    sub = commands.add_parser("recover", help="Fail records stuck in publishing")
    _add_identity(sub, record=False)
    sub.add_argument("--publishing-id", type=str, default=None, help="Only this record")
    sub.add_argument(
        "--stale-minutes",
        type=float,
        default=settings.workflow.stale_publishing_minutes,
        help="Minutes without progress before a publish counts as interrupted",
    )

    sub = commands.add_parser("validate-links", help="Validate links in an HTML file")
    _add_identity(sub, record=False)
    sub.add_argument("--site-id", type=str, required=True, help="Target site id")
    sub.add_argument("--site-url", type=str, default=None, help="Target site base URL")
    sub.add_argument("--file", type=str, required=True, help="HTML file to check")
    sub.add_argument("--strict", action="store_true", help="Treat wrong-site links as errors")
    sub.add_argument("--fix-output", type=str, default=None, help="Write auto-fixed HTML to this path")
    return parser


def _validate_links(store: WorkflowStore, args: argparse.Namespace) -> int:
    content = Path(args.file).read_text(encoding="utf-8")
    validator = LinkValidator(ContentIndex(store.list_content_index(args.org)))
    result = validator.validate_links(content, args.site_id, args.site_url, strict_mode=args.strict)
    print(generate_report(result))

    if args.fix_output:
        fixed = validator.auto_fix_links(content, result.links)
        Path(args.fix_output).write_text(fixed.content, encoding="utf-8")
        logger.info(
            "Fixed %d link(s), %d unfixable; written to %s",
            fixed.fixed_count,
            len(fixed.unfixable_links),
            args.fix_output,
        )
    return 0 if result.can_publish else 1


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    setup_logging(level=level)

    if args.command == "init-db":
        init_db(args.db)
        print(f"Database initialized: {args.db or settings.database.db_path}")
        return 0

    store = _store(args)
    orchestrator = PublishingOrchestrator(store)

    if args.command == "worker":
        worker = PublishWorker(store, orchestrator)
        processed = worker.run_forever(poll_seconds=args.poll_seconds, max_tasks=args.max_tasks)
        print(f"Worker {worker.worker_id} processed {processed} task(s)")
        return 0

    if args.command == "validate-links":
        return _validate_links(store, args)

    principal = _principal(args)
    pid = getattr(args, "publishing_id", None)

    if args.command == "publish":
        return _run("Publish", lambda: orchestrator.publish(principal, pid, args.draft, args.strict))
    if args.command == "republish":
        return _run("Republish", lambda: orchestrator.republish(principal, pid, args.draft, args.strict))
    if args.command == "retry":
        return _run("Retry", lambda: orchestrator.retry_publish(principal, pid, args.draft, args.strict))
    if args.command == "unpublish":
        return _run("Unpublish", lambda: orchestrator.unpublish(principal, pid))
    if args.command == "delete":
        if args.forget:
            return _run("Delete and forget", lambda: orchestrator.delete_and_forget(principal, pid))
        return _run("Delete from platform", lambda: orchestrator.delete_from_platform(principal, pid))
    if args.command == "cancel":
        return _run("Cancel", lambda: orchestrator.cancel(principal, pid))
    if args.command == "recover":
        return _run(
            "Recover interrupted",
            lambda: orchestrator.recover_interrupted(principal, pid, stale_after_seconds=args.stale_minutes * 60),
        )
    if args.command == "enqueue":
        queue = TaskQueue(store)
        status, body = respond(
            lambda: queue.enqueue(principal, pid, args.operation, payload={"is_draft": args.draft})
        )
        if status < 400:
            print(json.dumps(body["result"], ensure_ascii=False, indent=2, default=str))
            return 0
        _print_summary("Enqueue", status, body)
        return 1

    raise ValueError(f"Unknown command: {args.command}")


if __name__ == "__main__":
    sys.exit(main())
