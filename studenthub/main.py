#!/usr/bin/env python3
"""
Student Hub CLI - Main Entry Point

Usage:
    studenthub login -e EMAIL                     # Start a session
    studenthub stats                              # Dashboard counters
    studenthub activities list --status pending   # Review queue
    studenthub activities approve ACT001 --by "Dr. Kumar" --comment "Great work"
    studenthub --backend api events list          # Talk to the REST backend
"""

import argparse
import asyncio
import sys
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from studenthub.auth import AuthSession
from studenthub.config import BACKENDS, HubConfig
from studenthub.exceptions import StudentHubError
from studenthub.logging_config import set_component, setup_logging
from studenthub.store import EntityStore

STATUS_STYLES = {
    "pending": "yellow",
    "approved": "green",
    "rejected": "red",
    "open": "green",
    "closed": "dim",
}


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI"""
    parser = argparse.ArgumentParser(
        prog="studenthub",
        description="Student Hub - events, activities and certificates from the terminal",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  studenthub login -e admin@college.edu          Login (prompts for password)
  studenthub status                              Show the current session
  studenthub stats                               Dashboard counters
  studenthub events search hackathon             Search events
  studenthub activities list --status pending    Pending activities
  studenthub activities approve ACT001 --by "Dr. Kumar"
  studenthub certificates reject CERT002 --by "Dr. Kumar" --comment "Blurry scan"

Backends:
  fixture   Bundled sample data; changes are kept in the local data directory
  api       Student Hub REST backend (see --api-url)
        """
    )

    parser.add_argument(
        "--backend",
        choices=list(BACKENDS),
        help="Data backend (default: fixture, or STUDENTHUB_BACKEND)"
    )
    parser.add_argument(
        "--api-url",
        help="REST backend base URL"
    )
    parser.add_argument(
        "--data-dir",
        help="Directory for persisted changes and the session"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose logging"
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit logs as JSON lines"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    login_parser = subparsers.add_parser("login", help="Login to Student Hub")
    login_parser.add_argument("--email", "-e", help="Account email")
    login_parser.add_argument("--password", "-p", help="Account password (prompted if omitted)")

    subparsers.add_parser("logout", help="End the current session")
    subparsers.add_parser("status", help="Show session and backend status")
    subparsers.add_parser("stats", help="Show dashboard statistics")

    # events
    events_parser = subparsers.add_parser("events", help="Browse events")
    events_sub = events_parser.add_subparsers(dest="action", required=True)
    events_list = events_sub.add_parser("list", help="List events")
    events_list.add_argument("--status", choices=["open", "closed"])
    events_search = events_sub.add_parser("search", help="Search events")
    events_search.add_argument("query")

    # activities
    activities_parser = subparsers.add_parser("activities", help="Manage activities")
    activities_sub = activities_parser.add_subparsers(dest="action", required=True)
    activities_list = activities_sub.add_parser("list", help="List activities")
    activities_list.add_argument("--status", choices=["pending", "approved", "rejected"])
    activities_list.add_argument("--student", help="Only this student's activities")
    activities_add = activities_sub.add_parser("add", help="Submit an activity")
    activities_add.add_argument("--student", required=True, help="Student id")
    activities_add.add_argument("--title", required=True)
    activities_add.add_argument("--type", default="workshop")
    activities_add.add_argument("--credits", type=int, default=0)
    activities_add.add_argument("--description", default="")
    _add_review_parsers(activities_sub)

    # certificates
    certificates_parser = subparsers.add_parser("certificates", help="Review certificates")
    certificates_sub = certificates_parser.add_subparsers(dest="action", required=True)
    certificates_list = certificates_sub.add_parser("list", help="List certificates")
    certificates_list.add_argument("--status", choices=["pending", "approved", "rejected"])
    certificates_list.add_argument("--student", help="Only this student's certificates")
    _add_review_parsers(certificates_sub)

    return parser


def _add_review_parsers(subparsers) -> None:
    for action in ("approve", "reject"):
        review = subparsers.add_parser(action, help=f"{action.capitalize()} a pending submission")
        review.add_argument("id")
        review.add_argument("--by", dest="actor", help="Reviewer name (default: logged-in user)")
        review.add_argument("--comment", default="")


def build_config(args: argparse.Namespace) -> HubConfig:
    """Config file and environment first, then command-line flags"""
    config = HubConfig.load_default()
    if args.backend:
        config.backend = args.backend
    if args.api_url:
        config.api_base_url = args.api_url
    if args.data_dir:
        config.storage_dir = args.data_dir
    if args.verbose:
        config.log_level = "DEBUG"
    if args.json_logs:
        config.json_logs = True
    config.validate()
    return config


def _status_text(status: Optional[str]) -> str:
    style = STATUS_STYLES.get(status or "", "white")
    return f"[{style}]{status or '-'}[/{style}]"


def render_events(console: Console, events: List[Dict[str, Any]], title: str = "Events") -> None:
    table = Table(title=title, show_lines=False)
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Organizer")
    table.add_column("Starts")
    table.add_column("Seats", justify="right")
    table.add_column("Status")

    for event in events:
        organizer = event.get("organizer") or {}
        dates = event.get("dates") or {}
        seats = f"{event.get('registrationCount', 0)}/{event.get('maxParticipants') or '-'}"
        table.add_row(
            event.get("id", ""),
            event.get("title", ""),
            organizer.get("name", "") if isinstance(organizer, dict) else "",
            str(dates.get("startDate") or "")[:10],
            seats,
            _status_text(event.get("status")),
        )
    console.print(table)


def render_submissions(console: Console, records: List[Dict[str, Any]], title: str) -> None:
    table = Table(title=title)
    table.add_column("ID", style="cyan")
    table.add_column("Student")
    table.add_column("Title")
    table.add_column("Type / Issuer")
    table.add_column("Status")
    table.add_column("Reviewed by")

    for record in records:
        table.add_row(
            record.get("id", ""),
            record.get("studentId", ""),
            record.get("title", ""),
            record.get("type") or record.get("issuer") or "",
            _status_text(record.get("status")),
            record.get("approvedBy") or record.get("rejectedBy") or "",
        )
    console.print(table)


def render_statistics(console: Console, stats: Dict[str, int]) -> None:
    table = Table(title="Dashboard", show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    for key, value in stats.items():
        table.add_row(key, str(value))
    console.print(table)


async def run_command(args: argparse.Namespace, config: HubConfig, console: Console) -> int:
    """Execute one command against a freshly loaded store"""
    async with EntityStore.from_config(config) as store:
        session = AuthSession(store)

        if args.command == "login":
            email = args.email or Prompt.ask("Email")
            password = args.password or Prompt.ask("Password", password=True)
            user = await session.login(email, password)
            console.print(f"\n[green]✓ Login successful![/green] Welcome, [bold]{user.get('name', email)}[/bold]")
            return 0

        if args.command == "logout":
            await session.logout()
            console.print("[green]✓ Logged out[/green]")
            return 0

        if args.command == "status":
            user = session.current_user
            lines = [
                f"Backend: [cyan]{config.backend}[/cyan]",
                f"API URL: {config.api_base_url}" if config.backend == "api" else f"Fixtures: {config.fixtures_dir}",
                f"Data dir: {config.storage_dir}",
            ]
            if user:
                lines.insert(0, f"Logged in as [bold]{user.get('name')}[/bold] <{user.get('email')}> ({user.get('role')})")
            else:
                lines.insert(0, "[yellow]Not logged in[/yellow]")
            for name, error in store.load_errors.items():
                lines.append(f"[red]Failed to load {name}:[/red] {error}")
            console.print(Panel("\n".join(lines), title="Student Hub"))
            return 0

        if args.command == "stats":
            render_statistics(console, store.get_statistics())
            return 0

        if args.command == "events":
            if args.action == "search":
                render_events(console, store.search_events(args.query), f"Events matching '{args.query}'")
            elif args.status:
                render_events(console, store.get_events_by_status(args.status))
            else:
                render_events(console, store.get_all_events())
            return 0

        if args.command == "activities":
            return await _handle_submissions(args, store, session, console, "activity")

        if args.command == "certificates":
            return await _handle_submissions(args, store, session, console, "certificate")

    return 1


async def _handle_submissions(
    args: argparse.Namespace,
    store: EntityStore,
    session: AuthSession,
    console: Console,
    kind: str,
) -> int:
    plural = "activities" if kind == "activity" else "certificates"

    if args.action == "list":
        if args.student:
            records = getattr(store, f"get_{plural}_by_student")(args.student)
        else:
            records = getattr(store, f"get_all_{plural}")()
        if args.status:
            records = [r for r in records if r.get("status") == args.status]
        render_submissions(console, records, plural.capitalize())
        return 0

    if args.action == "add":
        activity = await store.add_activity({
            "studentId": args.student,
            "title": args.title,
            "type": args.type,
            "credits": args.credits,
            "description": args.description,
        })
        console.print(f"[green]✓ Submitted[/green] {activity['id']} ({activity['status']})")
        return 0

    actor = args.actor or (session.current_user or {}).get("name")
    if not actor:
        console.print("[red]✗ Reviewer unknown.[/red] Pass --by NAME or login first.")
        return 1

    review = getattr(store, f"{args.action}_{kind}")
    record = await review(args.id, actor, args.comment)
    if record is None:
        console.print(f"[red]✗ No {kind} with id {args.id}[/red]")
        return 1
    console.print(f"[green]✓ {kind.capitalize()} {args.id} {record['status']}[/green] by {actor}")
    return 0


def main():
    """Main entry point"""
    parser = create_parser()
    args = parser.parse_args()
    console = Console()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        config = build_config(args)
    except StudentHubError as e:
        console.print(f"[red]✗ {e.message}[/red]")
        sys.exit(2)

    setup_logging(config.log_level, json_format=config.json_logs, log_file=config.log_file)
    set_component("cli")

    try:
        sys.exit(asyncio.run(run_command(args, config, console)))
    except KeyboardInterrupt:
        console.print("\n\nGoodbye!")
        sys.exit(0)
    except StudentHubError as e:
        console.print(f"\n[red]✗ {e.message}[/red]")
        sys.exit(1)
    except Exception as e:
        if args.verbose:
            console.print_exception()
        else:
            console.print(f"\n[red]✗ Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
