"""Command-line interface for the PropertyDesk service."""

from __future__ import annotations
import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from propdesk.application import PropertyDesk
from propdesk.config import Settings, load_settings
from propdesk.models import RequestStatus

logger = logging.getLogger("propdesk.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        default=None,
        help="Path to a YAML settings file (default: PROPDESK_CONFIG or config/settings.yaml)",
    )

    parser = argparse.ArgumentParser(description="PropertyDesk maintenance request service")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve", config=None)

    serve_parser = subparsers.add_parser("serve", parents=[common], help="Start the web interface")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")

    subparsers.add_parser(
        "init-storage", parents=[common], help="Create the storage file and seed demo data"
    )
    subparsers.add_parser("users", parents=[common], help="List registered users")
    subparsers.add_parser("requests", parents=[common], help="List maintenance requests by status")

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-storage", "users", "requests"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _load_settings(config: Optional[str]) -> Settings:
    return load_settings(Path(config).expanduser() if config else None)


def _serve(settings: Settings, *, host: str, port: int) -> None:
    from propdesk.web import create_app
    import uvicorn

    desk = PropertyDesk.open(settings)
    app = create_app(desk, session_secret=settings.session_secret)
    logger.info("Starting PropertyDesk on http://%s:%s", host, port)
    uvicorn.run(app, host=host, port=port, log_level="info")


def _list_users(desk: PropertyDesk) -> None:
    users = desk.users.list()
    if not users:
        print("No users are currently registered.")
        return

    current = desk.session.current()
    print(f"{len(users)} user(s) found:")
    print(f"{'ID':<32}  {'Name':<20}  {'Email':<28}  {'Role':<16}  Created")
    print("-" * 110)
    for user in users:
        created = user.created_at.strftime("%Y-%m-%d %H:%M:%S %Z")
        marker = " *" if current is not None and current.id == user.id else ""
        print(f"{user.id:<32}  {user.name:<20}  {user.email:<28}  {user.role.value:<16}  {created}{marker}")


def _list_requests(desk: PropertyDesk) -> None:
    requests = desk.requests.list()
    if not requests:
        print("No maintenance requests have been filed.")
        return

    for status in RequestStatus:
        matching = [item for item in requests if item.status == status]
        if not matching:
            continue
        print(f"{status.label.title()} ({len(matching)}):")
        for item in matching:
            print(f"  - {item.id}: {item.title} [{item.priority.value}] from {item.tenant_name}")


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    settings = _load_settings(args.config)

    if args.command == "serve":
        _serve(settings, host=args.host, port=args.port)
        return

    desk = PropertyDesk.open(settings)
    if args.command == "init-storage":
        print(f"Storage ready at {settings.storage_path}.")
    elif args.command == "users":
        _list_users(desk)
    elif args.command == "requests":
        _list_requests(desk)


if __name__ == "__main__":
    main()
