import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from propdesk.errors import PropertyDeskError
from propdesk.models import UserRole
from propdesk.storage import KeyValueStore, resolve_storage_path
from propdesk.users import UserStore


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a PropertyDesk user")
    parser.add_argument("email", help="Email address used to sign in")
    parser.add_argument(
        "role",
        choices=[role.value for role in UserRole],
        help="Role assigned to the new account",
    )
    parser.add_argument(
        "--storage",
        dest="storage_path",
        default=None,
        help="Path to the storage file (defaults to PROPDESK_STORAGE_PATH or data/propdesk.sqlite3)",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()

    storage_env = args.storage_path or os.getenv("PROPDESK_STORAGE_PATH")
    storage = KeyValueStore(resolve_storage_path(storage_env))
    storage.initialize()
    users = UserStore(storage)

    existing = users.find_by_email(args.email)
    if existing is not None:
        print(
            f"Error: {existing.email} is already registered as {existing.role.value}",
            file=sys.stderr,
        )
        return 1

    try:
        user = users.login_or_create(args.email, UserRole(args.role))
    except PropertyDeskError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    assert user is not None
    print(f"Created {user.role.value} {user.id}: {user.name} <{user.email}>")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
