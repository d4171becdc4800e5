"""Create an admin (or operation) account from the command line.

Usage:
    python scripts/create_admin.py --email admin@example.com --name "Ops Admin" --password secret123
"""

from __future__ import annotations

import argparse
import sys

from service_ticketing import statuses
from service_ticketing.auth import create_user
from service_ticketing.db import init_db, session_scope
from service_ticketing.errors import DuplicateEntryError

MIN_PASSWORD_LENGTH = 8


def create_admin(*, email: str, name: str, password: str, user_type: str = statuses.USER_ADMIN) -> int:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    init_db()
    with session_scope() as session:
        user = create_user(session, name=name, email=email, password=password, user_type=user_type)
        return user.id


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create a staff account.")
    parser.add_argument("--email", required=True)
    parser.add_argument("--name", required=True)
    parser.add_argument("--password", required=True)
    parser.add_argument("--user-type", choices=statuses.STAFF_USER_TYPES, default=statuses.USER_ADMIN)
    args = parser.parse_args(argv)

    try:
        user_id = create_admin(email=args.email, name=args.name, password=args.password, user_type=args.user_type)
    except (DuplicateEntryError, ValueError) as exc:
        print(f"Could not create user: {exc}", file=sys.stderr)
        return 1
    print(f"Created {args.user_type} user {args.email} (id={user_id}).")
    return 0


if __name__ == "__main__":
    sys.exit(main())
