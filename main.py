#!/usr/bin/env python3
"""
CourseGate operator CLI -- account bootstrap and emergency switches.

Self-registration only creates students and instructors, so the first admin
has to come from here.

Usage:
  python main.py create-admin --email admin@example.com --password 'S3cretPass' \
                              --first-name Ada --last-name Admin
  python main.py deactivate --email mallory@example.com
  python main.py activate --email mallory@example.com

Environment variables:
  DATABASE_URL        SQLAlchemy URL of the user database (default: ./coursegate.db)
  JWT_SECRET          Required unless DEBUG=true (see core/config.py)
  JWT_REFRESH_SECRET  Required unless DEBUG=true
"""

import argparse
import logging
import sys
from typing import Optional

from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import hash_password
from core.config import get_settings

logger = logging.getLogger("coursegate.cli")


def create_admin(store: UserStore, email: str, password: str, first_name: str, last_name: str, rounds: int) -> int:
    """Insert an active admin account. Returns the new user id.

    Refuses to touch an existing account; promote it through PATCH /users/{id}.
    """
    if store.find_by_email(email) is not None:
        raise SystemExit(f"  [!] An account for '{email}' already exists.")
    user = User(
        email=email,
        role=Role.admin.value,
        hashed_password=hash_password(password, rounds=rounds),
        first_name=first_name,
        last_name=last_name,
    )
    return store.insert_user(user)


def set_active(store: UserStore, email: str, active: bool) -> None:
    """Flip is_active. Deactivation also clears the stored refresh token."""
    user = store.find_by_email(email)
    if user is None:
        raise SystemExit(f"  [!] No account for '{email}'.")
    store.update_active_flag(user.id, active)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="coursegate", description="CourseGate account administration.")
    sub = parser.add_subparsers(dest="command", required=True)

    admin = sub.add_parser("create-admin", help="Create an admin account.")
    admin.add_argument("--email", required=True)
    admin.add_argument("--password", required=True)
    admin.add_argument("--first-name", default="Admin")
    admin.add_argument("--last-name", default="User")

    for name, help_text in (("deactivate", "Disable an account."), ("activate", "Re-enable an account.")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--email", required=True)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)-5s %(name)s %(message)s")
    args = _build_parser().parse_args(argv)
    settings = get_settings()
    store = UserStore(settings.database_url)
    try:
        if args.command == "create-admin":
            if len(args.password) < 8:
                raise SystemExit("  [!] Password must be at least 8 characters.")
            user_id = create_admin(
                store, args.email, args.password, args.first_name, args.last_name, settings.bcrypt_rounds
            )
            logger.info("Created admin user_id=%d", user_id)
            print(f"  Admin account created for {args.email.lower()} (id {user_id}).")
        else:
            set_active(store, args.email, args.command == "activate")
            print(f"  {args.email.lower()}: {args.command}d.")
    finally:
        store.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
