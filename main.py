#!/usr/bin/env python3
"""
Marketplace Auth operator CLI.

Admins cannot self-register through the API, so the first admin account is
created here, against the same database the service uses.

Usage:
  python main.py create-admin --email ops@example.com
  python main.py create-admin --email ops@example.com --first-name Ada
  python main.py revoke --user-id 42

Environment variables:
  SECRET_KEY     Required, as for the service itself.
  DATABASE_URL   Optional. Defaults to the service's SQLite file.
"""

import argparse
import getpass
import sys
from typing import Optional

from sqlalchemy.exc import IntegrityError

from auth.credentials import MAX_PASSWORD_BYTES, CredentialStore
from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import TokenService
from core.config import Settings, get_settings

_MIN_PASSWORD = 8
_MAX_PASSWORD = 64


def _read_password(provided: Optional[str]) -> Optional[str]:
    """Return the password from --password, or prompt twice for it."""
    if provided is not None:
        return provided
    first = getpass.getpass("  Password: ")
    second = getpass.getpass("  Confirm password: ")
    if first != second:
        print("  [!] Passwords do not match.")
        return None
    return first


def create_admin(
    settings: Settings,
    email: str,
    password: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
) -> int:
    """Create an active admin account. Returns a process exit code."""
    if not _MIN_PASSWORD <= len(password) <= _MAX_PASSWORD:
        print(f"  [!] Password must be {_MIN_PASSWORD}-{_MAX_PASSWORD} characters.")
        return 1
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        print(f"  [!] Password must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded.")
        return 1

    store = UserStore(settings.database_url)
    credentials = CredentialStore(rounds=settings.bcrypt_rounds, workers=1)
    try:
        first_account = not store.has_users()
        admin = User(
            email=email,
            role=Role.admin,
            password_hash=credentials.hash(password),
            first_name=first_name,
            last_name=last_name,
        )
        try:
            user_id = store.create_user(admin)
        except IntegrityError:
            print(f"  [!] A user with email '{email}' already exists.")
            return 1
    finally:
        credentials.close()
        store.close()

    print(f"  Admin account created (id={user_id}).")
    if first_account:
        print("  This is the first account in the database.")
    return 0


def revoke(settings: Settings, user_id: int) -> int:
    """Invalidate every outstanding token for a user. Returns a process exit code."""
    store = UserStore(settings.database_url)
    try:
        if store.get_by_id(user_id) is None:
            print(f"  [!] No user with id {user_id}.")
            return 1
        TokenService(settings.secret_key, settings.token_ttl_seconds, store).revoke(user_id)
    finally:
        store.close()

    print(f"  All tokens for user {user_id} revoked.")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="marketplace-auth",
        description="Operator commands for the marketplace auth service.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-admin --email ops@example.com
  python main.py revoke --user-id 42
        """,
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")

    admin_cmd = commands.add_parser("create-admin", help="Create an admin account")
    admin_cmd.add_argument("--email", required=True, help="Login email for the new admin")
    admin_cmd.add_argument(
        "--password",
        default=None,
        help="Password (prompted for when omitted; avoid passing it on shared machines)",
    )
    admin_cmd.add_argument("--first-name", default=None)
    admin_cmd.add_argument("--last-name", default=None)

    revoke_cmd = commands.add_parser("revoke", help="Invalidate every token a user holds")
    revoke_cmd.add_argument("--user-id", type=int, required=True, metavar="ID")

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 0

    settings = get_settings()

    if args.command == "create-admin":
        password = _read_password(args.password)
        if password is None:
            return 1
        return create_admin(settings, args.email, password, args.first_name, args.last_name)

    return revoke(settings, args.user_id)


if __name__ == "__main__":
    sys.exit(main())
