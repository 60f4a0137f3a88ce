#!/usr/bin/env python3
"""
AuthKit -- credential store maintenance CLI.

Usage:
  python main.py migrate
  python main.py migrate --print-sql
  python main.py purge-tokens

Environment variables:
  DATABASE_URL  SQLAlchemy URL of the credential store (required unless DEBUG=true).
  DEBUG         Set to true to fall back to a local SQLite development database.
"""

import argparse
import sys

from pydantic import ValidationError

from auth.store import CredentialStore, schema_sql
from core.config import get_settings


def _load_database_url() -> str | None:
    """Return DATABASE_URL from settings, or print why it is missing."""
    try:
        return get_settings().database_url
    except ValidationError as e:
        print(f"  [!] {e}", file=sys.stderr)
        return None


def cmd_migrate(args: argparse.Namespace) -> int:
    db_url = _load_database_url()
    if db_url is None:
        return 1

    if args.print_sql:
        print("-- Run this SQL against your database to create the AuthKit tables.\n")
        print(schema_sql(db_url))
        return 0

    print("Creating AuthKit tables...", end=" ", flush=True)
    store = CredentialStore(db_url)
    store.close()
    print("done.")
    print("Migration completed successfully.")
    return 0


def cmd_purge_tokens(args: argparse.Namespace) -> int:
    db_url = _load_database_url()
    if db_url is None:
        return 1
    store = CredentialStore(db_url)
    try:
        removed = store.purge_expired_tokens()
    finally:
        store.close()
    print(f"Removed {removed} expired token(s).")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="authkit",
        description="Credential store maintenance for AuthKit.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  DATABASE_URL=postgresql://user:pass@db/app python main.py migrate
  python main.py migrate --print-sql > schema.sql
  python main.py purge-tokens
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    migrate = sub.add_parser("migrate", help="Create the users and token tables if they do not exist")
    migrate.add_argument(
        "--print-sql",
        action="store_true",
        help="Print the CREATE TABLE statements instead of executing them",
    )
    migrate.set_defaults(func=cmd_migrate)

    purge = sub.add_parser("purge-tokens", help="Delete expired verification and password reset tokens")
    purge.set_defaults(func=cmd_purge_tokens)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 0
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
