#!/usr/bin/env python3
"""
Identity server administration CLI.

Works directly against the configured database (DATABASE_URL), so it can seed
roles and the first accounts before the API is ever started.

Usage:
  python main.py create-role Doctor
  python main.py list-roles
  python main.py create-user alice --first Alice --last Smith --role Patient
  python main.py assign-role alice Doctor
  python main.py list-users
  python main.py search Ann Lee
  python main.py delete-user alice

Environment variables:
  DATABASE_URL  SQLAlchemy URL of the identity database (default: sqlite file next to the repo).
  SECRET_KEY    Required unless DEBUG=true (see core/config.py).
"""

import argparse
import getpass
import sys
from typing import Optional

from auth.errors import IdentityError, UserNotFound
from auth.models import User
from auth.passwords import PasswordPolicy
from auth.store import CredentialStore
from core.config import get_settings


def _open_store(db_url: Optional[str]) -> CredentialStore:
    settings = get_settings()
    return CredentialStore(
        db_url or settings.database_url,
        policy=PasswordPolicy.from_settings(settings),
        timeout=settings.operation_timeout_seconds,
        workers=2,
    )


def _require_user(store: CredentialStore, username: str) -> User:
    user = store.find_by_username(username)
    if user is None:
        raise UserNotFound(f"User '{username}' not found.")
    return user


def _print_users(users: list[User]) -> None:
    if not users:
        print("  No users found.")
        return
    for u in users:
        name = f"{u.first_name} {u.last_name}".strip() or "-"
        roles = ", ".join(sorted(u.roles)) or "-"
        print(f"  {u.username:<24} {name:<32} {roles:<30} {u.id}")


def _run(args: argparse.Namespace, store: CredentialStore) -> None:
    if args.command == "create-role":
        role = store.create_role(args.name)
        print(f"  Role '{role.name}' created.")

    elif args.command == "list-roles":
        for role in store.list_roles():
            print(f"  {role.name}")

    elif args.command == "create-user":
        password = args.password or getpass.getpass("Password: ")
        user = User(
            username=args.username,
            first_name=args.first,
            last_name=args.last,
            roles=set(args.role or []),
        )
        user_id = store.create_user(user, password)
        print(f"  User '{args.username}' created ({user_id}).")

    elif args.command == "assign-role":
        user = _require_user(store, args.username)
        store.assign_role(user.id, args.role)
        print(f"  Role '{args.role}' assigned to '{user.username}'.")

    elif args.command == "list-users":
        _print_users(store.list_users())

    elif args.command == "search":
        _print_users(store.search_by_name(args.first, args.last))

    elif args.command == "delete-user":
        user = _require_user(store, args.username)
        store.delete_user(user.id)
        print(f"  User '{user.username}' deleted.")


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="identity-admin",
        description="Manage users and roles of the identity server.",
    )
    parser.add_argument("--db", metavar="URL", help="SQLAlchemy database URL (overrides DATABASE_URL)")
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p = sub.add_parser("create-role", help="Create a role")
    p.add_argument("name")

    sub.add_parser("list-roles", help="List roles")

    p = sub.add_parser("create-user", help="Create a user (prompts for the password unless --password)")
    p.add_argument("username")
    p.add_argument("--first", default="", help="First name")
    p.add_argument("--last", default="", help="Last name")
    p.add_argument("--role", action="append", metavar="ROLE", help="Role to assign (repeatable)")
    p.add_argument("--password", help="Password (avoid on shared machines: visible in shell history)")

    p = sub.add_parser("assign-role", help="Assign an existing role to a user")
    p.add_argument("username")
    p.add_argument("role")

    sub.add_parser("list-users", help="List all users")

    p = sub.add_parser("search", help="Search users by first/last name prefix, in either order")
    p.add_argument("first")
    p.add_argument("last")

    p = sub.add_parser("delete-user", help="Delete a user and revoke its refresh tokens")
    p.add_argument("username")

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 2

    store = _open_store(args.db)
    try:
        _run(args, store)
    except IdentityError as e:
        print(f"  [!] {e.message}", file=sys.stderr)
        return 1
    finally:
        store.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
