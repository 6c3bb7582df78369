#!/usr/bin/env python3
"""
Admin panel -- maintenance commands that run without the HTTP server.

Usage:
  python main.py setup-admin
  python main.py cleanup-logs --days 90

Environment variables (see core/config.py; a .env file also works):
  DATABASE_URL     SQLAlchemy URL of the database (default: sqlite:///adminpanel.db)
  ADMIN_EMAIL      Email of the administrator created by setup-admin
  ADMIN_PASSWORD   Password for that administrator (required unless promoting)
  ADMIN_NAME       Display name (default: System Administrator)

setup-admin is idempotent:
  * an admin already exists           -> nothing to do
  * ADMIN_EMAIL belongs to a user      -> that user is promoted to admin
  * otherwise                          -> a new admin is created
"""

import argparse
import sys

from audit.models import ActivityLog
from audit.store import ActivityLogStore
from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import hash_password
from auth.validation import is_valid_email, password_problems
from core.config import Settings, get_settings


def setup_admin(store: UserStore, settings: Settings) -> int:
    """Ensure at least one admin exists. Returns a process exit code."""
    if store.has_admin():
        print(f"  Admin already exists ({store.count_admins()} admin account(s)). Nothing to do.")
        return 0

    email = settings.admin_email
    if not is_valid_email(email):
        print(f"  [!] ADMIN_EMAIL '{email}' is not a valid email address.")
        return 1

    existing = store.get_by_email(email)
    if existing is not None:
        store.update_user(existing.id, role=Role.admin.value)
        print(f"  Promoted existing user {existing.email} to admin.")
        return 0

    if not settings.admin_password:
        print("  [!] ADMIN_PASSWORD is not set. Refusing to create an admin without a password.")
        return 1
    problems = password_problems(settings.admin_password)
    if problems:
        print(f"  [!] ADMIN_PASSWORD rejected: {problems[0]}.")
        return 1

    user_id = store.create_user(
        User(
            name=settings.admin_name,
            email=email,
            password_hash=hash_password(settings.admin_password),
            role=Role.admin.value,
        )
    )
    print(f"  Admin created: {email} (id {user_id}).")
    print("  Change the password after the first login.")
    return 0


def cleanup_logs(log_store: ActivityLogStore, days: int) -> int:
    deleted, cutoff = log_store.delete_older_than(days)
    log_store.create_log(
        ActivityLog(
            action="logs-cleanup",
            ip="cli",
            user_agent="main.py",
            details={"days": days, "deletedCount": deleted, "cutoff": cutoff},
        )
    )
    print(f"  Deleted {deleted} activity log entries older than {cutoff}.")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="adminpanel",
        description="Maintenance commands for the admin panel backend.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  ADMIN_PASSWORD='S3cure-pass' python main.py setup-admin
  ADMIN_EMAIL=ana@example.com python main.py setup-admin
  python main.py cleanup-logs --days 30
        """,
    )
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.add_parser(
        "setup-admin",
        help="Create the first administrator from ADMIN_EMAIL / ADMIN_PASSWORD / ADMIN_NAME",
    )
    cleanup = subparsers.add_parser("cleanup-logs", help="Delete activity log entries older than N days")
    cleanup.add_argument(
        "--days",
        type=int,
        default=90,
        metavar="N",
        help="Retention window in days (default: 90, minimum: 1)",
    )
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    settings = get_settings()

    if args.command == "setup-admin":
        store = UserStore(settings.database_url)
        try:
            return setup_admin(store, settings)
        finally:
            store.close()

    if args.days < 1:
        parser.error("--days must be at least 1")
    log_store = ActivityLogStore(settings.database_url)
    try:
        return cleanup_logs(log_store, args.days)
    finally:
        log_store.close()


if __name__ == "__main__":
    sys.exit(main())
