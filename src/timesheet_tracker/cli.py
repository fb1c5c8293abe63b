"""Timesheet tracker command line interface.

Provides operational tools for:
- Schema creation and settings seeding
- Bootstrapping the first admin account

Usage:
    python -m timesheet_tracker.cli init-db
    python -m timesheet_tracker.cli create-user --name "Ada" --email ada@company.com --password secret
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import sys
from typing import Callable

from timesheet_tracker.config import get_settings
from timesheet_tracker.database import (
    create_engine,
    create_schema,
    create_session_factory,
    unit_of_work,
)
from timesheet_tracker.exceptions import TimesheetError
from timesheet_tracker.logging_config import configure_logging
from timesheet_tracker.services.admin_service import UserAdminService
from timesheet_tracker.services.policy import Role
from timesheet_tracker.services.settings_service import SettingsProvider


class TimesheetCli:
    """Timesheet tracker command line interface."""

    def __init__(self) -> None:
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m timesheet_tracker.cli",
            description="Timesheet tracker operational tools",
        )
        parser.add_argument(
            "--database-url",
            default=None,
            help="Database URL (default: DATABASE_URL from the environment)",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        # init-db command
        subparsers.add_parser(
            "init-db",
            help="Create tables and seed default settings",
        )

        # create-user command
        create_user = subparsers.add_parser(
            "create-user",
            help="Create a user without an existing admin session",
        )
        create_user.add_argument("--name", required=True, help="Display name")
        create_user.add_argument("--email", required=True, help="Login email")
        create_user.add_argument(
            "--password",
            help="Password (prompted for when omitted)",
        )
        create_user.add_argument(
            "--role",
            choices=[role.value for role in Role],
            default=Role.ADMIN.value,
            help="Role (default: admin)",
        )

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run CLI with arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        settings = get_settings()
        configure_logging(settings.log_level, settings.log_format)

        handlers: dict[str, Callable[[argparse.Namespace], int]] = {
            "init-db": self._cmd_init_db,
            "create-user": self._cmd_create_user,
        }
        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        try:
            return handler(parsed)
        except TimesheetError as exc:
            print(f"Error: {exc.message}", file=sys.stderr)
            return 1

    def _cmd_init_db(self, args: argparse.Namespace) -> int:
        """Create the schema and seed missing settings."""
        inserted = asyncio.run(init_db(args.database_url or get_settings().database_url))
        print(f"Schema ready; {inserted} default settings inserted.")
        return 0

    def _cmd_create_user(self, args: argparse.Namespace) -> int:
        """Create a user, by default an admin."""
        password = args.password or getpass.getpass("Password: ")
        if len(password) < 6:
            print("Error: password must be at least 6 characters", file=sys.stderr)
            return 1

        user_id = asyncio.run(
            create_user(
                args.database_url or get_settings().database_url,
                name=args.name,
                email=args.email,
                password=password,
                role=args.role,
            )
        )
        print(f"Created {args.role} {args.email} with id {user_id}")
        return 0


async def init_db(database_url: str) -> int:
    """Create tables and seed default settings. Returns count of settings inserted."""
    engine = create_engine(database_url)
    try:
        await create_schema(engine)
        async with create_session_factory(engine)() as session:
            async with unit_of_work(session):
                return await SettingsProvider(session).seed_defaults()
    finally:
        await engine.dispose()


async def create_user(
    database_url: str,
    name: str,
    email: str,
    password: str,
    role: str,
) -> int:
    engine = create_engine(database_url)
    try:
        async with create_session_factory(engine)() as session:
            user = await UserAdminService(session).bootstrap_user(name, email, password, role)
            return user.id
    finally:
        await engine.dispose()


def main() -> int:
    """Main entry point."""
    cli = TimesheetCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
