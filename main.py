"""Command-line interface for the users service."""

from __future__ import annotations

import argparse
import dataclasses
import logging
import os
import sys
from pathlib import Path
from typing import Sequence

from usersapi.config import ConfigurationError, Settings, load_settings
from usersapi.database import Database, StorageError

logger = logging.getLogger("usersapi.main")

_DEFAULT_SERVICE_URL = "http://localhost:8080"


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Users service utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Create the users table if it is missing")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP service")
    serve_parser.add_argument(
        "--host",
        default=None,
        help="Bind address (default: APP_HOST or 0.0.0.0)",
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Listen port (default: APP_PORT or 8080)",
    )
    serve_parser.add_argument(
        "--static-dir",
        default=None,
        help="Directory served for paths outside the API (default: STATIC_DIR or ./static)",
    )

    users_parser = subparsers.add_parser(
        "users", help="Manage users through a running service"
    )
    users_parser.add_argument(
        "--service-url",
        default=None,
        help=(
            "Base URL of the running service. Defaults to the USERS_SERVICE_URL "
            "environment variable or http://localhost:8080."
        ),
    )
    actions = users_parser.add_subparsers(dest="action", required=True)
    actions.add_parser("list", help="List every user")
    add_parser = actions.add_parser("add", help="Create a user")
    add_parser.add_argument("name")
    add_parser.add_argument("email")
    update_parser = actions.add_parser("update", help="Rename a user and change their email")
    update_parser.add_argument("old_email")
    update_parser.add_argument("name")
    update_parser.add_argument("email")
    delete_parser = actions.add_parser("delete", help="Delete a user by email")
    delete_parser.add_argument("email")

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "users"}

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


def _apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    overrides = {}
    if getattr(args, "host", None):
        overrides["host"] = args.host
    if getattr(args, "port", None) is not None:
        if not 1 <= args.port <= 65535:
            raise ConfigurationError(f"--port must be between 1 and 65535, got {args.port}")
        overrides["port"] = args.port
    if getattr(args, "static_dir", None):
        overrides["static_dir"] = Path(args.static_dir).expanduser().resolve(strict=False)
    if not overrides:
        return settings
    return dataclasses.replace(settings, **overrides)


def _open_database(settings: Settings) -> Database:
    try:
        database = Database(settings.database_url)
    except ValueError as exc:
        logger.error("Database connection error: %s", exc)
        raise SystemExit(1) from exc

    try:
        database.ping()
    except StorageError as exc:
        database.close()
        logger.error("Database ping failed: %s", exc)
        raise SystemExit(1) from exc

    logger.info("Successfully connected to database at %s", database.safe_url)
    return database


def _initialise_database(database: Database) -> None:
    try:
        database.initialize()
    except StorageError as exc:
        logger.error("Failed to create the users table: %s", exc)
        raise SystemExit(1) from exc
    finally:
        database.close()
    print("Database initialisation complete.")


def _run_users_command(args: argparse.Namespace) -> None:
    from usersapi.client import UsersAPIError, UsersClient

    service_url = args.service_url or os.getenv("USERS_SERVICE_URL") or _DEFAULT_SERVICE_URL

    try:
        with UsersClient(service_url) as client:
            if args.action == "list":
                _print_users(client.list_users())
            elif args.action == "add":
                print(client.create_user(args.name, args.email))
            elif args.action == "update":
                print(client.update_user(args.old_email, args.name, args.email))
            elif args.action == "delete":
                print(client.delete_user(args.email))
    except UsersAPIError as exc:
        if exc.status_code is not None:
            print(f"Service responded with {exc.status_code}: {exc}", file=sys.stderr)
        else:
            print(str(exc), file=sys.stderr)
        raise SystemExit(1) from exc


def _print_users(users) -> None:
    if not users:
        print("No users are currently registered.")
        return

    print(f"{len(users)} user(s) found:")
    print(f"{'Name':<24}  Email")
    print("-" * 60)
    for user in users:
        print(f"{user.name:<24}  {user.email}")


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)

    if args.command == "users":
        _run_users_command(args)
        return

    logger.info("Starting application...")
    try:
        settings = _apply_overrides(load_settings(), args)
    except ConfigurationError as exc:
        logger.error("%s", exc)
        raise SystemExit(1) from exc

    logging.getLogger().setLevel(settings.log_level)

    database = _open_database(settings)

    if args.command == "init-db":
        _initialise_database(database)
    elif args.command == "serve":
        from usersapi.application import serve

        serve(settings, database)


if __name__ == "__main__":
    main()
