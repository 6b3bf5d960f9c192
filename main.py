"""Command-line interface for the user management service."""

from __future__ import annotations
import argparse
import logging
import sys
from getpass import getpass
from typing import Sequence

import anyio

from users_api.config import Settings, load_settings
from users_api.database import build_store
from users_api.errors import UserServiceError
from users_api.store import UserStore, seed_default_users

logger = logging.getLogger("users_api.main")

_DEFAULT_PORT = 3000


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="User management service utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    init_parser = subparsers.add_parser("init-db", help="Initialise the user database")
    init_parser.add_argument(
        "--seed",
        action="store_true",
        help="Insert the demo users when the database is empty",
    )

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=_DEFAULT_PORT,
        help=f"Port for the HTTP API (default: {_DEFAULT_PORT})",
    )

    subparsers.add_parser("admin", help="Launch the interactive administration console")

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "admin", "init-db"}

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


def _initialise_store(settings: Settings) -> UserStore:
    store = build_store(settings)
    store.initialize()
    if settings.store_backend == "sqlite":
        logger.info("Database initialised at %s", settings.database_path)
    else:
        logger.info("Using in-memory user store")
    return store


def _serve(*, settings: Settings, store: UserStore, host: str, port: int) -> None:
    from users_api.api import create_app
    import uvicorn

    try:
        app = create_app(settings=settings, store=store)
    except ValueError as exc:
        raise SystemExit(f"Cannot start the API: {exc}. Set USERS_API_JWT_SECRET or disable auth.") from exc

    logger.info("Starting user API on http://%s:%s", host, port)
    uvicorn.run(app, host=host, port=port, log_level="info")


def _seed(store: UserStore) -> int:
    added = anyio.run(seed_default_users, store)
    if added:
        logger.info("Inserted %d demo users", added)
    else:
        logger.info("Database already contains users; skipping demo data")
    return added


def _run_admin_cli(store: UserStore) -> None:
    """Provide an interactive console for administrators."""

    print("User Management Administration Console")
    print("Press Ctrl+C at any time to exit.\n")

    try:
        while True:
            print("Select an option:")
            print("  1) List all users")
            print("  2) Add a new user")
            print("  3) Delete a user")
            print("  4) Exit")

            choice = input("Enter choice [1-4]: ").strip()

            if choice == "1":
                _list_users(store)
            elif choice == "2":
                _add_user(store)
            elif choice == "3":
                _delete_user(store)
            elif choice == "4":
                print("Goodbye!")
                return
            else:
                print("Invalid selection. Please choose a number from the menu.\n")

            print()
    except KeyboardInterrupt:
        print("\nExiting administration console.")


def _list_users(store: UserStore) -> None:
    users = anyio.run(store.list_users)
    if not users:
        print("No users are currently registered.")
        return

    print(f"{len(users)} user(s) found:")
    print(f"{'ID':>4}  {'Name':<24}  {'Email':<32}  Created")
    print("-" * 80)
    for user in users:
        created = user.created_at.strftime("%Y-%m-%d %H:%M:%S %Z")
        print(f"{user.id!s:>4}  {user.name:<24}  {user.email:<32}  {created}")


def _add_user(store: UserStore) -> None:
    print("\nCreate a new user (leave the name blank to cancel).")
    name = input("Name: ").strip()
    if not name:
        print("User creation cancelled.")
        return

    email = input("Email address: ").strip()
    if not email:
        print("An email address is required.")
        return

    password = _prompt_for_password()
    if password is None:
        print("Aborted creating user.")
        return

    try:
        user = anyio.run(store.create_user, name, email, password)
    except UserServiceError as exc:
        print(f"Failed to create user: {exc.message}")
        return

    print(f"Created user #{user.id}: {user.name} <{user.email}>")


def _delete_user(store: UserStore) -> None:
    user_id = input("ID of the user to delete: ").strip()
    if not user_id:
        print("Deletion cancelled.")
        return

    try:
        deleted = anyio.run(store.delete_user, user_id)
    except UserServiceError as exc:
        print(f"Failed to delete user: {exc.message}")
        return

    if deleted:
        print(f"Deleted user #{user_id}.")
    else:
        print(f"No user with id {user_id} exists.")


def _prompt_for_password() -> str | None:
    for _ in range(3):
        password = getpass("Password: ")
        if not password:
            print("Password must not be empty. Please try again.")
            continue
        confirmation = getpass("Confirm password: ")
        if password != confirmation:
            print("Passwords do not match. Please try again.")
            continue
        return password
    return None


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    settings = load_settings()
    store = _initialise_store(settings)

    if args.command == "serve":
        _serve(settings=settings, store=store, host=args.host, port=args.port)
    elif args.command == "admin":
        _run_admin_cli(store)
    elif args.command == "init-db":
        if args.seed:
            _seed(store)
        print("Database initialisation complete.")


if __name__ == "__main__":
    main()
