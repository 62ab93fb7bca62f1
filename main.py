#!/usr/bin/env python3
"""
UserGate -- session-backed user management and authentication service.

Usage:
  python main.py serve
  python main.py serve --host 127.0.0.1 --port 8000 --reload
  python main.py create-user --email root@example.com --role ROOT --account-id <uuid>

Configuration comes from the environment (or .env); see core/config.py.
create-user prompts for the password so it never lands in shell history.
"""

import argparse
import getpass
import sys
import uuid

from auth.errors import ApiError
from auth.models import Role
from core.config import get_settings


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "api.main:app",
        host=args.host or settings.host,
        port=args.port or settings.port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )
    return 0


def _create_user(args: argparse.Namespace) -> int:
    """Create a user directly through UserService, bypassing HTTP.

    This is how the first ROOT account is provisioned: every user-management
    route needs an authenticated manager, so the first one has to come from here.
    """
    from users.service import UserService
    from users.store import UserStore

    password = getpass.getpass("Password: ")
    if password != getpass.getpass("Confirm password: "):
        print("  [!] Passwords do not match.")
        return 1
    if len(password) < 8:
        print("  [!] Password must be at least 8 characters.")
        return 1

    settings = get_settings()
    store = UserStore(settings.database_url)
    try:
        user = UserService(store).create(
            account_id=args.account_id or str(uuid.uuid4()),
            branch_id=args.branch_id,
            name=args.name,
            email=args.email,
            password=password,
            role=args.role,
        )
    except ApiError as exc:
        print(f"  [!] {exc.message}")
        return 1
    finally:
        store.close()

    print(f"Created {user.role} user {user.email} (id {user.id}, account {user.account_id}).")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="usergate",
        description="Session-backed user management and authentication service.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default=None, help="Bind address (default: HOST setting)")
    serve.add_argument("--port", type=int, default=None, help="Bind port (default: PORT setting)")
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development only)")
    serve.set_defaults(func=_serve)

    create = sub.add_parser("create-user", help="Create a user from the command line")
    create.add_argument("--email", required=True)
    create.add_argument(
        "--role",
        required=True,
        choices=[r.value for r in Role],
        metavar="ROLE",
        help="One of: " + ", ".join(r.value for r in Role),
    )
    create.add_argument("--account-id", default=None, help="Account UUID (default: a new random UUID)")
    create.add_argument("--branch-id", default=None, help="Optional branch UUID")
    create.add_argument("--name", default=None, help="Optional display name")
    create.set_defaults(func=_create_user)

    args = parser.parse_args()
    if not getattr(args, "func", None):
        parser.print_help()
        return
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
