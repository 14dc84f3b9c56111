"""``blockgate`` command-line entry point.

Client commands (use config.client and the JSON Mirror Store):

    blockgate status        verify once; print the gate if the account is blocked
    blockgate watch         keep polling while blocked; exit once unblocked
    blockgate logout        the gate's Sign Out action

Admin commands (open the account database directly; config.server.db_path):

    blockgate create-user NAME EMAIL --role volunteer [--location CITY]
    blockgate issue-token USER_ID [--save]

Exit codes: 0 active / success, 1 error, 3 account blocked.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Optional, Sequence

from blockgate.client.session import open_session
from blockgate.client.storage import JsonFileKeyValueStore, MirrorStore
from blockgate.config import load_config
from blockgate.constants import VALID_ROLES
from blockgate.models.state import UserSummary
from blockgate.server.users import InvalidUserError, UserNotFoundError, UserStore
from blockgate.utils.logger import configure_logging_from_env

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_BLOCKED = 3


# ─── Client commands ──────────────────────────────────────────────────────────


async def _status(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    async with open_session(config.client) as session:
        result = await session.controller.verify()
        if result is None or not result.success:
            print("Could not reach the account status service; showing cached state.",
                  file=sys.stderr)
        if session.gate.should_render():
            print(session.gate.render())
            return EXIT_BLOCKED
        print("Account active.")
        return EXIT_OK


async def _watch(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    async with open_session(config.client) as session:
        controller = session.controller
        if not controller.is_blocked:
            await controller.verify()
        if not controller.is_blocked:
            print("Account active.")
            return EXIT_OK

        print(session.gate.render())
        print(f"\nChecking again every {config.client.poll_interval_s:g}s (Ctrl+C to stop)...")

        unblocked = asyncio.Event()

        def on_change(is_blocked: bool) -> None:
            if not is_blocked:
                unblocked.set()

        unsubscribe = controller.subscribe(on_change)
        try:
            await unblocked.wait()
        finally:
            unsubscribe()
        print("Your account has been unblocked.")
        return EXIT_OK


async def _logout(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    async with open_session(config.client) as session:
        await session.gate.sign_out()
        print(f"Signed out. Next: {session.navigator.current}")
    return EXIT_OK


# ─── Admin commands ───────────────────────────────────────────────────────────


async def _create_user(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    store = UserStore(config.server.db_path)
    await store.initialize()
    try:
        user = await store.create_user(args.name, args.email, args.role, args.location)
    except InvalidUserError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_ERROR
    finally:
        await store.close()
    print(user.id)
    return EXIT_OK


async def _issue_token(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    store = UserStore(config.server.db_path)
    await store.initialize()
    try:
        token = await store.create_session(args.user_id)
        user = await store.get_user(args.user_id)
    except UserNotFoundError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_ERROR
    finally:
        await store.close()

    if args.save and user is not None:
        mirror = MirrorStore(JsonFileKeyValueStore(config.client.storage_path))
        mirror.write_session(
            token,
            UserSummary(
                id=user.id,
                name=user.name,
                email=user.email,
                role=user.role,
                location=user.location,
            ),
        )
        print(f"Session saved to {config.client.storage_path}", file=sys.stderr)
    print(token)
    return EXIT_OK


# ─── Argument parsing ─────────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="blockgate",
        description="Blocked-account status client and account admin tools",
    )
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Check account status once").set_defaults(handler=_status)
    sub.add_parser("watch", help="Poll until the account is unblocked").set_defaults(
        handler=_watch
    )
    sub.add_parser("logout", help="Sign out and clear blocked state").set_defaults(
        handler=_logout
    )

    create = sub.add_parser("create-user", help="Create an account")
    create.add_argument("name")
    create.add_argument("email")
    create.add_argument("--role", choices=sorted(VALID_ROLES), default="volunteer")
    create.add_argument("--location", default="")
    create.set_defaults(handler=_create_user)

    issue = sub.add_parser("issue-token", help="Issue a session token for a user")
    issue.add_argument("user_id")
    issue.add_argument(
        "--save",
        action="store_true",
        help="Also write the token and user into the client storage file",
    )
    issue.set_defaults(handler=_issue_token)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    configure_logging_from_env(json_default=False)
    args = build_parser().parse_args(argv)
    try:
        return asyncio.run(args.handler(args))
    except KeyboardInterrupt:
        return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
