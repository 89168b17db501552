#!/usr/bin/env python3
"""
SessionKeeper -- command-line host for the session core.

Every invocation is a new process with an empty ephemeral tier, so only
sessions opened with --remember (durable tier) are still there for the next
command. That makes the CLI a handy way to watch the two tiers behave.

Usage:
  python main.py add-user alice@example.com --role admin
  python main.py login alice@example.com
  python main.py login alice@example.com --remember
  python main.py whoami
  python main.py status
  python main.py logout

Environment variables (see core/config.py for the full list):
  SECRET_KEY      Required unless DEBUG=true. Signs session tokens.
  DEBUG           true -> auto-generated SECRET_KEY (remembered sessions will
                  not verify after restart), obfuscated codec permitted.
"""

import argparse
import getpass
import logging
import sys
from typing import Optional

from sqlalchemy.exc import IntegrityError

from auth.codec import build_codec
from auth.core import AuthCore
from auth.errors import LoginFailure
from auth.events import LoggingEventSink
from auth.models import Credential, Role, is_valid_identifier
from auth.session import SessionManager
from auth.store import CredentialStore
from auth.tokens import hash_password
from core.config import Settings, get_settings
from storage.store import TieredKeyValueStore

logger = logging.getLogger("sessionkeeper.cli")

_MIN_SECRET_LENGTH = 6


def _build_core(settings: Settings) -> tuple[AuthCore, CredentialStore, TieredKeyValueStore]:
    credentials = CredentialStore(settings.credentials_db_url)
    kv_store = TieredKeyValueStore(settings.storage_db_path)
    sessions = SessionManager(
        kv_store,
        build_codec(settings),
        session_timeout_seconds=settings.session_timeout_seconds,
    )
    auth_core = AuthCore.from_settings(settings, credentials, sessions, LoggingEventSink())
    return auth_core, credentials, kv_store


def _read_secret(prompt: str, stdin: bool) -> str:
    if stdin:
        return sys.stdin.readline().rstrip("\n")
    return getpass.getpass(prompt)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_add_user(args: argparse.Namespace, credentials: CredentialStore) -> int:
    if not is_valid_identifier(args.identifier):
        print(f"  [!] '{args.identifier}' is not a valid identifier. Expected an e-mail address.")
        return 2
    try:
        secret = _read_secret("Secret: ", args.secret_stdin)
        if len(secret) < _MIN_SECRET_LENGTH:
            print(f"  [!] Secret must be at least {_MIN_SECRET_LENGTH} characters.")
            return 2
        if not args.secret_stdin and getpass.getpass("Repeat secret: ") != secret:
            print("  [!] Secrets do not match.")
            return 2
    except (EOFError, KeyboardInterrupt):
        print("\n  [!] Aborted.")
        return 1
    try:
        credentials.add(Credential(args.identifier, hash_password(secret), Role(args.role)))
    except IntegrityError:
        print(f"  [!] '{args.identifier}' already exists.")
        return 1
    print(f"  Added {args.identifier} ({args.role}).")
    return 0


def cmd_login(args: argparse.Namespace, auth_core: AuthCore) -> int:
    # Keep prompting inside this process so the attempt counter means something.
    while True:
        try:
            secret = _read_secret(f"Secret for {args.identifier}: ", args.secret_stdin)
        except (EOFError, KeyboardInterrupt):
            print("\n  [!] Aborted.")
            return 1
        result = auth_core.login(args.identifier, secret, persist=args.remember)
        if result.ok:
            print(f"  Logged in as {args.identifier} ({result.role.value}).")
            if args.remember and not result.persisted:
                print("  [!] Session could not be written to durable storage; it ends with this process.")
            elif not args.remember:
                print("  Session ends with this process. Use --remember to keep it.")
            return 0
        if result.reason is LoginFailure.invalid_identifier_format:
            print(f"  [!] '{args.identifier}' is not a valid identifier. Expected an e-mail address.")
            return 2
        if result.reason is LoginFailure.account_locked:
            print("  [!] Too many failed attempts. Login is locked.")
            return 1
        print(f"  [!] Invalid identifier or secret. {auth_core.remaining_attempts} attempt(s) left.")
        if args.secret_stdin:
            return 1


def cmd_logout(auth_core: AuthCore) -> int:
    auth_core.logout()
    print("  Logged out.")
    return 0


def cmd_whoami(auth_core: AuthCore) -> int:
    principal = auth_core.current_principal()
    if principal is None:
        print("  Not logged in.")
        return 1
    print(f"  {principal.id} ({principal.role.value})")
    return 0


def cmd_status(auth_core: AuthCore) -> int:
    stats = auth_core.sessions.stats()
    print(f"  State: {auth_core.state.value}")
    if stats is None:
        return 1
    session = stats["session"]
    print(f"  Principal:     {stats['principal']['id']} ({stats['principal']['role']})")
    print(f"  Session:       {session['sessionId']}")
    print(f"  Issued:        {session['issuedAt']}")
    print(f"  Last activity: {session['lastActivityAt']} ({session['idle']} ago)")
    print(f"  Duration:      {session['duration']}")
    print(f"  Remembered:    {'yes' if session['persistent'] else 'no'}")
    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sessionkeeper",
        description="Log in, inspect, and end SessionKeeper sessions.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py add-user alice@example.com --role admin
  python main.py login alice@example.com --remember
  python main.py whoami
  echo 's3cret!' | python main.py login alice@example.com --secret-stdin
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level")
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    add = sub.add_parser("add-user", help="Register a credential")
    add.add_argument("identifier", metavar="IDENTIFIER", help="E-mail address used to log in")
    add.add_argument("--role", choices=[r.value for r in Role], default=Role.standard.value)
    add.add_argument("--secret-stdin", action="store_true", help="Read the secret from stdin instead of prompting")

    login = sub.add_parser("login", help="Open a session")
    login.add_argument("identifier", metavar="IDENTIFIER")
    login.add_argument("--remember", action="store_true", help="Keep the session across restarts (durable tier)")
    login.add_argument("--secret-stdin", action="store_true", help="Read the secret from stdin instead of prompting")

    sub.add_parser("logout", help="End the current session")
    sub.add_parser("whoami", help="Print the current principal")
    sub.add_parser("status", help="Print session details")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        settings = get_settings()
    except ValueError as e:
        print(f"  [!] Configuration error: {e}")
        return 2

    auth_core, credentials, kv_store = _build_core(settings)
    try:
        if args.command == "add-user":
            return cmd_add_user(args, credentials)
        if args.command == "login":
            return cmd_login(args, auth_core)
        if args.command == "logout":
            return cmd_logout(auth_core)
        if args.command == "whoami":
            return cmd_whoami(auth_core)
        return cmd_status(auth_core)
    finally:
        auth_core.close()
        kv_store.close()
        credentials.close()


if __name__ == "__main__":
    sys.exit(main())
