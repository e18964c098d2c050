#!/usr/bin/env python3
"""
PushGate admin CLI -- password and account utilities that work without the server.

Usage:
  python main.py check                       # prompt for a password, query the breach corpus
  python main.py check --file passwords.txt  # one password per line
  python main.py hash                        # prompt for a password, print its Argon2id digest
  python main.py create-user alice --admin   # prompt for a password, insert into DATABASE_URL

Passwords are always read with getpass (or from a file), never from argv, so
they do not end up in shell history or the process list.

Environment variables are the same as the server's (see core/config.py):
  DATABASE_URL, ARGON2_*, CHECK_BREACHED_PASSWORDS, BREACH_API_URL, ...
"""

import argparse
import getpass
import sys
from pathlib import Path

from auth.breach import BreachChecker
from auth.errors import BreachProtocolError
from auth.models import User
from auth.passwords import Argon2Params, hash_password
from auth.store import CredentialStore
from core.config import get_settings


def _load_file(path: str) -> list[str]:
    """Read passwords from a file -- one per line, blank lines ignored.

    Resolves symlinks and verifies the path is a regular file before reading.
    """
    file_path = Path(path).resolve()
    if not file_path.is_file():
        print(f"  [!] '{path}' is not a readable file.")
        return []
    try:
        lines = file_path.read_text().splitlines()
    except OSError as e:
        print(f"  [!] Could not read file '{path}': {e}")
        return []
    return [line.rstrip("\r\n") for line in lines if line.strip()]


def _prompt_password(confirm: bool = False) -> str:
    password = getpass.getpass("Password: ")
    if confirm and getpass.getpass("Repeat password: ") != password:
        print("  [!] Passwords do not match.")
        sys.exit(2)
    return password


def _checker() -> BreachChecker:
    settings = get_settings()
    return BreachChecker(base_url=settings.breach_api_url, timeout=settings.breach_timeout_seconds)


def cmd_check(args: argparse.Namespace) -> int:
    """Exit 0 when every password is clean, 1 if any is compromised, 3 if the check failed."""
    passwords = _load_file(args.file) if args.file else [_prompt_password()]
    if not passwords:
        return 2

    checker = _checker()
    compromised = 0
    for i, password in enumerate(passwords, start=1):
        label = f"#{i}" if args.file else "password"
        try:
            hit = checker.is_compromised(password)
        except BreachProtocolError as e:
            print(f"  [!] {label}: breach check failed ({e}). Treat as unverified.")
            return 3
        if hit:
            compromised += 1
            print(f"  {label}: COMPROMISED")
        else:
            print(f"  {label}: not found in breach corpus")
    return 1 if compromised else 0


def cmd_hash(args: argparse.Namespace) -> int:
    params = Argon2Params.from_settings(get_settings())
    print(hash_password(_prompt_password(confirm=True), params))
    return 0


def cmd_create_user(args: argparse.Namespace) -> int:
    from sqlalchemy.exc import IntegrityError

    settings = get_settings()
    password = _prompt_password(confirm=True)

    if settings.check_breached_passwords:
        try:
            if _checker().is_compromised(password):
                print("  [!] This password appears in a known data breach. Choose another one.")
                return 1
        except BreachProtocolError as e:
            if not settings.breach_check_fail_open:
                print(f"  [!] Breach check failed ({e}); refusing to create the user.")
                return 3
            print(f"  [!] Breach check failed ({e}); continuing because BREACH_CHECK_FAIL_OPEN is set.")

    store = CredentialStore(settings.database_url)
    try:
        user_id = store.create_user(
            User(
                name=args.name,
                password_hash=hash_password(password, Argon2Params.from_settings(settings)),
                matrix_id=args.matrix_id,
                is_admin=args.admin,
            )
        )
    except IntegrityError:
        print(f"  [!] A user named '{args.name}' already exists.")
        return 1
    finally:
        store.close()

    print(f"  Created user '{args.name}' (id {user_id}{', admin' if args.admin else ''}).")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="pushgate",
        description="PushGate password and account utilities.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py check
  python main.py check --file candidates.txt
  python main.py hash
  python main.py create-user alice --matrix-id @alice:matrix.org
  DATABASE_URL=sqlite:///prod.db python main.py create-user root --admin
        """,
    )
    sub = parser.add_subparsers(dest="command")

    p_check = sub.add_parser("check", help="Check passwords against the breached password corpus")
    p_check.add_argument("--file", metavar="PATH", help="Text file with one password per line")
    p_check.set_defaults(func=cmd_check)

    p_hash = sub.add_parser("hash", help="Print the Argon2id digest of a password")
    p_hash.set_defaults(func=cmd_hash)

    p_create = sub.add_parser("create-user", help="Create a user directly in the database")
    p_create.add_argument("name", help="Unique user name")
    p_create.add_argument("--matrix-id", default="", help="Chat identity messages are relayed to")
    p_create.add_argument("--admin", action="store_true", help="Grant admin rights")
    p_create.set_defaults(func=cmd_create_user)

    args = parser.parse_args()
    if not getattr(args, "func", None):
        parser.print_help()
        return
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
