#!/usr/bin/env python3
"""
Auth service ops CLI -- maintenance tasks that run outside the HTTP server.

Usage:
  python main.py reap
  python main.py delete-user 3f2b8c1e-9d4a-4c47-8a52-2a4f0c1d9e77
  python main.py revoke-tokens 3f2b8c1e-9d4a-4c47-8a52-2a4f0c1d9e77
  python main.py create-admin 3f2b8c1e-9d4a-4c47-8a52-2a4f0c1d9e77 admin@example.com
  python main.py create-admin <id> <email> --password 'S3cretPassw0rd'

Reads the same environment / .env settings as the server (SECRET_KEY,
DATABASE_URL, REFRESH_TOKEN_TTL_SECONDS, ...).
"""

import argparse
import getpass
import sys

from auth.errors import AuthError
from auth.ledger import RefreshTokenLedger
from auth.passwords import BcryptPasswordHasher
from auth.reaper import ExpiryReaper
from auth.service import AuthService
from auth.store import UserStore, create_store_engine
from auth.tokens import TokenSigner
from core.config import Settings, get_settings


def _build(settings: Settings):
    engine = create_store_engine(settings.database_url)
    users = UserStore(engine)
    ledger = RefreshTokenLedger(engine)
    service = AuthService(
        users=users,
        ledger=ledger,
        signer=TokenSigner(settings.signing_key),
        hasher=BcryptPasswordHasher(),
        token_hash_key=settings.signing_key,
        access_ttl=settings.access_token_ttl_seconds,
        refresh_ttl=settings.refresh_token_ttl_seconds,
        default_role=settings.default_role,
    )
    reaper = ExpiryReaper(
        ledger,
        refresh_ttl=settings.refresh_token_ttl_seconds,
        schedule=settings.parsed_reaper_schedule,
    )
    return engine, service, reaper


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Auth service maintenance commands.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("reap", help="Delete refresh-token records expired for longer than one refresh TTL")

    delete = sub.add_parser("delete-user", help="Delete a user and all of their refresh tokens")
    delete.add_argument("user_id", help="User UUID")

    revoke = sub.add_parser("revoke-tokens", help="Revoke every live refresh token of a user")
    revoke.add_argument("user_id", help="User UUID")

    admin = sub.add_parser("create-admin", help="Register a user with the admin role")
    admin.add_argument("user_id", help="User UUID")
    admin.add_argument("email")
    admin.add_argument("--password", default=None, help="Password (prompted if omitted)")

    args = parser.parse_args(argv)

    settings = get_settings()
    engine, service, reaper = _build(settings)
    try:
        if args.command == "reap":
            removed = reaper.sweep()
            print(f"Removed {removed} expired refresh token record(s).")

        elif args.command == "delete-user":
            deleted = service.delete_user(args.user_id)
            print("User deleted." if deleted else "No user with that id.")
            return 0 if deleted else 1

        elif args.command == "revoke-tokens":
            revoked = service.logout_all(args.user_id)
            print(f"Revoked {revoked} refresh token(s).")

        elif args.command == "create-admin":
            password = args.password or getpass.getpass("Password: ")
            summary = service.register(args.user_id, args.email, password, role=settings.admin_role)
            print(f"Created {summary.role} {summary.email} ({summary.id}).")

    except AuthError as exc:
        print(f"  [!] {exc.message}", file=sys.stderr)
        return 2
    finally:
        engine.dispose()
    return 0


if __name__ == "__main__":
    sys.exit(main())
