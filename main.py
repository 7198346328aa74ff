#!/usr/bin/env python3
"""
authgate -- administrative commands for the member and session stores.

These are the operations that deliberately sit outside the HTTP API:
account status changes (suspend, delete, reactivate), bootstrapping the
first administrator, and the expired-session sweep for cron.

Usage:
  python main.py sweep
  python main.py set-status kim01 SUSPENDED
  python main.py set-status kim01 ACTIVE
  python main.py create-admin admin01 --name "Admin" --phone 010-0000-0000
  python main.py --db-url sqlite:///./other.db sweep

Environment variables:
  DATABASE_URL    Store location (default: auth/authgate.db). --db-url wins.
  BCRYPT_ROUNDS   Cost factor used by create-admin.
"""

import argparse
import getpass
import logging
from typing import Optional

from pydantic import ValidationError

from api.models import SignUpRequest
from auth.db import store_errors
from auth.errors import StoreUnavailable
from auth.models import Member, MemberRole, MemberStatus
from auth.passwords import CredentialVerifier
from auth.sessions import SessionStore
from auth.store import MemberStore
from core.clock import utcnow
from core.config import get_settings

logger = logging.getLogger("authgate.cli")


def _sweep(args: argparse.Namespace, db_url: str) -> int:
    sessions = SessionStore(db_url)
    try:
        deleted = sessions.sweep_expired(utcnow())
    finally:
        sessions.close()
    print(f"  Deleted {deleted} expired refresh token(s).")
    return 0


def _set_status(args: argparse.Namespace, db_url: str) -> int:
    """Change a member's status. Leaving ACTIVE also ends every open session."""
    status = MemberStatus(args.status)
    members = MemberStore(db_url)
    sessions = SessionStore(engine=members.engine)
    try:
        member = members.get_by_username(args.username)
        if member is None:
            print(f"  [!] No member named '{args.username}'.")
            return 1
        revoked = 0
        with store_errors("set_status"), members.engine.begin() as conn:
            members.update_status(member.id, status, conn=conn)
            if status != MemberStatus.ACTIVE:
                revoked = sessions.revoke_all_for_member(member.id, conn=conn)
    finally:
        members.close()
    logger.info("Status changed: member_id=%s status=%s revoked_sessions=%d", member.id, status.value, revoked)
    print(f"  {args.username}: {member.status.value} -> {status.value} ({revoked} session(s) revoked)")
    return 0


def _create_admin(args: argparse.Namespace, db_url: str) -> int:
    """Create an ACTIVE member with role ADMIN.

    Input goes through the same validation as the sign-up endpoint so an
    admin account cannot be weaker than a regular one.
    """
    password = args.password
    if password is None:
        password = getpass.getpass("Password: ")
        if password != getpass.getpass("Confirm password: "):
            print("  [!] Passwords do not match.")
            return 1
    try:
        request = SignUpRequest(
            username=args.username,
            password=password,
            member_name=args.name,
            phone_number=args.phone,
            email_address=args.email,
        )
    except ValidationError as exc:
        for err in exc.errors():
            print(f"  [!] {'.'.join(str(p) for p in err['loc'])}: {err['msg']}")
        return 1

    members = MemberStore(db_url)
    try:
        if members.exists_by_username(request.username):
            print(f"  [!] Username '{request.username}' is already taken.")
            return 1
        verifier = CredentialVerifier(rounds=get_settings().bcrypt_rounds)
        member_id = members.create_member(
            Member(
                username=request.username,
                password_hash=verifier.hash(request.password),
                member_name=request.member_name,
                phone_number=request.phone_number,
                email_address=request.email_address,
                role=MemberRole.ADMIN,
                status=MemberStatus.ACTIVE,
            )
        )
    finally:
        members.close()
    logger.info("Admin created: username=%s member_id=%s", request.username, member_id)
    print(f"  Created admin '{request.username}' (id {member_id}).")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="authgate",
        description="Administrative commands for authgate members and sessions.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py sweep
  python main.py set-status kim01 SUSPENDED
  python main.py create-admin admin01 --name "Admin" --phone 010-0000-0000
        """,
    )
    parser.add_argument(
        "--db-url",
        metavar="URL",
        default=None,
        help="SQLAlchemy database URL (default: DATABASE_URL setting)",
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")

    sweep = commands.add_parser("sweep", help="Delete expired refresh tokens")
    sweep.set_defaults(handler=_sweep)

    set_status = commands.add_parser("set-status", help="Suspend, delete or reactivate a member")
    set_status.add_argument("username", help="Member username")
    set_status.add_argument(
        "status",
        choices=[s.value for s in MemberStatus],
        help="New status. Anything but ACTIVE also revokes the member's sessions.",
    )
    set_status.set_defaults(handler=_set_status)

    create_admin = commands.add_parser("create-admin", help="Create an administrator account")
    create_admin.add_argument("username", help="Login name (4-20 letters, digits or _)")
    create_admin.add_argument("--name", required=True, help="Display name")
    create_admin.add_argument("--phone", required=True, metavar="010-XXXX-XXXX", help="Phone number")
    create_admin.add_argument("--email", default=None, help="Optional email address")
    create_admin.add_argument(
        "--password",
        default=None,
        help="Password (prompted for when omitted; prefer the prompt outside scripts)",
    )
    create_admin.set_defaults(handler=_create_admin)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)-5s %(name)s %(message)s")
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 2

    db_url = args.db_url
    if db_url is None:
        try:
            db_url = get_settings().database_url
        except ValidationError as exc:
            print(f"  [!] Invalid configuration: {exc.errors()[0]['msg']}")
            return 2
    try:
        return args.handler(args, db_url)
    except StoreUnavailable as exc:
        print(f"  [!] {exc}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
