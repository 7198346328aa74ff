"""
auth/store.py -- SQLAlchemy Core persistence for members (the identity side).

Pattern: Repository + Data Mapper. MemberStore is the repository;
_row_to_member is the mapper. The service never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  UNIQUE(username) and UNIQUE(email_address) are enforced by the schema. The
  service pre-checks both for a friendly error, and create_member() still maps
  an IntegrityError from a concurrent sign-up onto the same typed error.
  SQLite treats NULLs as distinct in UNIQUE constraints, so any number of
  members may omit an email address.

DB path: auth/authgate.db unless DATABASE_URL says otherwise.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, func, select, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from auth.db import create_db_engine, store_errors, write_connection
from auth.errors import DuplicateEmail, DuplicateLogin, StoreUnavailable
from auth.models import Member, MemberRole, MemberStatus
from core.clock import Clock, utcnow
from core.config import DEFAULT_DATABASE_URL

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_members = Table(
    "members",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(50), nullable=False, unique=True),
    Column("password_hash", String(100), nullable=False),
    Column("member_name", String(100), nullable=False),
    Column("phone_number", String(20), nullable=False),
    Column("email_address", String(255), unique=True),
    Column("role", String(20), nullable=False, server_default=MemberRole.USER.value),
    Column("status", String(20), nullable=False, server_default=MemberStatus.ACTIVE.value),
    Column("created_at", String(40), nullable=False),
    Column("last_login_at", Text),  # ISO 8601 timestamp of last successful sign-in
    Column("password_changed_at", Text),
)


def _iso(moment: datetime) -> str:
    return moment.isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class MemberStore:
    """Repository for Member records.

    Usage:
        store = MemberStore()
        member_id = store.create_member(Member(username="kim01", ...))
        member = store.get_by_username("kim01")
        store.close()

    Pass `engine` to share one connection pool with SessionStore; the store
    then leaves disposal to whoever created the engine.
    """

    def __init__(
        self,
        db_url: str = DEFAULT_DATABASE_URL,
        engine: Engine | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._owns_engine = engine is None
        self.engine: Engine = engine if engine is not None else create_db_engine(db_url)
        self._clock = clock
        with store_errors("create_schema"):
            _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_by_username(self, username: str) -> Member | None:
        """Look up a member by exact username (case-sensitive)."""
        with store_errors("get_by_username"), self.engine.connect() as conn:
            row = conn.execute(_members.select().where(_members.c.username == username)).fetchone()
        return _row_to_member(row) if row is not None else None

    def get_by_id(self, member_id: int) -> Member | None:
        with store_errors("get_by_id"), self.engine.connect() as conn:
            row = conn.execute(_members.select().where(_members.c.id == member_id)).fetchone()
        return _row_to_member(row) if row is not None else None

    def exists_by_username(self, username: str) -> bool:
        with store_errors("exists_by_username"), self.engine.connect() as conn:
            count = conn.execute(
                select(func.count()).select_from(_members).where(_members.c.username == username)
            ).scalar()
        return (count or 0) > 0

    def exists_by_email(self, email_address: str) -> bool:
        with store_errors("exists_by_email"), self.engine.connect() as conn:
            count = conn.execute(
                select(func.count()).select_from(_members).where(_members.c.email_address == email_address)
            ).scalar()
        return (count or 0) > 0

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_member(self, member: Member) -> int:
        """Insert a new member and return its assigned ID.

        Raises DuplicateLogin / DuplicateEmail when a UNIQUE constraint fires,
        which covers the race where two sign-ups pass the service pre-check.
        """
        try:
            with store_errors("create_member"), self.engine.connect() as conn:
                result = conn.execute(
                    _members.insert().values(
                        username=member.username,
                        password_hash=member.password_hash,
                        member_name=member.member_name,
                        phone_number=member.phone_number,
                        email_address=member.email_address,
                        role=member.role.value,
                        status=member.status.value,
                        created_at=_iso(self._clock()),
                    )
                )
                conn.commit()
                return result.inserted_primary_key[0]
        except IntegrityError as exc:
            if self.exists_by_username(member.username):
                raise DuplicateLogin() from exc
            raise DuplicateEmail() from exc

    def update_last_login(self, member_id: int) -> None:
        """Stamp last_login_at after a successful sign-in."""
        with store_errors("update_last_login"), self.engine.connect() as conn:
            conn.execute(
                _members.update().where(_members.c.id == member_id).values(last_login_at=_iso(self._clock()))
            )
            conn.commit()

    def update_password(self, member_id: int, password_hash: str, conn: Connection | None = None) -> bool:
        """Replace the credential hash. Returns False if member_id was not found.

        Pass `conn` to make the change part of the caller's transaction.
        """
        with store_errors("update_password"), write_connection(self.engine, conn) as tx:
            result = tx.execute(
                _members.update()
                .where(_members.c.id == member_id)
                .values(password_hash=password_hash, password_changed_at=_iso(self._clock()))
            )
        return result.rowcount > 0

    def update_status(self, member_id: int, status: MemberStatus, conn: Connection | None = None) -> bool:
        """Administrative status change. Not called by AuthService."""
        with store_errors("update_status"), write_connection(self.engine, conn) as tx:
            result = tx.execute(_members.update().where(_members.c.id == member_id).values(status=status.value))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with store_errors("ping"), self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except StoreUnavailable:
            return False
        return True

    def close(self) -> None:
        if self._owns_engine:
            self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_member(row) -> Member:
    return Member(
        id=row.id,
        username=row.username,
        password_hash=row.password_hash,
        member_name=row.member_name,
        phone_number=row.phone_number,
        email_address=row.email_address,
        role=MemberRole(row.role),
        status=MemberStatus(row.status),
        created_at=row.created_at,
        last_login_at=row.last_login_at,
        password_changed_at=row.password_changed_at,
    )
