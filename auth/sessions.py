"""
auth/sessions.py -- SQLAlchemy Core persistence for refresh tokens (sessions).

One row per issued refresh token. The table is the sole authority on whether
a refresh token is usable: a revoked token still verifies cryptographically,
so refresh must consult find_valid() / rotate() rather than the signature.

Row lifecycle:
  - inserted at sign-in and at every successful refresh
  - `revoked` flips 0 -> 1 exactly once (sign-out, rotation, password change);
    every UPDATE here is guarded by `revoked = 0`, so it never flips back and
    a second revoke reports 0 rows
  - deleted only by sweep_expired(); revoked-but-unexpired rows stay behind so
    a replayed token can be recognised in the logs

Atomicity:
  rotate() runs the conditional "revoke old if still valid" UPDATE and the
  INSERT of the replacement in one transaction. Under concurrent refreshes of
  the same token only one UPDATE can match; the loser sees rowcount 0 and
  inserts nothing.

Times are stored as whole epoch seconds so the comparisons in SQL are plain
integer comparisons and match the token's own `exp` claim.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import Column, Index, Integer, MetaData, String, Table, func, select
from sqlalchemy.engine import Connection, Engine

from auth.db import create_db_engine, store_errors, write_connection
from auth.models import RefreshToken
from core.clock import Clock, from_epoch, to_epoch, utcnow
from core.config import DEFAULT_DATABASE_URL

logger = logging.getLogger("authgate.sessions")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_refresh_tokens = Table(
    "refresh_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("member_id", Integer, nullable=False),
    Column("token", String(500), nullable=False, unique=True),
    Column("issued_at", Integer, nullable=False),  # epoch seconds
    Column("expires_at", Integer, nullable=False),  # epoch seconds
    Column("revoked", Integer, nullable=False, server_default="0"),
    Column("user_agent", String(500)),
    Column("ip_address", String(45)),
    Index("idx_refresh_tokens_member_id", "member_id"),
)

_c = _refresh_tokens.c


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SessionStore:
    """Repository for RefreshToken rows.

    Usage:
        sessions = SessionStore()
        sessions.create(member_id, token, expires_at, user_agent, ip)
        record = sessions.find_valid(token, now)
        sessions.close()
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
    # Create / read
    # ------------------------------------------------------------------

    def create(
        self,
        member_id: int,
        token: str,
        expires_at: datetime,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> RefreshToken:
        """Persist a freshly issued refresh token and return the stored record."""
        with store_errors("create"), self.engine.begin() as conn:
            return _insert(conn, member_id, token, self._clock(), expires_at, user_agent, ip_address)

    def find_valid(self, token: str, now: datetime) -> RefreshToken | None:
        """Return the row for token only if it is unrevoked and unexpired at `now`."""
        with store_errors("find_valid"), self.engine.connect() as conn:
            row = conn.execute(
                _refresh_tokens.select().where(
                    (_c.token == token) & (_c.revoked == 0) & (_c.expires_at > to_epoch(now))
                )
            ).fetchone()
        return _row_to_refresh_token(row) if row is not None else None

    def find(self, token: str) -> RefreshToken | None:
        """Return the row for token in any state. Diagnostics only -- never use
        this to decide whether a token may be redeemed."""
        with store_errors("find"), self.engine.connect() as conn:
            row = conn.execute(_refresh_tokens.select().where(_c.token == token)).fetchone()
        return _row_to_refresh_token(row) if row is not None else None

    def list_valid_for_member(self, member_id: int, now: datetime) -> list[RefreshToken]:
        """Currently usable sessions for a member, newest first."""
        with store_errors("list_valid_for_member"), self.engine.connect() as conn:
            rows = conn.execute(
                _refresh_tokens.select()
                .where((_c.member_id == member_id) & (_c.revoked == 0) & (_c.expires_at > to_epoch(now)))
                .order_by(_c.issued_at.desc(), _c.id.desc())
            ).fetchall()
        return [_row_to_refresh_token(r) for r in rows]

    def count_valid_for_member(self, member_id: int, now: datetime) -> int:
        with store_errors("count_valid_for_member"), self.engine.connect() as conn:
            count = conn.execute(
                select(func.count())
                .select_from(_refresh_tokens)
                .where((_c.member_id == member_id) & (_c.revoked == 0) & (_c.expires_at > to_epoch(now)))
            ).scalar()
        return count or 0

    # ------------------------------------------------------------------
    # Revocation
    # ------------------------------------------------------------------

    def revoke(self, token: str) -> int:
        """Revoke one token. Returns 1 if an unrevoked row was flipped, else 0."""
        with store_errors("revoke"), self.engine.begin() as conn:
            result = conn.execute(
                _refresh_tokens.update().where((_c.token == token) & (_c.revoked == 0)).values(revoked=1)
            )
        return result.rowcount

    def revoke_all_for_member(self, member_id: int, conn: Connection | None = None) -> int:
        """Revoke every unrevoked token of a member. Returns the number flipped.

        Pass `conn` to make the revocation part of the caller's transaction.
        """
        with store_errors("revoke_all_for_member"), write_connection(self.engine, conn) as tx:
            result = tx.execute(
                _refresh_tokens.update().where((_c.member_id == member_id) & (_c.revoked == 0)).values(revoked=1)
            )
        return result.rowcount

    def rotate(
        self,
        old_token: str,
        now: datetime,
        member_id: int,
        new_token: str,
        expires_at: datetime,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> RefreshToken | None:
        """Atomically revoke old_token (if still valid at `now`) and store new_token.

        Returns the new record, or None when old_token was no longer valid --
        already rotated by a concurrent request, signed out, or expired. In the
        None case nothing is written.
        """
        with store_errors("rotate"), self.engine.begin() as conn:
            result = conn.execute(
                _refresh_tokens.update()
                .where((_c.token == old_token) & (_c.revoked == 0) & (_c.expires_at > to_epoch(now)))
                .values(revoked=1)
            )
            if result.rowcount != 1:
                return None
            return _insert(conn, member_id, new_token, now, expires_at, user_agent, ip_address)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def sweep_expired(self, now: datetime) -> int:
        """Delete rows whose expiry has passed, revoked or not. Returns rows deleted."""
        with store_errors("sweep_expired"), self.engine.begin() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_c.expires_at < to_epoch(now)))
        if result.rowcount:
            logger.info("Swept %d expired refresh tokens", result.rowcount)
        return result.rowcount

    def close(self) -> None:
        if self._owns_engine:
            self.engine.dispose()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _insert(
    conn: Connection,
    member_id: int,
    token: str,
    issued_at: datetime,
    expires_at: datetime,
    user_agent: str | None,
    ip_address: str | None,
) -> RefreshToken:
    # Column widths match the schema; oversized client headers are clipped, not rejected.
    user_agent = user_agent[:500] if user_agent else None
    ip_address = ip_address[:45] if ip_address else None
    result = conn.execute(
        _refresh_tokens.insert().values(
            member_id=member_id,
            token=token,
            issued_at=to_epoch(issued_at),
            expires_at=to_epoch(expires_at),
            revoked=0,
            user_agent=user_agent,
            ip_address=ip_address,
        )
    )
    return RefreshToken(
        id=result.inserted_primary_key[0],
        member_id=member_id,
        token=token,
        issued_at=from_epoch(to_epoch(issued_at)),
        expires_at=from_epoch(to_epoch(expires_at)),
        revoked=False,
        user_agent=user_agent,
        ip_address=ip_address,
    )


def _row_to_refresh_token(row) -> RefreshToken:
    return RefreshToken(
        id=row.id,
        member_id=row.member_id,
        token=row.token,
        issued_at=from_epoch(row.issued_at),
        expires_at=from_epoch(row.expires_at),
        revoked=bool(row.revoked),
        user_agent=row.user_agent,
        ip_address=row.ip_address,
    )
