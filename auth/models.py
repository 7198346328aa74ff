"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic beyond trivial
predicates). Stores and the service do the work; these own the shape.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class MemberRole(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


class MemberStatus(str, Enum):
    """Account status. Only ACTIVE may sign in or refresh.

    SUSPENDED and DELETED are terminal for sessions: existing refresh tokens
    stop working at the next refresh because refresh re-reads the status.
    Moving back to ACTIVE is an administrative action outside AuthService.
    """

    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    DELETED = "DELETED"


class TokenType(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


@dataclass
class Member:
    """An identity that can authenticate.

    password_hash is the bcrypt hash; it never leaves the auth package.
    Timestamps are ISO 8601 UTC strings, as stored.
    """

    username: str
    password_hash: str
    member_name: str
    phone_number: str
    id: int | None = None
    email_address: str | None = None
    role: MemberRole = MemberRole.USER
    status: MemberStatus = MemberStatus.ACTIVE
    created_at: str | None = None
    last_login_at: str | None = None
    password_changed_at: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == MemberStatus.ACTIVE


@dataclass(frozen=True)
class RefreshToken:
    """One persisted refresh-token row -- one active or historical session.

    Append-only apart from `revoked`, which flips false -> true exactly once.
    issued_at / expires_at are aware UTC datetimes at whole-second precision.
    """

    member_id: int
    token: str
    issued_at: datetime
    expires_at: datetime
    id: int | None = None
    revoked: bool = False
    user_agent: str | None = None
    ip_address: str | None = None

    def is_valid(self, now: datetime) -> bool:
        return not self.revoked and self.expires_at > now


@dataclass(frozen=True)
class TokenClaims:
    """Verified claims of an access or refresh token."""

    member_id: int
    username: str
    token_type: TokenType
    token_id: str
    issued_at: datetime
    expires_at: datetime
    role: str | None = None  # access tokens only


@dataclass(frozen=True)
class IssuedToken:
    value: str
    expires_at: datetime


@dataclass(frozen=True)
class Principal:
    """The authenticated caller, derived from a verified access token.

    Passed explicitly into every service call that acts "as" someone.
    """

    member_id: int
    username: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role in (MemberRole.ADMIN.value, MemberRole.SUPER_ADMIN.value)


@dataclass(frozen=True)
class RequestContext:
    """Where a sign-in or refresh came from. Recorded on the refresh row."""

    user_agent: str | None = None
    ip_address: str | None = None


@dataclass(frozen=True)
class SignUpData:
    username: str
    password: str
    member_name: str
    phone_number: str
    email_address: str | None = None


@dataclass(frozen=True)
class MemberSummary:
    id: int
    username: str
    member_name: str
    role: str

    @classmethod
    def from_member(cls, member: Member) -> "MemberSummary":
        return cls(
            id=member.id,
            username=member.username,
            member_name=member.member_name,
            role=member.role.value,
        )


@dataclass(frozen=True)
class SignInResult:
    """Returned by both sign-in and refresh."""

    access_token: str
    refresh_token: str
    expires_in: int  # access token lifetime, seconds
    member: MemberSummary
