"""
API request and response models for authgate REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Wire format is camelCase (`memberName`, `refreshToken`); Python attributes
stay snake_case via an alias generator. populate_by_name lets tests and
internal callers build models with either spelling.

Pydantic's regex engine has no look-around, so the password composition rule
(letter + digit + special character) is a field_validator, not a pattern.
"""

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from auth.models import Member, MemberSummary, RefreshToken, SignInResult

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

USERNAME_PATTERN = r"^[a-zA-Z0-9_]+$"
MEMBER_NAME_PATTERN = r"^[가-힣a-zA-Z\s]+$"
PHONE_PATTERN = r"^010-\d{4}-\d{4}$"
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

_PASSWORD_SPECIALS = '!@#$%^&*(),.?":{}|<>'
_HAS_LETTER = re.compile(r"[a-zA-Z]")
_HAS_DIGIT = re.compile(r"\d")


def _check_password_strength(value: str) -> str:
    if not _HAS_LETTER.search(value) or not _HAS_DIGIT.search(value):
        raise ValueError("Password must contain letters, digits and a special character.")
    if not any(ch in _PASSWORD_SPECIALS for ch in value):
        raise ValueError("Password must contain letters, digits and a special character.")
    return value


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SignUpRequest(_CamelModel):
    """Request body for POST /api/v1/auth/sign-up."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=4, max_length=20, pattern=USERNAME_PATTERN)
    password: str = Field(min_length=8, max_length=20)
    member_name: str = Field(min_length=2, max_length=50, pattern=MEMBER_NAME_PATTERN)
    phone_number: str = Field(pattern=PHONE_PATTERN)
    email_address: Optional[str] = Field(default=None, max_length=100, pattern=EMAIL_PATTERN)

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        return _check_password_strength(value)


class SignInRequest(_CamelModel):
    """Request body for POST /api/v1/auth/sign-in.

    No composition rules here -- a wrong-but-weak password must fail as
    invalid credentials, not as a validation error that hints at the policy.
    """

    username: str = Field(min_length=1, max_length=50)
    password: str = Field(min_length=1, max_length=255)


class RefreshTokenRequest(_CamelModel):
    """Request body for POST /auth/refresh and POST /auth/sign-out."""

    refresh_token: str = Field(min_length=1, max_length=1000)


class ChangePasswordRequest(_CamelModel):
    """Request body for POST /api/v1/auth/change-password."""

    current_password: str = Field(min_length=1, max_length=255)
    new_password: str = Field(min_length=8, max_length=20)

    @field_validator("new_password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        return _check_password_strength(value)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class SignUpResponse(_CamelModel):
    model_config = ConfigDict(frozen=True)

    member_id: int


class MemberInfo(_CamelModel):
    """Minimal identity summary returned with every token pair."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    member_name: str
    role: str

    @classmethod
    def from_summary(cls, summary: MemberSummary) -> "MemberInfo":
        return cls(id=summary.id, username=summary.username, member_name=summary.member_name, role=summary.role)


class SignInResponse(_CamelModel):
    """Response for sign-in and refresh."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    expires_in: int = Field(description="Access token lifetime in seconds.")
    member: MemberInfo

    @classmethod
    def from_result(cls, result: SignInResult) -> "SignInResponse":
        """Factory Method -- the mapping lives beside the output model."""
        return cls(
            access_token=result.access_token,
            refresh_token=result.refresh_token,
            expires_in=result.expires_in,
            member=MemberInfo.from_summary(result.member),
        )


class MemberProfileResponse(_CamelModel):
    """Response for GET /api/v1/auth/me."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    member_name: str
    phone_number: str
    email_address: Optional[str]
    role: str
    status: str
    last_login_at: Optional[str]
    password_changed_at: Optional[str]
    created_at: Optional[str]

    @classmethod
    def from_member(cls, member: Member) -> "MemberProfileResponse":
        return cls(
            id=member.id,
            username=member.username,
            member_name=member.member_name,
            phone_number=member.phone_number,
            email_address=member.email_address,
            role=member.role.value,
            status=member.status.value,
            last_login_at=member.last_login_at,
            password_changed_at=member.password_changed_at,
            created_at=member.created_at,
        )


class SessionResponse(_CamelModel):
    """One active session (refresh token) of the caller. The token itself is never echoed."""

    model_config = ConfigDict(frozen=True)

    id: int
    issued_at: str
    expires_at: str
    user_agent: Optional[str]
    ip_address: Optional[str]

    @classmethod
    def from_record(cls, record: RefreshToken) -> "SessionResponse":
        return cls(
            id=record.id,
            issued_at=record.issued_at.isoformat(),
            expires_at=record.expires_at.isoformat(),
            user_agent=record.user_agent,
            ip_address=record.ip_address,
        )


class SweepResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    deleted: int


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
