"""
auth/service.py -- AuthService: sign-up, sign-in, refresh, sign-out, password change.

AuthService coordinates the credential verifier, the token codec, the member
store and the session store. It holds no mutable state of its own; every
caller identity arrives as an explicit argument (member_id, Principal,
RequestContext) rather than from request-global state.

Account status rules:
  Only ACTIVE members can sign in or refresh. SUSPENDED/DELETED fail both.
  Refresh is the one place that re-reads live status, so a suspension takes
  effect at the member's next refresh; access tokens already issued stay
  valid until their own (short) expiry.

Enumeration safety:
  Unknown username and wrong password both raise InvalidCredentials after the
  same amount of bcrypt work. The password is checked before the status, so
  only someone holding the password learns that an account is suspended.
  Every refresh failure surfaces as RefreshTokenNotFound; the concrete reason
  (malformed, expired, revoked, absent, lost race) goes to the log only,
  keyed by a short token fingerprint, never the token itself.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import hashlib
import logging

from auth.errors import (
    AccountDeleted,
    AccountSuspended,
    DuplicateEmail,
    DuplicateLogin,
    InvalidCredentials,
    MemberNotFound,
    PasswordMismatch,
    RefreshTokenNotFound,
    SamePassword,
    TokenError,
)
from auth.models import (
    Member,
    MemberRole,
    MemberStatus,
    MemberSummary,
    Principal,
    RefreshToken,
    RequestContext,
    SignInResult,
    SignUpData,
    TokenType,
)
from auth.db import store_errors
from auth.passwords import CredentialVerifier
from auth.sessions import SessionStore
from auth.store import MemberStore
from auth.tokens import TokenCodec
from core.clock import Clock, utcnow

logger = logging.getLogger("authgate.auth")


def token_fingerprint(token: str) -> str:
    """Short, non-reversible handle for a token, safe to write to logs."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:8]


class AuthService:
    """Authentication orchestrator.

    Usage:
        service = AuthService(members, sessions, codec, verifier)
        member_id = service.sign_up(SignUpData(...))
        result = service.sign_in("kim01", "Passw0rd!", RequestContext(...))
        result = service.refresh(result.refresh_token, RequestContext(...))
        service.sign_out(result.refresh_token)

    members and sessions must share one engine: a password change writes to
    both tables in a single transaction.
    """

    def __init__(
        self,
        members: MemberStore,
        sessions: SessionStore,
        codec: TokenCodec,
        verifier: CredentialVerifier,
        clock: Clock = utcnow,
    ) -> None:
        self._members = members
        self._sessions = sessions
        self._codec = codec
        self._verifier = verifier
        self._clock = clock

    # ------------------------------------------------------------------
    # Sign-up
    # ------------------------------------------------------------------

    def sign_up(self, data: SignUpData) -> int:
        """Create an ACTIVE member with role USER and return its id.

        No tokens are issued; signing in is a separate step.
        """
        if self._members.exists_by_username(data.username):
            raise DuplicateLogin()
        if data.email_address and self._members.exists_by_email(data.email_address):
            raise DuplicateEmail()

        member = Member(
            username=data.username,
            password_hash=self._verifier.hash(data.password),
            member_name=data.member_name,
            phone_number=data.phone_number,
            email_address=data.email_address or None,
            role=MemberRole.USER,
            status=MemberStatus.ACTIVE,
        )
        member_id = self._members.create_member(member)
        logger.info("Member signed up: username=%s member_id=%s", data.username, member_id)
        return member_id

    # ------------------------------------------------------------------
    # Sign-in
    # ------------------------------------------------------------------

    def sign_in(self, username: str, password: str, context: RequestContext | None = None) -> SignInResult:
        """Verify credentials and open a new session (one new refresh-token row)."""
        context = context or RequestContext()
        member = self._members.get_by_username(username)
        if member is None:
            # Same bcrypt cost as a real check -- do NOT return before this.
            self._verifier.verify_dummy(password)
            logger.info("Sign-in rejected: username=%s reason=unknown_user", username)
            raise InvalidCredentials()
        if not self._verifier.verify(password, member.password_hash):
            logger.info("Sign-in rejected: username=%s reason=bad_password", username)
            raise InvalidCredentials()

        _ensure_can_sign_in(member)

        result = self._open_session(member, context)
        self._members.update_last_login(member.id)
        logger.info("Sign-in succeeded: member_id=%s ip=%s", member.id, context.ip_address)
        return result

    def _open_session(self, member: Member, context: RequestContext) -> SignInResult:
        access_token = self._codec.issue_access(member)
        refresh = self._codec.issue_refresh(member)
        self._sessions.create(
            member_id=member.id,
            token=refresh.value,
            expires_at=refresh.expires_at,
            user_agent=context.user_agent,
            ip_address=context.ip_address,
        )
        return self._result(member, access_token, refresh.value)

    def _result(self, member: Member, access_token: str, refresh_token: str) -> SignInResult:
        return SignInResult(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=self._codec.access_expires_in,
            member=MemberSummary.from_member(member),
        )

    # ------------------------------------------------------------------
    # Refresh (rotation)
    # ------------------------------------------------------------------

    def refresh(self, refresh_token: str, context: RequestContext | None = None) -> SignInResult:
        """Redeem a refresh token for a brand-new access/refresh pair.

        The presented token is single-use: it is revoked in the same
        transaction that stores its replacement. Of two concurrent calls with
        the same token exactly one succeeds; the other raises
        RefreshTokenNotFound.
        """
        context = context or RequestContext()
        now = self._clock()
        fingerprint = token_fingerprint(refresh_token or "")

        try:
            self._codec.parse(refresh_token, expected_type=TokenType.REFRESH)
        except TokenError as exc:
            logger.warning("Refresh rejected: token=%s reason=%s", fingerprint, exc.code)
            raise RefreshTokenNotFound() from None

        record = self._sessions.find_valid(refresh_token, now)
        if record is None:
            self._log_refresh_miss(refresh_token, fingerprint, now)
            raise RefreshTokenNotFound()

        member = self._members.get_by_id(record.member_id)
        if member is None or not member.is_active:
            logger.warning(
                "Refresh rejected: token=%s member_id=%s reason=member_%s",
                fingerprint,
                record.member_id,
                "missing" if member is None else member.status.value.lower(),
            )
            raise AccountSuspended()

        access_token = self._codec.issue_access(member)
        new_refresh = self._codec.issue_refresh(member)
        rotated = self._sessions.rotate(
            old_token=refresh_token,
            now=now,
            member_id=member.id,
            new_token=new_refresh.value,
            expires_at=new_refresh.expires_at,
            user_agent=context.user_agent,
            ip_address=context.ip_address,
        )
        if rotated is None:
            logger.warning(
                "Refresh rejected: token=%s member_id=%s reason=concurrent_rotation", fingerprint, member.id
            )
            raise RefreshTokenNotFound()

        logger.info("Refresh token rotated: member_id=%s session_id=%s", member.id, rotated.id)
        return self._result(member, access_token, new_refresh.value)

    def _log_refresh_miss(self, refresh_token: str, fingerprint: str, now) -> None:
        """Record why find_valid() came back empty. Diagnostics only."""
        row = self._sessions.find(refresh_token)
        if row is None:
            logger.warning("Refresh rejected: token=%s reason=unknown", fingerprint)
        elif row.revoked and row.expires_at > now:
            # A revoked token that has not expired yet is being replayed.
            logger.warning(
                "Refresh rejected: token=%s member_id=%s reason=revoked_token_reuse", fingerprint, row.member_id
            )
        else:
            logger.warning("Refresh rejected: token=%s member_id=%s reason=expired", fingerprint, row.member_id)

    # ------------------------------------------------------------------
    # Sign-out
    # ------------------------------------------------------------------

    def sign_out(self, refresh_token: str) -> None:
        """Revoke the session behind refresh_token. Idempotent."""
        revoked = self._sessions.revoke(refresh_token)
        if revoked:
            logger.info("Signed out: revoked_tokens=%d", revoked)
        else:
            logger.info("Sign-out for unknown or already revoked token=%s", token_fingerprint(refresh_token))

    # ------------------------------------------------------------------
    # Password change
    # ------------------------------------------------------------------

    def change_password(self, member_id: int, current_password: str, new_password: str) -> None:
        """Replace the member's password and end every session they have open.

        Access tokens already issued stay valid until they expire; every
        refresh token is revoked, so no device can extend its session.
        The new hash and the revocation commit together or not at all.
        """
        member = self._members.get_by_id(member_id)
        if member is None:
            raise MemberNotFound()
        if not self._verifier.verify(current_password, member.password_hash):
            raise PasswordMismatch()
        if self._verifier.verify(new_password, member.password_hash):
            raise SamePassword()

        new_hash = self._verifier.hash(new_password)
        with store_errors("change_password"), self._members.engine.begin() as conn:
            self._members.update_password(member_id, new_hash, conn=conn)
            revoked = self._sessions.revoke_all_for_member(member_id, conn=conn)
        logger.info("Password changed: member_id=%s revoked_sessions=%d", member_id, revoked)

    # ------------------------------------------------------------------
    # Access tokens and profile
    # ------------------------------------------------------------------

    def authenticate(self, access_token: str) -> Principal:
        """Verify an access token. Raises TokenError subclasses on failure.

        No database round-trip: the signature and expiry are the whole check.
        """
        claims = self._codec.parse(access_token, expected_type=TokenType.ACCESS)
        return Principal(member_id=claims.member_id, username=claims.username, role=claims.role)

    def get_profile(self, member_id: int) -> Member:
        member = self._members.get_by_id(member_id)
        if member is None:
            raise MemberNotFound()
        return member

    def list_sessions(self, member_id: int) -> list[RefreshToken]:
        return self._sessions.list_valid_for_member(member_id, self._clock())

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def sweep_expired(self) -> int:
        """Delete expired refresh-token rows. Run periodically, off the request path."""
        return self._sessions.sweep_expired(self._clock())


def _ensure_can_sign_in(member: Member) -> None:
    if member.status == MemberStatus.SUSPENDED:
        logger.info("Sign-in rejected: member_id=%s reason=suspended", member.id)
        raise AccountSuspended()
    if member.status == MemberStatus.DELETED:
        logger.info("Sign-in rejected: member_id=%s reason=deleted", member.id)
        raise AccountDeleted()
