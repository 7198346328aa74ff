"""
auth/tokens.py -- Signed access and refresh tokens (JWT, HS256).

Security design decisions:
  Signing: python-jose with HS256 and a single process-wide key. The key is
       handed to TokenCodec once at startup and never mutated, so request
       handlers share one instance without locking.

  Token types: every token carries a `typ` claim ("access" or "refresh").
       parse(expected_type=...) rejects the other kind, so a refresh token
       can never be presented as an access token or vice versa.

  Uniqueness: every token carries a random `jti`. Two tokens minted for the
       same member within the same second would otherwise be byte-identical,
       which would collide on the refresh_tokens.token UNIQUE index.

  Failure taxonomy: parse() distinguishes malformed input, a foreign `alg`,
       a bad signature and expiry. The signature is checked before expiry so
       an attacker cannot learn anything about a forged token's lifetime.

  Clock: injected. No skew allowance -- issuer and verifier share a clock.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import json
import secrets
from collections.abc import Callable
from datetime import timedelta

from jose import jws, jwt
from jose.exceptions import JWSError, JWTError

from auth.errors import (
    TokenError,
    TokenExpired,
    TokenMalformed,
    TokenSignatureInvalid,
    TokenTypeMismatch,
    TokenUnsupported,
)
from auth.models import IssuedToken, Member, TokenClaims, TokenType
from core.clock import Clock, from_epoch, to_epoch, utcnow

ALGORITHM = "HS256"


def _new_token_id() -> str:
    return secrets.token_urlsafe(16)


class TokenCodec:
    """Mint and verify access/refresh tokens with one symmetric key.

    Usage:
        codec = TokenCodec(settings.secret_key)
        token = codec.issue_access(member)
        claims = codec.parse(token, expected_type=TokenType.ACCESS)
    """

    def __init__(
        self,
        secret_key: str,
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=14),
        clock: Clock = utcnow,
        token_id_factory: Callable[[], str] = _new_token_id,
    ) -> None:
        if not secret_key:
            raise ValueError("TokenCodec requires a non-empty secret key.")
        self._secret_key = secret_key
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self._clock = clock
        self._token_id_factory = token_id_factory

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    @property
    def access_expires_in(self) -> int:
        """Access-token lifetime in seconds (the `expiresIn` of sign-in responses)."""
        return int(self.access_ttl.total_seconds())

    def issue_access(self, member: Member) -> str:
        claims = {
            "username": member.username,
            "role": member.role.value,
            # Display name for clients; parse() does not read it back.
            "member_name": member.member_name,
        }
        return self._issue(member, TokenType.ACCESS, self.access_ttl, claims).value

    def issue_refresh(self, member: Member) -> IssuedToken:
        """Mint a refresh token. expires_at is exactly the token's `exp` claim,
        so the persisted row and the token agree on when the session ends."""
        return self._issue(member, TokenType.REFRESH, self.refresh_ttl, {"username": member.username})

    def _issue(self, member: Member, token_type: TokenType, ttl: timedelta, extra: dict) -> IssuedToken:
        if member.id is None:
            raise ValueError("Cannot issue a token for an unsaved member.")
        issued = to_epoch(self._clock())
        expires = issued + int(ttl.total_seconds())
        payload = {
            "sub": str(member.id),
            "typ": token_type.value,
            "jti": self._token_id_factory(),
            "iat": issued,
            "exp": expires,
            **extra,
        }
        value = jwt.encode(payload, self._secret_key, algorithm=ALGORITHM)
        return IssuedToken(value=value, expires_at=from_epoch(expires))

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def parse(self, token: str, expected_type: TokenType | None = None) -> TokenClaims:
        """Verify token and return its claims.

        Raises TokenMalformed, TokenUnsupported, TokenSignatureInvalid,
        TokenExpired, or TokenTypeMismatch (when expected_type is given).
        """
        if not token or not isinstance(token, str):
            raise TokenMalformed()
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as exc:
            raise TokenMalformed() from exc
        if header.get("alg") != ALGORITHM:
            raise TokenUnsupported(f"Unsupported token algorithm: {header.get('alg')!r}.")

        # get_unverified_header() has already decoded all three segments, so a
        # JWSError here means the signature did not match. jose re-raises
        # JWSSignatureError as a plain JWSError inside verify().
        try:
            raw_payload = jws.verify(token, self._secret_key, algorithms=[ALGORITHM])
        except JWSError as exc:
            raise TokenSignatureInvalid() from exc

        claims = self._decode_claims(raw_payload)
        if claims.expires_at <= self._clock():
            raise TokenExpired()
        if expected_type is not None and claims.token_type != expected_type:
            raise TokenTypeMismatch()
        return claims

    def is_expired(self, token: str) -> bool:
        """True if token is expired or fails to parse for any reason. Never raises."""
        try:
            self.parse(token)
        except TokenError:
            return True
        return False

    @staticmethod
    def _decode_claims(raw_payload: bytes) -> TokenClaims:
        try:
            payload = json.loads(raw_payload)
        except (ValueError, TypeError) as exc:
            raise TokenMalformed() from exc
        if not isinstance(payload, dict):
            raise TokenMalformed()
        try:
            token_type = TokenType(payload["typ"])
            member_id = int(payload["sub"])
            issued_at = from_epoch(int(payload["iat"]))
            expires_at = from_epoch(int(payload["exp"]))
            username = str(payload["username"])
            token_id = str(payload["jti"])
        except (KeyError, ValueError, TypeError, OverflowError, OSError) as exc:
            raise TokenMalformed() from exc
        role = payload.get("role")
        if token_type is TokenType.ACCESS and not isinstance(role, str):
            raise TokenMalformed()
        return TokenClaims(
            member_id=member_id,
            username=username,
            token_type=token_type,
            token_id=token_id,
            issued_at=issued_at,
            expires_at=expires_at,
            role=role,
        )
