"""
auth/errors.py -- Typed failures raised by the auth package.

Every business failure carries a stable machine-readable `code` and a
user-facing `message`. The HTTP status for each class lives in the API layer
(api/main.py), so auth/ stays framework-free.

Enumeration safety: InvalidCredentials covers both "no such user" and "wrong
password"; RefreshTokenNotFound covers absent, revoked and expired tokens.
The specific reason is only ever written to the log.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for business-rule failures. Never retried."""

    code = "auth_error"
    message = "Authentication failed."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class DuplicateLogin(AuthError):
    code = "duplicate_login"
    message = "That username is already in use."


class DuplicateEmail(AuthError):
    code = "duplicate_email"
    message = "That email address is already in use."


class InvalidCredentials(AuthError):
    code = "invalid_credentials"
    message = "Invalid username or password."


class AccountSuspended(AuthError):
    code = "account_suspended"
    message = "This account is suspended. Contact an administrator."


class AccountDeleted(AuthError):
    code = "account_deleted"
    message = "This account has been deleted."


class RefreshTokenNotFound(AuthError):
    code = "refresh_token_not_found"
    message = "Refresh token is invalid or has expired."


class PasswordMismatch(AuthError):
    code = "password_mismatch"
    message = "Current password is incorrect."


class SamePassword(AuthError):
    code = "same_password"
    message = "New password must differ from the current password."


class MemberNotFound(AuthError):
    code = "member_not_found"
    message = "Member not found."


# ---------------------------------------------------------------------------
# Token parse failures -- callers treat all of these as "not authenticated"
# ---------------------------------------------------------------------------


class TokenError(AuthError):
    code = "invalid_token"
    message = "Token is invalid."


class TokenMalformed(TokenError):
    code = "token_malformed"
    message = "Token is malformed."


class TokenTypeMismatch(TokenMalformed):
    code = "token_type_mismatch"
    message = "Token is not of the expected type."


class TokenUnsupported(TokenError):
    code = "token_unsupported"
    message = "Token format is not supported."


class TokenSignatureInvalid(TokenError):
    code = "token_signature_invalid"
    message = "Token signature is invalid."


class TokenExpired(TokenError):
    code = "token_expired"
    message = "Token has expired."


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------


class StoreUnavailable(Exception):
    """The database could not be reached or the statement failed to run.

    Not a business error: it propagates unchanged and callers decide whether
    to retry with backoff. The original DB exception is chained as __cause__.
    """

    code = "store_unavailable"
    message = "The credential store is temporarily unavailable."
