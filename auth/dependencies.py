"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Only one auth method: `Authorization: Bearer <access token>`. Cookies are
deliberately not read -- tokens travel out-of-band in the header.

get_current_principal() raises HTTP 401 if unauthenticated, with code
"token_expired" when the token was genuine but stale so the client knows a
refresh is worth attempting.
require_admin() wraps get_current_principal() and raises HTTP 403.

Layer rule: the only module under auth/ that may import from fastapi.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.errors import TokenError, TokenExpired
from auth.models import Principal
from auth.service import AuthService


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_current_principal(request: Request) -> Principal:
    """Require a valid access token.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(principal: Principal = Depends(get_current_principal)): ...
    """
    token = _bearer_token(request)
    if token is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    service: AuthService = request.app.state.auth_service
    try:
        return service.authenticate(token)
    except TokenExpired as exc:
        raise HTTPException(
            status_code=401,
            detail={"code": exc.code, "message": "Access token has expired. Refresh and retry."},
            headers={"WWW-Authenticate": 'Bearer error="invalid_token"'},
        ) from exc
    except TokenError as exc:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
            headers={"WWW-Authenticate": 'Bearer error="invalid_token"'},
        ) from exc


def require_admin(request: Request) -> Principal:
    """Require ADMIN or SUPER_ADMIN. 401 if unauthenticated, 403 otherwise."""
    principal = get_current_principal(request)
    if not principal.is_admin:
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Admin access required."},
        )
    return principal
