"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/sign-up          -- create a member; 200 {memberId}
  POST /api/v1/auth/sign-in          -- password sign-in; access + refresh token
  POST /api/v1/auth/refresh          -- rotate a refresh token into a new pair
  POST /api/v1/auth/sign-out         -- revoke a refresh token; always 200
  POST /api/v1/auth/change-password  -- requires auth; revokes every session
  GET  /api/v1/auth/me               -- requires auth; caller's profile
  GET  /api/v1/auth/sessions         -- requires auth; caller's active sessions
  POST /api/v1/auth/sessions/sweep   -- admin only; delete expired session rows

Business failures are raised as auth.errors exceptions and turned into the
error envelope (and status code) by the handler in api/main.py. Routes here
never build error responses themselves.

Security:
  POST /sign-in is rate-limited per client address (SIGN_IN_RATE_LIMIT).
  Token-bearing responses carry Cache-Control: no-store.
  Handlers are plain `def`: bcrypt and the DB calls block, so FastAPI runs
  them in its threadpool.
"""

# No `from __future__ import annotations`: FastAPI resolves the sign_in
# signature through the slowapi wrapper, whose module globals lack these names.
from fastapi import APIRouter, Depends, Request, Response

from api.limiter import limiter, sign_in_limit
from api.models import (
    ChangePasswordRequest,
    MemberProfileResponse,
    MessageResponse,
    RefreshTokenRequest,
    SessionResponse,
    SignInRequest,
    SignInResponse,
    SignUpRequest,
    SignUpResponse,
    SweepResponse,
)
from auth.dependencies import get_current_principal, require_admin
from auth.models import Principal, RequestContext, SignUpData
from auth.service import AuthService

# Auth policy:
# - POST /auth/sign-up, /sign-in, /refresh, /sign-out: public
# - POST /auth/change-password, GET /auth/me, GET /auth/sessions: get_current_principal
# - POST /auth/sessions/sweep: require_admin
router = APIRouter()


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _client_context(request: Request) -> RequestContext:
    """Collect the caller's user agent and address for the session record.

    The first X-Forwarded-For hop wins, then X-Real-IP, then the socket peer.
    These values are audit metadata only and never drive an access decision.
    """
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded.strip():
        address = forwarded.split(",")[0].strip()
    elif request.headers.get("X-Real-IP", "").strip():
        address = request.headers["X-Real-IP"].strip()
    else:
        address = request.client.host if request.client else None
    return RequestContext(user_agent=request.headers.get("User-Agent"), ip_address=address)


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/sign-up", response_model=SignUpResponse)
def sign_up(request: Request, body: SignUpRequest) -> SignUpResponse:
    """Register a new member. No tokens are issued; sign in afterwards."""
    member_id = _service(request).sign_up(
        SignUpData(
            username=body.username,
            password=body.password,
            member_name=body.member_name,
            phone_number=body.phone_number,
            email_address=body.email_address,
        )
    )
    return SignUpResponse(member_id=member_id)


@router.post("/auth/sign-in", response_model=SignInResponse)
@limiter.limit(sign_in_limit)  # must sit below @router so the registered endpoint is the limited one
def sign_in(request: Request, response: Response, body: SignInRequest) -> SignInResponse:
    """Authenticate with username and password; return a token pair.

    Unknown username and wrong password produce the same 401.
    """
    result = _service(request).sign_in(body.username, body.password, _client_context(request))
    response.headers["Cache-Control"] = "no-store"
    return SignInResponse.from_result(result)


@router.post("/auth/refresh", response_model=SignInResponse)
def refresh(request: Request, response: Response, body: RefreshTokenRequest) -> SignInResponse:
    """Exchange a refresh token for a new pair. The presented token is spent."""
    result = _service(request).refresh(body.refresh_token, _client_context(request))
    response.headers["Cache-Control"] = "no-store"
    return SignInResponse.from_result(result)


@router.post("/auth/sign-out", response_model=MessageResponse)
def sign_out(request: Request, body: RefreshTokenRequest) -> MessageResponse:
    """Revoke the given refresh token. Unknown or already revoked tokens are not an error."""
    _service(request).sign_out(body.refresh_token)
    return MessageResponse(message="Signed out.")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/change-password", response_model=MessageResponse)
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    principal: Principal = Depends(get_current_principal),
) -> MessageResponse:
    """Change the caller's password and sign out every session they have."""
    _service(request).change_password(principal.member_id, body.current_password, body.new_password)
    return MessageResponse(message="Password changed. Please sign in again.")


@router.get("/auth/me", response_model=MemberProfileResponse)
def me(request: Request, principal: Principal = Depends(get_current_principal)) -> MemberProfileResponse:
    """Return the caller's profile, read fresh from the member store."""
    return MemberProfileResponse.from_member(_service(request).get_profile(principal.member_id))


@router.get("/auth/sessions", response_model=list[SessionResponse])
def list_sessions(request: Request, principal: Principal = Depends(get_current_principal)) -> list[SessionResponse]:
    """List the caller's unrevoked, unexpired refresh sessions (newest first)."""
    return [SessionResponse.from_record(r) for r in _service(request).list_sessions(principal.member_id)]


@router.post("/auth/sessions/sweep", response_model=SweepResponse)
def sweep_sessions(request: Request, principal: Principal = Depends(require_admin)) -> SweepResponse:
    """Delete expired refresh-token rows now instead of waiting for the background sweep."""
    return SweepResponse(deleted=_service(request).sweep_expired())
