"""
api/routes/v1/authentication.py -- Session endpoints consumed by the SPA.

Routes:
  POST /api/v1/Authentication/Login    -- {username, password} -> {accessToken, refreshToken, expiry}
  POST /api/v1/Authentication/Logout   -- {refreshToken} -> 200, empty body
  POST /api/v1/Authentication/Refresh  -- {refreshToken} -> {accessToken, refreshToken, expiry}

Security:
  Login and Refresh are rate-limited per client IP (LOGIN_RATE_LIMIT).
  Login returns one generic "invalid_credentials" error for unknown usernames
  and wrong passwords; auth.sessions.authenticate_user() equalizes timing.
  Refresh returns one generic "invalid_token" error for unknown, revoked, and
  expired tokens.
  Cache-Control: no-store on every response carrying tokens.
  Logout is public and idempotent: presenting the refresh token is the proof.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit
from api.models import ErrorDetail, ErrorResponse, LoginRequest, LogoutRequest, RefreshTokenRequest, TokenResponse
from auth import sessions
from auth.errors import InvalidCredentials, TokenError
from auth.issuer import TokenIssuer
from auth.store import CredentialStore

router = APIRouter()


def _unauthorized(code: str, message: str) -> JSONResponse:
    resp = JSONResponse(
        status_code=401,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message)).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _session_response(session: sessions.Session) -> JSONResponse:
    body = TokenResponse(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        expiry=session.expiry,
    )
    resp = JSONResponse(status_code=200, content=body.model_dump(mode="json", by_alias=True))
    resp.headers["Cache-Control"] = "no-store"
    return resp


@limiter.limit(login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/Authentication/Login", response_model=TokenResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password; issue an access + refresh token pair."""
    store: CredentialStore = request.app.state.store
    issuer: TokenIssuer = request.app.state.issuer
    try:
        session = sessions.login(store, issuer, body.username, body.password)
    except InvalidCredentials:
        return _unauthorized("invalid_credentials", "Invalid username or password.")
    return _session_response(session)


@router.post("/Authentication/Logout", status_code=200)
def logout(request: Request, body: LogoutRequest) -> Response:
    """Revoke the presented refresh token. Always 200 with an empty body."""
    issuer: TokenIssuer = request.app.state.issuer
    sessions.logout(issuer, body.refresh_token)
    return Response(status_code=200)


@limiter.limit(login_rate_limit)
@router.post("/Authentication/Refresh", response_model=TokenResponse)
def refresh(request: Request, body: RefreshTokenRequest) -> JSONResponse:
    """Exchange a refresh token for a new token pair. The presented token is revoked."""
    store: CredentialStore = request.app.state.store
    issuer: TokenIssuer = request.app.state.issuer
    try:
        session = sessions.refresh(store, issuer, body.refresh_token)
    except TokenError:
        return _unauthorized("invalid_token", "Invalid or expired refresh token.")
    return _session_response(session)
