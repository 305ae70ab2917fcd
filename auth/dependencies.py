"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Access tokens arrive as `Authorization: Bearer <jwt>`. The SPA keeps the
refresh token itself and calls /Authentication/Refresh when the access token
expires, so there is no cookie path.

try_get_current_user() is the soft variant (returns None when unauthenticated).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.
require_admin() wraps get_current_user() and raises HTTP 403 without the
administrator role.

The user is re-read from the store on every request so deleted users and
revoked roles take effect before the JWT expires.

Layer rule: auth/dependencies.py may import from fastapi because this module is
part of the FastAPI dependency injection system. No imports from api/.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import User
from auth.tokens import decode_access_token
from core.config import get_settings


def try_get_current_user(request: Request) -> User | None:
    """Authenticate the request via the Bearer header.

    Returns None for a missing, malformed, or expired token and for a user that
    no longer exists. Store failures (PersistenceError, OperationTimeout)
    propagate so the API reports them as 503/504 rather than 401.
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    payload = decode_access_token(auth_header[7:])
    if payload is None:
        return None
    return request.app.state.store.get_by_id(payload["user_id"])


def get_current_user(request: Request) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return user


def is_admin(user: User) -> bool:
    return get_settings().admin_role in user.roles


def require_admin(request: Request) -> User:
    """Require the administrator role. Raises HTTP 401 if unauthenticated, 403 otherwise."""
    user = get_current_user(request)
    if not is_admin(user):
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Administrator access required."},
        )
    return user
