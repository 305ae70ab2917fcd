"""
api/routes/v1/users.py -- User and role-assignment management.

Routes:
  POST   /api/v1/Users/Register       -- self-service registration (public, when enabled)
  POST   /api/v1/Users                -- create user with roles (administrator)
  GET    /api/v1/Users                -- list all users (administrator)
  GET    /api/v1/Users/Me             -- current user (authenticated)
  GET    /api/v1/Users/Search         -- ?firstName=&lastName= prefix search (authenticated)
  PUT    /api/v1/Users/Me/Password    -- change own password; revokes refresh tokens (authenticated)
  GET    /api/v1/Users/{id}/Roles     -- role names (administrator or self)
  POST   /api/v1/Users/{id}/Roles     -- assign an existing role (administrator)
  DELETE /api/v1/Users/{id}           -- delete user and its tokens (administrator)

Domain errors (ValidationError, UserNotFound, RoleNotFound, InvalidCredentials,
PersistenceError, OperationTimeout) are not caught here: api/main.py maps every
IdentityError onto the shared error envelope.

Static paths (/Me, /Search, /Register) are registered before /{user_id} so
they are never captured as an id.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from api.models import PasswordChange, RegisterRequest, RoleAssign, UserCreate, UserResponse
from auth.dependencies import get_current_user, is_admin, require_admin
from auth.errors import UserNotFound
from auth.models import User
from auth.store import CredentialStore
from core.config import get_settings

# Auth policy:
# - POST   /Users/Register:      public, gated by SELF_REGISTRATION_ENABLED
# - GET    /Users/Me, /Search:   requires auth (get_current_user)
# - PUT    /Users/Me/Password:   requires auth; old password re-verified in the store
# - GET    /Users/{id}/Roles:    requires admin, or the user themselves
# - everything else:            requires admin (require_admin)
router = APIRouter()


def _load(store: CredentialStore, user_id: str) -> UserResponse:
    user = store.get_by_id(user_id)
    if user is None:
        raise UserNotFound(f"User '{user_id}' not found.")
    return UserResponse.from_user(user)


@router.post("/Users/Register", response_model=UserResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> UserResponse:
    """Create an account with the default role. Disabled when SELF_REGISTRATION_ENABLED=false."""
    settings = get_settings()
    if not settings.self_registration_enabled:
        raise HTTPException(
            status_code=403,
            detail={"code": "registration_disabled", "message": "Self-registration is disabled."},
        )
    store: CredentialStore = request.app.state.store
    new_user = User(
        username=body.username,
        first_name=body.first_name,
        last_name=body.last_name,
        roles={settings.default_user_role},
    )
    user_id = store.create_user(new_user, body.password)
    return _load(store, user_id)


@router.post("/Users", response_model=UserResponse, status_code=201)
def create_user(
    request: Request,
    body: UserCreate,
    current_user: User = Depends(require_admin),
) -> UserResponse:
    """Create a user with an explicit role set. All roles must already exist."""
    store: CredentialStore = request.app.state.store
    new_user = User(
        username=body.username,
        first_name=body.first_name,
        last_name=body.last_name,
        roles=set(body.roles),
    )
    user_id = store.create_user(new_user, body.password)
    return _load(store, user_id)


@router.get("/Users", response_model=list[UserResponse])
def list_users(request: Request, current_user: User = Depends(require_admin)) -> list[UserResponse]:
    store: CredentialStore = request.app.state.store
    return [UserResponse.from_user(u) for u in store.list_users()]


@router.get("/Users/Me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)) -> UserResponse:
    """Return the currently authenticated user."""
    return UserResponse.from_user(current_user)


@router.get("/Users/Search", response_model=list[UserResponse])
def search_users(
    request: Request,
    first_name: str = Query(default="", alias="firstName", max_length=100),
    last_name: str = Query(default="", alias="lastName", max_length=100),
    current_user: User = Depends(get_current_user),
) -> list[UserResponse]:
    """Prefix search on first/last name in either order. Empty list when nothing matches."""
    store: CredentialStore = request.app.state.store
    return [UserResponse.from_user(u) for u in store.search_by_name(first_name, last_name)]


@router.put("/Users/Me/Password", status_code=204)
def change_password(
    request: Request,
    body: PasswordChange,
    current_user: User = Depends(get_current_user),
) -> Response:
    """Change the caller's password. Every refresh token of the caller is revoked."""
    store: CredentialStore = request.app.state.store
    store.change_password(current_user.id, body.old_password, body.new_password)
    return Response(status_code=204)


@router.get("/Users/{user_id}/Roles", response_model=list[str])
def get_user_roles(
    request: Request,
    user_id: str,
    current_user: User = Depends(get_current_user),
) -> list[str]:
    if current_user.id != user_id and not is_admin(current_user):
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Administrator access required."},
        )
    store: CredentialStore = request.app.state.store
    return store.get_user_roles(user_id)


@router.post("/Users/{user_id}/Roles", status_code=204)
def assign_role(
    request: Request,
    user_id: str,
    body: RoleAssign,
    current_user: User = Depends(require_admin),
) -> Response:
    """Assign an existing role. Idempotent; 404 role_not_found if the role was never created."""
    store: CredentialStore = request.app.state.store
    store.assign_role(user_id, body.role)
    return Response(status_code=204)


@router.delete("/Users/{user_id}", status_code=204)
def delete_user(
    request: Request,
    user_id: str,
    current_user: User = Depends(require_admin),
) -> Response:
    """Delete a user and all of its refresh tokens. Administrators cannot delete themselves."""
    if user_id == current_user.id:
        raise HTTPException(
            status_code=400,
            detail={"code": "self_deletion", "message": "You cannot delete your own account."},
        )
    store: CredentialStore = request.app.state.store
    store.delete_user(user_id)
    return Response(status_code=204)
