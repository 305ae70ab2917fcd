"""
api/routes/v1/roles.py -- Role catalogue.

Routes:
  GET  /api/v1/Roles  -- list roles (authenticated)
  POST /api/v1/Roles  -- create a role (administrator); 400 on duplicates

Roles are immutable once created, so there is no update or delete route.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import RoleCreate, RoleResponse
from auth.dependencies import get_current_user, require_admin
from auth.models import User
from auth.store import CredentialStore

router = APIRouter()


@router.get("/Roles", response_model=list[RoleResponse])
def list_roles(request: Request, current_user: User = Depends(get_current_user)) -> list[RoleResponse]:
    store: CredentialStore = request.app.state.store
    return [RoleResponse(name=r.name, created_at=r.created_at or "") for r in store.list_roles()]


@router.post("/Roles", response_model=RoleResponse, status_code=201)
def create_role(
    request: Request,
    body: RoleCreate,
    current_user: User = Depends(require_admin),
) -> RoleResponse:
    store: CredentialStore = request.app.state.store
    role = store.create_role(body.name)
    return RoleResponse(name=role.name, created_at=role.created_at or "")
