"""
RBAC endpoints: permission checks for other services and role administration.

Checks (``/rbac/check``, ``/rbac/permissions``, ``/rbac/is-admin``) only need
an authenticated caller. Role administration is gated inside RoleService by
the matching ``role.*`` permission.
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from tasktrack.core.auth import get_current_user_id, get_resolver
from tasktrack.core.database import get_session
from tasktrack.models.rbac import Role
from tasktrack.schemas.rbac import (
    BindingRead,
    IsAdminRead,
    PermissionCheck,
    PermissionCheckResult,
    PermissionListRead,
    PermissionRead,
    RoleAssignment,
    RoleCreate,
    RolePermissionsRead,
    RolePermissionsSet,
    RoleRead,
    RoleUpdate,
)
from tasktrack.services.authorization import AuthorizationResolver
from tasktrack.services.roles import RoleService

router = APIRouter()


def get_role_service(session: AsyncSession = Depends(get_session)) -> RoleService:
    return RoleService(session)


def _role_read(role: Role) -> RoleRead:
    return RoleRead(
        id=role.id,
        name=role.name,
        description=role.description,
        is_system_role=role.is_system_role,
    )


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------


@router.get("/check", response_model=PermissionCheckResult)
async def check_permission_query(
    user_id: int,
    permission: str,
    project_id: Optional[int] = None,
    _: int = Depends(get_current_user_id),
    resolver: AuthorizationResolver = Depends(get_resolver),
):
    allowed = await resolver.has_permission(user_id, permission, project_id)
    return PermissionCheckResult(allowed=allowed)


@router.post("/check", response_model=PermissionCheckResult)
async def check_permission_body(
    body: PermissionCheck,
    _: int = Depends(get_current_user_id),
    resolver: AuthorizationResolver = Depends(get_resolver),
):
    allowed = await resolver.has_permission(body.user_id, body.permission, body.project_id)
    return PermissionCheckResult(allowed=allowed)


@router.get("/permissions", response_model=PermissionListRead)
async def list_user_permissions(
    user_id: int,
    project_id: Optional[int] = None,
    _: int = Depends(get_current_user_id),
    resolver: AuthorizationResolver = Depends(get_resolver),
):
    """Every permission key the user holds at ``project_id`` (or globally)."""
    keys = await resolver.get_permissions_list(user_id, project_id)
    return PermissionListRead(permissions=sorted(keys))


@router.get("/is-admin", response_model=IsAdminRead)
async def is_admin(
    user_id: int,
    _: int = Depends(get_current_user_id),
    resolver: AuthorizationResolver = Depends(get_resolver),
):
    return IsAdminRead(admin=await resolver.is_admin(user_id))


# ---------------------------------------------------------------------------
# Catalog / roles
# ---------------------------------------------------------------------------


@router.get("/permissions/list", response_model=List[PermissionRead])
async def list_all_permissions(
    actor_id: int = Depends(get_current_user_id),
    service: RoleService = Depends(get_role_service),
):
    permissions = await service.list_permissions(actor_id)
    return [PermissionRead.model_validate(p, from_attributes=True) for p in permissions]


@router.get("/roles", response_model=List[RoleRead])
async def list_roles(
    actor_id: int = Depends(get_current_user_id),
    service: RoleService = Depends(get_role_service),
):
    return await service.list_roles(actor_id)


@router.post("/roles", response_model=RoleRead, status_code=201)
async def create_role(
    body: RoleCreate,
    actor_id: int = Depends(get_current_user_id),
    service: RoleService = Depends(get_role_service),
):
    return _role_read(await service.create_role(actor_id, body))


@router.patch("/roles/{role_id}", response_model=RoleRead)
async def update_role(
    role_id: int,
    body: RoleUpdate,
    actor_id: int = Depends(get_current_user_id),
    service: RoleService = Depends(get_role_service),
):
    return _role_read(await service.update_role(actor_id, role_id, body))


@router.delete("/roles/{role_id}", status_code=204)
async def delete_role(
    role_id: int,
    actor_id: int = Depends(get_current_user_id),
    service: RoleService = Depends(get_role_service),
):
    """Delete a custom role. System roles are refused with 400."""
    await service.delete_role(actor_id, role_id)
    return Response(status_code=204)


@router.get("/roles/{role_id}/permissions", response_model=RolePermissionsRead)
async def get_role_permissions(
    role_id: int,
    actor_id: int = Depends(get_current_user_id),
    service: RoleService = Depends(get_role_service),
):
    role, permissions = await service.get_role_permissions(actor_id, role_id)
    read = _role_read(role)
    read.permissions_count = len(permissions)
    return RolePermissionsRead(
        role=read,
        permissions=[PermissionRead.model_validate(p, from_attributes=True) for p in permissions],
    )


@router.put("/roles/{role_id}/permissions", response_model=RolePermissionsRead)
async def set_role_permissions(
    role_id: int,
    body: RolePermissionsSet,
    actor_id: int = Depends(get_current_user_id),
    service: RoleService = Depends(get_role_service),
):
    """Replace the role's permission set."""
    permissions = await service.set_role_permissions(actor_id, role_id, body.permission_ids)
    role = await service.get_role(role_id)
    read = _role_read(role)
    read.permissions_count = len(permissions)
    return RolePermissionsRead(
        role=read,
        permissions=[PermissionRead.model_validate(p, from_attributes=True) for p in permissions],
    )


# ---------------------------------------------------------------------------
# Bindings
# ---------------------------------------------------------------------------


@router.post("/bindings", response_model=BindingRead, status_code=201)
async def assign_role(
    body: RoleAssignment,
    actor_id: int = Depends(get_current_user_id),
    service: RoleService = Depends(get_role_service),
):
    binding = await service.assign_role(actor_id, body)
    return BindingRead.model_validate(binding, from_attributes=True)


@router.post("/bindings/revoke", status_code=204)
async def revoke_role(
    body: RoleAssignment,
    actor_id: int = Depends(get_current_user_id),
    service: RoleService = Depends(get_role_service),
):
    await service.revoke_role(actor_id, body)
    return Response(status_code=204)


@router.get("/users/{user_id}/bindings", response_model=List[BindingRead])
async def list_user_bindings(
    user_id: int,
    actor_id: int = Depends(get_current_user_id),
    service: RoleService = Depends(get_role_service),
):
    bindings = await service.list_bindings(actor_id, user_id)
    return [BindingRead.model_validate(b, from_attributes=True) for b in bindings]
