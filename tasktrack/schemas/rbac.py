"""RBAC request/response schemas."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .common import ScopeType


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------

class PermissionCheck(BaseModel):
    user_id: int
    permission: str
    project_id: Optional[int] = None


class PermissionCheckResult(BaseModel):
    allowed: bool


class PermissionListRead(BaseModel):
    permissions: List[str] = Field(default_factory=list)


class IsAdminRead(BaseModel):
    admin: bool


# ---------------------------------------------------------------------------
# Catalog / roles
# ---------------------------------------------------------------------------

class PermissionRead(BaseModel):
    id: int
    key: str
    name: str
    description: Optional[str] = None
    module: str
    category: Optional[str] = None


class RoleCreate(BaseModel):
    name: str
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name is required")
        return v


class RoleUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class RoleRead(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    is_system_role: bool
    permissions_count: int = 0
    users_count: int = 0


class RolePermissionsRead(BaseModel):
    role: RoleRead
    permissions: List[PermissionRead] = Field(default_factory=list)


class RolePermissionsSet(BaseModel):
    permission_ids: List[int] = Field(default_factory=list)


class RoleAssignment(BaseModel):
    """Bind a role to a user globally or inside one project."""

    user_id: int
    role_id: int
    scope_type: Optional[ScopeType] = None
    scope_id: Optional[int] = None

    @model_validator(mode="after")
    def _scope_id_matches_type(self) -> "RoleAssignment":
        if self.scope_type == ScopeType.PROJECT and self.scope_id is None:
            raise ValueError("scope_id is required for project bindings")
        if self.scope_type != ScopeType.PROJECT and self.scope_id is not None:
            raise ValueError("scope_id is only valid for project bindings")
        return self


class BindingRead(BaseModel):
    id: int
    user_id: int
    role_id: int
    scope_type: Optional[str] = None
    scope_id: Optional[int] = None
