"""
RBAC tables: permission catalog, roles, role-permission links and scoped
user-role bindings.

A binding with ``scope_type`` NULL or ``"global"`` applies everywhere; a
``"project"`` binding applies only inside project ``scope_id``.

Global bindings have a NULL ``scope_id``, which the four-column unique
constraint treats as distinct, so a partial index keeps them unique per
(user, role).
"""

from typing import Optional

from sqlalchemy import Index, UniqueConstraint, text
from sqlmodel import Field, SQLModel

from .base import IntIDMixin, TimestampMixin


class Permission(IntIDMixin, SQLModel, table=True):
    __tablename__ = "permissions"

    key: str = Field(nullable=False, unique=True, index=True)  # module.action
    name: str = Field(nullable=False)
    description: Optional[str] = None
    module: str = Field(nullable=False, index=True)
    category: Optional[str] = None


class Role(IntIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "roles"

    name: str = Field(nullable=False, unique=True, index=True)
    description: Optional[str] = None
    is_system_role: bool = Field(nullable=False, default=False)


class RolePermission(IntIDMixin, SQLModel, table=True):
    __tablename__ = "role_permissions"
    __table_args__ = (
        UniqueConstraint("role_id", "permission_id", name="uq_role_permission"),
    )

    role_id: int = Field(foreign_key="roles.id", nullable=False, index=True, ondelete="CASCADE")
    permission_id: int = Field(
        foreign_key="permissions.id", nullable=False, index=True, ondelete="CASCADE"
    )


class UserRole(IntIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "user_roles"
    __table_args__ = (
        UniqueConstraint("user_id", "role_id", "scope_type", "scope_id", name="uq_user_role_scope"),
        Index(
            "uq_user_role_global",
            "user_id",
            "role_id",
            unique=True,
            sqlite_where=text("scope_id IS NULL"),
            postgresql_where=text("scope_id IS NULL"),
        ),
    )

    user_id: int = Field(foreign_key="users.id", nullable=False, index=True, ondelete="CASCADE")
    role_id: int = Field(foreign_key="roles.id", nullable=False, index=True, ondelete="CASCADE")
    scope_type: Optional[str] = Field(default=None)  # None | global | project
    scope_id: Optional[int] = Field(default=None, index=True)
