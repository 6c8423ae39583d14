"""
Read-only access to the user -> role -> permission graph.

Bindings are filtered to global ones plus, when a project scope is given,
the ones scoped to exactly that project. There is no inheritance across
scopes. Store failures raise; they are never reported as "no permission".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import and_, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from tasktrack.core.database import store_errors
from tasktrack.models.rbac import Permission, Role, RolePermission, UserRole
from tasktrack.schemas.common import ScopeType


@dataclass(frozen=True)
class Binding:
    """A user-role binding expanded with the role's permission keys."""

    binding_id: int
    role_id: int
    role_name: str
    scope_type: Optional[str]
    scope_id: Optional[int]
    permission_keys: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_global(self) -> bool:
        return self.scope_type in (None, ScopeType.GLOBAL.value)


def scope_filter(scope: Optional[int]):
    """Global bindings, plus project bindings for ``scope`` when given."""
    conditions = [
        UserRole.scope_type.is_(None),
        UserRole.scope_type == ScopeType.GLOBAL.value,
    ]
    if scope is not None:
        conditions.append(
            and_(
                UserRole.scope_type == ScopeType.PROJECT.value,
                UserRole.scope_id == scope,
            )
        )
    return or_(*conditions)


class PermissionStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_bindings(self, user_id: int, scope: Optional[int] = None) -> list[Binding]:
        """Bindings visible at ``scope``, each with its role's permission keys."""
        with store_errors("list_bindings"):
            result = await self.session.execute(
                select(UserRole, Role)
                .join(Role, Role.id == UserRole.role_id)
                .where(UserRole.user_id == user_id, scope_filter(scope))
                .order_by(UserRole.id)
            )
            rows = result.all()
            if not rows:
                return []

            role_ids = {role.id for _, role in rows}
            result = await self.session.execute(
                select(RolePermission.role_id, Permission.key)
                .join(Permission, Permission.id == RolePermission.permission_id)
                .where(RolePermission.role_id.in_(role_ids))
            )
            keys_by_role: dict[int, set[str]] = {}
            for role_id, key in result.all():
                keys_by_role.setdefault(role_id, set()).add(key)

        return [
            Binding(
                binding_id=ur.id,
                role_id=role.id,
                role_name=role.name,
                scope_type=ur.scope_type,
                scope_id=ur.scope_id,
                permission_keys=frozenset(keys_by_role.get(role.id, ())),
            )
            for ur, role in rows
        ]

    async def has_role(self, user_id: int, role_name: str) -> bool:
        """True if the user holds ``role_name`` at any scope."""
        with store_errors("has_role"):
            result = await self.session.execute(
                select(UserRole.id)
                .join(Role, Role.id == UserRole.role_id)
                .where(UserRole.user_id == user_id, Role.name == role_name)
                .limit(1)
            )
            return result.first() is not None
