"""
Role administration and catalog seeding.

Every admin operation is gated by the matching ``role.*`` permission through
the resolver. Holding the admin role grants nothing by name; it works only
because ``seed_catalog`` links it to every permission.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy import delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from tasktrack.core.database import store_errors
from tasktrack.core.errors import BadRequest, RoleNameTaken, RoleNotFound, SystemRoleProtected
from tasktrack.models.rbac import Permission, Role, RolePermission, UserRole
from tasktrack.models.task import TaskStatus
from tasktrack.schemas.common import ScopeType
from tasktrack.schemas.rbac import RoleAssignment, RoleCreate, RoleRead, RoleUpdate
from tasktrack.services import catalog
from tasktrack.services.authorization import AuthorizationResolver

log = structlog.get_logger()


@dataclass
class SeedSummary:
    permissions_created: int = 0
    roles_created: int = 0
    statuses_created: int = 0


def _normalize_scope(scope_type: Optional[ScopeType], scope_id: Optional[int]):
    """Store global bindings as NULL/NULL so one uniqueness rule covers both spellings."""
    if scope_type == ScopeType.PROJECT:
        return ScopeType.PROJECT.value, scope_id
    return None, None


class RoleService:
    def __init__(self, session: AsyncSession, resolver: Optional[AuthorizationResolver] = None):
        self.session = session
        self.resolver = resolver or AuthorizationResolver(session)

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    async def list_roles(self, actor_id: int) -> list[RoleRead]:
        await self.resolver.require(actor_id, "role.read")
        with store_errors("list_roles"):
            roles = (await self.session.execute(select(Role).order_by(Role.name))).scalars().all()
            perm_counts = dict(
                (
                    await self.session.execute(
                        select(RolePermission.role_id, func.count(RolePermission.id)).group_by(
                            RolePermission.role_id
                        )
                    )
                ).all()
            )
            user_counts = dict(
                (
                    await self.session.execute(
                        select(UserRole.role_id, func.count(func.distinct(UserRole.user_id))).group_by(
                            UserRole.role_id
                        )
                    )
                ).all()
            )
        return [
            RoleRead(
                id=r.id,
                name=r.name,
                description=r.description,
                is_system_role=r.is_system_role,
                permissions_count=perm_counts.get(r.id, 0),
                users_count=user_counts.get(r.id, 0),
            )
            for r in roles
        ]

    async def list_permissions(self, actor_id: int) -> list[Permission]:
        await self.resolver.require(actor_id, "role.read")
        with store_errors("list_permissions"):
            result = await self.session.execute(
                select(Permission).order_by(Permission.module, Permission.key)
            )
            return list(result.scalars().all())

    async def get_role(self, role_id: int) -> Role:
        with store_errors("get_role"):
            role = await self.session.get(Role, role_id)
        if role is None:
            raise RoleNotFound(role_id)
        return role

    async def get_role_permissions(self, actor_id: int, role_id: int) -> tuple[Role, list[Permission]]:
        await self.resolver.require(actor_id, "role.read")
        role = await self.get_role(role_id)
        with store_errors("get_role_permissions"):
            result = await self.session.execute(
                select(Permission)
                .join(RolePermission, RolePermission.permission_id == Permission.id)
                .where(RolePermission.role_id == role_id)
                .order_by(Permission.key)
            )
            return role, list(result.scalars().all())

    # -----------------------------------------------------------------------
    # Role CRUD
    # -----------------------------------------------------------------------

    async def _ensure_name_free(self, name: str, exclude_id: Optional[int] = None) -> None:
        with store_errors("role_name_lookup"):
            stmt = select(Role.id).where(Role.name == name)
            if exclude_id is not None:
                stmt = stmt.where(Role.id != exclude_id)
            if (await self.session.execute(stmt)).first() is not None:
                raise RoleNameTaken(name)

    async def create_role(self, actor_id: int, body: RoleCreate) -> Role:
        await self.resolver.require(actor_id, "role.create")
        await self._ensure_name_free(body.name)
        description = body.description.strip() if body.description else None
        role = Role(name=body.name, description=description or None)
        with store_errors("create_role"):
            self.session.add(role)
            await self.session.commit()
            await self.session.refresh(role)
        log.info("role.created", role_id=role.id, name=role.name, actor_id=actor_id)
        return role

    async def update_role(self, actor_id: int, role_id: int, body: RoleUpdate) -> Role:
        await self.resolver.require(actor_id, "role.update")
        role = await self.get_role(role_id)
        update_data = body.model_dump(exclude_unset=True)
        if "name" in update_data:
            name = (update_data["name"] or "").strip()
            if not name:
                raise BadRequest("name is required")
            await self._ensure_name_free(name, exclude_id=role_id)
            role.name = name
        if "description" in update_data:
            description = update_data["description"]
            role.description = description.strip() if description else None
        with store_errors("update_role"):
            self.session.add(role)
            await self.session.commit()
            await self.session.refresh(role)
        log.info("role.updated", role_id=role.id, actor_id=actor_id)
        return role

    async def delete_role(self, actor_id: int, role_id: int) -> None:
        await self.resolver.require(actor_id, "role.delete")
        role = await self.get_role(role_id)
        if role.is_system_role:
            raise SystemRoleProtected(role_id)
        with store_errors("delete_role"):
            await self.session.execute(delete(RolePermission).where(RolePermission.role_id == role_id))
            await self.session.execute(delete(UserRole).where(UserRole.role_id == role_id))
            await self.session.delete(role)
            await self.session.commit()
        log.info("role.deleted", role_id=role_id, actor_id=actor_id)

    async def set_role_permissions(
        self, actor_id: int, role_id: int, permission_ids: list[int]
    ) -> list[Permission]:
        """Replace the role's permission set. Unknown ids are ignored."""
        await self.resolver.require(actor_id, "role.manage_permissions")
        await self.get_role(role_id)
        wanted = sorted(set(permission_ids))
        with store_errors("set_role_permissions"):
            permissions: list[Permission] = []
            if wanted:
                result = await self.session.execute(
                    select(Permission).where(Permission.id.in_(wanted)).order_by(Permission.key)
                )
                permissions = list(result.scalars().all())
            await self.session.execute(delete(RolePermission).where(RolePermission.role_id == role_id))
            for permission in permissions:
                self.session.add(RolePermission(role_id=role_id, permission_id=permission.id))
            await self.session.commit()
        log.info(
            "role.permissions_set",
            role_id=role_id,
            actor_id=actor_id,
            count=len(permissions),
            ignored=len(wanted) - len(permissions),
        )
        return permissions

    # -----------------------------------------------------------------------
    # Bindings
    # -----------------------------------------------------------------------

    async def assign_role(self, actor_id: int, body: RoleAssignment) -> UserRole:
        """Bind a role to a user at a scope. Re-assigning an existing binding returns it."""
        await self.resolver.require(actor_id, "role.assign")
        await self.get_role(body.role_id)
        scope_type, scope_id = _normalize_scope(body.scope_type, body.scope_id)
        with store_errors("assign_role"):
            existing = await self._find_binding(body)
            if existing is not None:
                return existing
            binding = UserRole(
                user_id=body.user_id, role_id=body.role_id, scope_type=scope_type, scope_id=scope_id
            )
            self.session.add(binding)
            try:
                await self.session.commit()
            except IntegrityError:
                # A concurrent assignment won the unique index
                await self.session.rollback()
                existing = await self._find_binding(body)
                if existing is None:
                    raise
                return existing
            await self.session.refresh(binding)
        log.info(
            "role.assigned",
            user_id=body.user_id,
            role_id=body.role_id,
            scope_type=scope_type,
            scope_id=scope_id,
            actor_id=actor_id,
        )
        return binding

    async def revoke_role(self, actor_id: int, body: RoleAssignment) -> int:
        """Remove the matching binding. Returns the number of rows removed."""
        await self.resolver.require(actor_id, "role.assign")
        with store_errors("revoke_role"):
            result = await self.session.execute(delete(UserRole).where(*self._binding_match(body)))
            await self.session.commit()
        log.info("role.revoked", user_id=body.user_id, role_id=body.role_id, actor_id=actor_id)
        return result.rowcount or 0

    async def list_bindings(self, actor_id: int, user_id: int) -> list[UserRole]:
        await self.resolver.require(actor_id, "role.read")
        with store_errors("list_user_bindings"):
            result = await self.session.execute(
                select(UserRole).where(UserRole.user_id == user_id).order_by(UserRole.id)
            )
            return list(result.scalars().all())

    async def _find_binding(self, body: RoleAssignment) -> Optional[UserRole]:
        result = await self.session.execute(select(UserRole).where(*self._binding_match(body)))
        return result.scalars().first()

    @staticmethod
    def _binding_match(body: RoleAssignment) -> list:
        scope_type, scope_id = _normalize_scope(body.scope_type, body.scope_id)
        conditions = [UserRole.user_id == body.user_id, UserRole.role_id == body.role_id]
        if scope_type is None:
            conditions.append(
                UserRole.scope_type.is_(None) | (UserRole.scope_type == ScopeType.GLOBAL.value)
            )
        else:
            conditions += [UserRole.scope_type == scope_type, UserRole.scope_id == scope_id]
        return conditions


async def seed_catalog(session: AsyncSession) -> SeedSummary:
    """Create missing permissions, system roles and default task statuses.

    Safe to run repeatedly; existing rows are left as they are, except that
    the admin role is topped up with any newly added permission.
    """
    summary = SeedSummary()
    with store_errors("seed_catalog"):
        existing_keys = set((await session.execute(select(Permission.key))).scalars().all())
        for key in catalog.all_permission_keys():
            if key in existing_keys:
                continue
            meta = catalog.describe(key)
            session.add(
                Permission(
                    key=meta.key,
                    name=meta.name,
                    description=meta.description,
                    module=meta.module,
                    category=meta.category,
                )
            )
            summary.permissions_created += 1
        await session.flush()

        roles_by_name = {
            r.name: r for r in (await session.execute(select(Role))).scalars().all()
        }
        for name, description in catalog.SYSTEM_ROLES:
            if name in roles_by_name:
                continue
            role = Role(name=name, description=description, is_system_role=True)
            session.add(role)
            roles_by_name[name] = role
            summary.roles_created += 1
        await session.flush()

        admin = roles_by_name[catalog.ADMIN_ROLE]
        all_ids = set((await session.execute(select(Permission.id))).scalars().all())
        linked = set(
            (
                await session.execute(
                    select(RolePermission.permission_id).where(RolePermission.role_id == admin.id)
                )
            ).scalars().all()
        )
        for permission_id in sorted(all_ids - linked):
            session.add(RolePermission(role_id=admin.id, permission_id=permission_id))

        existing_statuses = set((await session.execute(select(TaskStatus.name))).scalars().all())
        for seed in catalog.DEFAULT_TASK_STATUSES:
            if seed.name in existing_statuses:
                continue
            session.add(
                TaskStatus(
                    name=seed.name,
                    color=seed.color,
                    order_index=seed.order_index,
                    is_default=seed.is_default,
                    is_final=seed.is_final,
                    is_blocking=seed.is_blocking,
                )
            )
            summary.statuses_created += 1
        await session.commit()

    log.info(
        "catalog.seeded",
        permissions=summary.permissions_created,
        roles=summary.roles_created,
        statuses=summary.statuses_created,
    )
    return summary
