"""
Tests for role administration and catalog seeding.
"""

from __future__ import annotations

import pytest
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from tasktrack.core.errors import (
    BadRequest,
    PermissionDenied,
    RoleNameTaken,
    RoleNotFound,
    SystemRoleProtected,
)
from tasktrack.models.rbac import Permission, Role, UserRole
from tasktrack.models.task import TaskStatus
from tasktrack.schemas.common import ScopeType
from tasktrack.schemas.rbac import RoleAssignment, RoleCreate, RoleUpdate
from tasktrack.services.authorization import AuthorizationResolver
from tasktrack.services.catalog import (
    DEFAULT_TASK_STATUSES,
    PROJECT_SCOPED_PERMISSIONS,
    SYSTEM_ROLES,
    all_permission_keys,
)
from tasktrack.services.roles import RoleService, seed_catalog


async def _count(session, model) -> int:
    return (await session.execute(select(func.count()).select_from(model))).scalar_one()


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------


class TestSeedCatalog:
    async def test_seed_is_idempotent(self, session):
        first = await seed_catalog(session)
        assert first.permissions_created == len(all_permission_keys())
        assert first.roles_created == len(SYSTEM_ROLES)
        assert first.statuses_created == len(DEFAULT_TASK_STATUSES)

        second = await seed_catalog(session)
        assert (second.permissions_created, second.roles_created, second.statuses_created) == (0, 0, 0)
        assert await _count(session, Permission) == len(all_permission_keys())
        assert await _count(session, TaskStatus) == len(DEFAULT_TASK_STATUSES)

    async def test_permission_metadata(self, session):
        await seed_catalog(session)
        row = (
            await session.execute(select(Permission).where(Permission.key == "settings.global.edit"))
        ).scalar_one()
        assert (row.module, row.category) == ("settings", "global")

        row = (
            await session.execute(select(Permission).where(Permission.key == "dependency.manual_unblock"))
        ).scalar_one()
        assert (row.module, row.category, row.name) == ("dependency", None, "Manual Unblock")

    def test_project_scoped_keys_are_in_catalog(self):
        assert PROJECT_SCOPED_PERMISSIONS <= set(all_permission_keys())
        assert "dependency.create" in PROJECT_SCOPED_PERMISSIONS
        assert "role.assign" not in PROJECT_SCOPED_PERMISSIONS

    async def test_system_roles_flagged(self, session):
        await seed_catalog(session)
        roles = (await session.execute(select(Role))).scalars().all()
        assert {r.name for r in roles} == {name for name, _ in SYSTEM_ROLES}
        assert all(r.is_system_role for r in roles)


# ---------------------------------------------------------------------------
# Role CRUD
# ---------------------------------------------------------------------------


class TestRoleCrud:
    async def test_create_update_delete(self, session, admin):
        service = RoleService(session)
        role = await service.create_role(admin.id, RoleCreate(name="  qa  ", description=" Testers "))
        assert (role.name, role.description, role.is_system_role) == ("qa", "Testers", False)

        role = await service.update_role(admin.id, role.id, RoleUpdate(description=""))
        assert role.name == "qa"
        assert role.description is None

        role = await service.update_role(admin.id, role.id, RoleUpdate(name="quality"))
        assert role.name == "quality"

        role_id = role.id
        await service.delete_role(admin.id, role_id)
        with pytest.raises(RoleNotFound):
            await service.get_role(role_id)

    async def test_duplicate_name(self, session, admin):
        admin_id = admin.id
        service = RoleService(session)
        other = await service.create_role(admin_id, RoleCreate(name="qa"))
        other_id = other.id
        with pytest.raises(RoleNameTaken):
            await service.create_role(admin_id, RoleCreate(name="developer"))
        with pytest.raises(RoleNameTaken):
            await service.update_role(admin_id, other_id, RoleUpdate(name="viewer"))
        with pytest.raises(BadRequest):
            await service.update_role(admin_id, other_id, RoleUpdate(name="  "))

    async def test_system_role_cannot_be_deleted(self, session, make, admin):
        viewer_id = (await make.system_role("viewer")).id
        with pytest.raises(SystemRoleProtected):
            await RoleService(session).delete_role(admin.id, viewer_id)

    async def test_list_roles_counts(self, session, make, admin):
        user = await make.user()
        qa = await make.role("qa", ["task.read", "task.update"])
        await make.bind(user, qa, project_id=1)
        await make.bind(user, qa, project_id=2)

        roles = {r.name: r for r in await RoleService(session).list_roles(admin.id)}
        assert roles["qa"].permissions_count == 2
        assert roles["qa"].users_count == 1
        assert roles["admin"].permissions_count == len(all_permission_keys())
        assert roles["admin"].users_count == 1

    async def test_admin_ops_need_role_permissions(self, session, make):
        plain_id = (await make.user()).id
        service = RoleService(session)
        with pytest.raises(PermissionDenied):
            await service.list_roles(plain_id)
        with pytest.raises(PermissionDenied):
            await service.create_role(plain_id, RoleCreate(name="x"))

    async def test_project_scoped_role_read_does_not_grant_admin(self, session, make):
        user = await make.user()
        await make.bind(user, await make.role(permissions=["role.read"]), project_id=5)
        with pytest.raises(PermissionDenied):
            await RoleService(session).list_roles(user.id)


# ---------------------------------------------------------------------------
# Role permissions
# ---------------------------------------------------------------------------


class TestRolePermissions:
    async def test_set_replaces_and_ignores_unknown(self, session, make, admin):
        service = RoleService(session)
        role = await make.role("qa", ["task.read"])
        ids = {
            p.key: p.id
            for p in (await session.execute(select(Permission))).scalars().all()
        }

        granted = await service.set_role_permissions(
            admin.id, role.id, [ids["task.update"], ids["task.update"], 999_999]
        )
        assert [p.key for p in granted] == ["task.update"]

        _, permissions = await service.get_role_permissions(admin.id, role.id)
        assert [p.key for p in permissions] == ["task.update"]

    async def test_change_visible_to_resolver_immediately(self, session, make, admin):
        user = await make.user()
        role = await make.role("qa")
        await make.bind(user, role)
        resolver = AuthorizationResolver(session)
        assert await resolver.has_permission(user.id, "report.view") is False

        report_view = (
            await session.execute(select(Permission).where(Permission.key == "report.view"))
        ).scalar_one()
        await RoleService(session).set_role_permissions(admin.id, role.id, [report_view.id])
        assert await resolver.has_permission(user.id, "report.view") is True

    async def test_unknown_role(self, session, admin):
        admin_id = admin.id
        with pytest.raises(RoleNotFound):
            await RoleService(session).set_role_permissions(admin_id, 4242, [])


# ---------------------------------------------------------------------------
# Bindings
# ---------------------------------------------------------------------------


class TestBindings:
    async def test_assign_is_unique_per_scope(self, session, make, admin):
        user = await make.user()
        role = await make.role("qa")
        service = RoleService(session)

        global_a = await service.assign_role(admin.id, RoleAssignment(user_id=user.id, role_id=role.id))
        global_b = await service.assign_role(
            admin.id, RoleAssignment(user_id=user.id, role_id=role.id, scope_type=ScopeType.GLOBAL)
        )
        project = await service.assign_role(
            admin.id,
            RoleAssignment(user_id=user.id, role_id=role.id, scope_type=ScopeType.PROJECT, scope_id=5),
        )

        assert global_a.id == global_b.id
        assert (global_a.scope_type, global_a.scope_id) == (None, None)
        assert (project.scope_type, project.scope_id) == ("project", 5)
        assert len(await service.list_bindings(admin.id, user.id)) == 2

    async def test_store_rejects_second_global_binding(self, session, make):
        user_id = (await make.user()).id
        role_id = (await make.role("qa")).id
        await make.bind(user_id, role_id)

        session.add(UserRole(user_id=user_id, role_id=role_id, scope_type="global"))
        with pytest.raises(IntegrityError):
            await session.commit()
        await session.rollback()

    async def test_concurrent_assign_returns_existing_binding(self, session, make, admin):
        admin_id = admin.id
        user_id = (await make.user()).id
        role_id = (await make.role("qa")).id
        service = RoleService(session)
        lookup = service._find_binding
        calls = 0

        async def lookup_misses_first(body):
            nonlocal calls
            calls += 1
            if calls == 1:
                # Another request inserts the same binding between lookup and insert
                await make.bind(user_id, role_id)
                return None
            return await lookup(body)

        service._find_binding = lookup_misses_first
        binding = await service.assign_role(admin_id, RoleAssignment(user_id=user_id, role_id=role_id))

        assert (binding.user_id, binding.role_id, binding.scope_id) == (user_id, role_id, None)
        assert await _count(session, UserRole) == 2  # admin binding plus one qa binding

    async def test_revoke(self, session, make, admin):
        user = await make.user()
        role = await make.role("qa", ["task.read"])
        service = RoleService(session)
        body = RoleAssignment(user_id=user.id, role_id=role.id, scope_type=ScopeType.PROJECT, scope_id=5)
        await service.assign_role(admin.id, body)

        assert await service.revoke_role(admin.id, body) == 1
        assert await service.revoke_role(admin.id, body) == 0
        assert await _count(session, UserRole) == 1  # only the admin's own binding

    def test_assignment_validation(self):
        with pytest.raises(ValueError):
            RoleAssignment(user_id=1, role_id=1, scope_type=ScopeType.PROJECT)
        with pytest.raises(ValueError):
            RoleAssignment(user_id=1, role_id=1, scope_id=5)
