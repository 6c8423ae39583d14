"""
Shared fixtures: in-memory SQLite database, a seeded catalog, row factories
and an HTTP client wired to the test database.
"""

from __future__ import annotations

from typing import Iterable, Optional, Union

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, select

import tasktrack.models  # noqa: F401
from tasktrack.core.auth import create_jwt
from tasktrack.core.database import get_session
from tasktrack.main import create_app
from tasktrack.models.dependency import TaskDependency
from tasktrack.models.rbac import Permission, Role, RolePermission, UserRole
from tasktrack.models.task import Task, TaskAssignee, TaskStatus
from tasktrack.models.user import User
from tasktrack.services.roles import seed_catalog


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


class Factory:
    """Creates committed rows with sensible defaults."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self._seq = 0

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    async def _save(self, obj):
        self.session.add(obj)
        await self.session.commit()
        await self.session.refresh(obj)
        return obj

    async def user(self, username: Optional[str] = None) -> User:
        n = self._next()
        username = username or f"user{n}"
        return await self._save(User(username=username, email=f"{username}@example.com"))

    async def role(self, name: Optional[str] = None, permissions: Iterable[str] = ()) -> Role:
        role = await self._save(Role(name=name or f"role{self._next()}"))
        keys = list(permissions)
        if keys:
            result = await self.session.execute(select(Permission).where(Permission.key.in_(keys)))
            found = list(result.scalars().all())
            assert len(found) == len(set(keys)), "unknown permission key in test setup"
            for permission in found:
                self.session.add(RolePermission(role_id=role.id, permission_id=permission.id))
            await self.session.commit()
        return role

    async def system_role(self, name: str) -> Role:
        result = await self.session.execute(select(Role).where(Role.name == name))
        return result.scalar_one()

    async def bind(
        self, user: Union[User, int], role: Union[Role, int], project_id: Optional[int] = None
    ) -> UserRole:
        """Accepts ids as well, for objects expired by an earlier rollback."""
        return await self._save(
            UserRole(
                user_id=user if isinstance(user, int) else user.id,
                role_id=role if isinstance(role, int) else role.id,
                scope_type="project" if project_id is not None else None,
                scope_id=project_id,
            )
        )

    async def status(self, name: str) -> TaskStatus:
        result = await self.session.execute(select(TaskStatus).where(TaskStatus.name == name))
        return result.scalar_one()

    async def task(
        self,
        title: Optional[str] = None,
        *,
        project_id: int = 5,
        status: str = "pending",
        task_status: Optional[TaskStatus] = None,
        assignees: Iterable[User] = (),
    ) -> Task:
        task = await self._save(
            Task(
                title=title or f"Task {self._next()}",
                project_id=project_id,
                status=status,
                task_status_id=task_status.id if task_status else None,
            )
        )
        for user in assignees:
            self.session.add(TaskAssignee(task_id=task.id, user_id=user.id))
        await self.session.commit()
        return task

    async def edge(self, task: Task, depends_on: Task) -> TaskDependency:
        """Raw edge insert that bypasses the engine."""
        return await self._save(TaskDependency(task_id=task.id, depends_on_task_id=depends_on.id))

    async def reload(self, task: Task) -> Task:
        await self.session.refresh(task)
        return task


@pytest.fixture
async def make(session) -> Factory:
    await seed_catalog(session)
    return Factory(session)


DEVELOPER_PERMISSIONS = (
    "task.read",
    "task.update",
    "task.change_status",
    "task.delete",
    "dependency.create",
    "dependency.read",
    "dependency.delete",
    "dependency.manual_unblock",
)


@pytest.fixture
async def developer(make) -> User:
    """A user holding the dependency-management permissions inside project 5 only."""
    user = await make.user("dev")
    role = await make.role("project_dev", DEVELOPER_PERMISSIONS)
    await make.bind(user, role, project_id=5)
    return user


@pytest.fixture
async def admin(make) -> User:
    user = await make.user("root")
    await make.bind(user, await make.system_role("admin"))
    return user


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


@pytest.fixture
async def client(session_factory):
    app = create_app()

    async def _override_session():
        async with session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    app.dependency_overrides[get_session] = _override_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers():
    def _headers(user_id: int) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_jwt(user_id)}"}

    return _headers
