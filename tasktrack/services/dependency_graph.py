"""
CRUD over dependency edges (``task_id`` depends on ``depends_on_task_id``).

The store never commits; callers combine edge mutations and status writes
inside one transaction on the same session.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Iterable, Sequence

from sqlalchemy import delete, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from tasktrack.core.database import store_errors
from tasktrack.core.errors import DependencyNotFound, DuplicateEdge, SelfDependency, TaskNotFound
from tasktrack.models.dependency import TaskDependency
from tasktrack.models.task import Task, TaskAssignee


class DependencyGraphStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    # -----------------------------------------------------------------------
    # Tasks
    # -----------------------------------------------------------------------

    async def get_task(self, task_id: int) -> Task:
        with store_errors("get_task"):
            task = await self.session.get(Task, task_id)
        if task is None:
            raise TaskNotFound(task_id)
        return task

    async def lock_tasks(self, task_ids: Iterable[int]) -> dict[int, Task]:
        """Row-lock the given tasks (ascending id order) for the current transaction.

        Raises TaskNotFound for the first id that does not exist.
        """
        ids = sorted(set(task_ids))
        with store_errors("lock_tasks"):
            result = await self.session.execute(
                select(Task)
                .where(Task.id.in_(ids))
                .order_by(Task.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            tasks = {t.id: t for t in result.scalars().all()}
        for task_id in ids:
            if task_id not in tasks:
                raise TaskNotFound(task_id)
        return tasks

    async def get_tasks(self, task_ids: Sequence[int]) -> list[Task]:
        if not task_ids:
            return []
        with store_errors("get_tasks"):
            result = await self.session.execute(
                select(Task).where(Task.id.in_(task_ids)).order_by(Task.id)
            )
            return list(result.scalars().all())

    async def list_assignee_ids(self, task_id: int) -> list[int]:
        with store_errors("list_assignee_ids"):
            result = await self.session.execute(
                select(TaskAssignee.user_id)
                .where(TaskAssignee.task_id == task_id)
                .order_by(TaskAssignee.user_id)
            )
            return [row[0] for row in result.all()]

    async def delete_task(self, task_id: int) -> list[int]:
        """Delete a task and every edge touching it. Returns its former dependents."""
        dependents = await self.list_incoming(task_id)
        task = await self.get_task(task_id)
        with store_errors("delete_task"):
            await self.session.execute(
                delete(TaskDependency).where(
                    or_(
                        TaskDependency.task_id == task_id,
                        TaskDependency.depends_on_task_id == task_id,
                    )
                )
            )
            await self.session.execute(delete(TaskAssignee).where(TaskAssignee.task_id == task_id))
            await self.session.delete(task)
            await self.session.flush()
        return dependents

    # -----------------------------------------------------------------------
    # Edges
    # -----------------------------------------------------------------------

    async def has_edge(self, task_id: int, depends_on_task_id: int) -> bool:
        with store_errors("has_edge"):
            result = await self.session.execute(
                select(TaskDependency.id).where(
                    TaskDependency.task_id == task_id,
                    TaskDependency.depends_on_task_id == depends_on_task_id,
                )
            )
            return result.first() is not None

    async def add_edge(self, task_id: int, depends_on_task_id: int) -> TaskDependency:
        if task_id == depends_on_task_id:
            raise SelfDependency(task_id)
        await self.get_task(task_id)
        await self.get_task(depends_on_task_id)
        if await self.has_edge(task_id, depends_on_task_id):
            raise DuplicateEdge(task_id, depends_on_task_id)

        dep = TaskDependency(task_id=task_id, depends_on_task_id=depends_on_task_id)
        self.session.add(dep)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            # A concurrent insert won the unique constraint
            raise DuplicateEdge(task_id, depends_on_task_id) from exc
        return dep

    async def remove_edge(self, task_id: int, depends_on_task_id: int) -> None:
        with store_errors("remove_edge"):
            result = await self.session.execute(
                select(TaskDependency).where(
                    TaskDependency.task_id == task_id,
                    TaskDependency.depends_on_task_id == depends_on_task_id,
                )
            )
            dep = result.scalar_one_or_none()
            if dep is None:
                raise DependencyNotFound(task_id, depends_on_task_id)
            await self.session.delete(dep)
            await self.session.flush()

    async def list_outgoing(self, task_id: int) -> list[int]:
        """Ids of the tasks ``task_id`` depends on."""
        with store_errors("list_outgoing"):
            result = await self.session.execute(
                select(TaskDependency.depends_on_task_id)
                .where(TaskDependency.task_id == task_id)
                .order_by(TaskDependency.depends_on_task_id)
            )
            return [row[0] for row in result.all()]

    async def list_incoming(self, depends_on_task_id: int) -> list[int]:
        """Ids of the tasks that depend on ``depends_on_task_id`` (its dependents)."""
        with store_errors("list_incoming"):
            result = await self.session.execute(
                select(TaskDependency.task_id)
                .where(TaskDependency.depends_on_task_id == depends_on_task_id)
                .order_by(TaskDependency.task_id)
            )
            return [row[0] for row in result.all()]

    async def adjacency(self) -> dict[int, list[int]]:
        """Snapshot of every edge as ``task_id -> [depends_on_task_id]``."""
        with store_errors("adjacency"):
            result = await self.session.execute(
                select(TaskDependency.task_id, TaskDependency.depends_on_task_id)
            )
            adj: dict[int, list[int]] = defaultdict(list)
            for task_id, depends_on_task_id in result.all():
                adj[task_id].append(depends_on_task_id)
        return adj
