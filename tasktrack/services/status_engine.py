"""
Dependency-driven status state machine.

Trigger points:
- edge added: block the task if the new dependency is unresolved
- edge removed / dependency resolved: unblock the task once no unresolved
  dependency remains
- task completed: one-hop cascade over its dependents

Manual status edits are only revisited at these trigger points.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from tasktrack.core.database import store_errors
from tasktrack.core.errors import TaskTrackError
from tasktrack.models.task import Task, TaskStatus
from tasktrack.services import task_state
from tasktrack.services.dependency_graph import DependencyGraphStore
from tasktrack.services.task_state import TaskState

log = structlog.get_logger()


@dataclass
class CascadeReport:
    task_id: int
    unblocked_task_ids: list[int] = field(default_factory=list)
    failed: dict[int, str] = field(default_factory=dict)
    # Set when the dependents could not be listed; no dependent was evaluated
    error: Optional[str] = None

    @property
    def failed_task_ids(self) -> list[int]:
        return sorted(self.failed)


class StatusEngine:
    def __init__(self, session: AsyncSession, graph: Optional[DependencyGraphStore] = None):
        self.session = session
        self.graph = graph or DependencyGraphStore(session)

    async def blocking_status(self) -> Optional[TaskStatus]:
        """Active blocking status with the lowest order_index (ties: lowest id)."""
        with store_errors("blocking_status"):
            result = await self.session.execute(
                select(TaskStatus)
                .where(TaskStatus.is_blocking.is_(True), TaskStatus.is_active.is_(True))
                .order_by(TaskStatus.order_index, TaskStatus.id)
                .limit(1)
            )
            return result.scalars().first()

    async def state_of(self, task: Task) -> TaskState:
        return await task_state.load_state(self.session, task)

    async def unresolved_dependencies(self, task_id: int) -> list[tuple[Task, TaskState]]:
        dep_ids = await self.graph.list_outgoing(task_id)
        deps = await self.graph.get_tasks(dep_ids)
        states = await task_state.load_states(self.session, deps)
        return [(d, states[d.id]) for d in deps if not states[d.id].is_resolved]

    async def has_unresolved_dependencies(self, task_id: int) -> bool:
        return bool(await self.unresolved_dependencies(task_id))

    # -----------------------------------------------------------------------
    # Writes (flushed, never committed here)
    # -----------------------------------------------------------------------

    async def block(self, task: Task) -> None:
        task_state.write_blocked(task, await self.blocking_status())
        await self._flush(task)

    async def unblock(self, task: Task) -> None:
        task_state.write_unblocked(task)
        await self._flush(task)

    async def _flush(self, task: Task) -> None:
        with store_errors("status_write"):
            self.session.add(task)
            await self.session.flush()

    # -----------------------------------------------------------------------
    # Trigger points
    # -----------------------------------------------------------------------

    async def on_edge_added(self, task: Task, dependency: Task) -> bool:
        """Block ``task`` if ``dependency`` is unresolved. True if it newly became blocked."""
        states = await task_state.load_states(self.session, [task, dependency])
        if states[dependency.id].is_resolved:
            return False
        was_blocked = states[task.id].is_blocked
        await self.block(task)
        log.info("status.blocked", task_id=task.id, depends_on_task_id=dependency.id)
        return not was_blocked

    async def reevaluate(self, task: Task) -> bool:
        """Unblock ``task`` if it is blocked and nothing it depends on is unresolved.

        True if the task was unblocked.
        """
        state = await self.state_of(task)
        if not state.is_blocked:
            return False
        if await self.has_unresolved_dependencies(task.id):
            return False
        await self.unblock(task)
        log.info("status.unblocked", task_id=task.id)
        return True

    async def cascade(self, task_id: int) -> CascadeReport:
        """Re-evaluate each direct dependent of ``task_id``.

        One hop only: a dependent that becomes resolved later triggers its
        own cascade.
        """
        try:
            dependents = await self.graph.list_incoming(task_id)
        except TaskTrackError as exc:
            log.error("dependency.cascade_failed", task_id=task_id, error=exc.message)
            await self._rollback_quietly()
            return CascadeReport(task_id=task_id, error=exc.message)
        return await self.reevaluate_each(task_id, dependents)

    async def reevaluate_each(self, trigger_task_id: int, task_ids: list[int]) -> CascadeReport:
        """Re-evaluate ``task_ids`` one transaction each, on committed state.

        A failing step is rolled back, logged and reported; it never undoes
        earlier steps or the change that triggered the cascade.
        """
        report = CascadeReport(task_id=trigger_task_id)
        for dependent_id in task_ids:
            try:
                locked = await self.graph.lock_tasks([dependent_id])
                unblocked = await self.reevaluate(locked[dependent_id])
                with store_errors("cascade_commit"):
                    await self.session.commit()
                if unblocked:
                    report.unblocked_task_ids.append(dependent_id)
            except TaskTrackError as exc:
                log.error(
                    "dependency.cascade_failed",
                    task_id=trigger_task_id,
                    dependent_id=dependent_id,
                    error=exc.message,
                )
                report.failed[dependent_id] = exc.message
                await self._rollback_quietly()
        return report

    async def _rollback_quietly(self) -> None:
        try:
            await self.session.rollback()
        except SQLAlchemyError as exc:
            log.warning("dependency.cascade_rollback_failed", error=str(exc))
