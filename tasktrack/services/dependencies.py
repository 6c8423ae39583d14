"""
Dependency service: the entry point callers use to mutate the dependency
graph and drive task status.

Handles:
- Permission gates through the AuthorizationResolver, scoped to the task's project
- Edge insert/delete and the affected task's status recompute in one transaction
- Post-commit cascade to dependents when a task resolves
- Notifications and audit entries for every transition (best-effort, after commit)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tasktrack.core.database import store_errors
from tasktrack.core.errors import InvalidStatus, SelfDependency, TaskTrackError, WouldCreateCycle
from tasktrack.models.task import Task, TaskStatus
from tasktrack.schemas.common import TransitionKind
from tasktrack.schemas.effects import AuditEntry, TransitionRecord
from tasktrack.services import task_state
from tasktrack.services.audit import AuditLog, SqlAuditLog
from tasktrack.services.authorization import AuthorizationResolver
from tasktrack.services.cycle_guard import would_create_cycle
from tasktrack.services.dependency_graph import DependencyGraphStore
from tasktrack.services.effects import EffectDispatcher
from tasktrack.services.notifier import Notifier, SqlNotifier
from tasktrack.services.status_engine import CascadeReport, StatusEngine
from tasktrack.services.task_state import TaskState

log = structlog.get_logger()


@dataclass(frozen=True)
class TaskView:
    """Column snapshot taken right after commit; effect rollbacks expire ORM rows."""

    id: int
    title: str
    status: str
    task_status_id: Optional[int]
    project_id: Optional[int]

    @classmethod
    def of(cls, task: Task) -> "TaskView":
        return cls(
            id=task.id,
            title=task.title,
            status=task.status,
            task_status_id=task.task_status_id,
            project_id=task.project_id,
        )


@dataclass
class DependencyChange:
    task: TaskView
    depends_on_task_id: int
    state: TaskState


@dataclass
class BlockingDependency:
    id: int
    title: str
    status: str


@dataclass
class StatusChangeResult:
    task: TaskView
    state: TaskState
    cascade: Optional[CascadeReport] = None


class DependencyService:
    def __init__(
        self,
        session: AsyncSession,
        *,
        resolver: Optional[AuthorizationResolver] = None,
        notifier: Optional[Notifier] = None,
        audit_log: Optional[AuditLog] = None,
        dispatcher: Optional[EffectDispatcher] = None,
    ):
        self.session = session
        self.graph = DependencyGraphStore(session)
        self.engine = StatusEngine(session, self.graph)
        self.resolver = resolver or AuthorizationResolver(session)
        self.notifier = notifier or SqlNotifier(session)
        self.audit_log = audit_log or SqlAuditLog(session)
        self.dispatcher = dispatcher or EffectDispatcher()

    # -----------------------------------------------------------------------
    # Graph mutations
    # -----------------------------------------------------------------------

    async def add_dependency(
        self, task_id: int, depends_on_task_id: int, actor_id: int
    ) -> DependencyChange:
        """Make ``task_id`` depend on ``depends_on_task_id``.

        Raises SelfDependency, TaskNotFound, PermissionDenied, DuplicateEdge
        or WouldCreateCycle; on any of them the graph is unchanged.
        """
        try:
            task = await self.graph.get_task(task_id)
            await self.resolver.require(actor_id, "dependency.create", task.project_id)
            if task_id == depends_on_task_id:
                raise SelfDependency(task_id)

            locked = await self.graph.lock_tasks([task_id, depends_on_task_id])
            task, dependency = locked[task_id], locked[depends_on_task_id]

            if would_create_cycle(task_id, depends_on_task_id, await self.graph.adjacency()):
                raise WouldCreateCycle(task_id, depends_on_task_id)

            await self.graph.add_edge(task_id, depends_on_task_id)
            newly_blocked = await self.engine.on_edge_added(task, dependency)
            state = await self.engine.state_of(task)
            await self._commit("add_dependency")
        except Exception:
            await self.session.rollback()
            raise
        view = TaskView.of(task)

        log.info(
            "dependency.added",
            task_id=task_id,
            depends_on_task_id=depends_on_task_id,
            actor_id=actor_id,
            blocked=state.is_blocked,
        )
        kinds = [TransitionKind.DEPENDENCY_ADDED]
        if newly_blocked:
            kinds.append(TransitionKind.BLOCKED)
        await self._emit(view, kinds, actor_id, related_task_id=depends_on_task_id)
        return DependencyChange(task=view, depends_on_task_id=depends_on_task_id, state=state)

    async def remove_dependency(
        self, task_id: int, depends_on_task_id: int, actor_id: int
    ) -> DependencyChange:
        try:
            task = await self.graph.get_task(task_id)
            await self.resolver.require(actor_id, "dependency.delete", task.project_id)

            task = (await self.graph.lock_tasks([task_id]))[task_id]
            await self.graph.remove_edge(task_id, depends_on_task_id)
            unblocked = await self.engine.reevaluate(task)
            state = await self.engine.state_of(task)
            await self._commit("remove_dependency")
        except Exception:
            await self.session.rollback()
            raise
        view = TaskView.of(task)

        log.info(
            "dependency.removed",
            task_id=task_id,
            depends_on_task_id=depends_on_task_id,
            actor_id=actor_id,
            unblocked=unblocked,
        )
        kinds = [TransitionKind.DEPENDENCY_REMOVED]
        if unblocked:
            kinds.append(TransitionKind.UNBLOCKED)
        await self._emit(view, kinds, actor_id, related_task_id=depends_on_task_id)
        return DependencyChange(task=view, depends_on_task_id=depends_on_task_id, state=state)

    # -----------------------------------------------------------------------
    # Resolution
    # -----------------------------------------------------------------------

    async def on_task_completed(self, task_id: int, actor_id: Optional[int] = None) -> CascadeReport:
        """Cascade after ``task_id`` reached a final state.

        Cascade failures are logged and audited, never raised.
        """
        report = await self.engine.cascade(task_id)
        await self._after_cascade(report, actor_id)
        log.info(
            "dependency.cascade_done",
            task_id=task_id,
            unblocked=report.unblocked_task_ids,
            failed=report.failed_task_ids,
            error=report.error,
        )
        return report

    async def change_status(
        self,
        task_id: int,
        actor_id: int,
        *,
        status: Optional[str] = None,
        task_status_id: Optional[int] = None,
    ) -> StatusChangeResult:
        """Explicit status write by a user. Cascades when the task becomes final."""
        if (status is None) == (task_status_id is None):
            raise InvalidStatus("Provide exactly one of status or task_status_id")

        try:
            task = await self.graph.get_task(task_id)
            await self.resolver.require(actor_id, "task.change_status", task.project_id)

            task = (await self.graph.lock_tasks([task_id]))[task_id]
            before = await self.engine.state_of(task)
            if task_status_id is not None:
                with store_errors("load_task_status"):
                    dynamic = await self.session.get(TaskStatus, task_status_id)
                if dynamic is None or not dynamic.is_active:
                    raise InvalidStatus(f"Unknown or inactive task status: {task_status_id}")
                task_state.write_dynamic(task, dynamic)
            else:
                value = status.strip()
                if not value:
                    raise InvalidStatus("status must not be empty")
                task_state.write_legacy(task, value)
            self.session.add(task)
            after = await self.engine.state_of(task)
            await self._commit("change_status")
        except Exception:
            await self.session.rollback()
            raise
        view = TaskView.of(task)

        log.info(
            "task.status_changed",
            task_id=task_id,
            actor_id=actor_id,
            status=view.status,
            task_status_id=view.task_status_id,
        )
        result = StatusChangeResult(task=view, state=after)
        if after.is_resolved and not before.is_resolved:
            result.cascade = await self.on_task_completed(task_id, actor_id)
        return result

    async def manual_unblock(self, task_id: int, actor_id: int) -> bool:
        """Force a blocked task into the neutral unblocked state. False if it was not blocked."""
        try:
            task = await self.graph.get_task(task_id)
            await self.resolver.require(actor_id, "dependency.manual_unblock", task.project_id)

            task = (await self.graph.lock_tasks([task_id]))[task_id]
            if not (await self.engine.state_of(task)).is_blocked:
                await self.session.rollback()
                return False
            await self.engine.unblock(task)
            await self._commit("manual_unblock")
        except Exception:
            await self.session.rollback()
            raise
        view = TaskView.of(task)

        log.info("dependency.manual_unblock", task_id=task_id, actor_id=actor_id)
        await self._emit(view, [TransitionKind.UNBLOCKED], actor_id)
        return True

    async def delete_task(self, task_id: int, actor_id: int) -> CascadeReport:
        """Delete a task with its edges, then re-evaluate its former dependents."""
        try:
            task = await self.graph.get_task(task_id)
            await self.resolver.require(actor_id, "task.delete", task.project_id)

            await self.graph.lock_tasks([task_id])
            dependents = await self.graph.delete_task(task_id)
            await self._commit("delete_task")
        except Exception:
            await self.session.rollback()
            raise

        log.info("task.deleted", task_id=task_id, actor_id=actor_id, dependents=dependents)
        report = await self.engine.reevaluate_each(task_id, dependents)
        await self._after_cascade(report, actor_id)
        return report

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    async def list_blocking_dependencies(
        self, task_id: int, actor_id: Optional[int] = None
    ) -> list[BlockingDependency]:
        """Unresolved dependencies of ``task_id``. Gated when ``actor_id`` is given."""
        task = await self.graph.get_task(task_id)
        if actor_id is not None:
            await self.resolver.require(actor_id, "dependency.read", task.project_id)
        return [
            BlockingDependency(id=dep.id, title=dep.title, status=state.label)
            for dep, state in await self.engine.unresolved_dependencies(task_id)
        ]

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------

    async def _commit(self, operation: str) -> None:
        with store_errors(operation):
            await self.session.commit()

    async def _after_cascade(self, report: CascadeReport, actor_id: Optional[int]) -> None:
        for dependent_id in report.unblocked_task_ids:
            try:
                dependent = TaskView.of(await self.graph.get_task(dependent_id))
            except TaskTrackError as exc:
                log.warning("effects.task_unavailable", task_id=dependent_id, error=exc.message)
                continue
            await self._emit(
                dependent, [TransitionKind.UNBLOCKED], actor_id, related_task_id=report.task_id
            )

        if report.error is not None:
            await self.audit_log.record(
                AuditEntry(
                    action_type="dependency_cascade_failed",
                    action_category="dependency",
                    entity_type="task",
                    entity_id=report.task_id,
                    performed_by_id=actor_id,
                    summary=(
                        f"Failed to list dependents of task #{report.task_id} after it "
                        f"was resolved: {report.error}"
                    ),
                    details={"trigger_task_id": report.task_id, "error": report.error},
                )
            )

        for dependent_id, error in report.failed.items():
            await self.audit_log.record(
                AuditEntry(
                    action_type="dependency_cascade_failed",
                    action_category="dependency",
                    entity_type="task",
                    entity_id=dependent_id,
                    performed_by_id=actor_id,
                    summary=(
                        f"Failed to re-evaluate task #{dependent_id} after task "
                        f"#{report.task_id} was resolved: {error}"
                    ),
                    details={"trigger_task_id": report.task_id, "error": error},
                )
            )

    async def _emit(
        self,
        task: TaskView,
        kinds: list[TransitionKind],
        actor_id: Optional[int],
        related_task_id: Optional[int] = None,
    ) -> None:
        """Dispatch effects for committed transitions. Failures are logged only."""
        try:
            assignees = await self.graph.list_assignee_ids(task.id)
        except TaskTrackError as exc:
            log.error("effects.dispatch_failed", task_id=task.id, error=exc.message)
            return

        for kind in kinds:
            record = TransitionRecord(
                task_id=task.id,
                task_title=task.title,
                project_id=task.project_id,
                kind=kind,
                actor_id=actor_id,
                affected_user_ids=assignees,
                related_task_id=related_task_id,
            )
            try:
                await self.dispatcher.dispatch(record, self.notifier, self.audit_log)
            except TaskTrackError as exc:
                log.error(
                    "effects.dispatch_failed",
                    task_id=task.id,
                    kind=kind.value,
                    event_id=str(record.event_id),
                    error=exc.message,
                )
                try:
                    await self.session.rollback()
                except SQLAlchemyError as rollback_exc:
                    log.warning("effects.rollback_failed", error=str(rollback_exc))
