"""
Engine-side projection of a task's status.

A task row carries a legacy ``status`` string and an optional reference to a
dynamic ``TaskStatus``. Business logic only ever sees ``TaskState``; this
module is the single place that reads and writes the two columns.

Reading: when ``task_status_id`` resolves to a row, its ``is_final`` /
``is_blocking`` flags decide; otherwise the legacy strings ``"completed"``
and ``"waiting"`` do. Writing always fills both columns.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from tasktrack.core.database import store_errors
from tasktrack.models.task import Task, TaskStatus
from tasktrack.schemas.common import LegacyStatus


class StateKind(str, Enum):
    UNBLOCKED = "unblocked"
    BLOCKED = "blocked"
    FINAL = "final"


@dataclass(frozen=True)
class TaskState:
    kind: StateKind
    label: str
    # Set when the state is backed by a dynamic status row
    status_id: Optional[int] = None

    @property
    def is_blocked(self) -> bool:
        return self.kind is StateKind.BLOCKED

    @property
    def is_resolved(self) -> bool:
        return self.kind is StateKind.FINAL

    @property
    def is_custom(self) -> bool:
        return self.status_id is not None


def project(task: Task, status: Optional[TaskStatus]) -> TaskState:
    if task.task_status_id is not None and status is not None:
        if status.is_final:
            kind = StateKind.FINAL
        elif status.is_blocking:
            kind = StateKind.BLOCKED
        else:
            kind = StateKind.UNBLOCKED
        return TaskState(kind=kind, label=status.name, status_id=status.id)

    if task.status == LegacyStatus.COMPLETED.value:
        return TaskState(kind=StateKind.FINAL, label=task.status)
    if task.status == LegacyStatus.WAITING.value:
        return TaskState(kind=StateKind.BLOCKED, label=task.status)
    return TaskState(kind=StateKind.UNBLOCKED, label=task.status)


def legacy_name(status: TaskStatus) -> str:
    """Legacy string mirrored next to a dynamic status."""
    if status.is_final:
        return LegacyStatus.COMPLETED.value
    if status.is_blocking:
        return LegacyStatus.WAITING.value
    return re.sub(r"[^a-z0-9]+", "_", status.name.strip().lower()).strip("_") or LegacyStatus.PENDING.value


# ---------------------------------------------------------------------------
# Writers
# ---------------------------------------------------------------------------


def write_blocked(task: Task, blocking_status: Optional[TaskStatus]) -> None:
    task.status = LegacyStatus.WAITING.value
    task.task_status_id = blocking_status.id if blocking_status is not None else None


def write_unblocked(task: Task) -> None:
    """Neutral unblocked state. The pre-block status is not restored."""
    task.status = LegacyStatus.PENDING.value
    task.task_status_id = None


def write_dynamic(task: Task, status: TaskStatus) -> None:
    task.task_status_id = status.id
    task.status = legacy_name(status)


def write_legacy(task: Task, value: str) -> None:
    task.status = value
    task.task_status_id = None


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


async def load_states(session: AsyncSession, tasks: Iterable[Task]) -> dict[int, TaskState]:
    """Project several tasks with one query for their dynamic statuses."""
    tasks = list(tasks)
    status_ids = {t.task_status_id for t in tasks if t.task_status_id is not None}
    statuses: dict[int, TaskStatus] = {}
    if status_ids:
        with store_errors("load_states"):
            result = await session.execute(select(TaskStatus).where(TaskStatus.id.in_(status_ids)))
            statuses = {s.id: s for s in result.scalars().all()}
    return {t.id: project(t, statuses.get(t.task_status_id)) for t in tasks}


async def load_state(session: AsyncSession, task: Task) -> TaskState:
    return (await load_states(session, [task]))[task.id]
