"""
Task endpoints: dependencies, status changes, manual unblock, delete.

- Dependencies: self, duplicate and circular edges are rejected with 409.
- Adding an edge to an unresolved task blocks the dependent in the same transaction.
- Completing a task cascades one hop to its dependents after commit.
- Permission checks are scoped to the task's project.
"""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from tasktrack.core.auth import get_current_user_id
from tasktrack.core.database import get_session
from tasktrack.schemas.tasks import (
    BlockingDependencyRead,
    CascadeReportRead,
    DependencyAdd,
    DependencyChangeRead,
    StatusChange,
    StatusChangeRead,
    TaskStateRead,
)
from tasktrack.services.dependencies import DependencyChange, DependencyService
from tasktrack.services.status_engine import CascadeReport

router = APIRouter()


def get_dependency_service(session: AsyncSession = Depends(get_session)) -> DependencyService:
    return DependencyService(session)


def _change_read(change: DependencyChange) -> DependencyChangeRead:
    return DependencyChangeRead(
        task_id=change.task.id,
        depends_on_task_id=change.depends_on_task_id,
        status=change.task.status,
        task_status_id=change.task.task_status_id,
        blocked=change.state.is_blocked,
    )


def _cascade_read(report: CascadeReport) -> CascadeReportRead:
    return CascadeReportRead(
        task_id=report.task_id,
        unblocked_task_ids=report.unblocked_task_ids,
        failed_task_ids=report.failed_task_ids,
        error=report.error,
    )


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


@router.post("/{task_id}/dependencies", response_model=DependencyChangeRead, status_code=201)
async def add_dependency_endpoint(
    task_id: int,
    body: DependencyAdd,
    actor_id: int = Depends(get_current_user_id),
    service: DependencyService = Depends(get_dependency_service),
):
    """Make the task depend on ``depends_on_task_id``. Detects circular deps."""
    change = await service.add_dependency(task_id, body.depends_on_task_id, actor_id)
    return _change_read(change)


@router.delete("/{task_id}/dependencies/{depends_on_task_id}", response_model=DependencyChangeRead)
async def remove_dependency_endpoint(
    task_id: int,
    depends_on_task_id: int,
    actor_id: int = Depends(get_current_user_id),
    service: DependencyService = Depends(get_dependency_service),
):
    change = await service.remove_dependency(task_id, depends_on_task_id, actor_id)
    return _change_read(change)


@router.get("/{task_id}/dependencies/blocking", response_model=List[BlockingDependencyRead])
async def list_blocking_dependencies_endpoint(
    task_id: int,
    actor_id: int = Depends(get_current_user_id),
    service: DependencyService = Depends(get_dependency_service),
):
    """Dependencies that are not yet resolved."""
    blocking = await service.list_blocking_dependencies(task_id, actor_id)
    return [BlockingDependencyRead(id=b.id, title=b.title, status=b.status) for b in blocking]


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------


@router.post("/{task_id}/status", response_model=StatusChangeRead)
async def change_status_endpoint(
    task_id: int,
    body: StatusChange,
    actor_id: int = Depends(get_current_user_id),
    service: DependencyService = Depends(get_dependency_service),
):
    result = await service.change_status(
        task_id, actor_id, status=body.status, task_status_id=body.task_status_id
    )
    return StatusChangeRead(
        task=TaskStateRead(
            id=result.task.id,
            title=result.task.title,
            status=result.task.status,
            task_status_id=result.task.task_status_id,
            blocked=result.state.is_blocked,
            final=result.state.is_resolved,
        ),
        cascade=_cascade_read(result.cascade) if result.cascade else None,
    )


@router.post("/{task_id}/unblock")
async def manual_unblock_endpoint(
    task_id: int,
    actor_id: int = Depends(get_current_user_id),
    service: DependencyService = Depends(get_dependency_service),
):
    """Force a blocked task back to pending regardless of its dependencies."""
    unblocked = await service.manual_unblock(task_id, actor_id)
    return {"task_id": task_id, "unblocked": unblocked}


@router.delete("/{task_id}", response_model=CascadeReportRead)
async def delete_task_endpoint(
    task_id: int,
    actor_id: int = Depends(get_current_user_id),
    service: DependencyService = Depends(get_dependency_service),
):
    """Delete the task and its edges; former dependents are re-evaluated."""
    report = await service.delete_task(task_id, actor_id)
    return _cascade_read(report)
