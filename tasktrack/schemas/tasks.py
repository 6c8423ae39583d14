"""Task dependency and status schemas."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

class DependencyAdd(BaseModel):
    """Request body for POST /tasks/{taskId}/dependencies."""
    depends_on_task_id: int


class BlockingDependencyRead(BaseModel):
    id: int
    title: str
    status: str


class DependencyChangeRead(BaseModel):
    task_id: int
    depends_on_task_id: int
    status: str
    task_status_id: Optional[int] = None
    blocked: bool


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------

class StatusChange(BaseModel):
    """Request body for POST /tasks/{taskId}/status.

    Exactly one of ``status`` (legacy string) or ``task_status_id`` is set.
    """
    status: Optional[str] = None
    task_status_id: Optional[int] = None

    @model_validator(mode="after")
    def _exactly_one(self) -> "StatusChange":
        if (self.status is None) == (self.task_status_id is None):
            raise ValueError("Provide exactly one of status or task_status_id")
        return self


class TaskStateRead(BaseModel):
    id: int
    title: str
    status: str
    task_status_id: Optional[int] = None
    blocked: bool
    final: bool


class CascadeReportRead(BaseModel):
    task_id: int
    unblocked_task_ids: List[int] = Field(default_factory=list)
    failed_task_ids: List[int] = Field(default_factory=list)
    error: Optional[str] = None


class StatusChangeRead(BaseModel):
    task: TaskStateRead
    cascade: Optional[CascadeReportRead] = None
