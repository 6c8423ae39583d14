"""Task, dynamic task status and assignee tables."""

from typing import Optional

from sqlmodel import Field, SQLModel

from .base import IntIDMixin, TimestampMixin


class TaskStatus(IntIDMixin, TimestampMixin, SQLModel, table=True):
    """Admin-configurable status. ``is_final``/``is_blocking`` drive the engine."""

    __tablename__ = "task_statuses"

    name: str = Field(nullable=False, unique=True)
    color: str = Field(nullable=False, default="#6b7280")
    is_default: bool = Field(nullable=False, default=False)
    is_final: bool = Field(nullable=False, default=False)
    is_blocking: bool = Field(nullable=False, default=False)
    order_index: int = Field(nullable=False, default=0)
    is_active: bool = Field(nullable=False, default=True)


class Task(IntIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "tasks"

    title: str = Field(nullable=False)
    status: str = Field(nullable=False, default="pending")  # legacy: pending | waiting | completed | ...
    task_status_id: Optional[int] = Field(
        default=None, foreign_key="task_statuses.id", index=True, ondelete="SET NULL"
    )
    project_id: int = Field(nullable=False, index=True)
    created_by_id: Optional[int] = Field(default=None, foreign_key="users.id", ondelete="SET NULL")


class TaskAssignee(SQLModel, table=True):
    __tablename__ = "task_assignees"

    task_id: int = Field(foreign_key="tasks.id", primary_key=True, ondelete="CASCADE")
    user_id: int = Field(foreign_key="users.id", primary_key=True, ondelete="CASCADE")
