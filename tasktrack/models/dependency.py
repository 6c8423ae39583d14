"""Task dependency edge: ``task_id`` cannot be unblocked until ``depends_on_task_id`` resolves."""

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy import CheckConstraint, UniqueConstraint
from sqlmodel import Field, SQLModel

from .base import IntIDMixin, _utcnow


class TaskDependency(IntIDMixin, SQLModel, table=True):
    __tablename__ = "task_dependencies"
    __table_args__ = (
        UniqueConstraint("task_id", "depends_on_task_id", name="uq_task_dependency"),
        CheckConstraint("task_id != depends_on_task_id", name="no_self_dependency"),
    )

    task_id: int = Field(foreign_key="tasks.id", nullable=False, index=True, ondelete="CASCADE")
    depends_on_task_id: int = Field(
        foreign_key="tasks.id", nullable=False, index=True, ondelete="CASCADE"
    )
    created_at: Optional[datetime] = Field(
        default_factory=_utcnow, sa_type=sa.DateTime(timezone=True)
    )
