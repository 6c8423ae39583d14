"""Notification and activity log tables backing the default effect sinks."""

from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import IntIDMixin, TimestampMixin


class Notification(IntIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "notifications"

    user_id: int = Field(foreign_key="users.id", nullable=False, index=True, ondelete="CASCADE")
    title: str = Field(nullable=False)
    message: str = Field(nullable=False)
    type: str = Field(nullable=False, default="info")
    link_url: Optional[str] = None
    is_read: bool = Field(nullable=False, default=False)
    # Retries of the same transition carry the same key
    dedupe_key: Optional[str] = Field(default=None, unique=True)


class ActivityLog(IntIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "activity_logs"

    action_type: str = Field(nullable=False, index=True)
    action_category: str = Field(nullable=False, index=True)
    action_summary: str = Field(nullable=False)
    action_details: Optional[dict] = Field(default=None, sa_type=sa.JSON)
    entity_type: Optional[str] = None
    entity_id: Optional[int] = None
    project_id: Optional[int] = Field(default=None, index=True)
    performed_by_id: Optional[int] = Field(default=None, index=True)
    affected_user_id: Optional[int] = None
    dedupe_key: Optional[str] = Field(default=None, unique=True)
