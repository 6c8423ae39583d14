"""Transition records and the side-effect payloads derived from them."""

from __future__ import annotations

import uuid
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .common import NotificationType, TransitionKind


class TransitionRecord(BaseModel):
    """One engine transition. Re-dispatching the same record is a retry."""

    model_config = ConfigDict(frozen=True)

    event_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    task_id: int
    task_title: str = ""
    project_id: Optional[int] = None
    kind: TransitionKind
    actor_id: Optional[int] = None
    affected_user_ids: List[int] = Field(default_factory=list)
    # The other end of the edge for dependency_* kinds, the resolved blocker for unblocked
    related_task_id: Optional[int] = None


class NotificationPayload(BaseModel):
    user_id: int
    title: str
    message: str
    type: NotificationType = NotificationType.INFO
    link_url: Optional[str] = None
    dedupe_key: Optional[str] = None


class AuditEntry(BaseModel):
    action_type: str
    action_category: str
    entity_type: str
    entity_id: int
    project_id: Optional[int] = None
    performed_by_id: Optional[int] = None
    affected_user_id: Optional[int] = None
    summary: str
    details: dict = Field(default_factory=dict)
    dedupe_key: Optional[str] = None


class EffectBatch(BaseModel):
    notifications: List[NotificationPayload] = Field(default_factory=list)
    audit: AuditEntry
