"""
Translate engine transitions into notification payloads and an audit entry.

``EffectDispatcher.build`` is pure and deterministic: the same
``TransitionRecord`` always yields the same payloads, including dedupe keys
derived from ``event_id``, so re-dispatching a record after a failure is
absorbed by the sinks instead of double-notifying.
"""

from __future__ import annotations

from typing import Optional

from tasktrack.core.config import get_settings
from tasktrack.schemas.common import NotificationType, TransitionKind
from tasktrack.schemas.effects import (
    AuditEntry,
    EffectBatch,
    NotificationPayload,
    TransitionRecord,
)
from tasktrack.services.audit import AuditLog
from tasktrack.services.notifier import Notifier

_TEMPLATES: dict[TransitionKind, tuple[str, str, NotificationType]] = {
    TransitionKind.BLOCKED: (
        "Task blocked",
        '"{title}" is waiting on unresolved dependencies.',
        NotificationType.TASK_BLOCKED,
    ),
    TransitionKind.UNBLOCKED: (
        "Task unblocked",
        '"{title}" has no unresolved dependencies and is ready to work on.',
        NotificationType.TASK_UNBLOCKED,
    ),
    TransitionKind.DEPENDENCY_ADDED: (
        "Dependency added",
        '"{title}" now depends on task #{related}.',
        NotificationType.DEPENDENCY,
    ),
    TransitionKind.DEPENDENCY_REMOVED: (
        "Dependency removed",
        '"{title}" no longer depends on task #{related}.',
        NotificationType.DEPENDENCY,
    ),
}

_AUDIT_ACTIONS: dict[TransitionKind, tuple[str, str]] = {
    TransitionKind.BLOCKED: ("task_blocked", "task"),
    TransitionKind.UNBLOCKED: ("task_unblocked", "task"),
    TransitionKind.DEPENDENCY_ADDED: ("dependency_added", "dependency"),
    TransitionKind.DEPENDENCY_REMOVED: ("dependency_removed", "dependency"),
}


class EffectDispatcher:
    def __init__(self, link_base_url: Optional[str] = None):
        if link_base_url is None:
            link_base_url = get_settings().link_base_url
        self.link_base_url = link_base_url.rstrip("/")

    def link_for(self, record: TransitionRecord) -> str:
        if record.project_id is not None:
            return f"{self.link_base_url}/projects/{record.project_id}/tasks/{record.task_id}"
        return f"{self.link_base_url}/tasks/{record.task_id}"

    def build(self, record: TransitionRecord) -> EffectBatch:
        title, template, ntype = _TEMPLATES[record.kind]
        message = template.format(
            title=record.task_title or f"Task #{record.task_id}",
            related=record.related_task_id,
        )
        link = self.link_for(record)

        # The actor is never notified about their own action
        recipients = sorted({u for u in record.affected_user_ids if u != record.actor_id})
        notifications = [
            NotificationPayload(
                user_id=user_id,
                title=title,
                message=message,
                type=ntype,
                link_url=link,
                dedupe_key=f"{record.event_id}:{user_id}",
            )
            for user_id in recipients
        ]

        action_type, category = _AUDIT_ACTIONS[record.kind]
        affected = record.affected_user_ids
        audit = AuditEntry(
            action_type=action_type,
            action_category=category,
            entity_type="task",
            entity_id=record.task_id,
            project_id=record.project_id,
            performed_by_id=record.actor_id,
            affected_user_id=affected[0] if len(affected) == 1 else None,
            summary=message,
            details={
                "kind": record.kind.value,
                "related_task_id": record.related_task_id,
                "affected_user_ids": list(affected),
            },
            dedupe_key=f"{record.event_id}:audit",
        )
        return EffectBatch(notifications=notifications, audit=audit)

    async def dispatch(
        self, record: TransitionRecord, notifier: Notifier, audit_log: AuditLog
    ) -> int:
        """Hand the built payloads to the sinks. Returns the notification count.

        The audit entry is written first so a failing notifier cannot lose it.
        Notifier errors still propagate to the caller.
        """
        batch = self.build(record)
        await audit_log.record(batch.audit)
        if not batch.notifications:
            return 0
        return await notifier.notify_many(batch.notifications)
