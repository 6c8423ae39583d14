"""
Activity/audit log sink. Best-effort: a failed write is logged and
swallowed so it can never fail the operation being audited.
"""

from __future__ import annotations

from typing import Any, Protocol

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from tasktrack.core.database import store_errors
from tasktrack.core.errors import TaskTrackError
from tasktrack.models.notification import ActivityLog
from tasktrack.schemas.effects import AuditEntry

log = structlog.get_logger()

SENSITIVE_KEYS = (
    "password",
    "passwordHash",
    "password_hash",
    "token",
    "secret",
    "apiKey",
    "api_key",
    "accessToken",
    "refreshToken",
)


def sanitize_details(details: Any) -> dict:
    """Redact sensitive keys, recursing into nested dicts."""
    if not isinstance(details, dict):
        return {}
    sanitized = dict(details)
    for key in SENSITIVE_KEYS:
        if key in sanitized:
            sanitized[key] = "[REDACTED]"
    for key, value in sanitized.items():
        if isinstance(value, dict):
            sanitized[key] = sanitize_details(value)
    return sanitized


class AuditLog(Protocol):
    async def record(self, entry: AuditEntry) -> None: ...


class SqlAuditLog:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(self, entry: AuditEntry) -> None:
        try:
            with store_errors("audit_record"):
                if entry.dedupe_key:
                    result = await self.session.execute(
                        select(ActivityLog.id).where(ActivityLog.dedupe_key == entry.dedupe_key)
                    )
                    if result.first() is not None:
                        return
                details = sanitize_details(entry.details)
                self.session.add(
                    ActivityLog(
                        action_type=entry.action_type,
                        action_category=entry.action_category,
                        action_summary=entry.summary,
                        action_details=details or None,
                        entity_type=entry.entity_type,
                        entity_id=entry.entity_id,
                        project_id=entry.project_id,
                        performed_by_id=entry.performed_by_id,
                        affected_user_id=entry.affected_user_id,
                        dedupe_key=entry.dedupe_key,
                    )
                )
                await self.session.commit()
        except TaskTrackError as exc:
            log.warning(
                "audit.record_failed",
                action_type=entry.action_type,
                entity_id=entry.entity_id,
                error=exc.message,
            )
            try:
                await self.session.rollback()
            except SQLAlchemyError as rollback_exc:
                log.warning("audit.rollback_failed", error=str(rollback_exc))
