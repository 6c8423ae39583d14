"""
Notification sink. Delivery (email/push) happens elsewhere; this only
persists in-app notification rows.
"""

from __future__ import annotations

from typing import Optional, Protocol, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from tasktrack.core.database import store_errors
from tasktrack.models.notification import Notification
from tasktrack.schemas.common import NotificationType
from tasktrack.schemas.effects import NotificationPayload

log = structlog.get_logger()


class Notifier(Protocol):
    async def notify(
        self,
        user_id: int,
        title: str,
        message: str,
        type: NotificationType = NotificationType.INFO,
        link_url: Optional[str] = None,
    ) -> int: ...

    async def notify_many(self, payloads: Sequence[NotificationPayload]) -> int: ...


class SqlNotifier:
    """Writes ``notifications`` rows; payloads whose dedupe key already exists are skipped."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def notify(
        self,
        user_id: int,
        title: str,
        message: str,
        type: NotificationType = NotificationType.INFO,
        link_url: Optional[str] = None,
    ) -> int:
        return await self.notify_many(
            [NotificationPayload(user_id=user_id, title=title, message=message, type=type, link_url=link_url)]
        )

    async def notify_many(self, payloads: Sequence[NotificationPayload]) -> int:
        if not payloads:
            return 0
        with store_errors("notify_many"):
            keys = [p.dedupe_key for p in payloads if p.dedupe_key]
            seen: set[str] = set()
            if keys:
                result = await self.session.execute(
                    select(Notification.dedupe_key).where(Notification.dedupe_key.in_(keys))
                )
                seen = {row[0] for row in result.all()}

            count = 0
            for p in payloads:
                if p.dedupe_key and p.dedupe_key in seen:
                    continue
                if p.dedupe_key:
                    seen.add(p.dedupe_key)
                self.session.add(
                    Notification(
                        user_id=p.user_id,
                        title=p.title,
                        message=p.message,
                        type=p.type.value,
                        link_url=p.link_url,
                        dedupe_key=p.dedupe_key,
                    )
                )
                count += 1
            await self.session.commit()

        log.info("notifications.created", count=count, skipped=len(payloads) - count)
        return count
