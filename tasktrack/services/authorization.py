"""
Scoped permission checks.

Every authorization decision in the service layer goes through
``AuthorizationResolver``; role names are never compared directly. Results
are computed fresh on each call.
"""

from __future__ import annotations

from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from tasktrack.core.config import get_settings
from tasktrack.core.errors import PermissionDenied
from tasktrack.services.permission_store import PermissionStore

log = structlog.get_logger()
settings = get_settings()


class AuthorizationResolver:
    def __init__(self, session: AsyncSession, store: Optional[PermissionStore] = None):
        self.store = store or PermissionStore(session)

    async def has_permission(
        self, user_id: int, permission: str, scope: Optional[int] = None
    ) -> bool:
        """Allow if any global binding, or any binding on project ``scope``, grants ``permission``.

        Unknown users and unknown keys are simply denied.
        """
        for binding in await self.store.list_bindings(user_id, scope):
            if permission in binding.permission_keys:
                return True
        return False

    async def get_permissions_list(self, user_id: int, scope: Optional[int] = None) -> set[str]:
        """Every key ``has_permission`` would allow for this user at ``scope``."""
        keys: set[str] = set()
        for binding in await self.store.list_bindings(user_id, scope):
            keys |= binding.permission_keys
        return keys

    async def is_admin(self, user_id: int) -> bool:
        """Named-role lookup for UI hints. Not a substitute for a permission check."""
        return await self.store.has_role(user_id, settings.admin_role_name)

    async def require(self, user_id: int, permission: str, scope: Optional[int] = None) -> None:
        if not await self.has_permission(user_id, permission, scope):
            log.info("rbac.denied", user_id=user_id, permission=permission, scope=scope)
            raise PermissionDenied(permission, scope)
