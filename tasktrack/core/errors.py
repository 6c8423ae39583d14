"""
Error taxonomy for the RBAC resolver and the dependency/status engine.

Every error carries a stable ``code`` and the HTTP ``status`` the API layer
renders it with, so callers can tell "would create a cycle" apart from
"permission denied" without parsing messages.
"""

from __future__ import annotations

from typing import Any, Optional


class TaskTrackError(Exception):
    """Base class for all errors raised by the core."""

    code = "INTERNAL_ERROR"
    status = 500

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "status": self.status}


# ---------------------------------------------------------------------------
# Authentication / authorization
# ---------------------------------------------------------------------------


class Unauthenticated(TaskTrackError):
    code = "UNAUTHORIZED"
    status = 401


class PermissionDenied(TaskTrackError):
    code = "FORBIDDEN"
    status = 403

    def __init__(self, permission: str, scope: Optional[int] = None):
        detail = f"Missing required permission: {permission}"
        if scope is not None:
            detail += f" (project {scope})"
        super().__init__(detail, permission=permission, scope=scope)
        self.permission = permission
        self.scope = scope


# ---------------------------------------------------------------------------
# Graph integrity
# ---------------------------------------------------------------------------


class GraphIntegrityError(TaskTrackError):
    """Caller-input errors on dependency graph mutations. Never retried."""

    code = "CONFLICT"
    status = 409


class SelfDependency(GraphIntegrityError):
    code = "SELF_DEPENDENCY"

    def __init__(self, task_id: int):
        super().__init__("A task cannot depend on itself", task_id=task_id)


class DuplicateEdge(GraphIntegrityError):
    code = "DUPLICATE_DEPENDENCY"

    def __init__(self, task_id: int, depends_on_task_id: int):
        super().__init__(
            "Dependency already exists",
            task_id=task_id,
            depends_on_task_id=depends_on_task_id,
        )


class WouldCreateCycle(GraphIntegrityError):
    code = "DEPENDENCY_CYCLE"

    def __init__(self, task_id: int, depends_on_task_id: int):
        super().__init__(
            "Adding this dependency would create a circular dependency",
            task_id=task_id,
            depends_on_task_id=depends_on_task_id,
        )


class NotFound(TaskTrackError):
    code = "NOT_FOUND"
    status = 404


class TaskNotFound(NotFound):
    def __init__(self, task_id: int):
        super().__init__("Task not found", task_id=task_id)
        self.task_id = task_id


class DependencyNotFound(NotFound):
    def __init__(self, task_id: int, depends_on_task_id: int):
        super().__init__(
            "Dependency not found",
            task_id=task_id,
            depends_on_task_id=depends_on_task_id,
        )


# ---------------------------------------------------------------------------
# Role administration / status input
# ---------------------------------------------------------------------------


class RoleNotFound(NotFound):
    def __init__(self, role_id: int):
        super().__init__("Role not found", role_id=role_id)


class RoleNameTaken(TaskTrackError):
    code = "CONFLICT"
    status = 409

    def __init__(self, name: str):
        super().__init__("Role name already exists", name=name)


class SystemRoleProtected(TaskTrackError):
    code = "BAD_REQUEST"
    status = 400

    def __init__(self, role_id: int):
        super().__init__("Cannot delete system role", role_id=role_id)


class BadRequest(TaskTrackError):
    code = "BAD_REQUEST"
    status = 400


class InvalidStatus(BadRequest):
    pass


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class StoreError(TaskTrackError):
    """Structural store failure that does not map onto the graph taxonomy."""

    code = "STORE_ERROR"
    status = 500


class TransientStoreError(StoreError):
    """Connection loss, lock timeout, serialization failure. Caller may retry."""

    code = "STORE_UNAVAILABLE"
    status = 503
