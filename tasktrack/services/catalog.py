"""
Static permission catalog, system roles and default task statuses.

Permission keys are dotted ``module.action`` strings. The catalog is seeded
once (see ``roles.seed_catalog``) and never mutated by normal operation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

PERMISSIONS: dict[str, dict[str, str]] = {
    "USER": {
        "CREATE": "user.create",
        "READ": "user.read",
        "UPDATE": "user.update",
        "DELETE": "user.delete",
        "ASSIGN_ROLE": "user.assign_role",
        "ACTIVATE": "user.activate",
        "DEACTIVATE": "user.deactivate",
    },
    "TEAM": {
        "CREATE": "team.create",
        "READ": "team.read",
        "UPDATE": "team.update",
        "DELETE": "team.delete",
        "ADD_MEMBER": "team.add_member",
        "REMOVE_MEMBER": "team.remove_member",
        "ASSIGN_PROJECT": "team.assign_project",
        "REMOVE_PROJECT": "team.remove_project",
    },
    "PROJECT": {
        "CREATE": "project.create",
        "READ": "project.read",
        "UPDATE": "project.update",
        "DELETE": "project.delete",
        "ASSIGN_TEAM": "project.assign_team",
        "REMOVE_TEAM": "project.remove_team",
        "MANAGE_SETTINGS": "project.manage_settings",
    },
    "TASK": {
        "CREATE": "task.create",
        "READ": "task.read",
        "UPDATE": "task.update",
        "DELETE": "task.delete",
        "ASSIGN": "task.assign",
        "CHANGE_STATUS": "task.change_status",
        "CHANGE_PRIORITY": "task.change_priority",
    },
    "DEPENDENCY": {
        "CREATE": "dependency.create",
        "READ": "dependency.read",
        "UPDATE": "dependency.update",
        "DELETE": "dependency.delete",
        "MANUAL_UNBLOCK": "dependency.manual_unblock",
    },
    "TODAY_TASK": {
        "ASSIGN": "today_task.assign",
        "REMOVE": "today_task.remove",
        "REORDER": "today_task.reorder",
        "VIEW_ALL": "today_task.view_all",
    },
    "SETTINGS": {
        "GLOBAL_READ": "settings.global.read",
        "GLOBAL_EDIT": "settings.global.edit",
        "PROJECT_READ": "settings.project.read",
        "PROJECT_EDIT": "settings.project.edit",
        "USER_READ": "settings.user.read",
        "USER_EDIT": "settings.user.edit",
    },
    "NOTIFICATION": {
        "VIEW": "notification.view",
        "MANAGE": "notification.manage",
        "CONFIGURE": "notification.configure",
    },
    "LOG": {
        "VIEW": "log.view",
        "EXPORT": "log.export",
        "VIEW_DETAILS": "log.view_details",
    },
    "ROLE": {
        "CREATE": "role.create",
        "READ": "role.read",
        "UPDATE": "role.update",
        "DELETE": "role.delete",
        "ASSIGN": "role.assign",
        "MANAGE_PERMISSIONS": "role.manage_permissions",
    },
    "REPORT": {
        "VIEW": "report.view",
        "EXPORT": "report.export",
        "GENERATE": "report.generate",
    },
}

# Checks for these keys must pass the owning project's id as scope; without
# one only global bindings are consulted.
PROJECT_SCOPED_PERMISSIONS: frozenset[str] = frozenset(
    {
        "project.read",
        "project.update",
        "project.manage_settings",
        "task.create",
        "task.read",
        "task.update",
        "task.delete",
        "task.assign",
        "task.change_status",
        "task.change_priority",
        "dependency.create",
        "dependency.read",
        "dependency.update",
        "dependency.delete",
        "dependency.manual_unblock",
        "settings.project.read",
        "settings.project.edit",
    }
)

ADMIN_ROLE = "admin"

SYSTEM_ROLES: list[tuple[str, str]] = [
    (ADMIN_ROLE, "System Administrator with full access"),
    ("project_manager", "Project Manager"),
    ("team_lead", "Team Lead"),
    ("developer", "Developer"),
    ("viewer", "Read-only access"),
]


@dataclass(frozen=True)
class StatusSeed:
    name: str
    color: str
    order_index: int
    is_default: bool = False
    is_final: bool = False
    is_blocking: bool = False


DEFAULT_TASK_STATUSES: list[StatusSeed] = [
    StatusSeed("Pending", "#6b7280", 1, is_default=True),
    StatusSeed("In Progress", "#3b82f6", 2),
    StatusSeed("In Review", "#f59e0b", 3),
    StatusSeed("Blocked", "#ef4444", 4, is_blocking=True),
    StatusSeed("Completed", "#10b981", 5, is_final=True),
    StatusSeed("Cancelled", "#6b7280", 6, is_final=True),
]


def all_permission_keys() -> list[str]:
    return [key for module in PERMISSIONS.values() for key in module.values()]


@dataclass(frozen=True)
class PermissionSpec:
    key: str
    module: str
    name: str
    category: Optional[str]
    description: str


def describe(key: str) -> PermissionSpec:
    """Derive module, display name and category from a dotted key.

    ``settings.global.read`` -> module ``settings``, category ``global``,
    name ``Global.Read``.
    """
    module, *action_parts = key.split(".")
    action = ".".join(action_parts)
    category = action_parts[0] if len(action_parts) > 1 else None
    return PermissionSpec(
        key=key,
        module=module,
        name=action.replace("_", " ").title(),
        category=category,
        description="Permission to " + action.replace("_", " "),
    )
