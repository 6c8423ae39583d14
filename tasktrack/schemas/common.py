from enum import Enum


class LegacyStatus(str, Enum):
    """Free-form legacy status strings the engine understands."""

    PENDING = "pending"
    WAITING = "waiting"
    COMPLETED = "completed"


class ScopeType(str, Enum):
    GLOBAL = "global"
    PROJECT = "project"


class TransitionKind(str, Enum):
    BLOCKED = "blocked"
    UNBLOCKED = "unblocked"
    DEPENDENCY_ADDED = "dependency_added"
    DEPENDENCY_REMOVED = "dependency_removed"


class NotificationType(str, Enum):
    INFO = "info"
    TASK_BLOCKED = "task_blocked"
    TASK_UNBLOCKED = "task_unblocked"
    DEPENDENCY = "dependency"
