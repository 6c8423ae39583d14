# SQLModel definitions; imported here to ensure metadata is populated for create_all.
from .base import IntIDMixin, TimestampMixin  # noqa: F401
from .user import User  # noqa: F401
from .rbac import Permission, Role, RolePermission, UserRole  # noqa: F401
from .task import Task, TaskAssignee, TaskStatus  # noqa: F401
from .dependency import TaskDependency  # noqa: F401
from .notification import ActivityLog, Notification  # noqa: F401
