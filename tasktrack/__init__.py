"""tasktrack: scoped RBAC and task dependency tracking."""

__version__ = "0.1.0"
