"""ORM models registered on the shared metadata."""

from .audit import AuditAction, AuditEntityType, AuditLogEntry
from .fleet import ApprovalStatus, Maintenance, Transaction, Vehicle
from .rbac import DepartmentAssignment, Role, RolePermission, UserRoleAssignment
from .user import DEFAULT_TRUST_SCORE, User, UserStatus

__all__ = [
    "ApprovalStatus",
    "AuditAction",
    "AuditEntityType",
    "AuditLogEntry",
    "DEFAULT_TRUST_SCORE",
    "DepartmentAssignment",
    "Maintenance",
    "Role",
    "RolePermission",
    "Transaction",
    "User",
    "UserRoleAssignment",
    "UserStatus",
    "Vehicle",
]
