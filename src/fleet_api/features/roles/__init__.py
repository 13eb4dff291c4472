from .service import (
    ActorContext,
    AssignmentError,
    AssignmentNotFoundError,
    DepartmentScope,
    RoleConflictError,
    RoleError,
    RoleImmutableError,
    RoleNotFoundError,
    RolesService,
    RoleValidationError,
)

__all__ = [
    "ActorContext",
    "AssignmentError",
    "AssignmentNotFoundError",
    "DepartmentScope",
    "RoleConflictError",
    "RoleError",
    "RoleImmutableError",
    "RoleNotFoundError",
    "RoleValidationError",
    "RolesService",
]
