from .service import (
    UserConflictError,
    UserError,
    UserNotFoundError,
    UsersService,
    UserValidationError,
)

__all__ = [
    "UserConflictError",
    "UserError",
    "UserNotFoundError",
    "UserValidationError",
    "UsersService",
]
