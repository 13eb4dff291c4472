from .service import DynamicPermissionService, StaticPermissions

__all__ = ["DynamicPermissionService", "StaticPermissions"]
