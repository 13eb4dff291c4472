"""Canonical permission and system role registry.

Role administration validates permission tokens against this catalog. The
evaluator itself treats tokens as opaque strings, so tokens that were stored
before a registry change keep evaluating until an administrator edits the
role.
"""

from __future__ import annotations

from fleet_api.core.rbac.types import PermissionDef, SystemRoleDef

ADMIN_ROLE_NAME = "ADMIN"


def _permission(*, key: str, category: str, label: str, description: str) -> PermissionDef:
    return PermissionDef(key=key, category=category, label=label, description=description)


PERMISSIONS: tuple[PermissionDef, ...] = (
    # Dashboard ------------------------------------------------------------
    _permission(
        key="view_dashboard",
        category="dashboard",
        label="View dashboard",
        description="Access the main dashboard.",
    ),
    _permission(
        key="customize_dashboard",
        category="dashboard",
        label="Customize dashboard",
        description="Rearrange and configure dashboard widgets.",
    ),
    _permission(
        key="export_dashboard",
        category="dashboard",
        label="Export dashboard",
        description="Export dashboard data.",
    ),
    # Users ----------------------------------------------------------------
    _permission(
        key="view_users",
        category="users",
        label="View users",
        description="View the user list and profiles.",
    ),
    _permission(
        key="create_users",
        category="users",
        label="Create users",
        description="Create new user accounts.",
    ),
    _permission(
        key="edit_users",
        category="users",
        label="Edit users",
        description="Modify user accounts.",
    ),
    _permission(
        key="delete_users",
        category="users",
        label="Delete users",
        description="Remove user accounts.",
    ),
    _permission(
        key="assign_roles",
        category="users",
        label="Assign roles",
        description="Assign and remove roles on user accounts.",
    ),
    _permission(
        key="manage_roles",
        category="users",
        label="Manage roles",
        description="Create, edit and delete roles.",
    ),
    # Vehicles -------------------------------------------------------------
    _permission(
        key="view_vehicles",
        category="vehicles",
        label="View vehicles",
        description="View vehicle information.",
    ),
    _permission(
        key="create_vehicles",
        category="vehicles",
        label="Create vehicles",
        description="Register new vehicles.",
    ),
    _permission(
        key="edit_vehicles",
        category="vehicles",
        label="Edit vehicles",
        description="Modify vehicle details.",
    ),
    _permission(
        key="delete_vehicles",
        category="vehicles",
        label="Delete vehicles",
        description="Remove or archive vehicles.",
    ),
    _permission(
        key="track_vehicles",
        category="vehicles",
        label="Track vehicles",
        description="View live GPS positions.",
    ),
    _permission(
        key="assign_vehicles",
        category="vehicles",
        label="Assign vehicles",
        description="Assign vehicles to drivers.",
    ),
    _permission(
        key="update_vehicle_status",
        category="vehicles",
        label="Update vehicle status",
        description="Report mileage and operational status of an assigned vehicle.",
    ),
    # Financial ------------------------------------------------------------
    _permission(
        key="view_transactions",
        category="financial",
        label="View transactions",
        description="View financial transactions.",
    ),
    _permission(
        key="create_transactions",
        category="financial",
        label="Create transactions",
        description="Record new transactions.",
    ),
    _permission(
        key="edit_transactions",
        category="financial",
        label="Edit transactions",
        description="Modify recorded transactions.",
    ),
    _permission(
        key="delete_transactions",
        category="financial",
        label="Delete transactions",
        description="Remove recorded transactions.",
    ),
    _permission(
        key="approve_expenses",
        category="financial",
        label="Approve expenses",
        description="Approve pending expense transactions.",
    ),
    _permission(
        key="view_financial_reports",
        category="financial",
        label="View financial reports",
        description="Access financial reports.",
    ),
    # Maintenance ----------------------------------------------------------
    _permission(
        key="view_maintenance",
        category="maintenance",
        label="View maintenance",
        description="View maintenance records.",
    ),
    _permission(
        key="schedule_maintenance",
        category="maintenance",
        label="Schedule maintenance",
        description="Plan service visits.",
    ),
    _permission(
        key="approve_maintenance",
        category="maintenance",
        label="Approve maintenance",
        description="Approve pending maintenance costs.",
    ),
    _permission(
        key="edit_maintenance",
        category="maintenance",
        label="Edit maintenance",
        description="Modify maintenance records.",
    ),
    _permission(
        key="delete_maintenance",
        category="maintenance",
        label="Delete maintenance",
        description="Remove maintenance records.",
    ),
    _permission(
        key="track_service_history",
        category="maintenance",
        label="Track service history",
        description="View the service history of vehicles.",
    ),
    # Reports --------------------------------------------------------------
    _permission(
        key="view_reports",
        category="reports",
        label="View reports",
        description="Access analytics and reports.",
    ),
    _permission(
        key="generate_reports",
        category="reports",
        label="Generate reports",
        description="Generate new reports.",
    ),
    _permission(
        key="export_reports",
        category="reports",
        label="Export reports",
        description="Export reports to files.",
    ),
    # Drivers & distribution ----------------------------------------------
    _permission(
        key="driver_access",
        category="distribution",
        label="Driver access",
        description="Driver-specific features such as route confirmation.",
    ),
    _permission(
        key="report_issues",
        category="distribution",
        label="Report issues",
        description="Report vehicle issues from the road.",
    ),
    _permission(
        key="view_personal_history",
        category="distribution",
        label="View personal history",
        description="View one's own trips and logins.",
    ),
    _permission(
        key="view_distribution",
        category="distribution",
        label="View distribution",
        description="View newspaper distribution data.",
    ),
    _permission(
        key="manage_distribution",
        category="distribution",
        label="Manage distribution",
        description="Full control over newspaper distribution.",
    ),
    # System ---------------------------------------------------------------
    _permission(
        key="system_settings",
        category="system",
        label="System settings",
        description="Access system configuration.",
    ),
)

PERMISSION_REGISTRY: dict[str, PermissionDef] = {definition.key: definition for definition in PERMISSIONS}


SYSTEM_ROLES: tuple[SystemRoleDef, ...] = (
    SystemRoleDef(
        name=ADMIN_ROLE_NAME,
        display_name="System Administrator",
        description="Full system access with all permissions.",
        permissions=tuple(defn.key for defn in PERMISSIONS),
        priority=100,
        is_protected=True,
    ),
    SystemRoleDef(
        name="FLEET_MANAGER",
        display_name="Fleet Manager",
        description="Manages fleet operations, maintenance scheduling and driver assignments.",
        permissions=(
            "view_dashboard",
            "customize_dashboard",
            "export_dashboard",
            "view_users",
            "view_vehicles",
            "edit_vehicles",
            "track_vehicles",
            "assign_vehicles",
            "view_transactions",
            "create_transactions",
            "edit_transactions",
            "approve_expenses",
            "view_maintenance",
            "schedule_maintenance",
            "approve_maintenance",
            "edit_maintenance",
            "view_reports",
            "generate_reports",
        ),
        dynamic_rules={"departmentRestriction": True, "timeRestriction": True, "budgetLimit": 1000},
        priority=50,
    ),
    SystemRoleDef(
        name="DRIVER",
        display_name="Driver",
        description="Operates assigned vehicles and reports maintenance issues.",
        permissions=(
            "view_dashboard",
            "view_vehicles",
            "update_vehicle_status",
            "report_issues",
            "view_personal_history",
            "driver_access",
        ),
        dynamic_rules={"departmentRestriction": True},
        priority=10,
    ),
    SystemRoleDef(
        name="ACCOUNTANT",
        display_name="Accountant",
        description="Manages financial records, transactions and reporting.",
        permissions=(
            "view_dashboard",
            "view_transactions",
            "create_transactions",
            "edit_transactions",
            "view_financial_reports",
            "generate_reports",
            "export_reports",
        ),
        dynamic_rules={"timeRestriction": True, "budgetLimit": 5000},
        priority=40,
    ),
)

SYSTEM_ROLE_BY_NAME: dict[str, SystemRoleDef] = {definition.name: definition for definition in SYSTEM_ROLES}


def is_registered_permission(key: str) -> bool:
    return key in PERMISSION_REGISTRY


__all__ = [
    "ADMIN_ROLE_NAME",
    "PERMISSION_REGISTRY",
    "PERMISSIONS",
    "SYSTEM_ROLE_BY_NAME",
    "SYSTEM_ROLES",
    "is_registered_permission",
]
