"""Role administration: CRUD, department scopes, assignments and audit."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from fleet_api.common.logging import log_context
from fleet_api.core.rbac.registry import (
    SYSTEM_ROLE_BY_NAME,
    SYSTEM_ROLES,
    is_registered_permission,
)
from fleet_api.core.rbac.rules import (
    InvalidRuleDocumentError,
    parse_dynamic_rules,
    rules_to_document,
)
from fleet_api.features.audit import AuditRecord, AuditService
from fleet_api.models import (
    AuditAction,
    AuditEntityType,
    DepartmentAssignment,
    Role,
    RolePermission,
    User,
    UserRoleAssignment,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Exceptions / DTOs
# ---------------------------------------------------------------------------


class RoleError(ValueError):
    """Base class for role management errors."""


class RoleValidationError(RoleError):
    """Raised when a role payload is invalid."""


class RoleNotFoundError(RoleError):
    """Raised when a role cannot be located."""


class RoleImmutableError(RoleError):
    """Raised when attempting to mutate a protected or system role."""


class RoleConflictError(RoleError):
    """Raised when a role operation would violate uniqueness constraints."""


class AssignmentError(ValueError):
    """Base class for assignment errors."""


class AssignmentNotFoundError(AssignmentError):
    """Raised when a role assignment cannot be located."""


@dataclass(frozen=True)
class DepartmentScope:
    """Department a role is scoped to."""

    department: str
    can_manage: bool = False


@dataclass(frozen=True)
class ActorContext:
    """Who performed an administrative change, for the audit trail."""

    actor_id: UUID | None = None
    ip_address: str | None = None
    user_agent: str | None = None


_SYSTEM_ACTOR = ActorContext()

_NAME_PATTERN = re.compile(r"[^A-Z0-9]+")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _normalize_role_name(value: str) -> str:
    candidate = _NAME_PATTERN.sub("_", value.strip().upper()).strip("_")
    if not candidate:
        raise RoleValidationError("Role name is required")
    return candidate


def _normalize_text(value: str | None) -> str | None:
    if value is None:
        return None
    candidate = value.strip()
    return candidate or None


def collect_permission_keys(keys: Iterable[str]) -> tuple[str, ...]:
    """Return normalized permission keys enforcing registry membership."""

    normalized: list[str] = []
    for key in keys:
        candidate = str(key).strip()
        if not candidate:
            raise RoleValidationError("Permission key cannot be blank")
        if not is_registered_permission(candidate):
            raise RoleValidationError(f"Permission '{candidate}' is not registered")
        normalized.append(candidate)
    return tuple(dict.fromkeys(normalized))


def collect_departments(scopes: Iterable[DepartmentScope]) -> dict[str, bool]:
    """Return ``department -> can_manage``; later duplicates win."""

    departments: dict[str, bool] = {}
    for scope in scopes:
        name = scope.department.strip()
        if not name:
            raise RoleValidationError("Department name cannot be blank")
        departments[name] = bool(scope.can_manage)
    return departments


def normalize_dynamic_rules(document: Mapping[str, Any] | None) -> dict[str, Any] | None:
    """Validate a rules document and return its canonical form."""

    try:
        rules = parse_dynamic_rules(document)
    except InvalidRuleDocumentError as exc:
        raise RoleValidationError(str(exc)) from exc
    if not rules:
        return None
    return rules_to_document(rules)


def role_snapshot(role: Role) -> dict[str, Any]:
    """Serializable view of a role for audit entries."""

    return {
        "id": role.id,
        "name": role.name,
        "display_name": role.display_name,
        "description": role.description,
        "is_protected": role.is_protected,
        "is_active": role.is_active,
        "priority": role.priority,
        "permissions": sorted(role.permission_keys),
        "departments": [
            {"department": da.department, "can_manage": da.can_manage}
            for da in sorted(role.department_assignments, key=lambda item: item.department)
        ],
        "dynamic_rules": role.dynamic_rules,
    }


# ---------------------------------------------------------------------------
# Roles service
# ---------------------------------------------------------------------------


class RolesService:
    """Role CRUD, department scopes, user assignments and system role sync."""

    def __init__(self, *, session: AsyncSession) -> None:
        self._session = session
        self._audit = AuditService(session=session)

    # ------------- queries -----------------------

    def _role_query(self):
        return select(Role).options(
            selectinload(Role.permissions),
            selectinload(Role.department_assignments),
        )

    async def list_roles(self) -> list[Role]:
        stmt = self._role_query().order_by(Role.priority.desc(), Role.name)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def get_role(self, role_id: int) -> Role | None:
        stmt = self._role_query().where(Role.id == role_id)
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def get_role_by_name(self, name: str) -> Role | None:
        stmt = self._role_query().where(Role.name == _normalize_role_name(name))
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def _require_role(self, role_id: int) -> Role:
        role = await self.get_role(role_id)
        if role is None:
            raise RoleNotFoundError("Role not found")
        return role

    async def count_assignments(self, role_id: int) -> int:
        stmt = (
            select(func.count())
            .select_from(UserRoleAssignment)
            .where(UserRoleAssignment.role_id == role_id)
        )
        result = await self._session.execute(stmt)
        return int(result.scalar_one() or 0)

    # ------------- registry sync -----------------

    async def sync_system_roles(self) -> None:
        """Ensure the built-in roles exist.

        Missing roles are created from their definition. Protected roles are
        brought back in line with their definition on every sync; other
        existing system roles keep whatever administrators configured.
        """

        logger.debug("roles.system.sync.start")

        created = 0
        for definition in SYSTEM_ROLES:
            role = await self.get_role_by_name(definition.name)
            if role is None:
                role = Role(
                    name=definition.name,
                    display_name=definition.display_name,
                    description=definition.description,
                    is_protected=definition.is_protected,
                    priority=definition.priority,
                    dynamic_rules=normalize_dynamic_rules(definition.dynamic_rules),
                    permissions=[
                        RolePermission(permission=key)
                        for key in collect_permission_keys(definition.permissions)
                    ],
                    department_assignments=[],
                )
                self._session.add(role)
                created += 1
                continue

            if definition.is_protected:
                role.display_name = definition.display_name
                role.description = definition.description
                role.is_protected = True
                role.is_active = True
                role.priority = definition.priority
                role.dynamic_rules = normalize_dynamic_rules(definition.dynamic_rules)
                self._replace_permissions(role, collect_permission_keys(definition.permissions))

        await self._session.flush()
        logger.debug(
            "roles.system.sync.success",
            extra={"total": len(SYSTEM_ROLES), "created": created},
        )

    # ------------- role CRUD ---------------------

    async def create_role(
        self,
        *,
        name: str,
        display_name: str | None = None,
        description: str | None = None,
        permissions: Sequence[str] = (),
        departments: Sequence[DepartmentScope] = (),
        dynamic_rules: Mapping[str, Any] | None = None,
        priority: int = 0,
        is_active: bool = True,
        actor: ActorContext = _SYSTEM_ACTOR,
    ) -> Role:
        normalized_name = _normalize_role_name(name)
        if normalized_name in SYSTEM_ROLE_BY_NAME:
            raise RoleConflictError("Name conflicts with a system role")
        if await self.get_role_by_name(normalized_name) is not None:
            raise RoleConflictError("Role name already exists")

        permission_keys = collect_permission_keys(permissions)
        department_map = collect_departments(departments)
        rules_document = normalize_dynamic_rules(dynamic_rules)

        role = Role(
            name=normalized_name,
            display_name=_normalize_text(display_name) or normalized_name,
            description=_normalize_text(description),
            is_protected=False,
            is_active=is_active,
            priority=priority,
            dynamic_rules=rules_document,
            created_by_id=actor.actor_id,
            updated_by_id=actor.actor_id,
            permissions=[RolePermission(permission=key) for key in permission_keys],
            department_assignments=[
                DepartmentAssignment(department=department, can_manage=can_manage)
                for department, can_manage in department_map.items()
            ],
        )
        self._session.add(role)
        try:
            await self._session.flush()
        except IntegrityError as exc:
            raise RoleConflictError("Role name already exists") from exc

        await self._audit_role(AuditAction.CREATE, role, actor=actor, new_value=role_snapshot(role))
        logger.info(
            "roles.create.success",
            extra=log_context(user_id=actor.actor_id, role_id=role.id, name=role.name),
        )
        return role

    async def update_role(
        self,
        *,
        role_id: int,
        name: str | None = None,
        display_name: str | None = None,
        description: str | None = None,
        permissions: Sequence[str] | None = None,
        departments: Sequence[DepartmentScope] | None = None,
        dynamic_rules: Mapping[str, Any] | None = None,
        priority: int | None = None,
        is_active: bool | None = None,
        actor: ActorContext = _SYSTEM_ACTOR,
    ) -> Role:
        """Apply a partial update; ``None`` leaves a field unchanged.

        Pass an empty mapping as ``dynamic_rules`` to clear the rules.
        """

        role = await self._require_role(role_id)
        if role.is_protected:
            raise RoleImmutableError("Protected roles cannot be edited")

        before = role_snapshot(role)

        if name is not None:
            normalized_name = _normalize_role_name(name)
            if normalized_name != role.name:
                if role.name in SYSTEM_ROLE_BY_NAME:
                    raise RoleImmutableError("System roles cannot be renamed")
                if normalized_name in SYSTEM_ROLE_BY_NAME:
                    raise RoleConflictError("Name conflicts with a system role")
                if await self.get_role_by_name(normalized_name) is not None:
                    raise RoleConflictError("Role name already exists")
                role.name = normalized_name
        if display_name is not None:
            role.display_name = _normalize_text(display_name) or role.name
        if description is not None:
            role.description = _normalize_text(description)
        if priority is not None:
            role.priority = priority
        if is_active is not None:
            role.is_active = is_active
        if dynamic_rules is not None:
            role.dynamic_rules = normalize_dynamic_rules(dynamic_rules)
        if permissions is not None:
            self._replace_permissions(role, collect_permission_keys(permissions))
        if departments is not None:
            self._replace_departments(role, collect_departments(departments))

        role.updated_by_id = actor.actor_id
        await self._session.flush()

        await self._audit_role(
            AuditAction.UPDATE,
            role,
            actor=actor,
            old_value=before,
            new_value=role_snapshot(role),
        )
        logger.info(
            "roles.update.success",
            extra=log_context(user_id=actor.actor_id, role_id=role.id),
        )
        return role

    async def delete_role(self, *, role_id: int, actor: ActorContext = _SYSTEM_ACTOR) -> None:
        role = await self._require_role(role_id)
        if role.is_protected or role.name in SYSTEM_ROLE_BY_NAME:
            raise RoleImmutableError("System roles cannot be deleted")

        assigned = await self.count_assignments(role.id)
        if assigned:
            raise RoleConflictError(f"Role is assigned to {assigned} user(s)")

        before = role_snapshot(role)
        await self._session.delete(role)
        await self._session.flush()

        await self._audit_role(AuditAction.DELETE, role, actor=actor, old_value=before)
        logger.info(
            "roles.delete.success",
            extra=log_context(user_id=actor.actor_id, role_id=role_id),
        )

    def _replace_permissions(self, role: Role, permission_keys: Sequence[str]) -> None:
        desired = set(permission_keys)
        current = {rp.permission: rp for rp in role.permissions}
        for key, grant in current.items():
            if key not in desired:
                role.permissions.remove(grant)
        for key in permission_keys:
            if key not in current:
                role.permissions.append(RolePermission(permission=key))

    def _replace_departments(self, role: Role, departments: Mapping[str, bool]) -> None:
        current = {da.department: da for da in role.department_assignments}
        for department, assignment in current.items():
            if department not in departments:
                role.department_assignments.remove(assignment)
        for department, can_manage in departments.items():
            existing = current.get(department)
            if existing is None:
                role.department_assignments.append(
                    DepartmentAssignment(department=department, can_manage=can_manage)
                )
            else:
                existing.can_manage = can_manage

    # ------------- assignments -------------------

    async def get_assignment(self, *, user_id: UUID, role_id: int) -> UserRoleAssignment | None:
        stmt = select(UserRoleAssignment).where(
            UserRoleAssignment.user_id == user_id,
            UserRoleAssignment.role_id == role_id,
        )
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def list_user_roles(self, user_id: UUID) -> list[Role]:
        stmt = (
            self._role_query()
            .join(UserRoleAssignment, UserRoleAssignment.role_id == Role.id)
            .where(UserRoleAssignment.user_id == user_id)
            .order_by(Role.id)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def assign_role(
        self,
        *,
        user_id: UUID,
        role_id: int,
        actor: ActorContext = _SYSTEM_ACTOR,
    ) -> UserRoleAssignment:
        """Assign ``role_id`` to ``user_id``; existing assignments are returned as-is."""

        role = await self._require_role(role_id)
        user = await self._session.get(User, user_id)
        if user is None:
            raise AssignmentError("User not found")

        existing = await self.get_assignment(user_id=user.id, role_id=role.id)
        if existing is not None:
            return existing

        assignment = UserRoleAssignment(user_id=user.id, role_id=role.id)
        self._session.add(assignment)
        try:
            await self._session.flush([assignment])
        except IntegrityError as exc:
            logger.debug(
                "roles.assign.conflict",
                extra=log_context(user_id=user_id, role_id=role_id),
            )
            raise RoleConflictError("Assignment already exists") from exc

        await self._audit_assignment(AuditAction.ASSIGN, user_id=user.id, role=role, actor=actor)
        return assignment

    async def unassign_role(
        self,
        *,
        user_id: UUID,
        role_id: int,
        actor: ActorContext = _SYSTEM_ACTOR,
    ) -> None:
        assignment = await self.get_assignment(user_id=user_id, role_id=role_id)
        if assignment is None:
            raise AssignmentNotFoundError("Role assignment not found")
        role = await self._require_role(role_id)

        await self._session.delete(assignment)
        await self._session.flush()

        await self._audit_assignment(AuditAction.UNASSIGN, user_id=user_id, role=role, actor=actor)

    # ------------- audit -------------------------

    async def _audit_role(
        self,
        action: AuditAction,
        role: Role,
        *,
        actor: ActorContext,
        old_value: dict[str, Any] | None = None,
        new_value: dict[str, Any] | None = None,
    ) -> None:
        await self._audit.record(
            AuditRecord(
                action=action,
                entity_type=AuditEntityType.ROLE,
                entity_id=str(role.id),
                actor_id=actor.actor_id,
                old_value=old_value,
                new_value=new_value,
                ip_address=actor.ip_address,
                user_agent=actor.user_agent,
            )
        )

    async def _audit_assignment(
        self,
        action: AuditAction,
        *,
        user_id: UUID,
        role: Role,
        actor: ActorContext,
    ) -> None:
        value = {"role_id": role.id, "role_name": role.name}
        await self._audit.record(
            AuditRecord(
                action=action,
                entity_type=AuditEntityType.USER,
                entity_id=str(user_id),
                actor_id=actor.actor_id,
                old_value=value if action is AuditAction.UNASSIGN else None,
                new_value=value if action is AuditAction.ASSIGN else None,
                ip_address=actor.ip_address,
                user_agent=actor.user_agent,
            )
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
    "collect_departments",
    "collect_permission_keys",
    "normalize_dynamic_rules",
    "role_snapshot",
]
