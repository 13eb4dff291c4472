"""Dynamic permission evaluation.

Static grants come from the union of permission tokens across a subject's
roles. Each role may also carry a dynamic-rules document which can turn an
allowed check into a denial or into an allow that needs approval. Roles
compose by intersection: any role whose rules deny wins over every other
role.

Every public check resolves to a :class:`PermissionResult`; store failures
are logged and reported as a denial, never raised to the caller.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import ParamSpec
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from fleet_api.common.logging import log_context
from fleet_api.core.rbac.approval import (
    UNAUTHENTICATED_REQUIREMENTS,
    project_requirements,
)
from fleet_api.core.rbac.rules import RuleContext, evaluate_rules, parse_dynamic_rules
from fleet_api.core.rbac.types import (
    ApprovalRequirements,
    DynamicPermissionContext,
    PermissionResult,
)
from fleet_api.db import utc_now
from fleet_api.models import ApprovalStatus, Role, User
from fleet_api.settings import Settings, get_settings

from .repository import PermissionsRepository, roles_in_evaluation_order

logger = logging.getLogger(__name__)

P = ParamSpec("P")

NOT_AUTHENTICATED_REASON = "User not authenticated"
USER_NOT_FOUND_REASON = "User not found"
NOT_GRANTED_REASON = "Permission not granted"
ERROR_REASON = "Error checking permissions"

VEHICLE_NOT_FOUND_REASON = "Vehicle not found"
TRANSACTION_NOT_FOUND_REASON = "Transaction not found"
TRANSACTION_NOT_PENDING_REASON = "Transaction is not pending approval"
MAINTENANCE_NOT_FOUND_REASON = "Maintenance record not found"
MAINTENANCE_NOT_PENDING_REASON = "Maintenance is not pending approval"

FINANCIAL_REPORT_TYPE = "financial"

# Resource name -> context field that carries its identifier.
RESOURCE_CONTEXT_FIELDS: Mapping[str, str] = {
    "vehicles": "vehicle_id",
    "transactions": "transaction_id",
    "maintenance": "maintenance_id",
}

Clock = Callable[[], datetime]


def _fail_closed(
    method: Callable[P, Awaitable[PermissionResult]],
) -> Callable[P, Awaitable[PermissionResult]]:
    """Turn any exception raised by a check into a logged denial."""

    @functools.wraps(method)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> PermissionResult:
        try:
            return await method(*args, **kwargs)
        except Exception:
            logger.exception(
                "permissions.check.error",
                extra=log_context(operation=method.__name__),
            )
            return PermissionResult.deny(ERROR_REASON)

    return wrapper


def permission_token(action: str, resource: str) -> str:
    """Compose the ``<action>_<resource>`` permission token."""

    return f"{action}_{resource}"


@dataclass(frozen=True)
class StaticPermissions:
    """Union of permission tokens granted by a user's roles."""

    user_id: UUID
    permissions: tuple[str, ...]
    role_count: int


class DynamicPermissionService:
    """Evaluate ``(subject, permission, context)`` into a verdict."""

    def __init__(
        self,
        *,
        session: AsyncSession,
        settings: Settings | None = None,
        principal_id: UUID | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._session = session
        self._settings = settings or get_settings()
        self._principal_id = principal_id
        self._clock = clock or utc_now
        self._repo = PermissionsRepository(session)

    @property
    def principal_id(self) -> UUID | None:
        return self._principal_id

    # ------------------------------------------------------------------
    # Rule evaluator
    # ------------------------------------------------------------------

    @_fail_closed
    async def check_permission(
        self,
        permission: str,
        context: DynamicPermissionContext | None = None,
    ) -> PermissionResult:
        """Check ``permission`` for the subject named by ``context``.

        The subject is ``context.user_id`` and falls back to the
        authenticated principal the service was built for.
        """

        context = context or DynamicPermissionContext()
        subject_id = context.user_id or self._principal_id
        if subject_id is None:
            return PermissionResult.deny(NOT_AUTHENTICATED_REASON)

        user = await self._repo.get_user_with_roles(subject_id)
        if user is None:
            logger.debug(
                "permissions.check.user_missing",
                extra=log_context(user_id=subject_id, permission=permission),
            )
            return PermissionResult.deny(USER_NOT_FOUND_REASON)

        roles = roles_in_evaluation_order(user)
        if permission not in _granted_permissions(roles):
            return PermissionResult.deny(NOT_GRANTED_REASON)

        now = self._evaluation_time(context.time)
        pending: PermissionResult | None = None
        for role in roles:
            verdict = self._apply_role_rules(role, user=user, context=context, now=now)
            if verdict is None:
                continue
            if not verdict.allowed:
                logger.debug(
                    "permissions.check.denied",
                    extra=log_context(
                        user_id=user.id,
                        role_id=role.id,
                        permission=permission,
                        reason=verdict.reason,
                    ),
                )
                return verdict
            if verdict.requires_approval:
                pending = verdict

        if pending is not None:
            logger.debug(
                "permissions.check.approval_required",
                extra=log_context(
                    user_id=user.id,
                    permission=permission,
                    approval_level=pending.approval_level.value,
                ),
            )
            return pending
        return PermissionResult.allow()

    def _apply_role_rules(
        self,
        role: Role,
        *,
        user: User,
        context: DynamicPermissionContext,
        now: datetime,
    ) -> PermissionResult | None:
        rules = parse_dynamic_rules(
            role.dynamic_rules,
            default_window=(
                self._settings.business_hours_start,
                self._settings.business_hours_end,
            ),
        )
        if not rules:
            return None
        rule_context = RuleContext(
            context=context,
            now=now,
            trust_score=user.trust_score,
            managed_departments=role.managed_departments,
            missing_context_policy=self._settings.missing_context_policy,
            admin_threshold=self._settings.admin_approval_threshold,
            currency_label=self._settings.currency_label,
        )
        return evaluate_rules(rules, rule_context)

    def _evaluation_time(self, value: datetime | None) -> datetime:
        # Naive times are taken as local wall-clock time.
        if value is None:
            value = self._clock()
        if value.tzinfo is None:
            return value
        return value.astimezone(self._settings.zone)

    # ------------------------------------------------------------------
    # Resource wrappers
    # ------------------------------------------------------------------

    @_fail_closed
    async def can_edit_vehicle(self, user_id: UUID | None, vehicle_id: int) -> PermissionResult:
        vehicle = await self._repo.get_vehicle(vehicle_id)
        if vehicle is None:
            return PermissionResult.deny(VEHICLE_NOT_FOUND_REASON)

        return await self.check_permission(
            "edit_vehicles",
            DynamicPermissionContext(
                user_id=user_id,
                vehicle_id=vehicle_id,
                department=vehicle.department or None,
            ),
        )

    @_fail_closed
    async def can_approve_transaction(
        self,
        user_id: UUID | None,
        transaction_id: int,
    ) -> PermissionResult:
        transaction = await self._repo.get_transaction(transaction_id)
        if transaction is None:
            return PermissionResult.deny(TRANSACTION_NOT_FOUND_REASON)
        if transaction.status != ApprovalStatus.PENDING:
            return PermissionResult.deny(TRANSACTION_NOT_PENDING_REASON)

        return await self.check_permission(
            "approve_expenses",
            DynamicPermissionContext(
                user_id=user_id,
                transaction_id=transaction_id,
                amount=float(transaction.amount),
            ),
        )

    @_fail_closed
    async def can_approve_maintenance(
        self,
        user_id: UUID | None,
        maintenance_id: int,
    ) -> PermissionResult:
        maintenance = await self._repo.get_maintenance(maintenance_id)
        if maintenance is None:
            return PermissionResult.deny(MAINTENANCE_NOT_FOUND_REASON)
        if maintenance.status != ApprovalStatus.PENDING:
            return PermissionResult.deny(MAINTENANCE_NOT_PENDING_REASON)

        return await self.check_permission(
            "approve_maintenance",
            DynamicPermissionContext(
                user_id=user_id,
                maintenance_id=maintenance_id,
                amount=float(maintenance.cost),
            ),
        )

    async def can_access_reports(
        self,
        user_id: UUID | None,
        report_type: str | None = None,
    ) -> PermissionResult:
        context = DynamicPermissionContext(user_id=user_id)
        if report_type == FINANCIAL_REPORT_TYPE:
            context = context.with_values(time=self._clock())
        return await self.check_permission("view_reports", context)

    async def can_perform_action(
        self,
        action: str,
        resource: str,
        resource_id: int | None = None,
        context: DynamicPermissionContext | None = None,
    ) -> PermissionResult:
        """Check ``<action>_<resource>`` with the resource id placed in context.

        Unknown resource names leave the context without an id. The caller's
        context object is never modified.
        """

        context = context or DynamicPermissionContext()
        field_name = RESOURCE_CONTEXT_FIELDS.get(resource)
        if resource_id is not None and field_name is not None:
            context = context.with_values(**{field_name: resource_id})
        return await self.check_permission(permission_token(action, resource), context)

    # ------------------------------------------------------------------
    # Approval policy
    # ------------------------------------------------------------------

    async def get_approval_requirements(
        self,
        action: str,
        resource: str,
        amount: float | None = None,
    ) -> ApprovalRequirements:
        """Project the principal's verdict for an action onto approval fields."""

        if self._principal_id is None:
            return UNAUTHENTICATED_REQUIREMENTS

        result = await self.check_permission(
            permission_token(action, resource),
            DynamicPermissionContext(user_id=self._principal_id, amount=amount),
        )
        return project_requirements(result)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    async def get_user_effective_permissions(
        self,
        user_id: UUID,
        context: DynamicPermissionContext | None = None,
    ) -> dict[str, PermissionResult]:
        """Evaluate every granted token for ``user_id``.

        Runs one full check per token, so it is meant for "what can I do"
        summaries rather than per-request authorization.
        """

        user = await self._load_user_or_none(user_id)
        if user is None:
            return {}

        base = (context or DynamicPermissionContext()).with_values(
            user_id=user.id,
            user_trust_score=user.trust_score,
        )
        tokens = sorted(_granted_permissions(roles_in_evaluation_order(user)))

        snapshot: dict[str, PermissionResult] = {}
        for token in tokens:
            snapshot[token] = await self.check_permission(token, base)
        return snapshot

    async def get_static_permissions(self, user_id: UUID) -> StaticPermissions | None:
        user = await self._repo.get_user_with_roles(user_id)
        if user is None:
            return None
        roles = roles_in_evaluation_order(user)
        return StaticPermissions(
            user_id=user.id,
            permissions=tuple(sorted(_granted_permissions(roles))),
            role_count=len(roles),
        )

    async def _load_user_or_none(self, user_id: UUID) -> User | None:
        try:
            return await self._repo.get_user_with_roles(user_id)
        except Exception:
            logger.exception(
                "permissions.snapshot.error",
                extra=log_context(user_id=user_id),
            )
            return None


def _granted_permissions(roles: list[Role]) -> frozenset[str]:
    return frozenset(token for role in roles for token in role.permission_keys)


__all__ = [
    "DynamicPermissionService",
    "ERROR_REASON",
    "NOT_AUTHENTICATED_REASON",
    "NOT_GRANTED_REASON",
    "RESOURCE_CONTEXT_FIELDS",
    "StaticPermissions",
    "USER_NOT_FOUND_REASON",
    "permission_token",
]
