"""HTTP surface for permission checks.

Verdicts are always returned with ``200 OK``; callers branch on the body.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from fleet_api.app.dependencies import (
    OptionalPrincipalDep,
    PrincipalDep,
    get_permission_service,
)
from fleet_api.core.rbac.types import DynamicPermissionContext

from .schemas import (
    ApprovalRequirementsOut,
    EffectivePermissionsOut,
    PermissionCheckRequest,
    PermissionResultOut,
    StaticPermissionsOut,
)
from .service import DynamicPermissionService

router = APIRouter(tags=["permissions"])

ServiceDep = Annotated[DynamicPermissionService, Depends(get_permission_service)]


# ---------------------------------------------------------------------------
# Current principal
# ---------------------------------------------------------------------------


@router.get(
    "/me/permissions",
    response_model=StaticPermissionsOut,
    summary="List permission tokens granted to the current principal",
    responses={
        status.HTTP_401_UNAUTHORIZED: {"description": "Authentication required."},
        status.HTTP_404_NOT_FOUND: {"description": "User record not found."},
    },
)
async def read_my_permissions(
    principal: PrincipalDep,
    service: ServiceDep,
) -> StaticPermissionsOut:
    snapshot = await service.get_static_permissions(principal.user_id)
    if snapshot is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="User not found")
    return StaticPermissionsOut(
        user_id=snapshot.user_id,
        permissions=list(snapshot.permissions),
        role_count=snapshot.role_count,
    )


@router.get(
    "/me/permissions/effective",
    response_model=EffectivePermissionsOut,
    summary="Evaluate every granted permission for the current principal",
    responses={status.HTTP_401_UNAUTHORIZED: {"description": "Authentication required."}},
)
async def read_my_effective_permissions(
    principal: PrincipalDep,
    service: ServiceDep,
    department: Annotated[str | None, Query(description="Department context.")] = None,
    amount: Annotated[float | None, Query(description="Amount context.")] = None,
) -> EffectivePermissionsOut:
    snapshot = await service.get_user_effective_permissions(
        principal.user_id,
        DynamicPermissionContext(department=department, amount=amount),
    )
    return EffectivePermissionsOut(
        user_id=principal.user_id,
        permissions={
            token: PermissionResultOut.from_result(result) for token, result in snapshot.items()
        },
    )


# ---------------------------------------------------------------------------
# Generic checks
# ---------------------------------------------------------------------------


@router.post(
    "/permissions/check",
    response_model=PermissionResultOut,
    summary="Check a permission for the current principal",
)
async def check_permission(
    payload: PermissionCheckRequest,
    principal: OptionalPrincipalDep,
    service: ServiceDep,
) -> PermissionResultOut:
    user_id = principal.user_id if principal is not None else None
    result = await service.check_permission(
        payload.permission,
        payload.context.to_context(user_id=user_id),
    )
    return PermissionResultOut.from_result(result)


@router.get(
    "/permissions/approval-requirements",
    response_model=ApprovalRequirementsOut,
    summary="Resolve the approval tier for an action",
)
async def read_approval_requirements(
    service: ServiceDep,
    action: Annotated[str, Query(min_length=1, description="Action, e.g. 'approve'.")],
    resource: Annotated[str, Query(min_length=1, description="Resource, e.g. 'expenses'.")],
    amount: Annotated[float | None, Query(description="Monetary amount.")] = None,
) -> ApprovalRequirementsOut:
    requirements = await service.get_approval_requirements(action, resource, amount)
    return ApprovalRequirementsOut.from_requirements(requirements)


# ---------------------------------------------------------------------------
# Resource checks
# ---------------------------------------------------------------------------


@router.get(
    "/vehicles/{vehicle_id}/permissions/edit",
    response_model=PermissionResultOut,
    summary="Check whether the current principal may edit a vehicle",
)
async def check_vehicle_edit(
    vehicle_id: Annotated[int, Path(description="Vehicle identifier")],
    principal: OptionalPrincipalDep,
    service: ServiceDep,
) -> PermissionResultOut:
    user_id = principal.user_id if principal is not None else None
    result = await service.can_edit_vehicle(user_id, vehicle_id)
    return PermissionResultOut.from_result(result)


@router.get(
    "/transactions/{transaction_id}/permissions/approve",
    response_model=PermissionResultOut,
    summary="Check whether the current principal may approve a transaction",
)
async def check_transaction_approval(
    transaction_id: Annotated[int, Path(description="Transaction identifier")],
    principal: OptionalPrincipalDep,
    service: ServiceDep,
) -> PermissionResultOut:
    user_id = principal.user_id if principal is not None else None
    result = await service.can_approve_transaction(user_id, transaction_id)
    return PermissionResultOut.from_result(result)


@router.get(
    "/maintenance/{maintenance_id}/permissions/approve",
    response_model=PermissionResultOut,
    summary="Check whether the current principal may approve a maintenance record",
)
async def check_maintenance_approval(
    maintenance_id: Annotated[int, Path(description="Maintenance record identifier")],
    principal: OptionalPrincipalDep,
    service: ServiceDep,
) -> PermissionResultOut:
    user_id = principal.user_id if principal is not None else None
    result = await service.can_approve_maintenance(user_id, maintenance_id)
    return PermissionResultOut.from_result(result)


@router.get(
    "/reports/permissions",
    response_model=PermissionResultOut,
    summary="Check whether the current principal may view reports",
)
async def check_report_access(
    principal: OptionalPrincipalDep,
    service: ServiceDep,
    report_type: Annotated[str | None, Query(description="Report type, e.g. 'financial'.")] = None,
) -> PermissionResultOut:
    user_id = principal.user_id if principal is not None else None
    result = await service.can_access_reports(user_id, report_type)
    return PermissionResultOut.from_result(result)


__all__ = ["router"]
