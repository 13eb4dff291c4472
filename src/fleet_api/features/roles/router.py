"""Role administration endpoints; all require ``manage_roles``."""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, Request, Response, status

from fleet_api.app.dependencies import (
    actor_from_request,
    get_roles_service,
    require_permission,
)
from fleet_api.core.principal import AuthenticatedPrincipal
from fleet_api.models import Role

from .schemas import (
    DepartmentScopeOut,
    RoleCreate,
    RoleListOut,
    RoleOut,
    RoleUpdate,
    UserRolesEnvelope,
)
from .service import (
    AssignmentError,
    AssignmentNotFoundError,
    DepartmentScope,
    RoleConflictError,
    RoleImmutableError,
    RoleNotFoundError,
    RolesService,
    RoleValidationError,
)

MANAGE_ROLES_PERMISSION = "manage_roles"

router = APIRouter(prefix="/roles", tags=["roles"])

user_roles_router = APIRouter(
    prefix="/users/{user_id}/roles",
    tags=["roles"],
)

RolesServiceDep = Annotated[RolesService, Depends(get_roles_service)]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _serialize_role(role: Role) -> RoleOut:
    return RoleOut(
        id=role.id,
        name=role.name,
        display_name=role.display_name,
        description=role.description,
        permissions=sorted(role.permission_keys),
        departments=[
            DepartmentScopeOut(department=da.department, can_manage=da.can_manage)
            for da in sorted(role.department_assignments, key=lambda item: item.department)
        ],
        dynamic_rules=role.dynamic_rules,
        is_protected=role.is_protected,
        is_active=role.is_active,
        priority=role.priority,
        created_at=role.created_at,
        updated_at=role.updated_at,
    )


AdminDep = Annotated[AuthenticatedPrincipal, Depends(require_permission(MANAGE_ROLES_PERMISSION))]


# ---------------------------------------------------------------------------
# Role definitions
# ---------------------------------------------------------------------------


@router.get(
    "",
    response_model=RoleListOut,
    summary="List roles",
)
async def list_roles(_: AdminDep, service: RolesServiceDep) -> RoleListOut:
    roles = await service.list_roles()
    return RoleListOut(items=[_serialize_role(role) for role in roles])


@router.post(
    "",
    response_model=RoleOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a role",
)
async def create_role(
    payload: RoleCreate,
    request: Request,
    principal: AdminDep,
    service: RolesServiceDep,
) -> RoleOut:
    try:
        role = await service.create_role(
            name=payload.name,
            display_name=payload.display_name,
            description=payload.description,
            permissions=payload.permissions,
            departments=[
                DepartmentScope(department=item.department, can_manage=item.can_manage)
                for item in payload.departments
            ],
            dynamic_rules=payload.dynamic_rules,
            priority=payload.priority,
            is_active=payload.is_active,
            actor=actor_from_request(request, principal),
        )
    except RoleConflictError as exc:
        raise HTTPException(status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except RoleValidationError as exc:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc

    return _serialize_role(role)


@router.get(
    "/{role_id}",
    response_model=RoleOut,
    summary="Retrieve a role",
)
async def read_role(
    role_id: Annotated[int, Path(description="Role identifier")],
    _: AdminDep,
    service: RolesServiceDep,
) -> RoleOut:
    role = await service.get_role(role_id)
    if role is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="Role not found")
    return _serialize_role(role)


@router.put(
    "/{role_id}",
    response_model=RoleOut,
    summary="Update a role",
)
async def update_role(
    role_id: Annotated[int, Path(description="Role identifier")],
    payload: RoleUpdate,
    request: Request,
    principal: AdminDep,
    service: RolesServiceDep,
) -> RoleOut:
    departments = None
    if payload.departments is not None:
        departments = [
            DepartmentScope(department=item.department, can_manage=item.can_manage)
            for item in payload.departments
        ]

    try:
        role = await service.update_role(
            role_id=role_id,
            name=payload.name,
            display_name=payload.display_name,
            description=payload.description,
            permissions=payload.permissions,
            departments=departments,
            dynamic_rules=payload.dynamic_rules,
            priority=payload.priority,
            is_active=payload.is_active,
            actor=actor_from_request(request, principal),
        )
    except RoleNotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="Role not found") from None
    except RoleImmutableError as exc:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RoleConflictError as exc:
        raise HTTPException(status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except RoleValidationError as exc:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc

    return _serialize_role(role)


@router.delete(
    "/{role_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a role",
)
async def delete_role(
    role_id: Annotated[int, Path(description="Role identifier")],
    request: Request,
    principal: AdminDep,
    service: RolesServiceDep,
) -> Response:
    try:
        await service.delete_role(role_id=role_id, actor=actor_from_request(request, principal))
    except RoleNotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="Role not found") from None
    except RoleImmutableError as exc:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RoleConflictError as exc:
        raise HTTPException(status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Role assignments per user
# ---------------------------------------------------------------------------


async def _user_roles(service: RolesService, user_id: UUID) -> UserRolesEnvelope:
    roles = await service.list_user_roles(user_id)
    return UserRolesEnvelope(user_id=user_id, roles=[_serialize_role(role) for role in roles])


@user_roles_router.put(
    "/{role_id}",
    response_model=UserRolesEnvelope,
    summary="Assign a role to a user (idempotent)",
)
async def assign_user_role(
    user_id: Annotated[UUID, Path(description="User identifier")],
    role_id: Annotated[int, Path(description="Role identifier")],
    request: Request,
    principal: AdminDep,
    service: RolesServiceDep,
) -> UserRolesEnvelope:
    try:
        await service.assign_role(
            user_id=user_id,
            role_id=role_id,
            actor=actor_from_request(request, principal),
        )
    except (RoleNotFoundError, AssignmentError) as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RoleConflictError as exc:
        raise HTTPException(status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    return await _user_roles(service, user_id)


@user_roles_router.delete(
    "/{role_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a role from a user",
)
async def remove_user_role(
    user_id: Annotated[UUID, Path(description="User identifier")],
    role_id: Annotated[int, Path(description="Role identifier")],
    request: Request,
    principal: AdminDep,
    service: RolesServiceDep,
) -> Response:
    try:
        await service.unassign_role(
            user_id=user_id,
            role_id=role_id,
            actor=actor_from_request(request, principal),
        )
    except (AssignmentNotFoundError, RoleNotFoundError) as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = ["router", "user_roles_router"]
