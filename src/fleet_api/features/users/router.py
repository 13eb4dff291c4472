"""User administration endpoints, gated by the ``*_users`` permissions."""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, Request, status

from fleet_api.app.dependencies import (
    actor_from_request,
    get_users_service,
    require_permission,
)
from fleet_api.core.principal import AuthenticatedPrincipal
from fleet_api.models import User

from .schemas import UserCreate, UserListOut, UserOut, UserUpdate
from .service import (
    UserConflictError,
    UserNotFoundError,
    UsersService,
    UserValidationError,
)

router = APIRouter(prefix="/users", tags=["users"])

UsersServiceDep = Annotated[UsersService, Depends(get_users_service)]


def _serialize_user(user: User) -> UserOut:
    return UserOut(
        id=user.id,
        email=user.email,
        display_name=user.display_name,
        trust_score=user.trust_score,
        status=user.status,
        role_ids=sorted(assignment.role_id for assignment in user.role_assignments),
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


ViewUsersDep = Annotated[AuthenticatedPrincipal, Depends(require_permission("view_users"))]
CreateUsersDep = Annotated[AuthenticatedPrincipal, Depends(require_permission("create_users"))]
EditUsersDep = Annotated[AuthenticatedPrincipal, Depends(require_permission("edit_users"))]


@router.get("", response_model=UserListOut, summary="List users")
async def list_users(_: ViewUsersDep, service: UsersServiceDep) -> UserListOut:
    users = await service.list_users()
    return UserListOut(items=[_serialize_user(user) for user in users])


@router.post(
    "",
    response_model=UserOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a user",
)
async def create_user(
    payload: UserCreate,
    request: Request,
    principal: CreateUsersDep,
    service: UsersServiceDep,
) -> UserOut:
    try:
        user = await service.create_user(
            email=payload.email,
            display_name=payload.display_name,
            trust_score=payload.trust_score,
            status=payload.status,
            role_ids=payload.role_ids,
            actor=actor_from_request(request, principal),
        )
    except UserConflictError as exc:
        raise HTTPException(status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except UserValidationError as exc:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc

    return _serialize_user(user)


@router.get("/{user_id}", response_model=UserOut, summary="Retrieve a user")
async def read_user(
    user_id: Annotated[UUID, Path(description="User identifier")],
    _: ViewUsersDep,
    service: UsersServiceDep,
) -> UserOut:
    user = await service.get_user(user_id)
    if user is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="User not found")
    return _serialize_user(user)


@router.patch("/{user_id}", response_model=UserOut, summary="Update a user")
async def update_user(
    user_id: Annotated[UUID, Path(description="User identifier")],
    payload: UserUpdate,
    request: Request,
    principal: EditUsersDep,
    service: UsersServiceDep,
) -> UserOut:
    try:
        user = await service.update_user(
            user_id=user_id,
            email=payload.email,
            display_name=payload.display_name,
            trust_score=payload.trust_score,
            status=payload.status,
            role_ids=payload.role_ids,
            actor=actor_from_request(request, principal),
        )
    except UserNotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="User not found") from None
    except UserConflictError as exc:
        raise HTTPException(status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except UserValidationError as exc:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc

    return _serialize_user(user)


__all__ = ["router"]
