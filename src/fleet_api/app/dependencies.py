"""Per-request dependencies used by API routers.

Routers import session, settings, principal and service constructors from
here so tests can swap any of them through ``app.dependency_overrides``.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_api.core.principal import AuthenticatedPrincipal
from fleet_api.core.rbac.types import DynamicPermissionContext
from fleet_api.db import get_db_session, utc_now
from fleet_api.features.permissions.service import Clock, DynamicPermissionService
from fleet_api.features.roles.service import ActorContext, RolesService
from fleet_api.features.users.service import UsersService
from fleet_api.settings import Settings, get_settings


def get_app_settings(request: Request) -> Settings:
    """Settings the application was created with."""

    settings = getattr(request.app.state, "settings", None)
    return settings if settings is not None else get_settings()


SessionDep = Annotated[AsyncSession, Depends(get_db_session)]
SettingsDep = Annotated[Settings, Depends(get_app_settings)]


async def get_optional_principal(request: Request) -> AuthenticatedPrincipal | None:
    """Principal placed on ``request.state`` by the external auth layer."""

    principal = getattr(request.state, "principal", None)
    if isinstance(principal, AuthenticatedPrincipal):
        return principal
    return None


OptionalPrincipalDep = Annotated[AuthenticatedPrincipal | None, Depends(get_optional_principal)]


async def get_current_principal(principal: OptionalPrincipalDep) -> AuthenticatedPrincipal:
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return principal


PrincipalDep = Annotated[AuthenticatedPrincipal, Depends(get_current_principal)]


def get_clock() -> Clock:
    """Wall clock used for evaluations without an explicit time."""

    return utc_now


def get_permission_service(
    session: SessionDep,
    settings: SettingsDep,
    principal: OptionalPrincipalDep,
    clock: Annotated[Clock, Depends(get_clock)],
) -> DynamicPermissionService:
    return DynamicPermissionService(
        session=session,
        settings=settings,
        principal_id=principal.user_id if principal is not None else None,
        clock=clock,
    )


def get_roles_service(session: SessionDep) -> RolesService:
    return RolesService(session=session)


def get_users_service(session: SessionDep) -> UsersService:
    return UsersService(session=session)


PermissionServiceDep = Annotated[DynamicPermissionService, Depends(get_permission_service)]


def require_permission(
    permission: str,
) -> Callable[..., Awaitable[AuthenticatedPrincipal]]:
    """Dependency that lets the principal through only when ``permission`` is allowed."""

    async def dependency(
        principal: PrincipalDep,
        permissions: PermissionServiceDep,
    ) -> AuthenticatedPrincipal:
        result = await permissions.check_permission(
            permission,
            DynamicPermissionContext(user_id=principal.user_id),
        )
        if not result.allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=result.reason or "Forbidden",
            )
        return principal

    return dependency


def actor_from_request(request: Request, principal: AuthenticatedPrincipal) -> ActorContext:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip_address = forwarded.split(",")[0].strip() or None
    else:
        ip_address = request.client.host if request.client is not None else None
    return ActorContext(
        actor_id=principal.user_id,
        ip_address=ip_address,
        user_agent=request.headers.get("user-agent"),
    )


__all__ = [
    "OptionalPrincipalDep",
    "PermissionServiceDep",
    "PrincipalDep",
    "SessionDep",
    "SettingsDep",
    "actor_from_request",
    "get_app_settings",
    "get_clock",
    "get_current_principal",
    "get_optional_principal",
    "get_permission_service",
    "get_roles_service",
    "get_users_service",
    "require_permission",
]
