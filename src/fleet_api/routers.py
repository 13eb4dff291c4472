"""API router composition for the fleet FastAPI application."""

from __future__ import annotations

from fastapi import APIRouter

from .features.permissions.router import router as permissions_router
from .features.roles.router import router as roles_router
from .features.roles.router import user_roles_router
from .features.users.router import router as users_router

api_router = APIRouter()
api_router.include_router(permissions_router)
api_router.include_router(roles_router)
api_router.include_router(user_roles_router)
api_router.include_router(users_router)

__all__ = ["api_router"]
