"""Schemas for user administration."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from fleet_api.models import DEFAULT_TRUST_SCORE, UserStatus

from .service import MAX_TRUST_SCORE, MIN_TRUST_SCORE


class UserCreate(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    display_name: str | None = Field(default=None, max_length=255)
    trust_score: int = Field(DEFAULT_TRUST_SCORE, ge=MIN_TRUST_SCORE, le=MAX_TRUST_SCORE)
    status: UserStatus = UserStatus.ACTIVE
    role_ids: list[int] = Field(default_factory=list)


class UserUpdate(BaseModel):
    """Partial update; ``role_ids`` replaces the role set when present."""

    email: str | None = Field(default=None, min_length=3, max_length=320)
    display_name: str | None = Field(default=None, max_length=255)
    trust_score: int | None = Field(default=None, ge=MIN_TRUST_SCORE, le=MAX_TRUST_SCORE)
    status: UserStatus | None = None
    role_ids: list[int] | None = None


class UserOut(BaseModel):
    id: UUID
    email: str
    display_name: str | None = None
    trust_score: int
    status: UserStatus
    role_ids: list[int]
    created_at: datetime
    updated_at: datetime


class UserListOut(BaseModel):
    items: list[UserOut]


__all__ = ["UserCreate", "UserListOut", "UserOut", "UserUpdate"]
