"""Schemas for role administration."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .service import RoleValidationError, normalize_dynamic_rules


class DepartmentScopeIn(BaseModel):
    department: str = Field(..., min_length=1, max_length=120)
    can_manage: bool = False


class DepartmentScopeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    department: str
    can_manage: bool


def _validate_rules(value: dict[str, Any] | None) -> dict[str, Any] | None:
    if value is None:
        return None
    try:
        normalize_dynamic_rules(value)
    except RoleValidationError as exc:
        raise ValueError(str(exc)) from exc
    return value


class RoleCreate(BaseModel):
    """Payload for creating a role."""

    name: str = Field(..., min_length=1, max_length=100, description="Unique role name.")
    display_name: str | None = Field(default=None, max_length=150)
    description: str | None = None
    permissions: list[str] = Field(default_factory=list)
    departments: list[DepartmentScopeIn] = Field(default_factory=list)
    dynamic_rules: dict[str, Any] | None = Field(
        default=None,
        description=(
            "Rules document, e.g. {\"departmentRestriction\": true, \"budgetLimit\": 1000}."
        ),
    )
    priority: int = 0
    is_active: bool = True

    @field_validator("dynamic_rules")
    @classmethod
    def _v_dynamic_rules(cls, value: dict[str, Any] | None) -> dict[str, Any] | None:
        return _validate_rules(value)


class RoleUpdate(BaseModel):
    """Partial update; omitted fields are left unchanged."""

    name: str | None = Field(default=None, min_length=1, max_length=100)
    display_name: str | None = Field(default=None, max_length=150)
    description: str | None = None
    permissions: list[str] | None = None
    departments: list[DepartmentScopeIn] | None = None
    dynamic_rules: dict[str, Any] | None = Field(
        default=None, description="Replacement rules document; {} clears the rules."
    )
    priority: int | None = None
    is_active: bool | None = None

    @field_validator("dynamic_rules")
    @classmethod
    def _v_dynamic_rules(cls, value: dict[str, Any] | None) -> dict[str, Any] | None:
        return _validate_rules(value)


class RoleOut(BaseModel):
    id: int
    name: str
    display_name: str
    description: str | None = None
    permissions: list[str]
    departments: list[DepartmentScopeOut]
    dynamic_rules: dict[str, Any] | None = None
    is_protected: bool
    is_active: bool
    priority: int
    created_at: datetime
    updated_at: datetime


class RoleListOut(BaseModel):
    items: list[RoleOut]


class UserRolesEnvelope(BaseModel):
    user_id: UUID
    roles: list[RoleOut]


__all__ = [
    "DepartmentScopeIn",
    "DepartmentScopeOut",
    "RoleCreate",
    "RoleListOut",
    "RoleOut",
    "RoleUpdate",
    "UserRolesEnvelope",
]
