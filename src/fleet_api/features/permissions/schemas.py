"""Schemas for permission checks."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from fleet_api.core.rbac.types import (
    ApprovalLevel,
    ApprovalRequirements,
    DynamicPermissionContext,
    PermissionResult,
)


class PermissionResultOut(BaseModel):
    """Verdict of a single permission check."""

    allowed: bool = Field(..., description="True when the action may proceed.")
    reason: str | None = Field(
        default=None, description="Human-readable explanation for denials and approvals."
    )
    requires_approval: bool = Field(
        default=False, description="True when the action is allowed but must be approved."
    )
    approval_level: ApprovalLevel = Field(
        default=ApprovalLevel.NONE, description="Approval tier the action is routed to."
    )

    @classmethod
    def from_result(cls, result: PermissionResult) -> PermissionResultOut:
        return cls(
            allowed=result.allowed,
            reason=result.reason,
            requires_approval=result.requires_approval,
            approval_level=result.approval_level,
        )


class PermissionContextIn(BaseModel):
    """Optional facts a check is evaluated against."""

    model_config = ConfigDict(extra="ignore")

    department: str | None = Field(default=None, description="Department the action targets.")
    vehicle_id: int | None = Field(default=None, description="Vehicle identifier.")
    transaction_id: int | None = Field(default=None, description="Transaction identifier.")
    maintenance_id: int | None = Field(default=None, description="Maintenance record identifier.")
    amount: float | None = Field(default=None, description="Monetary amount of the action.")
    time: datetime | None = Field(
        default=None, description="Evaluation time; defaults to the current time."
    )

    def to_context(self, *, user_id: UUID | None) -> DynamicPermissionContext:
        return DynamicPermissionContext(
            user_id=user_id,
            department=self.department,
            vehicle_id=self.vehicle_id,
            transaction_id=self.transaction_id,
            maintenance_id=self.maintenance_id,
            amount=self.amount,
            time=self.time,
        )


class PermissionCheckRequest(BaseModel):
    """Body of ``POST /permissions/check``."""

    permission: str = Field(..., min_length=1, description="Permission token to check.")
    context: PermissionContextIn = Field(
        default_factory=PermissionContextIn, description="Optional evaluation context."
    )


class ApprovalRequirementsOut(BaseModel):
    """Approval routing for an action."""

    requires_approval: bool
    approval_level: ApprovalLevel
    reason: str | None = None

    @classmethod
    def from_requirements(cls, requirements: ApprovalRequirements) -> ApprovalRequirementsOut:
        return cls(
            requires_approval=requirements.requires_approval,
            approval_level=requirements.approval_level,
            reason=requirements.reason,
        )


class StaticPermissionsOut(BaseModel):
    """Permission tokens granted by the principal's roles."""

    user_id: UUID = Field(..., description="Principal identifier.")
    permissions: list[str] = Field(
        default_factory=list, description="Sorted union of granted permission tokens."
    )
    role_count: int = Field(..., ge=0, description="Number of roles assigned.")


class EffectivePermissionsOut(BaseModel):
    """Per-token verdicts with dynamic rules applied."""

    user_id: UUID
    permissions: dict[str, PermissionResultOut] = Field(default_factory=dict)


__all__ = [
    "ApprovalRequirementsOut",
    "EffectivePermissionsOut",
    "PermissionCheckRequest",
    "PermissionContextIn",
    "PermissionResultOut",
    "StaticPermissionsOut",
]
