"""RBAC type definitions used across the stack."""

from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any
from uuid import UUID


class ApprovalLevel(str, enum.Enum):
    """Approval tier a gated action is routed to."""

    NONE = "none"
    MANAGER = "manager"
    ADMIN = "admin"


class MissingContextPolicy(str, enum.Enum):
    """How an active rule behaves when its context field is absent."""

    SKIP = "skip"
    DENY = "deny"


@dataclass(frozen=True)
class DynamicPermissionContext:
    """Request-scoped facts a permission check is evaluated against.

    Every field is optional. Rules that need a field which is not present are
    treated as not applicable.
    """

    user_id: UUID | None = None
    department: str | None = None
    vehicle_id: int | None = None
    transaction_id: int | None = None
    maintenance_id: int | None = None
    amount: float | None = None
    time: datetime | None = None
    user_trust_score: int | None = None

    def with_values(self, **changes: Any) -> DynamicPermissionContext:
        """Return a copy with ``changes`` applied."""
        return replace(self, **changes)


@dataclass(frozen=True)
class PermissionResult:
    """Verdict of a permission check."""

    allowed: bool
    reason: str | None = None
    requires_approval: bool = False
    approval_level: ApprovalLevel = ApprovalLevel.NONE

    @classmethod
    def allow(cls) -> PermissionResult:
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str) -> PermissionResult:
        return cls(allowed=False, reason=reason)

    @classmethod
    def pending_approval(cls, level: ApprovalLevel, reason: str) -> PermissionResult:
        return cls(allowed=True, reason=reason, requires_approval=True, approval_level=level)


@dataclass(frozen=True)
class ApprovalRequirements:
    """Projection of a verdict onto the approval queue."""

    requires_approval: bool
    approval_level: ApprovalLevel
    reason: str | None = None


@dataclass(frozen=True)
class PermissionDef:
    """Static permission definition."""

    key: str
    category: str
    label: str
    description: str


@dataclass(frozen=True)
class SystemRoleDef:
    """Static system role definition seeded at startup."""

    name: str
    display_name: str
    description: str
    permissions: tuple[str, ...]
    dynamic_rules: dict[str, Any] | None = None
    priority: int = 0
    is_protected: bool = False


__all__ = [
    "ApprovalLevel",
    "ApprovalRequirements",
    "DynamicPermissionContext",
    "MissingContextPolicy",
    "PermissionDef",
    "PermissionResult",
    "SystemRoleDef",
]
