"""Approval tiering for gated actions."""

from __future__ import annotations

from fleet_api.core.rbac.types import ApprovalLevel, ApprovalRequirements, PermissionResult

# Amounts above this value are escalated to an administrator regardless of the
# ceiling configured on the role that triggered the approval.
ADMIN_APPROVAL_THRESHOLD = 5000.0


def resolve_approval_level(
    amount: float,
    *,
    threshold: float = ADMIN_APPROVAL_THRESHOLD,
) -> ApprovalLevel:
    """Return the approval tier for ``amount``."""
    if amount > threshold:
        return ApprovalLevel.ADMIN
    return ApprovalLevel.MANAGER


def project_requirements(result: PermissionResult) -> ApprovalRequirements:
    """Project a verdict onto the fields an approval queue cares about."""
    return ApprovalRequirements(
        requires_approval=bool(result.requires_approval),
        approval_level=result.approval_level or ApprovalLevel.NONE,
        reason=result.reason,
    )


UNAUTHENTICATED_REQUIREMENTS = ApprovalRequirements(
    requires_approval=True,
    approval_level=ApprovalLevel.ADMIN,
    reason="Not authenticated",
)


def format_amount(value: float) -> str:
    """Render an amount without a trailing ``.0`` for whole numbers."""
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return f"{number:.2f}"


__all__ = [
    "ADMIN_APPROVAL_THRESHOLD",
    "UNAUTHENTICATED_REQUIREMENTS",
    "format_amount",
    "project_requirements",
    "resolve_approval_level",
]
